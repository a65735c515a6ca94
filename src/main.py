import argparse
import contextlib
import json
import os
import sys
from dataclasses import asdict
from typing import Dict, List, Optional, Tuple

import requests
from dotenv import load_dotenv

from config_loader import criteria_from_config, load_matching_config
from environment_validator import EnvironmentValidator
from freee_expense import FreeeExpenseService, RegistrationResult
from freee_transactions import FreeeTransactionService
from linker import reconcile_receipt, register_auto_match
from ocr_models import FreeeTransaction
from vision_ocr import GoogleVisionOCR


def load_transactions_file(path: str) -> List[FreeeTransaction]:
    """取引JSONを読み込む。freee deals のレスポンスそのままでも可"""
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    if isinstance(data, dict):
        if "deals" in data:
            return [FreeeTransactionService.map_deal(d) for d in data["deals"]]
        data = data.get("transactions", [])

    transactions = []
    for item in data:
        if "issue_date" in item:
            transactions.append(FreeeTransactionService.map_deal(item))
        else:
            transactions.append(FreeeTransaction.from_dict(item))
    return transactions


def read_receipt_text(args: argparse.Namespace) -> str:
    if args.text:
        with open(args.text, "r", encoding="utf-8") as f:
            return f.read()
    ocr = GoogleVisionOCR()
    result = ocr.extract_text(args.image)
    print(f"  OCR信頼度: {result.confidence:.2f} / {len(result.text)}文字")
    return result.text


def read_receipt_file(args: argparse.Namespace) -> Tuple[Optional[bytes], str]:
    """証憑として添付するファイル。テキスト入力の場合は添付なし"""
    if not args.image:
        return None, "receipt.pdf"
    with open(args.image, "rb") as f:
        return f.read(), os.path.basename(args.image)


def freee_credentials() -> Tuple[str, int]:
    return os.getenv("FREEE_ACCESS_TOKEN"), int(os.getenv("FREEE_COMPANY_ID"))


def fetch_transactions(args: argparse.Namespace) -> List[FreeeTransaction]:
    if args.transactions:
        return load_transactions_file(args.transactions)
    service = FreeeTransactionService(*freee_credentials())
    return service.get_unprocessed_transactions()


def outcome_to_json(outcome: Dict, registration: Optional[RegistrationResult] = None) -> Dict:
    receipt = outcome["receipt"]
    return {
        "registration": asdict(registration) if registration else None,
        "receipt": {
            "amount": receipt.amount,
            "date": receipt.date.isoformat() if receipt.date else None,
            "vendor": receipt.vendor,
            "description": receipt.description,
        },
        "action": outcome["action"],
        "reason": outcome["reason"],
        "best": outcome["best"],
        "candidates": outcome["candidates"],
    }


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="レシートOCR結果とfreee取引の突合せ",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
使用例:
  python src/main.py --text receipt.txt --transactions deals.json
  python src/main.py --image receipt.png
  python src/main.py --text receipt.txt --json
  python src/main.py --image receipt.png --register
        """,
    )
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--text", type=str, help="OCR済みテキストファイル")
    source.add_argument("--image", type=str, help="OCRする画像/PDFファイル (Google Vision)")
    parser.add_argument("--transactions", type=str,
                        help="取引JSONファイル (省略時はfreeeから未処理取引を取得)")
    parser.add_argument("--config", type=str, help="マッチング設定YAML")
    parser.add_argument("--env-file", type=str, default=".env",
                        help="環境変数ファイルのパス (デフォルト: .env)")
    parser.add_argument("--json", action="store_true", help="結果をJSONで出力")
    parser.add_argument("--register", action="store_true",
                        help="AUTO判定の場合にfreeeへ経費申請を登録 (画像入力時は証憑も添付)")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    if os.path.exists(args.env_file):
        load_dotenv(args.env_file)

    groups = []
    if args.image:
        groups.append("ocr")
    if not args.transactions or args.register:
        groups.append("freee")

    registration = None
    # JSON出力時は進捗表示を stderr に逃がす
    with contextlib.redirect_stdout(sys.stderr if args.json else sys.stdout):
        try:
            EnvironmentValidator().check_requirements(groups)
            cfg = load_matching_config(args.config)
            criteria = criteria_from_config(cfg)
            text = read_receipt_text(args)
            transactions = fetch_transactions(args)
            receipt_file, filename = read_receipt_file(args) if args.register else (None, "receipt.pdf")
        except (OSError, KeyError, ValueError, requests.RequestException) as e:
            print(f"❌ {e}")
            return 1

        outcome = reconcile_receipt(text, transactions, cfg, criteria)

        if args.register:
            expense_service = FreeeExpenseService(*freee_credentials())
            registration = register_auto_match(expense_service, outcome, receipt_file=receipt_file, filename=filename)
            if registration is None:
                print(f"  [登録] {outcome['action']} のため登録をスキップしました")

    if args.json:
        print(json.dumps(outcome_to_json(outcome, registration), ensure_ascii=False, indent=2))
    else:
        print(f"\n処理区分: {outcome['action']}")
        for i, c in enumerate(outcome["candidates"], 1):
            print(f"  [{i}] tx={c['tx_id']} score={c['score']:.2f} ({c['match_type']}) {', '.join(c['reasons'])}")
        if registration:
            status = f"expense_id={registration.expense_id}" if registration.success else registration.error
            print(f"経費申請: {'成功' if registration.success else '失敗'} ({status})")
    return 0 if registration is None or registration.success else 1


if __name__ == "__main__":
    sys.exit(main())
