import re
from typing import Dict, List, Optional

from rapidfuzz.distance import JaroWinkler

from config_loader import criteria_from_config
from freee_expense import ExpenseRegistration, FreeeExpenseService, RegistrationResult
from matcher import ReceiptTransactionMatcher, as_amount
from ocr_models import FreeeTransaction, MatchingCriteria, MatchResult
from text_parser import parse_receipt_text


def _normalize_name(text: str) -> str:
    if not text:
        return ""
    s = text
    s = s.replace("（", "(").replace("）", ")")
    s = s.replace("株式会社", "").replace("(株)", "").replace("㈱", "")
    s = re.sub(r"\s+", "", s)
    return s.upper()


def _similarity(a: str, b: str) -> float:
    if not a or not b:
        return 0.0
    return JaroWinkler.normalized_similarity(a, b)


def decide_action(score: float, cfg: Dict) -> str:
    th = cfg.get("thresholds", {"auto": 0.9, "assist_min": 0.7})
    if score >= th["auto"]:
        return "AUTO"
    if score >= th["assist_min"]:
        return "ASSIST"
    return "MANUAL"


def summarize_match(result: MatchResult) -> Dict:
    """確認用の候補サマリ。reasons の名前類似度は参考情報でスコアには影響しない"""
    receipt = result.receipt
    tx = result.transaction
    reasons: List[str] = []

    tx_amount = as_amount(tx.amount)
    amount_diff = abs(receipt.amount - tx_amount) if receipt.amount and tx_amount else None
    if amount_diff == 0:
        reasons.append("amount=")
    elif amount_diff is not None:
        reasons.append(f"amount_diff={amount_diff}")
    else:
        reasons.append("amount_missing")

    if receipt.date and tx.date:
        reasons.append(f"date={receipt.date.isoformat()}/{tx.date}")

    name_score = int(_similarity(_normalize_name(receipt.vendor), _normalize_name(tx.description)) * 100)
    reasons.append(f"name~{name_score}")

    return {
        "tx_id": str(tx.id),
        "score": round(result.score, 4),
        "match_type": result.match_type,
        "reasons": reasons,
        "deltas": {
            "amount": amount_diff,
            "date": tx.date,
            "name": tx.description,
        },
    }


def reconcile_receipt(
    text: str,
    transactions: List[FreeeTransaction],
    cfg: Dict,
    criteria: Optional[MatchingCriteria] = None,
) -> Dict:
    """OCRテキスト1件を解析し、最良候補と処理区分を返す"""
    receipt = parse_receipt_text(text)
    vendor = (receipt.vendor or "?")[:20]
    amount = f"¥{receipt.amount:,}" if receipt.amount else "¥?"
    print(f"  [マッチング] レシート: {vendor} / {amount} / {receipt.date or '?'}")
    print(f"  [マッチング] 対象取引: {len(transactions)}件")

    outcome = {"receipt": receipt, "candidates": [], "best": None, "action": "MANUAL", "reason": None}

    if not receipt.amount or not receipt.date:
        print("  ⚠️ 金額または日付を抽出できませんでした。手動入力が必要です")
        outcome["reason"] = "insufficient_signal"
        return outcome

    matcher = ReceiptTransactionMatcher(criteria or criteria_from_config(cfg))
    results = matcher.find_matches(receipt, transactions)
    if not results:
        print(f"  [マッチング] 候補なし (minimum_score={matcher.criteria.minimum_score})")
        outcome["reason"] = "no_candidates"
        return outcome

    candidates = [summarize_match(r) for r in results[: cfg.get("max_candidates", 3)]]
    best = candidates[0]
    outcome["candidates"] = candidates
    outcome["best"] = best
    outcome["action"] = decide_action(results[0].score, cfg)
    print(f"  [マッチング] ベスト候補: tx={best['tx_id']} score={best['score']:.2f} ({best['match_type']}) → {outcome['action']}")
    return outcome


def register_auto_match(
    expense_service: FreeeExpenseService,
    outcome: Dict,
    *,
    receipt_file: Optional[bytes] = None,
    filename: str = "receipt.pdf",
) -> Optional[RegistrationResult]:
    """AUTO 判定のときだけ経費申請として登録する。それ以外は None"""
    if outcome["action"] != "AUTO" or not outcome["best"]:
        return None

    receipt = outcome["receipt"]
    best = outcome["best"]
    registration = ExpenseRegistration(
        transaction_id=int(best["tx_id"]),
        amount=receipt.amount,
        date=receipt.date,
        description=receipt.vendor or receipt.description or best["deltas"]["name"] or "レシート",
        receipt_file=receipt_file,
        receipt_filename=filename,
    )
    print(f"  [登録] tx={best['tx_id']} ¥{receipt.amount:,} {registration.description[:20]}")
    return expense_service.register_expense(registration)
