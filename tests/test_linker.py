import os
import sys
from datetime import date
from unittest.mock import MagicMock

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'src')))

from config_loader import DEFAULTS
from freee_expense import RegistrationResult
from linker import decide_action, reconcile_receipt, register_auto_match, summarize_match
from matcher import ReceiptTransactionMatcher
from ocr_models import FreeeTransaction, MatchingCriteria, ParsedReceiptData


TXS = [
    FreeeTransaction(1, "2024-01-15", 1000, "テストストア", "pending", []),
    FreeeTransaction(2, "2024-01-14", 1050, "Similar amount", "pending", []),
    FreeeTransaction(3, "2024-01-20", 2000, "Different amount", "pending", []),
]

TEXT = "テストストア\nご利用明細\n2024/01/15\n合計 ¥1,000\n"


def test_decide_action_thresholds():
    cfg = {"thresholds": {"auto": 0.9, "assist_min": 0.7}}
    assert decide_action(0.95, cfg) == "AUTO"
    assert decide_action(0.9, cfg) == "AUTO"
    assert decide_action(0.85, cfg) == "ASSIST"
    assert decide_action(0.7, cfg) == "ASSIST"
    assert decide_action(0.5, cfg) == "MANUAL"


def test_decide_action_default_thresholds():
    assert decide_action(0.92, {}) == "AUTO"
    assert decide_action(0.1, {}) == "MANUAL"


def test_reconcile_auto_best_candidate():
    outcome = reconcile_receipt(TEXT, TXS, DEFAULTS)
    assert outcome["action"] == "AUTO"
    assert outcome["reason"] is None
    assert outcome["best"]["tx_id"] == "1"
    assert outcome["best"]["match_type"] == "exact"
    # tx3 は最低スコア未満で除外
    assert [c["tx_id"] for c in outcome["candidates"]] == ["1", "2"]
    assert outcome["receipt"].amount == 1000


def test_reconcile_assist_when_only_approximate():
    outcome = reconcile_receipt(TEXT, [TXS[1]], DEFAULTS)
    assert outcome["action"] == "ASSIST"
    assert outcome["best"]["match_type"] == "approximate"


def test_reconcile_respects_max_candidates():
    cfg = dict(DEFAULTS, max_candidates=1)
    outcome = reconcile_receipt(TEXT, TXS, cfg)
    assert len(outcome["candidates"]) == 1


def test_reconcile_insufficient_signal():
    outcome = reconcile_receipt("ローソン\nありがとうございました", TXS, DEFAULTS)
    assert outcome["action"] == "MANUAL"
    assert outcome["reason"] == "insufficient_signal"
    assert outcome["candidates"] == []


def test_reconcile_no_candidates():
    far = [FreeeTransaction(5, "2023-06-01", 90000, "far away")]
    outcome = reconcile_receipt(TEXT, far, DEFAULTS)
    assert outcome["action"] == "MANUAL"
    assert outcome["reason"] == "no_candidates"


def test_reconcile_uses_configured_criteria():
    cfg = dict(DEFAULTS, criteria={"amount_tolerance": 0.05, "date_tolerance": 3, "minimum_score": 0.1})
    outcome = reconcile_receipt(TEXT, TXS, cfg)
    assert [c["tx_id"] for c in outcome["candidates"]] == ["1", "2", "3"]


def test_summarize_match_reasons():
    receipt = ParsedReceiptData(raw_text="x", amount=1000, date=date(2024, 1, 15), vendor="テストストア")
    result = ReceiptTransactionMatcher().find_matches(receipt, [TXS[0]])[0]

    summary = summarize_match(result)

    assert summary["tx_id"] == "1"
    assert summary["score"] == 1.0
    assert "amount=" in summary["reasons"]
    assert "date=2024-01-15/2024-01-15" in summary["reasons"]
    assert "name~100" in summary["reasons"]
    assert summary["deltas"]["amount"] == 0


def test_summarize_match_without_vendor():
    receipt = ParsedReceiptData(raw_text="x", amount=1000, date=date(2024, 1, 15))
    result = ReceiptTransactionMatcher().find_matches(receipt, [TXS[1]])[0]

    summary = summarize_match(result)

    assert "amount_diff=50" in summary["reasons"]
    assert "name~0" in summary["reasons"]


def test_reconcile_prefers_explicit_criteria():
    loose = MatchingCriteria(amount_tolerance=0.05, date_tolerance=3, minimum_score=0.1)
    outcome = reconcile_receipt(TEXT, TXS, DEFAULTS, loose)
    assert [c["tx_id"] for c in outcome["candidates"]] == ["1", "2", "3"]


def test_summarize_match_with_non_numeric_amount():
    receipt = ParsedReceiptData(raw_text="x", amount=1000, date=date(2024, 1, 15))
    broken = FreeeTransaction(9, "2024-01-15", "1000", "raw")
    result = ReceiptTransactionMatcher().find_matches(receipt, [broken])[0]

    summary = summarize_match(result)

    assert "amount_missing" in summary["reasons"]
    assert summary["deltas"]["amount"] is None


def test_register_auto_match_files_best_candidate():
    service = MagicMock()
    service.register_expense.return_value = RegistrationResult(success=True, expense_id=501)
    outcome = reconcile_receipt(TEXT, TXS, DEFAULTS)

    result = register_auto_match(service, outcome, receipt_file=b"img", filename="r.png")

    assert result.expense_id == 501
    registration = service.register_expense.call_args.args[0]
    assert registration.transaction_id == 1
    assert registration.amount == 1000
    assert registration.date == date(2024, 1, 15)
    assert registration.description == "テストストア"
    assert registration.receipt_file == b"img"
    assert registration.receipt_filename == "r.png"


def test_register_auto_match_skips_non_auto():
    service = MagicMock()
    assist = reconcile_receipt(TEXT, [TXS[1]], DEFAULTS)
    manual = reconcile_receipt("ローソン\nありがとうございました", TXS, DEFAULTS)

    assert register_auto_match(service, assist) is None
    assert register_auto_match(service, manual) is None
    service.register_expense.assert_not_called()
