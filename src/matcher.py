import math
from datetime import date, datetime
from typing import List, Optional, Union

from ocr_models import (
    DEFAULT_CRITERIA,
    FreeeTransaction,
    MatchingCriteria,
    MatchResult,
    ParsedReceiptData,
)


MATCH_EXACT = "exact"
MATCH_APPROXIMATE = "approximate"
MATCH_PARTIAL = "partial"

_SECONDS_PER_DAY = 24 * 60 * 60


def _to_datetime(value: Union[date, datetime, str, None]) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    if isinstance(value, date):
        return datetime.combine(value, datetime.min.time())
    try:
        return datetime.strptime(str(value)[:10], "%Y-%m-%d")
    except ValueError:
        return None


def as_amount(value) -> Optional[float]:
    """数値として扱える金額のみ返す（文字列・bool などは None）"""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if math.isnan(value) or math.isinf(value):
        return None
    return value


class ReceiptTransactionMatcher:
    """レシートと取引の突合せ（金額・日付の重み付きスコア）"""

    # 重み
    AMOUNT_WEIGHT = 0.6
    DATE_WEIGHT = 0.4

    # 許容範囲内での減衰幅: 金額 1.0→0.8, 日付 1.0→0.7
    AMOUNT_TOLERANCE_DECAY = 0.2
    DATE_TOLERANCE_DECAY = 0.3
    # 許容範囲外の日付は1日ごとに減点
    DATE_DECAY_PER_DAY = 0.1

    EXACT_THRESHOLD = 0.9
    APPROXIMATE_THRESHOLD = 0.7

    def __init__(self, criteria: Optional[MatchingCriteria] = None):
        # 部分指定のマージはしない。渡された基準がそのまま全項目を置き換える
        self.criteria = criteria if criteria is not None else DEFAULT_CRITERIA

    def find_matches(self, receipt: ParsedReceiptData, transactions: List[FreeeTransaction]) -> List[MatchResult]:
        if not receipt.amount or not receipt.date:
            return []

        results: List[MatchResult] = []
        for tx in transactions:
            score = self.calculate_score(receipt, tx)
            if score >= self.criteria.minimum_score:
                results.append(MatchResult(
                    transaction=tx,
                    receipt=receipt,
                    score=score,
                    match_type=self.determine_match_type(score),
                ))

        results.sort(key=lambda r: r.score, reverse=True)
        return results

    def calculate_score(self, receipt: ParsedReceiptData, transaction: FreeeTransaction) -> float:
        total = 0.0
        applied = 0.0

        # 数値でない金額は不適用として重みごと外す
        tx_amount = as_amount(getattr(transaction, "amount", None))
        if receipt.amount and tx_amount:
            total += self.calculate_amount_score(receipt.amount, tx_amount) * self.AMOUNT_WEIGHT
            applied += self.AMOUNT_WEIGHT

        if receipt.date:
            tx_date = _to_datetime(getattr(transaction, "date", None))
            # 取引日が読めない場合は0点として扱う（重みは残す）
            date_score = self.calculate_date_score(receipt.date, tx_date) if tx_date else 0.0
            total += date_score * self.DATE_WEIGHT
            applied += self.DATE_WEIGHT

        return total / applied if applied > 0 else 0.0

    def calculate_amount_score(self, receipt_amount: float, transaction_amount: float) -> float:
        if receipt_amount == transaction_amount:
            return 1.0
        if not transaction_amount:
            return 0.0

        difference = abs(receipt_amount - transaction_amount)
        tolerance = transaction_amount * self.criteria.amount_tolerance

        if difference <= tolerance:
            return 1.0 - (difference / tolerance) * self.AMOUNT_TOLERANCE_DECAY

        # 許容範囲外は二乗で急減衰
        ratio = difference / transaction_amount
        return max(0.0, 1.0 - (ratio * 2) ** 2)

    def calculate_date_score(self, receipt_date: Union[date, datetime], transaction_date: Union[date, datetime, str]) -> float:
        r = _to_datetime(receipt_date)
        t = _to_datetime(transaction_date)
        if r is None or t is None:
            return 0.0

        day_diff = abs(math.floor((r - t).total_seconds() / _SECONDS_PER_DAY))
        tolerance = self.criteria.date_tolerance

        if day_diff == 0:
            return 1.0
        if day_diff <= tolerance:
            return 1.0 - (day_diff / tolerance) * self.DATE_TOLERANCE_DECAY

        return max(0.0, (1.0 - self.DATE_TOLERANCE_DECAY) - (day_diff - tolerance) * self.DATE_DECAY_PER_DAY)

    def determine_match_type(self, score: float) -> str:
        if score >= self.EXACT_THRESHOLD:
            return MATCH_EXACT
        if score >= self.APPROXIMATE_THRESHOLD:
            return MATCH_APPROXIMATE
        return MATCH_PARTIAL


default_receipt_matcher = ReceiptTransactionMatcher()


def find_receipt_matches(
    receipt: ParsedReceiptData,
    transactions: List[FreeeTransaction],
    criteria: Optional[MatchingCriteria] = None,
) -> List[MatchResult]:
    matcher = ReceiptTransactionMatcher(criteria) if criteria else default_receipt_matcher
    return matcher.find_matches(receipt, transactions)
