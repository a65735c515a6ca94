from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional


TRANSACTION_STATUSES = ("pending", "settled", "transferred")


def coerce_amount(value) -> Optional[int]:
    """JSON上の金額を整数に。"1,000" のような文字列も許容し、読めなければ None"""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.replace(",", "").strip()
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return None


@dataclass(frozen=True)
class ParsedReceiptData:
    """OCRテキストから抽出したレシート情報（raw_text以外は欠損可）"""
    raw_text: str
    amount: Optional[int] = None
    date: Optional[date] = None
    vendor: Optional[str] = None
    description: Optional[str] = None


@dataclass
class FreeeTransaction:
    id: int
    date: str  # YYYY-MM-DD
    amount: Optional[int]
    description: str = ""
    status: str = "pending"  # pending|settled|transferred
    receipt_ids: List[int] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict) -> "FreeeTransaction":
        status = data.get("status") or "pending"
        if status not in TRANSACTION_STATUSES:
            status = "pending"
        return cls(
            id=int(data["id"]),
            date=str(data.get("date") or ""),
            amount=coerce_amount(data.get("amount")),
            description=data.get("description") or "",
            status=status,
            receipt_ids=list(data.get("receipt_ids") or []),
        )


@dataclass(frozen=True)
class MatchingCriteria:
    amount_tolerance: float  # 金額の相対許容幅 (0, 1)
    date_tolerance: int  # 日付の許容日数
    minimum_score: float  # これ未満の候補は除外

    def __post_init__(self):
        if not 0 < self.amount_tolerance < 1:
            raise ValueError(f"amount_tolerance must be in (0, 1): {self.amount_tolerance}")
        if isinstance(self.date_tolerance, bool) or not isinstance(self.date_tolerance, int) or self.date_tolerance < 0:
            raise ValueError(f"date_tolerance must be a non-negative integer: {self.date_tolerance}")
        if not 0 <= self.minimum_score <= 1:
            raise ValueError(f"minimum_score must be in [0, 1]: {self.minimum_score}")


DEFAULT_CRITERIA = MatchingCriteria(amount_tolerance=0.05, date_tolerance=3, minimum_score=0.3)


@dataclass
class MatchResult:
    transaction: FreeeTransaction
    receipt: ParsedReceiptData
    score: float
    match_type: str  # exact|approximate|partial
