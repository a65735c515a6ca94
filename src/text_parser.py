"""
OCRテキスト解析モジュール
レシートのOCR結果から金額・日付・店舗名・摘要を抽出する

どの抽出も失敗時は None を返すだけで例外は投げない。
一部の項目だけ取れたレシートもそのまま後段（マッチング）に渡す。
"""

import re
from datetime import date
from typing import List, Optional

from ocr_models import ParsedReceiptData


# 金額パターン: 全パターンの全マッチを集め、最大値を合計金額とみなす
AMOUNT_PATTERNS = [
    re.compile(r"¥([\d,]+)"),
    re.compile(r"￥([\d,]+)"),
    re.compile(r"金額[：:\s]*([\d,]+)"),
    re.compile(r"合計[：:\s]*¥?([\d,]+)"),
    re.compile(r"小計[：:\s]*¥?([\d,]+)"),
    re.compile(r"(\d{1,3}(?:,\d{3})+)円"),
]

# 店舗名パターン（先頭行が使えない場合のみ）
VENDOR_PATTERNS = [
    re.compile(r"店舗[：:\s]*([^\n\r]+)"),
    re.compile(r"([^\n\r]*(?:株式会社|有限会社|コンビニ|スーパー|ストア)[^\n\r]*)"),
]

_NUMERIC_LINE = re.compile(r"[\d\s,¥￥円]+")
_CURRENCY_MARKS = ("¥", "￥", "円")


def _year_first(m: re.Match) -> date:
    return date(int(m.group(1)), int(m.group(2)), int(m.group(3)))


def _month_first(m: re.Match) -> date:
    return date(int(m.group(3)), int(m.group(1)), int(m.group(2)))


def _month_day_only(m: re.Match) -> date:
    return date(date.today().year, int(m.group(1)), int(m.group(2)))


# 日付パターン: 優先順に試し、妥当な日付が得られた時点で終了
DATE_PATTERNS = [
    (re.compile(r"(\d{4})[/\-年](\d{1,2})[/\-月](\d{1,2})"), _year_first),
    (re.compile(r"(\d{1,2})[/\-](\d{1,2})[/\-](\d{4})"), _month_first),
    (re.compile(r"(\d{1,2})月(\d{1,2})日"), _month_day_only),
]


def _non_blank_lines(text: str) -> List[str]:
    return [line for line in re.split(r"\r?\n", text) if line.strip()]


class ReceiptTextParser:
    """レシートOCRテキストのパーサー"""

    def parse_receipt_text(self, text: str) -> ParsedReceiptData:
        if not text or not text.strip():
            return ParsedReceiptData(raw_text=text)

        return ParsedReceiptData(
            raw_text=text,
            amount=self.extract_amount(text),
            date=self.extract_date(text),
            vendor=self.extract_vendor(text),
            description=self._extract_description(text),
        )

    def extract_amount(self, text: str) -> Optional[int]:
        amounts: List[int] = []
        for pattern in AMOUNT_PATTERNS:
            for m in pattern.finditer(text):
                try:
                    amount = int(m.group(1).replace(",", ""))
                except ValueError:
                    continue
                if amount > 0:
                    amounts.append(amount)
        return max(amounts) if amounts else None

    def extract_date(self, text: str) -> Optional[date]:
        for pattern, build in DATE_PATTERNS:
            m = pattern.search(text)
            if not m:
                continue
            try:
                return build(m)
            except ValueError:
                # 13月や32日など実在しない日付は次のパターンへ
                continue
        return None

    def extract_vendor(self, text: str) -> Optional[str]:
        lines = _non_blank_lines(text)
        if lines:
            first_line = lines[0].strip()
            if first_line and not self._is_numeric_line(first_line):
                return first_line

        for pattern in VENDOR_PATTERNS:
            m = pattern.search(text)
            if m and m.group(1).strip() and not self._is_numeric_line(m.group(1)):
                return m.group(1).strip()
        return None

    def _extract_description(self, text: str) -> Optional[str]:
        lines = _non_blank_lines(text)
        # 2〜5行目から、金額行でない最初の行
        for line in lines[1:5]:
            line = line.strip()
            if not line or self._is_numeric_line(line):
                continue
            if any(mark in line for mark in _CURRENCY_MARKS):
                continue
            return line
        return None

    @staticmethod
    def _is_numeric_line(line: str) -> bool:
        return _NUMERIC_LINE.fullmatch(line) is not None


default_text_parser = ReceiptTextParser()


def parse_receipt_text(text: str) -> ParsedReceiptData:
    return default_text_parser.parse_receipt_text(text)
