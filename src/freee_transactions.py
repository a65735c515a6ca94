from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Optional

import requests

from ocr_models import FreeeTransaction, coerce_amount


@dataclass
class TransactionQuery:
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    min_amount: Optional[int] = None
    max_amount: Optional[int] = None


class FreeeTransactionService:
    """freee 取引(deals)取得クライアント。マッチング候補の供給元"""

    def __init__(self, access_token: str, company_id: int):
        self.access_token = access_token
        self.company_id = company_id
        self.base_url = "https://api.freee.co.jp/api/1"
        self.headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
        }

    def get_transactions(self, query: Optional[TransactionQuery] = None) -> List[FreeeTransaction]:
        url = f"{self.base_url}/deals"
        params = {"company_id": self.company_id}
        if query and query.start_date:
            params["start_date"] = query.start_date.isoformat()
        if query and query.end_date:
            params["end_date"] = query.end_date.isoformat()

        response = requests.get(url, headers=self.headers, params=params)
        response.raise_for_status()
        deals = response.json().get("deals", [])

        transactions = [self.map_deal(deal) for deal in deals]
        return [tx for tx in transactions if self._matches_query(tx, query)]

    def get_unprocessed_transactions(self) -> List[FreeeTransaction]:
        """証憑未添付かつ未決済の取引"""
        transactions = self.get_transactions()
        unprocessed = [tx for tx in transactions if not tx.receipt_ids and tx.status == "pending"]
        print(f"📒 未処理取引: {len(unprocessed)}件 / 全{len(transactions)}件")
        return unprocessed

    @staticmethod
    def map_deal(deal: Dict) -> FreeeTransaction:
        details = deal.get("details") or [{}]
        return FreeeTransaction(
            id=deal["id"],
            date=deal.get("issue_date") or deal.get("due_date") or date.today().isoformat(),
            amount=abs(coerce_amount(deal.get("amount")) or 0),
            description=deal.get("partner_name") or details[0].get("account_item_name") or "",
            status=FreeeTransactionService._map_status(deal.get("status", "")),
            receipt_ids=list(deal.get("receipt_ids") or []),
        )

    @staticmethod
    def _map_status(status: str) -> str:
        if status in ("settled", "transferred"):
            return status
        return "pending"

    @staticmethod
    def _matches_query(tx: FreeeTransaction, query: Optional[TransactionQuery]) -> bool:
        if not query:
            return True
        if query.min_amount and tx.amount < query.min_amount:
            return False
        if query.max_amount and tx.amount > query.max_amount:
            return False
        return True
