from dataclasses import dataclass
from datetime import date
from typing import Optional

import requests


@dataclass
class ExpenseRegistration:
    transaction_id: int
    amount: int
    date: date
    description: str
    receipt_file: Optional[bytes] = None
    receipt_filename: str = "receipt.pdf"


@dataclass
class RegistrationResult:
    success: bool
    expense_id: Optional[int] = None
    receipt_id: Optional[int] = None
    error: Optional[str] = None


class FreeeExpenseService:
    """freee 経費申請の登録と証憑アップロード"""

    # 勘定科目・税区分は登録後に freee 側で修正する前提の仮値
    DEFAULT_TAX_CODE = 1
    DEFAULT_ACCOUNT_ITEM_ID = 1

    def __init__(self, access_token: str, company_id: int):
        self.access_token = access_token
        self.company_id = company_id
        self.base_url = "https://api.freee.co.jp/api/1"
        self.headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
        }

    def register_expense(self, data: ExpenseRegistration) -> RegistrationResult:
        """経費申請を作成し、ファイルがあれば証憑もアップロードする。

        失敗しても例外は投げず、error に理由を入れて返す。
        """
        url = f"{self.base_url}/expense_applications"
        payload = {
            "company_id": self.company_id,
            "title": data.description,
            "issue_date": data.date.isoformat(),
            "expense_application_lines": [{
                "tax_code": self.DEFAULT_TAX_CODE,
                "account_item_id": self.DEFAULT_ACCOUNT_ITEM_ID,
                "amount": data.amount,
                "description": data.description,
            }],
        }

        try:
            response = requests.post(url, headers=self.headers, json=payload)
            response.raise_for_status()
            expense_id = (response.json().get("expense_application") or {}).get("id")
            if not expense_id:
                raise ValueError("No expense ID returned")

            receipt_id = None
            if data.receipt_file:
                receipt_id = self.upload_receipt(expense_id, data.receipt_file, data.receipt_filename)
        except (requests.RequestException, ValueError) as e:
            print(f"❌ 経費申請の登録に失敗しました (tx={data.transaction_id}): {e}")
            return RegistrationResult(success=False, error=str(e))

        print(f"✅ 経費申請を登録しました: expense_id={expense_id} receipt_id={receipt_id}")
        return RegistrationResult(success=True, expense_id=expense_id, receipt_id=receipt_id)

    def upload_receipt(self, expense_id: int, file: bytes, filename: str) -> int:
        url = f"{self.base_url}/receipts"
        # multipart の Content-Type は requests に任せる
        headers = {"Authorization": f"Bearer {self.access_token}"}
        response = requests.post(
            url,
            headers=headers,
            data={"company_id": str(self.company_id)},
            files={"receipt": (filename, file)},
        )
        response.raise_for_status()
        print(f"  📎 証憑アップロード: {filename} (expense_id={expense_id})")
        return (response.json().get("receipt") or {}).get("id") or 0
