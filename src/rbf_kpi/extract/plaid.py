"""
Plaid bank-feed adapter.

Bank transactions are not orders: revenue is inferred from inflows whose
name or category looks like processor payouts or sales, minus anything that
looks like a refund, fee or transfer. Plaid reports inflows as negative
amounts and only gives a posting date, anchored here at 12:00 UTC.
"""

import os
from datetime import datetime
from typing import Dict, List

from ..models import NormalizedCustomer, NormalizedOrder, NormalizedRefund
from ..transform.money import to_decimal
from .http_client import ProviderClient

PROVIDER = "plaid"
PAGE_SIZE = 500

REVENUE_KEYWORDS = ("stripe", "square", "paypal", "shopify", "revenue", "sales", "payment", "deposit")
EXCLUDE_KEYWORDS = ("refund", "fee", "transfer", "withdrawal", "tax", "interest")


def _text(tx: Dict) -> str:
    categories = " ".join(tx.get("category") or [])
    return f"{tx.get('name') or ''} {tx.get('merchant_name') or ''} {categories}".lower()


def is_revenue(tx: Dict) -> bool:
    if to_decimal(tx.get("amount")) >= 0:
        return False
    text = _text(tx)
    return any(k in text for k in REVENUE_KEYWORDS) and not any(k in text for k in EXCLUDE_KEYWORDS)


def normalize_transaction(tx: Dict) -> NormalizedOrder:
    return NormalizedOrder(
        id=tx.get("transaction_id") or "",
        created_at=f"{tx.get('date')}T12:00:00Z" if tx.get("date") else None,
        gross_amount=abs(to_decimal(tx.get("amount"))),
        currency=tx.get("iso_currency_code") or "USD",
        is_cancelled=bool(tx.get("pending")),
        item_count=1,
        source=PROVIDER,
    )


class PlaidAdapter:
    provider = PROVIDER

    def __init__(
        self,
        access_token: str,
        client_id: str | None = None,
        secret: str | None = None,
        environment: str = "sandbox",
        client: ProviderClient | None = None,
    ):
        self.access_token = access_token
        self.client_id = client_id or os.getenv("PLAID_CLIENT_ID", "")
        self.secret = secret or os.getenv("PLAID_SECRET", "")
        self.client = client or ProviderClient(
            PROVIDER,
            f"https://{environment}.plaid.com",
            headers={"Content-Type": "application/json"},
        )

    def fetch_orders(self, start: datetime, end: datetime) -> List[NormalizedOrder]:
        """Offset pagination over /transactions/get until total_transactions is reached."""
        raw: List[Dict] = []
        while True:
            data = self.client.post(
                "transactions/get",
                json={
                    "client_id": self.client_id,
                    "secret": self.secret,
                    "access_token": self.access_token,
                    "start_date": start.strftime("%Y-%m-%d"),
                    "end_date": end.strftime("%Y-%m-%d"),
                    "options": {"count": PAGE_SIZE, "offset": len(raw)},
                },
            )
            batch = data.get("transactions") or []
            raw.extend(batch)
            if not batch or len(raw) >= int(data.get("total_transactions") or 0):
                break
        return [normalize_transaction(tx) for tx in raw if is_revenue(tx)]

    def fetch_refunds(self, start: datetime, end: datetime) -> List[NormalizedRefund]:
        return []

    def fetch_customers(self, start: datetime, end: datetime) -> List[NormalizedCustomer]:
        return []
