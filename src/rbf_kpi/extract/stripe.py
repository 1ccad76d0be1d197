from datetime import datetime
from typing import Dict, List

from ..models import NormalizedCustomer, NormalizedOrder, NormalizedRefund
from ..transform.money import from_minor_units
from .http_client import ProviderClient

PROVIDER = "stripe"
STRIPE_VERSION = "2023-10-16"


def normalize_charge(c: Dict) -> NormalizedOrder:
    """Charges carry integer minor units; Stripe has no discount concept at charge level."""
    currency = (c.get("currency") or "usd").upper()
    return NormalizedOrder(
        id=c.get("id") or "",
        created_at=c.get("created"),
        gross_amount=from_minor_units(c.get("amount"), currency),
        currency=currency,
        is_cancelled=c.get("status") == "failed" or not c.get("paid", False),
        customer_id=c.get("customer"),
        item_count=1,
        source=PROVIDER,
    )


def normalize_refund(r: Dict) -> NormalizedRefund:
    currency = (r.get("currency") or "usd").upper()
    return NormalizedRefund(
        id=r.get("id") or "",
        order_id=r.get("charge") or "",
        created_at=r.get("created"),
        amount=from_minor_units(r.get("amount"), currency),
        currency=currency,
        source=PROVIDER,
    )


class StripeAdapter:
    provider = PROVIDER

    def __init__(self, access_token: str, client: ProviderClient | None = None):
        self.client = client or ProviderClient(
            PROVIDER,
            "https://api.stripe.com/v1",
            headers={"Authorization": f"Bearer {access_token}", "Stripe-Version": STRIPE_VERSION},
        )

    def _list(self, path: str, start: datetime, end: datetime) -> List[Dict]:
        """Cursor through a Stripe list endpoint with has_more / starting_after."""
        params = {
            "limit": 100,
            "created[gte]": int(start.timestamp()),
            "created[lt]": int(end.timestamp()),
        }
        out: List[Dict] = []
        while True:
            data = self.client.get(path, params=params)
            page = data.get("data") or []
            out.extend(page)
            if not data.get("has_more") or not page:
                break
            params = {**params, "starting_after": page[-1]["id"]}
        return out

    def fetch_orders(self, start: datetime, end: datetime) -> List[NormalizedOrder]:
        return [normalize_charge(c) for c in self._list("charges", start, end)]

    def fetch_refunds(self, start: datetime, end: datetime) -> List[NormalizedRefund]:
        refunds = [r for r in self._list("refunds", start, end) if r.get("status") != "failed"]
        return [normalize_refund(r) for r in refunds]

    def fetch_customers(self, start: datetime, end: datetime) -> List[NormalizedCustomer]:
        return []
