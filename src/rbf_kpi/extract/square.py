from datetime import datetime
from typing import Dict, List

from ..models import NormalizedCustomer, NormalizedOrder, NormalizedRefund
from ..transform.money import from_minor_units
from ..utils.time import iso_z
from .http_client import ProviderClient

PROVIDER = "square"
SQUARE_VERSION = "2025-01-23"
BASE_URLS = {
    "production": "https://connect.squareup.com",
    "sandbox": "https://connect.squareupsandbox.com",
}


def _money(obj: Dict | None, currency: str):
    return from_minor_units((obj or {}).get("amount"), currency)


def normalize_order(o: Dict) -> NormalizedOrder:
    """
    Square money is integer minor units. total_money is after discounts and
    includes tax and service charges, so gross adds the discount back.
    """
    currency = (o.get("total_money") or {}).get("currency") or "USD"
    total = _money(o.get("total_money"), currency)
    tax = _money(o.get("total_tax_money"), currency)
    service = _money(o.get("total_service_charge_money"), currency)
    discount = _money(o.get("total_discount_money"), currency)
    return NormalizedOrder(
        id=o.get("id") or "",
        created_at=o.get("created_at"),
        gross_amount=total - tax - service + discount,
        currency=currency,
        discount_amount=discount,
        is_cancelled=o.get("state") == "CANCELED",
        customer_id=o.get("customer_id"),
        item_count=len(o.get("line_items") or []),
        source=PROVIDER,
    )


def normalize_refund(r: Dict) -> NormalizedRefund:
    money = r.get("amount_money") or {}
    currency = money.get("currency") or "USD"
    return NormalizedRefund(
        id=r.get("id") or "",
        order_id=r.get("order_id") or r.get("payment_id") or "",
        created_at=r.get("created_at"),
        amount=from_minor_units(money.get("amount"), currency),
        currency=currency,
        source=PROVIDER,
    )


def normalize_customer(c: Dict) -> NormalizedCustomer:
    return NormalizedCustomer(id=c.get("id") or "", created_at=c.get("created_at"), source=PROVIDER)


class SquareAdapter:
    provider = PROVIDER

    def __init__(self, access_token: str, environment: str = "sandbox", client: ProviderClient | None = None):
        self.client = client or ProviderClient(
            PROVIDER,
            BASE_URLS.get(environment, BASE_URLS["sandbox"]),
            headers={
                "Authorization": f"Bearer {access_token}",
                "Content-Type": "application/json",
                "Square-Version": SQUARE_VERSION,
            },
        )

    def fetch_orders(self, start: datetime, end: datetime) -> List[NormalizedOrder]:
        body = {
            "query": {
                "filter": {
                    "date_time_filter": {"created_at": {"start_at": iso_z(start), "end_at": iso_z(end)}},
                    "state_filter": {"states": ["COMPLETED", "OPEN", "CANCELED"]},
                },
                "sort": {"sort_field": "CREATED_AT", "sort_order": "ASC"},
            },
            "limit": 500,
        }
        out: List[Dict] = []
        while True:
            data = self.client.post("v2/orders/search", json=body)
            out.extend(data.get("orders") or [])
            cursor = data.get("cursor")
            if not cursor:
                break
            body = {**body, "cursor": cursor}
        return [normalize_order(o) for o in out]

    def _list(self, path: str, key: str, params: Dict) -> List[Dict]:
        out: List[Dict] = []
        while True:
            data = self.client.get(path, params=params)
            out.extend(data.get(key) or [])
            cursor = data.get("cursor")
            if not cursor:
                break
            params = {**params, "cursor": cursor}
        return out

    def fetch_refunds(self, start: datetime, end: datetime) -> List[NormalizedRefund]:
        raw = self._list(
            "v2/refunds",
            "refunds",
            {"begin_time": iso_z(start), "end_time": iso_z(end), "sort_order": "ASC"},
        )
        return [normalize_refund(r) for r in raw if r.get("status") in (None, "COMPLETED", "PENDING")]

    def fetch_customers(self, start: datetime, end: datetime) -> List[NormalizedCustomer]:
        return [normalize_customer(c) for c in self._list("v2/customers", "customers", {"limit": 100})]
