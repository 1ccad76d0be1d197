import os
from datetime import datetime
from typing import Dict, List

from ..errors import ProviderFetchError
from ..models import NormalizedCustomer, NormalizedOrder, NormalizedRefund
from ..transform.money import ZERO, to_decimal
from ..utils.logging import get_logger
from ..utils.time import iso_z
from .base import MAX_REFUND_LOOKUPS
from .http_client import ProviderClient

log = get_logger(__name__)

PROVIDER = "shopify"
API_VERSION = os.getenv("SHOPIFY_API_VERSION", "2025-01")
ORDER_FIELDS = (
    "id,created_at,total_line_items_price,total_discounts,financial_status,"
    "cancelled_at,customer,line_items,currency,refunds"
)


def normalize_order(o: Dict) -> NormalizedOrder:
    customer = o.get("customer") or {}
    return NormalizedOrder(
        id=str(o.get("id") or ""),
        created_at=o.get("created_at"),
        gross_amount=to_decimal(o.get("total_line_items_price")),
        currency=o.get("currency") or "USD",
        discount_amount=to_decimal(o.get("total_discounts")),
        is_cancelled=bool(o.get("cancelled_at")) or o.get("financial_status") == "voided",
        customer_id=customer.get("id"),
        item_count=len(o.get("line_items") or []),
        source=PROVIDER,
    )


def normalize_refund(r: Dict, order_id) -> NormalizedRefund:
    """A refund's value is the sum of its successful `refund` transactions."""
    amount = ZERO
    currency = None
    for t in r.get("transactions") or []:
        if t.get("kind", "refund") != "refund" or t.get("status", "success") != "success":
            continue
        amount += to_decimal(t.get("amount"))
        currency = currency or t.get("currency")
    return NormalizedRefund(
        id=str(r.get("id") or ""),
        order_id=str(order_id),
        created_at=r.get("created_at"),
        amount=amount,
        currency=currency,
        source=PROVIDER,
    )


def normalize_customer(c: Dict) -> NormalizedCustomer:
    return NormalizedCustomer(
        id=str(c.get("id") or ""),
        created_at=c.get("created_at"),
        orders_count=c.get("orders_count") or 0,
        total_spent=c.get("total_spent") or 0,
        source=PROVIDER,
    )


class ShopifyAdapter:
    provider = PROVIDER

    def __init__(
        self,
        shop: str,
        access_token: str,
        api_version: str = API_VERSION,
        client: ProviderClient | None = None,
        max_refund_lookups: int = MAX_REFUND_LOOKUPS,
    ):
        self.client = client or ProviderClient(
            PROVIDER,
            f"https://{shop}/admin/api/{api_version}",
            headers={"X-Shopify-Access-Token": access_token},
        )
        self.max_refund_lookups = max_refund_lookups
        self._raw_orders: Dict[tuple, List[Dict]] = {}

    def _paged(self, path: str, key: str, params: Dict) -> List[Dict]:
        """Follow `Link: rel=next` cursors; the next URL already carries page_info."""
        out: List[Dict] = []
        url, q = path, params
        while url:
            resp = self.client.request("GET", url, params=q)
            out.extend(self.client.parse(resp, url).get(key) or [])
            url = (getattr(resp, "links", None) or {}).get("next", {}).get("url")
            q = None
        return out

    def _orders(self, start: datetime, end: datetime) -> List[Dict]:
        key = (start, end)
        if key not in self._raw_orders:
            self._raw_orders[key] = self._paged(
                "orders.json",
                "orders",
                {
                    "status": "any",
                    "created_at_min": iso_z(start),
                    "created_at_max": iso_z(end),
                    "limit": 250,
                    "fields": ORDER_FIELDS,
                },
            )
        return self._raw_orders[key]

    def fetch_orders(self, start: datetime, end: datetime) -> List[NormalizedOrder]:
        return [normalize_order(o) for o in self._orders(start, end)]

    def fetch_refunds(self, start: datetime, end: datetime) -> List[NormalizedRefund]:
        """
        Refunds come nested in the order payload. Orders without the nested list
        are looked up one by one, at most max_refund_lookups of them.
        """
        out: List[NormalizedRefund] = []
        lookups = 0
        skipped = 0
        for o in self._orders(start, end):
            oid = o.get("id")
            if "refunds" in o:
                out.extend(normalize_refund(r, oid) for r in o.get("refunds") or [])
                continue
            if lookups >= self.max_refund_lookups:
                skipped += 1
                continue
            lookups += 1
            try:
                data = self.client.get(f"orders/{oid}/refunds.json")
            except ProviderFetchError as e:
                log.warning(f"[shopify] refunds for order {oid} skipped: {e}")
                continue
            out.extend(normalize_refund(r, oid) for r in data.get("refunds") or [])
        if skipped:
            log.warning(f"[shopify] refund lookup limit reached; {skipped} orders not checked for refunds")
        return out

    def fetch_customers(self, start: datetime, end: datetime) -> List[NormalizedCustomer]:
        raw = self._paged(
            "customers.json",
            "customers",
            {"limit": 250, "fields": "id,created_at,orders_count,total_spent"},
        )
        return [normalize_customer(c) for c in raw]
