from datetime import datetime
from typing import Dict, List

from ..errors import ProviderFetchError
from ..models import NormalizedCustomer, NormalizedOrder, NormalizedRefund
from ..transform.money import to_decimal
from ..utils.logging import get_logger
from ..utils.time import iso_z
from .base import MAX_REFUND_LOOKUPS
from .wc_client import PROVIDER, WooClient

log = get_logger(__name__)

CANCELLED_STATUSES = {"cancelled", "failed", "trash"}


def normalize_order(o: Dict) -> NormalizedOrder:
    """
    Woo `total` already has discounts taken off and includes tax and shipping,
    so gross = total - total_tax - shipping_total + discount_total.
    """
    total = to_decimal(o.get("total"))
    discount = to_decimal(o.get("discount_total"))
    gross = total - to_decimal(o.get("total_tax")) - to_decimal(o.get("shipping_total")) + discount
    customer = o.get("customer_id")
    return NormalizedOrder(
        id=str(o.get("id") or o.get("number") or ""),
        created_at=o.get("date_created_gmt") or o.get("date_created"),
        gross_amount=gross,
        currency=o.get("currency") or "USD",
        discount_amount=discount,
        is_cancelled=(o.get("status") or "").lower() in CANCELLED_STATUSES,
        customer_id=str(customer) if customer not in (None, 0, "0", "") else None,
        item_count=len(o.get("line_items") or []),
        source=PROVIDER,
    )


def normalize_refund(r: Dict, order_id, currency: str | None = None) -> NormalizedRefund:
    return NormalizedRefund(
        id=str(r.get("id") or ""),
        order_id=str(order_id),
        created_at=r.get("date_created_gmt") or r.get("date_created"),
        amount=to_decimal(r.get("amount")),
        currency=currency,
        source=PROVIDER,
    )


def normalize_customer(c: Dict) -> NormalizedCustomer:
    return NormalizedCustomer(
        id=str(c.get("id") or ""),
        created_at=c.get("date_created_gmt") or c.get("date_created"),
        orders_count=c.get("orders_count") or 0,
        total_spent=c.get("total_spent") or 0,
        source=PROVIDER,
    )


class WooCommerceAdapter:
    provider = PROVIDER

    def __init__(self, client: WooClient, max_refund_lookups: int = MAX_REFUND_LOOKUPS):
        self.client = client
        self.max_refund_lookups = max_refund_lookups
        self._raw_orders: Dict[tuple, List[Dict]] = {}

    def _orders(self, start: datetime, end: datetime) -> List[Dict]:
        key = (start, end)
        if key not in self._raw_orders:
            # NOTE: no _fields projection; Woo does not reliably project nested fields.
            self._raw_orders[key] = self.client.paged(
                "orders",
                {
                    "after": iso_z(start),
                    "before": iso_z(end),
                    "dates_are_gmt": "true",
                    "status": "any",
                    "orderby": "date",
                    "order": "asc",
                    "per_page": 100,
                },
            )
        return self._raw_orders[key]

    def fetch_orders(self, start: datetime, end: datetime) -> List[NormalizedOrder]:
        return [normalize_order(o) for o in self._orders(start, end)]

    def fetch_refunds(self, start: datetime, end: datetime) -> List[NormalizedRefund]:
        """
        Refunds live behind orders/{id}/refunds. Only orders whose payload lists
        refunds are queried, capped at max_refund_lookups.
        """
        refunded = [o for o in self._orders(start, end) if o.get("refunds")]
        if len(refunded) > self.max_refund_lookups:
            log.warning(
                f"[woocommerce] {len(refunded)} orders carry refunds; "
                f"only the first {self.max_refund_lookups} are looked up"
            )
            refunded = refunded[: self.max_refund_lookups]

        out: List[NormalizedRefund] = []
        for o in refunded:
            oid = o.get("id")
            try:
                resp = self.client.get(f"orders/{oid}/refunds", params={"per_page": 100})
            except ProviderFetchError as e:
                log.warning(f"[woocommerce] refunds for order {oid} skipped: {e}")
                continue
            out.extend(normalize_refund(r, oid, o.get("currency")) for r in resp or [])
        return out

    def fetch_customers(self, start: datetime, end: datetime) -> List[NormalizedCustomer]:
        raw = self.client.paged("customers", {"role": "all", "orderby": "id", "per_page": 100})
        return [normalize_customer(c) for c in raw]
