from datetime import datetime
from typing import Dict, List

from ..models import NormalizedCustomer, NormalizedOrder, NormalizedRefund
from ..transform.money import ZERO, to_decimal
from ..utils.time import iso_z
from .http_client import ProviderClient

PROVIDER = "toast"
BASE_URLS = {
    "production": "https://ws-api.toasttab.com",
    "sandbox": "https://ws-sandbox-api.toasttab.com",
}
PAGE_SIZE = 100


def _checks(o: Dict) -> List[Dict]:
    return [c for c in o.get("checks") or [] if not c.get("deleted")]


def normalize_order(o: Dict) -> NormalizedOrder:
    """
    A Toast order holds one or more checks. Check `amount` is after discounts
    and before tax; amounts are already in dollars.
    """
    gross = ZERO
    discount = ZERO
    items = 0
    customer_id = None
    for c in _checks(o):
        check_discount = sum((to_decimal(d.get("discountAmount")) for d in c.get("appliedDiscounts") or []), ZERO)
        gross += to_decimal(c.get("amount")) + check_discount
        discount += check_discount
        items += len([s for s in c.get("selections") or [] if not s.get("voided")])
        customer_id = customer_id or (c.get("customer") or {}).get("guid")
    return NormalizedOrder(
        id=o.get("guid") or "",
        created_at=o.get("createdDate") or o.get("openedDate"),
        gross_amount=gross,
        currency="USD",
        discount_amount=discount,
        is_cancelled=bool(o.get("voided") or o.get("deleted")),
        customer_id=customer_id,
        item_count=items,
        source=PROVIDER,
    )


def extract_refunds(o: Dict) -> List[NormalizedRefund]:
    """Refunds are nested in checks[].payments[].refund; flatten them with the parent order guid."""
    out: List[NormalizedRefund] = []
    for c in _checks(o):
        for pay in c.get("payments") or []:
            refund = pay.get("refund")
            if not refund:
                continue
            out.append(
                NormalizedRefund(
                    id=pay.get("guid") or "",
                    order_id=o.get("guid") or "",
                    created_at=refund.get("refundDate"),
                    amount=to_decimal(refund.get("refundAmount")),
                    currency="USD",
                    source=PROVIDER,
                )
            )
    return out


class ToastAdapter:
    provider = PROVIDER

    def __init__(
        self,
        access_token: str,
        restaurant_guid: str,
        environment: str = "sandbox",
        client: ProviderClient | None = None,
    ):
        self.client = client or ProviderClient(
            PROVIDER,
            BASE_URLS.get(environment, BASE_URLS["sandbox"]),
            headers={
                "Authorization": f"Bearer {access_token}",
                "Toast-Restaurant-External-ID": restaurant_guid,
            },
        )
        self._raw: Dict[tuple, List[Dict]] = {}

    def _orders(self, start: datetime, end: datetime) -> List[Dict]:
        key = (start, end)
        if key not in self._raw:
            out: List[Dict] = []
            page = 1
            while True:
                data = self.client.get(
                    "orders/v2/ordersBulk",
                    params={
                        "startDate": iso_z(start),
                        "endDate": iso_z(end),
                        "pageSize": PAGE_SIZE,
                        "page": page,
                    },
                )
                batch = data if isinstance(data, list) else data.get("data") or []
                out.extend(batch)
                if len(batch) < PAGE_SIZE:
                    break
                page += 1
            self._raw[key] = out
        return self._raw[key]

    def fetch_orders(self, start: datetime, end: datetime) -> List[NormalizedOrder]:
        return [normalize_order(o) for o in self._orders(start, end)]

    def fetch_refunds(self, start: datetime, end: datetime) -> List[NormalizedRefund]:
        return [r for o in self._orders(start, end) for r in extract_refunds(o)]

    def fetch_customers(self, start: datetime, end: datetime) -> List[NormalizedCustomer]:
        return []
