"""
Record factories and HTTP fakes shared by the test modules.
"""

from collections import deque
from typing import Any, Dict, List, Optional

import pendulum as p

from rbf_kpi.models import NormalizedCustomer, NormalizedOrder, NormalizedRefund

NOW = p.datetime(2025, 3, 15, 15, 30, tz="UTC")

_NOT_JSON = object()


def make_order(
    order_id: str = "o1",
    days_ago: float = 1,
    gross: Any = "100.00",
    discount: Any = "0",
    cancelled: bool = False,
    customer_id: Optional[str] = None,
    currency: str = "USD",
    items: int = 1,
    source: str = "shopify",
    now=NOW,
    created_at=None,
) -> NormalizedOrder:
    return NormalizedOrder(
        id=order_id,
        created_at=created_at if created_at is not None else now.subtract(hours=int(days_ago * 24)),
        gross_amount=gross,
        currency=currency,
        discount_amount=discount,
        is_cancelled=cancelled,
        customer_id=customer_id,
        item_count=items,
        source=source,
    )


def make_refund(
    refund_id: str = "r1",
    order_id: str = "o1",
    days_ago: float = 1,
    amount: Any = "10.00",
    source: str = "shopify",
    now=NOW,
    created_at=None,
) -> NormalizedRefund:
    return NormalizedRefund(
        id=refund_id,
        order_id=order_id,
        created_at=created_at if created_at is not None else now.subtract(hours=int(days_ago * 24)),
        amount=amount,
        currency="USD",
        source=source,
    )


def make_customer(customer_id: str = "c1", days_ago: float = 5, orders_count: int = 1, now=NOW) -> NormalizedCustomer:
    return NormalizedCustomer(
        id=customer_id,
        created_at=now.subtract(hours=int(days_ago * 24)),
        orders_count=orders_count,
        source="shopify",
    )


class StaticAdapter:
    """In-memory ProviderAdapter returning fixed records."""

    def __init__(self, provider="static", orders=None, refunds=None, customers=None, customers_error=None):
        self.provider = provider
        self.orders = list(orders or [])
        self.refunds = list(refunds or [])
        self.customers = list(customers or [])
        self.customers_error = customers_error
        self.calls: List[tuple] = []

    def fetch_orders(self, start, end):
        self.calls.append(("orders", start, end))
        return list(self.orders)

    def fetch_refunds(self, start, end):
        self.calls.append(("refunds", start, end))
        return list(self.refunds)

    def fetch_customers(self, start, end):
        self.calls.append(("customers", start, end))
        if self.customers_error is not None:
            raise self.customers_error
        return list(self.customers)


class FakeResponse:
    def __init__(self, payload: Any = None, status_code: int = 200, links: Optional[Dict] = None, text: str = ""):
        self.payload = payload
        self.status_code = status_code
        self.links = links or {}
        self.text = text

    def json(self):
        if self.payload is _NOT_JSON:
            raise ValueError("Expecting value: line 1 column 1 (char 0)")
        return self.payload

    @classmethod
    def not_json(cls, status_code: int = 200):
        return cls(_NOT_JSON, status_code=status_code, text="<html>oops</html>")


class FakeSession:
    """
    Stand-in for requests.Session: replays queued responses in order and
    records every request. A queued exception instance is raised instead.
    """

    def __init__(self, *responses):
        self.responses = deque(responses)
        self.calls: List[Dict[str, Any]] = []

    def request(self, method, url, params=None, json=None, headers=None, timeout=None):
        self.calls.append(
            {"method": method, "url": url, "params": params, "json": json, "headers": headers, "timeout": timeout}
        )
        item = self.responses.popleft()
        if isinstance(item, BaseException):
            raise item
        return item


class FakeWooAPI:
    """Stand-in for woocommerce.API keyed by endpoint; list values are consumed page by page."""

    def __init__(self, routes: Dict[str, Any]):
        self.routes = routes
        self.calls: List[tuple] = []

    def get(self, endpoint, **kwargs):
        self.calls.append((endpoint, kwargs.get("params")))
        item = self.routes[endpoint]
        if isinstance(item, list):
            item = item.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item
