"""
Canonical commerce records and the KPI result contract.

Every provider adapter produces NormalizedOrder / NormalizedRefund /
NormalizedCustomer; the KPI engine consumes only these and produces a KPIResult.
Construction coerces loose provider values (strings, floats, None, naive
datetimes) so that downstream code can rely on Decimal amounts and UTC instants.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any

import pendulum as p

from .transform.money import ZERO, to_decimal
from .utils.time import to_utc

EPOCH = p.datetime(1970, 1, 1, tz="UTC")


def _instant(v: Any) -> p.DateTime:
    # An unparseable timestamp lands on the epoch, which is outside any window.
    return to_utc(v) or EPOCH


def _non_negative(v: Any) -> Decimal:
    return abs(to_decimal(v))


def _opt_str(v: Any) -> str | None:
    if v is None:
        return None
    s = str(v).strip()
    return s or None


@dataclass(frozen=True)
class NormalizedOrder:
    id: str
    created_at: p.DateTime
    gross_amount: Decimal
    currency: str
    discount_amount: Decimal = ZERO
    is_cancelled: bool = False
    customer_id: str | None = None
    item_count: int = 0
    source: str = ""

    def __post_init__(self):
        object.__setattr__(self, "id", str(self.id))
        object.__setattr__(self, "created_at", _instant(self.created_at))
        object.__setattr__(self, "gross_amount", to_decimal(self.gross_amount))
        object.__setattr__(self, "currency", (self.currency or "USD").upper())
        object.__setattr__(self, "discount_amount", _non_negative(self.discount_amount))
        object.__setattr__(self, "is_cancelled", bool(self.is_cancelled))
        object.__setattr__(self, "customer_id", _opt_str(self.customer_id))
        object.__setattr__(self, "item_count", int(to_decimal(self.item_count)))


@dataclass(frozen=True)
class NormalizedRefund:
    id: str
    order_id: str
    created_at: p.DateTime
    amount: Decimal
    currency: str | None = None
    source: str = ""

    def __post_init__(self):
        object.__setattr__(self, "id", str(self.id))
        object.__setattr__(self, "order_id", str(self.order_id or ""))
        object.__setattr__(self, "created_at", _instant(self.created_at))
        object.__setattr__(self, "amount", _non_negative(self.amount))
        object.__setattr__(self, "currency", (self.currency or "").upper() or None)


@dataclass(frozen=True)
class NormalizedCustomer:
    id: str
    created_at: p.DateTime
    orders_count: int = 0
    total_spent: Decimal = ZERO
    source: str = ""

    def __post_init__(self):
        object.__setattr__(self, "id", str(self.id))
        object.__setattr__(self, "created_at", _instant(self.created_at))
        object.__setattr__(self, "orders_count", int(to_decimal(self.orders_count)))
        object.__setattr__(self, "total_spent", to_decimal(self.total_spent))


@dataclass(frozen=True)
class DailyBucket:
    date: date
    net_sales: Decimal
    order_count: int

    def to_dict(self) -> dict:
        return {
            "date": self.date.isoformat(),
            "net_sales": str(self.net_sales),
            "order_count": self.order_count,
        }


@dataclass(frozen=True)
class Growth:
    net_sales_growth_pct: Decimal
    order_count_growth_pct: Decimal

    def to_dict(self) -> dict:
        return {
            "net_sales_growth_pct": str(self.net_sales_growth_pct),
            "order_count_growth_pct": str(self.order_count_growth_pct),
        }


# customer_signal values
SIGNAL_ORDER_IDS = "order_ids"
SIGNAL_CUSTOMER_RECORDS = "customer_records"
SIGNAL_NONE = "none"


@dataclass(frozen=True)
class KPIResult:
    window_days: int
    currency: str
    gross_sales: Decimal
    total_discounts: Decimal
    total_refunds: Decimal
    net_sales: Decimal
    order_count: int
    refund_count: int
    average_order_value: Decimal
    new_customer_count: int
    returning_customer_count: int
    refund_rate: Decimal
    daily_buckets: tuple[DailyBucket, ...]
    window_start: p.DateTime
    window_end: p.DateTime
    timezone: str
    growth: Growth | None = None
    items_sold: int = 0
    discount_penetration: Decimal = ZERO
    discount_rate: Decimal = ZERO
    repeat_purchase_rate: Decimal = ZERO
    returning_customer_rate: Decimal = ZERO
    customer_signal: str = SIGNAL_NONE
    currency_mixed: bool = False

    def to_dict(self) -> dict:
        """JSON-ready shape: decimals as fixed-precision strings, instants as ISO-8601."""
        return {
            "window_days": self.window_days,
            "window_start": self.window_start.to_iso8601_string(),
            "window_end": self.window_end.to_iso8601_string(),
            "timezone": self.timezone,
            "currency": self.currency,
            "currency_mixed": self.currency_mixed,
            "gross_sales": str(self.gross_sales),
            "total_discounts": str(self.total_discounts),
            "total_refunds": str(self.total_refunds),
            "net_sales": str(self.net_sales),
            "order_count": self.order_count,
            "refund_count": self.refund_count,
            "items_sold": self.items_sold,
            "average_order_value": str(self.average_order_value),
            "new_customer_count": self.new_customer_count,
            "returning_customer_count": self.returning_customer_count,
            "customer_signal": self.customer_signal,
            "repeat_purchase_rate": str(self.repeat_purchase_rate),
            "returning_customer_rate": str(self.returning_customer_rate),
            "refund_rate": str(self.refund_rate),
            "discount_rate": str(self.discount_rate),
            "discount_penetration": str(self.discount_penetration),
            "growth": self.growth.to_dict() if self.growth else None,
            "daily_buckets": [b.to_dict() for b in self.daily_buckets],
        }
