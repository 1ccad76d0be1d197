"""
KPI computation over canonical commerce records.

Definitions:
  - net sales = gross - discounts - refunds (taxes and shipping are never part of gross)
  - windows are trailing, half-open [start, end) intervals ending at `now`
  - refunds are attributed by refund time, not by the time of the order they reduce
  - day buckets use the caller's IANA timezone; stored instants stay UTC

Pure: no I/O, no environment reads, no state kept between calls.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Iterable

import pendulum as p

from ..errors import InvalidKPIConfig
from ..models import (
    DailyBucket,
    Growth,
    KPIResult,
    NormalizedCustomer,
    NormalizedOrder,
    NormalizedRefund,
    SIGNAL_CUSTOMER_RECORDS,
    SIGNAL_NONE,
    SIGNAL_ORDER_IDS,
)
from ..utils.logging import get_logger
from .money import ONE, ZERO, quantize_money, quantize_rate, safe_ratio

log = get_logger(__name__)

SUPPORTED_WINDOWS = (30, 90)
DEFAULT_TIMEZONE = "America/New_York"
DEFAULT_CURRENCY = "USD"
HUNDRED = Decimal("100")


@dataclass(frozen=True)
class KPIConfig:
    timezone: str = DEFAULT_TIMEZONE
    window_days: int = 30
    prior_window_days: int | None = None
    now: datetime | None = None

    def validate(self):
        """Check the configuration and return the resolved timezone object."""
        _check_window("window_days", self.window_days)
        if self.prior_window_days is not None:
            _check_window("prior_window_days", self.prior_window_days)

        if not isinstance(self.timezone, str) or not self.timezone.strip():
            raise InvalidKPIConfig("timezone", "an IANA timezone name is required")
        try:
            tz = p.timezone(self.timezone)
        except (ValueError, KeyError) as e:
            raise InvalidKPIConfig("timezone", f"unknown IANA timezone {self.timezone!r}") from e

        if self.now is not None and not isinstance(self.now, datetime):
            raise InvalidKPIConfig("now", "must be a datetime")
        return tz


def _check_window(field: str, value) -> None:
    if type(value) is not int or value not in SUPPORTED_WINDOWS:
        raise InvalidKPIConfig(field, f"must be one of {SUPPORTED_WINDOWS}, got {value!r}")


@dataclass(frozen=True)
class Window:
    start: p.DateTime
    end: p.DateTime

    def contains(self, instant: datetime) -> bool:
        return self.start <= instant < self.end


@dataclass(frozen=True)
class _Totals:
    gross: Decimal
    discounts: Decimal
    refunds: Decimal
    net: Decimal
    order_count: int
    refund_count: int


@dataclass(frozen=True)
class _CustomerStats:
    new: int = 0
    returning: int = 0
    repeat_purchase_rate: Decimal = ZERO
    returning_customer_rate: Decimal = ZERO
    signal: str = SIGNAL_NONE


def resolve_windows(config: KPIConfig) -> tuple[Window, Window | None]:
    now = config.now if config.now is not None else p.now("UTC")
    end = p.instance(now, tz="UTC").in_timezone("UTC")
    current = Window(start=end.subtract(days=config.window_days), end=end)
    if config.prior_window_days is None:
        return current, None
    prior = Window(start=current.start.subtract(days=config.prior_window_days), end=current.start)
    return current, prior


def fetch_range(config: KPIConfig) -> tuple[p.DateTime, p.DateTime]:
    """[start, end) an adapter must cover so both the current and prior windows are populated."""
    current, prior = resolve_windows(config)
    return (prior or current).start, current.end


def _totals(sales: list[NormalizedOrder], refunds: list[NormalizedRefund]) -> _Totals:
    gross = quantize_money(sum((o.gross_amount for o in sales), ZERO))
    discounts = quantize_money(sum((o.discount_amount for o in sales), ZERO))
    refunded = quantize_money(sum((r.amount for r in refunds), ZERO))
    return _Totals(
        gross=gross,
        discounts=discounts,
        refunds=refunded,
        net=gross - discounts - refunded,
        order_count=len(sales),
        refund_count=len(refunds),
    )


def resolve_currency(orders: Iterable[NormalizedOrder]) -> tuple[str, bool]:
    """
    Plurality currency by order count; ties go to the currency seen earliest.
    Returns (currency, mixed). No conversion is ever performed.
    """
    ordered = sorted(orders, key=lambda o: o.created_at)
    if not ordered:
        return DEFAULT_CURRENCY, False
    counts = Counter(o.currency for o in ordered)
    first_seen = {}
    for i, o in enumerate(ordered):
        first_seen.setdefault(o.currency, i)
    currency = min(counts, key=lambda c: (-counts[c], first_seen[c]))
    return currency, len(counts) > 1


def _customer_key(o: NormalizedOrder) -> tuple[str, str]:
    return o.source, o.customer_id


def classify_customers(
    all_sales: list[NormalizedOrder],
    window_sales: list[NormalizedOrder],
    customers: list[NormalizedCustomer],
    window: Window,
) -> _CustomerStats:
    """
    New vs returning customers.

    Per-order customer ids win whenever any in-window sale carries one: a
    customer is new when their earliest sale in the whole dataset falls in the
    window. Otherwise customer records are used (new = created in window).
    With neither signal both counts are 0 and the signal is reported as "none".
    """
    linked = [o for o in window_sales if o.customer_id]
    if linked:
        first_order: dict[tuple[str, str], NormalizedOrder] = {}
        for o in sorted((o for o in all_sales if o.customer_id), key=lambda o: o.created_at):
            first_order.setdefault(_customer_key(o), o)

        per_customer = Counter(_customer_key(o) for o in linked)
        new_ids = {k for k in per_customer if window.contains(first_order[k].created_at)}
        returning_orders = sum(1 for o in linked if o is not first_order[_customer_key(o)])
        repeaters = sum(1 for n in per_customer.values() if n > 1)

        return _CustomerStats(
            new=len(new_ids),
            returning=len(per_customer) - len(new_ids),
            repeat_purchase_rate=quantize_rate(safe_ratio(Decimal(repeaters), Decimal(len(per_customer)))),
            returning_customer_rate=quantize_rate(
                safe_ratio(Decimal(returning_orders), Decimal(len(window_sales)))
            ),
            signal=SIGNAL_ORDER_IDS,
        )

    if customers:
        new = sum(1 for c in customers if window.contains(c.created_at))
        # Without order linkage, an older account that has bought more than once counts as returning.
        returning = sum(1 for c in customers if c.created_at < window.start and c.orders_count > 1)
        return _CustomerStats(new=new, returning=returning, signal=SIGNAL_CUSTOMER_RECORDS)

    return _CustomerStats()


def bucket_dates(window: Window, tz, days: int) -> list[date]:
    """The `days` local calendar dates ending on the date of the last instant in the window."""
    last = window.end.subtract(microseconds=1).in_timezone(tz)
    last_day = date(last.year, last.month, last.day)
    return [last_day - timedelta(days=i) for i in range(days - 1, -1, -1)]


def daily_buckets(
    sales: list[NormalizedOrder],
    refunds: list[NormalizedRefund],
    window: Window,
    tz,
    days: int,
) -> tuple[DailyBucket, ...]:
    dates = bucket_dates(window, tz, days)
    gross = {d: ZERO for d in dates}
    discounts = {d: ZERO for d in dates}
    refunded = {d: ZERO for d in dates}
    counts = {d: 0 for d in dates}

    def local_day(instant: p.DateTime) -> date:
        local = instant.in_timezone(tz)
        return date(local.year, local.month, local.day)

    # Activity on the partial day before the first bucket is not bucketed.
    for o in sales:
        d = local_day(o.created_at)
        if d in counts:
            gross[d] += o.gross_amount
            discounts[d] += o.discount_amount
            counts[d] += 1
    for r in refunds:
        d = local_day(r.created_at)
        if d in counts:
            refunded[d] += r.amount

    return tuple(
        DailyBucket(
            date=d,
            net_sales=quantize_money(gross[d]) - quantize_money(discounts[d]) - quantize_money(refunded[d]),
            order_count=counts[d],
        )
        for d in dates
    )


def growth_pct(current: Decimal, prior: Decimal) -> Decimal:
    """Percent change vs prior; exactly 0 when the prior value is 0."""
    if prior == 0:
        return quantize_money(ZERO)
    return quantize_money((current - prior) / prior * HUNDRED)


def compute_kpis(
    orders: Iterable[NormalizedOrder],
    refunds: Iterable[NormalizedRefund],
    customers: Iterable[NormalizedCustomer] | None = None,
    config: KPIConfig | None = None,
) -> KPIResult:
    """
    Compute the trailing-window KPI set from canonical records.

    Raises InvalidKPIConfig for an unsupported window length or timezone;
    sparse or partial data never raises and degrades to zeros instead.
    """
    config = config or KPIConfig()
    tz = config.validate()
    current, prior = resolve_windows(config)

    orders = list(orders or [])
    refunds = list(refunds or [])
    customers = list(customers or [])

    all_sales = [o for o in orders if not o.is_cancelled]
    window_orders = [o for o in orders if current.contains(o.created_at)]
    window_sales = [o for o in window_orders if not o.is_cancelled]
    window_refunds = [r for r in refunds if current.contains(r.created_at)]

    t = _totals(window_sales, window_refunds)
    currency, mixed = resolve_currency(window_orders or orders)
    if mixed:
        log.warning(f"Mixed currencies in window; reporting {currency} without conversion")

    stats = classify_customers(all_sales, window_sales, customers, current)

    growth = None
    if prior is not None:
        prior_sales = [o for o in all_sales if prior.contains(o.created_at)]
        prior_refunds = [r for r in refunds if prior.contains(r.created_at)]
        pt = _totals(prior_sales, prior_refunds)
        growth = Growth(
            net_sales_growth_pct=growth_pct(t.net, pt.net),
            order_count_growth_pct=growth_pct(Decimal(t.order_count), Decimal(pt.order_count)),
        )

    discounted = sum(1 for o in window_sales if o.discount_amount > 0)

    result = KPIResult(
        window_days=config.window_days,
        currency=currency,
        gross_sales=t.gross,
        total_discounts=t.discounts,
        total_refunds=t.refunds,
        net_sales=t.net,
        order_count=t.order_count,
        refund_count=t.refund_count,
        average_order_value=quantize_money(safe_ratio(t.net, Decimal(t.order_count))),
        new_customer_count=stats.new,
        returning_customer_count=stats.returning,
        # refunds on orders placed before the window can exceed in-window gross
        refund_rate=quantize_rate(min(safe_ratio(t.refunds, t.gross), ONE)),
        daily_buckets=daily_buckets(window_sales, window_refunds, current, tz, config.window_days),
        window_start=current.start,
        window_end=current.end,
        timezone=config.timezone,
        growth=growth,
        items_sold=sum(o.item_count for o in window_sales),
        discount_penetration=quantize_rate(safe_ratio(Decimal(discounted), Decimal(t.order_count))),
        discount_rate=quantize_rate(safe_ratio(t.discounts, t.gross)),
        repeat_purchase_rate=stats.repeat_purchase_rate,
        returning_customer_rate=stats.returning_customer_rate,
        customer_signal=stats.signal,
        currency_mixed=mixed,
    )
    log.info(
        f"KPIs {config.window_days}d: net_sales={result.net_sales} {currency}, "
        f"orders={result.order_count}, refunds={result.refund_count}, customers={stats.signal}"
    )
    return result
