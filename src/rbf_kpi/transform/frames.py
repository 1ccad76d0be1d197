from typing import Iterable, List

import pandas as pd

from ..models import KPIResult, NormalizedCustomer, NormalizedOrder, NormalizedRefund

ORDER_COLS = [
    "source", "order_id", "created_at", "currency", "gross_amount",
    "discount_amount", "is_cancelled", "customer_id", "item_count",
]
REFUND_COLS = ["source", "refund_id", "order_id", "created_at", "currency", "amount"]
CUSTOMER_COLS = ["source", "customer_id", "created_at", "orders_count", "total_spent"]
DAILY_COLS = ["date", "net_sales", "order_count"]


def _utc_naive(values: List) -> pd.Series:
    # DuckDB TIMESTAMP columns want naive UTC
    return pd.to_datetime(pd.Series(values, dtype="object"), utc=True).dt.tz_convert(None)


def orders_frame(orders: Iterable[NormalizedOrder]) -> pd.DataFrame:
    """One row per canonical order, sorted by creation time."""
    rows = [
        {
            "source": o.source,
            "order_id": o.id,
            "created_at": o.created_at,
            "currency": o.currency,
            "gross_amount": float(o.gross_amount),
            "discount_amount": float(o.discount_amount),
            "is_cancelled": o.is_cancelled,
            "customer_id": o.customer_id,
            "item_count": o.item_count,
        }
        for o in orders
    ]
    df = pd.DataFrame(rows, columns=ORDER_COLS)
    if not df.empty:
        df["created_at"] = _utc_naive(df["created_at"].tolist())
        df.sort_values("created_at", inplace=True, kind="stable")
        df.reset_index(drop=True, inplace=True)
    return df


def refunds_frame(refunds: Iterable[NormalizedRefund]) -> pd.DataFrame:
    rows = [
        {
            "source": r.source,
            "refund_id": r.id,
            "order_id": r.order_id,
            "created_at": r.created_at,
            "currency": r.currency,
            "amount": float(r.amount),
        }
        for r in refunds
    ]
    df = pd.DataFrame(rows, columns=REFUND_COLS)
    if not df.empty:
        df["created_at"] = _utc_naive(df["created_at"].tolist())
        df.sort_values("created_at", inplace=True, kind="stable")
        df.reset_index(drop=True, inplace=True)
    return df


def customers_frame(customers: Iterable[NormalizedCustomer]) -> pd.DataFrame:
    rows = [
        {
            "source": c.source,
            "customer_id": c.id,
            "created_at": c.created_at,
            "orders_count": c.orders_count,
            "total_spent": float(c.total_spent),
        }
        for c in customers
    ]
    df = pd.DataFrame(rows, columns=CUSTOMER_COLS)
    if not df.empty:
        df["created_at"] = _utc_naive(df["created_at"].tolist())
    return df


def daily_frame(result: KPIResult) -> pd.DataFrame:
    """Daily net sales / order count series of a KPI result (one row per local date)."""
    df = pd.DataFrame(
        [
            {"date": b.date, "net_sales": float(b.net_sales), "order_count": b.order_count}
            for b in result.daily_buckets
        ],
        columns=DAILY_COLS,
    )
    if not df.empty:
        df["date"] = pd.to_datetime(df["date"])
    return df
