"""
Shared contract for commerce provider adapters.

Each provider is its own class satisfying `ProviderAdapter`; there is no common
base class. Adapters translate one provider's records into the canonical
NormalizedOrder / NormalizedRefund / NormalizedCustomer shapes for a half-open
[start, end) UTC range and hide that provider's pagination.
"""

import os
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Protocol, runtime_checkable

from ..errors import ProviderFetchError
from ..models import NormalizedCustomer, NormalizedOrder, NormalizedRefund
from ..utils.logging import get_logger

log = get_logger(__name__)

MAX_REFUND_LOOKUPS = int(os.getenv("MAX_REFUND_LOOKUPS", "250"))


@runtime_checkable
class ProviderAdapter(Protocol):
    provider: str

    def fetch_orders(self, start: datetime, end: datetime) -> List[NormalizedOrder]:
        ...

    def fetch_refunds(self, start: datetime, end: datetime) -> List[NormalizedRefund]:
        ...

    def fetch_customers(self, start: datetime, end: datetime) -> List[NormalizedCustomer]:
        ...


@dataclass
class FetchResult:
    provider: str
    orders: List[NormalizedOrder] = field(default_factory=list)
    refunds: List[NormalizedRefund] = field(default_factory=list)
    customers: List[NormalizedCustomer] = field(default_factory=list)
    customers_available: bool = True


def fetch_all(adapter: ProviderAdapter, start: datetime, end: datetime) -> FetchResult:
    """
    Orders and refunds must succeed (ProviderFetchError propagates);
    customers are optional and degrade to an empty list.
    """
    orders = adapter.fetch_orders(start, end)
    refunds = adapter.fetch_refunds(start, end)
    try:
        customers = adapter.fetch_customers(start, end)
        available = True
    except ProviderFetchError as e:
        log.warning(f"[{adapter.provider}] customers unavailable, continuing without them: {e}")
        customers, available = [], False

    log.info(
        f"[{adapter.provider}] fetched orders={len(orders)}, refunds={len(refunds)}, customers={len(customers)}"
    )
    return FetchResult(
        provider=adapter.provider,
        orders=orders,
        refunds=refunds,
        customers=customers,
        customers_available=available,
    )


def merge_results(results: Iterable[FetchResult]) -> FetchResult:
    """Concatenate several providers' records into one input set for the KPI engine."""
    results = list(results)
    return FetchResult(
        provider="+".join(r.provider for r in results),
        orders=[o for r in results for o in r.orders],
        refunds=[x for r in results for x in r.refunds],
        customers=[c for r in results for c in r.customers],
        customers_available=all(r.customers_available for r in results) if results else False,
    )
