"""
PayPal Transaction Search adapter.

The reporting API mixes sales, refunds, fees and transfers in one feed; event
codes tell them apart. A single query may span at most 31 days, so longer
ranges are queried slice by slice. Amounts are decimal strings in major units.
"""

from datetime import datetime
from typing import Dict, List

from ..models import NormalizedCustomer, NormalizedOrder, NormalizedRefund
from ..transform.money import to_decimal
from ..utils.time import date_slices, iso_z
from .http_client import ProviderClient

PROVIDER = "paypal"
BASE_URLS = {
    "production": "https://api-m.paypal.com",
    "sandbox": "https://api-m.sandbox.paypal.com",
}
MAX_RANGE_DAYS = 31
PAGE_SIZE = 500

# T0000 general payment, T0006 express checkout, T0007 website payments standard, T0013 donation
SALE_EVENT_CODES = {"T0000", "T0006", "T0007", "T0013"}
# T1106 payment reversal, T1107 payment refund
REFUND_EVENT_CODES = {"T1106", "T1107"}
CANCELLED_STATUSES = {"V", "D"}


def _event_code(t: Dict) -> str:
    return (t.get("transaction_info") or {}).get("transaction_event_code") or ""


def normalize_transaction(t: Dict) -> NormalizedOrder:
    info = t.get("transaction_info") or {}
    payer = t.get("payer_info") or {}
    amount = info.get("transaction_amount") or {}
    return NormalizedOrder(
        id=info.get("transaction_id") or "",
        created_at=info.get("transaction_initiation_date") or info.get("transaction_updated_date"),
        gross_amount=to_decimal(amount.get("value")),
        currency=amount.get("currency_code") or "USD",
        is_cancelled=(info.get("transaction_status") or "").upper() in CANCELLED_STATUSES,
        customer_id=payer.get("account_id"),
        item_count=len((t.get("cart_info") or {}).get("item_details") or []) or 1,
        source=PROVIDER,
    )


def normalize_refund(t: Dict) -> NormalizedRefund:
    info = t.get("transaction_info") or {}
    amount = info.get("transaction_amount") or {}
    return NormalizedRefund(
        id=info.get("transaction_id") or "",
        order_id=info.get("paypal_reference_id") or "",
        created_at=info.get("transaction_initiation_date") or info.get("transaction_updated_date"),
        # refunds are reported as negative amounts
        amount=abs(to_decimal(amount.get("value"))),
        currency=amount.get("currency_code"),
        source=PROVIDER,
    )


class PayPalAdapter:
    provider = PROVIDER

    def __init__(self, access_token: str, environment: str = "sandbox", client: ProviderClient | None = None):
        self.client = client or ProviderClient(
            PROVIDER,
            BASE_URLS.get(environment, BASE_URLS["sandbox"]),
            headers={"Authorization": f"Bearer {access_token}", "Content-Type": "application/json"},
        )
        self._raw: Dict[tuple, List[Dict]] = {}

    def _transactions(self, start: datetime, end: datetime) -> List[Dict]:
        key = (start, end)
        if key in self._raw:
            return self._raw[key]

        out: List[Dict] = []
        seen = set()
        for s, e in date_slices(start, end, MAX_RANGE_DAYS):
            page = 1
            while True:
                data = self.client.get(
                    "v1/reporting/transactions",
                    params={
                        "start_date": iso_z(s),
                        "end_date": iso_z(e),
                        "fields": "transaction_info,payer_info,cart_info",
                        "page_size": PAGE_SIZE,
                        "page": page,
                    },
                )
                for t in data.get("transaction_details") or []:
                    # end_date is inclusive, so a boundary instant comes back from both slices
                    tid = (t.get("transaction_info") or {}).get("transaction_id")
                    if tid and tid in seen:
                        continue
                    seen.add(tid)
                    out.append(t)
                if page >= int(data.get("total_pages") or 1):
                    break
                page += 1
        self._raw[key] = out
        return out

    def fetch_orders(self, start: datetime, end: datetime) -> List[NormalizedOrder]:
        return [normalize_transaction(t) for t in self._transactions(start, end) if _event_code(t) in SALE_EVENT_CODES]

    def fetch_refunds(self, start: datetime, end: datetime) -> List[NormalizedRefund]:
        return [normalize_refund(t) for t in self._transactions(start, end) if _event_code(t) in REFUND_EVENT_CODES]

    def fetch_customers(self, start: datetime, end: datetime) -> List[NormalizedCustomer]:
        return []
