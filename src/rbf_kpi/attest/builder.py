"""
Attestation v1 payloads built from a KPIResult.

Canonical form: sorted keys, 2-space indent, money as 2-decimal strings, rates
as 4-decimal strings, counts as integers, no PII. `nonce` and `timestamp` are
derived from the window end, so the same KPI inputs always hash the same.
"""

import hashlib
import json
from decimal import Decimal
from typing import Any, Dict, Optional

from ..models import KPIResult
from ..transform.money import quantize_money, quantize_rate

SCHEMA_VERSION = "1.0.0"


def _money(d: Decimal) -> str:
    return f"{quantize_money(d):.2f}"


def _rate(d: Decimal) -> str:
    return f"{quantize_rate(d):.4f}"


def build_attestation(
    kpis: KPIResult,
    merchant_id: str,
    previous_cid: Optional[str] = None,
    platform_id: Optional[str] = None,
) -> Dict[str, Any]:
    merchant = {"merchantId": merchant_id, "currency": kpis.currency}
    if platform_id:
        merchant["platformId"] = platform_id

    metrics: Dict[str, Any] = {
        "gross_sales": _money(kpis.gross_sales),
        "discounts": _money(kpis.total_discounts),
        "refunds": _money(kpis.total_refunds),
        "net_sales": _money(kpis.net_sales),
        "orders_count": kpis.order_count,
        "refunds_count": kpis.refund_count,
        "items_sold": kpis.items_sold,
        "aov": _money(kpis.average_order_value),
        "new_customers": kpis.new_customer_count,
        "returning_customers": kpis.returning_customer_count,
        "returning_customer_rate": _rate(kpis.returning_customer_rate),
        "repeat_purchase_rate": _rate(kpis.repeat_purchase_rate),
        "discount_penetration": _rate(kpis.discount_penetration),
        "discount_rate": _rate(kpis.discount_rate),
        "refund_rate": _rate(kpis.refund_rate),
    }
    if kpis.growth is not None:
        # growth is a percentage; keep 4 decimals like the other ratios
        metrics["net_sales_growth_pct"] = _rate(kpis.growth.net_sales_growth_pct)
        metrics["order_count_growth_pct"] = _rate(kpis.growth.order_count_growth_pct)

    attestation: Dict[str, Any] = {
        "schemaVersion": SCHEMA_VERSION,
        "period": {
            "start": kpis.window_start.to_iso8601_string(),
            "end": kpis.window_end.to_iso8601_string(),
            "timezone": kpis.timezone,
        },
        "merchant": merchant,
        "metrics": metrics,
        "nonce": str(int(kpis.window_end.timestamp() * 1000)),
        "timestamp": kpis.window_end.to_iso8601_string(),
    }
    if previous_cid:
        attestation["previousCid"] = previous_cid
    return attestation


def serialize_attestation(attestation: Dict[str, Any]) -> str:
    return json.dumps(attestation, sort_keys=True, indent=2, ensure_ascii=False)


def hash_attestation(attestation: Dict[str, Any]) -> str:
    """0x-prefixed SHA-256 of the canonical serialization."""
    return "0x" + hashlib.sha256(serialize_attestation(attestation).encode("utf-8")).hexdigest()
