from dotenv import load_dotenv
load_dotenv()

import argparse
import json
import os
import sys
from typing import Iterable, List, Optional

from rich.console import Console

from rbf_kpi.attest.builder import build_attestation, hash_attestation
from rbf_kpi.errors import InvalidKPIConfig, KPIError
from rbf_kpi.extract.base import FetchResult, ProviderAdapter, fetch_all, merge_results
from rbf_kpi.extract.registry import FACTORIES, adapter_from_env
from rbf_kpi.load.duckdb_client import DB_PATH, DuckDBClient
from rbf_kpi.transform.frames import customers_frame, orders_frame, refunds_frame
from rbf_kpi.transform.kpi import KPIConfig, compute_kpis, fetch_range
from rbf_kpi.utils.logging import get_logger
from rbf_kpi.utils.notify import notify
from rbf_kpi.utils.time import APP_TZ, now_utc

log = get_logger(__name__)
DEFAULT_WINDOW_DAYS = int(os.getenv("DEFAULT_WINDOW_DAYS", "30"))


def _load(merged: FetchResult, result, merchant_id: str, db_path: str):
    db = DuckDBClient(db_path)
    try:
        db.init_schema()
        db.load_orders(orders_frame(merged.orders))
        db.load_refunds(refunds_frame(merged.refunds))
        db.load_customers(customers_frame(merged.customers))
        db.save_snapshot(result, merchant_id)
    finally:
        db.close()


def build_payload(result, merchant_id: Optional[str] = None, previous_cid: Optional[str] = None) -> dict:
    payload = result.to_dict()
    if merchant_id:
        attestation = build_attestation(result, merchant_id, previous_cid=previous_cid)
        payload["attestation"] = attestation
        payload["attestation_hash"] = hash_attestation(attestation)
    return payload


def run_pipeline(
    adapters: Iterable[ProviderAdapter],
    config: KPIConfig,
    merchant_id: Optional[str] = None,
    previous_cid: Optional[str] = None,
    load: bool = False,
    db_path: str = DB_PATH,
) -> dict:
    """Fetch every provider sequentially -> merge -> compute KPIs -> optional load/attest."""
    config.validate()
    start, end = fetch_range(config)
    log.info(f"Fetching {start.to_iso8601_string()} .. {end.to_iso8601_string()}")

    merged = merge_results(fetch_all(a, start, end) for a in adapters)
    result = compute_kpis(merged.orders, merged.refunds, merged.customers, config)

    if load:
        _load(merged, result, merchant_id or merged.provider, db_path)
    return build_payload(result, merchant_id, previous_cid)


def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Revenue KPI runner")
    ap.add_argument("--provider", action="append", choices=sorted(FACTORIES), required=True,
                    help="Provider to fetch from (repeat for multi-provider aggregation)")
    ap.add_argument("--window-days", type=int, default=DEFAULT_WINDOW_DAYS, help="Trailing window: 30 or 90")
    ap.add_argument("--growth", action="store_true", help="Also compute growth vs the prior window of equal length")
    ap.add_argument("--timezone", default=APP_TZ, help="IANA timezone for daily buckets")
    ap.add_argument("--merchant", help="Merchant id; when given an attestation payload is built")
    ap.add_argument("--previous-cid", help="Reference to the previous attestation")
    ap.add_argument("--load", action="store_true", help="Persist records and the KPI snapshot to DuckDB")
    ap.add_argument("--out", help="Write the JSON result to this file instead of stdout")
    args = ap.parse_args(argv)

    config = KPIConfig(
        timezone=args.timezone,
        window_days=args.window_days,
        prior_window_days=args.window_days if args.growth else None,
        now=now_utc(),
    )

    try:
        adapters = [adapter_from_env(name) for name in args.provider]
    except ValueError as e:
        # missing credentials
        log.error(str(e))
        return 2

    try:
        payload = run_pipeline(
            adapters,
            config,
            merchant_id=args.merchant,
            previous_cid=args.previous_cid,
            load=args.load,
        )
    except InvalidKPIConfig as e:
        log.error(str(e))
        return 2
    except KPIError as e:
        log.error(f"KPI run failed: {e}")
        notify(f"KPI run for {', '.join(args.provider)} failed:\n{e}", level="error")
        return 1

    if args.out:
        with open(args.out, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2)
        log.info(f"Wrote {args.out}")
    else:
        Console().print_json(data=payload)
    return 0


if __name__ == "__main__":
    sys.exit(main())
