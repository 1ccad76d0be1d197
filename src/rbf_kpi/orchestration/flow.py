from dotenv import load_dotenv
load_dotenv()

from typing import List, Optional

from prefect import flow, task, get_run_logger
from prefect.cache_policies import NO_CACHE

from rbf_kpi.extract.base import FetchResult, ProviderAdapter, fetch_all, merge_results
from rbf_kpi.extract.registry import adapter_from_env
from rbf_kpi.load.duckdb_client import DB_PATH, DuckDBClient
from rbf_kpi.models import KPIResult
from rbf_kpi.run import build_payload
from rbf_kpi.transform.frames import customers_frame, orders_frame, refunds_frame
from rbf_kpi.transform.kpi import KPIConfig, compute_kpis, fetch_range
from rbf_kpi.utils.time import APP_TZ, now_utc


# ---------- Core Tasklets ----------

@task(retries=2, retry_delay_seconds=30, cache_policy=NO_CACHE)
def t_fetch(adapter: ProviderAdapter, start, end) -> FetchResult:
    return fetch_all(adapter, start, end)

@task(cache_policy=NO_CACHE)
def t_compute(merged: FetchResult, config: KPIConfig) -> KPIResult:
    return compute_kpis(merged.orders, merged.refunds, merged.customers, config)

@task(cache_policy=NO_CACHE)
def t_load(merged: FetchResult, result: KPIResult, merchant_id: str, db_path: str):
    db = DuckDBClient(db_path)
    try:
        db.init_schema()
        db.load_orders(orders_frame(merged.orders))
        db.load_refunds(refunds_frame(merged.refunds))
        db.load_customers(customers_frame(merged.customers))
        db.save_snapshot(result, merchant_id)
    finally:
        db.close()


# ---------- Flows ----------

@flow(name="revenue-kpi-flow", validate_parameters=False)
def run_flow(
    providers: Optional[List[str]] = None,
    window_days: int = 30,
    include_growth: bool = False,
    timezone: str = APP_TZ,
    load: bool = False,
    merchant_id: Optional[str] = None,
    adapters: Optional[List[ProviderAdapter]] = None,
    db_path: str = DB_PATH,
) -> dict:
    """
    Multi-provider KPI flow:
      - one fetch task per provider, submitted concurrently (each retried twice)
      - merged records -> KPIs; optional DuckDB load; attestation when merchant_id is set
    Adapters are built from the environment unless passed in directly.
    """
    logger = get_run_logger()

    config = KPIConfig(
        timezone=timezone,
        window_days=window_days,
        prior_window_days=window_days if include_growth else None,
        now=now_utc(),
    )
    config.validate()
    start, end = fetch_range(config)

    adapters = list(adapters or [adapter_from_env(name) for name in providers or []])
    logger.info(f"Fetching {len(adapters)} provider(s) for {start.to_iso8601_string()} .. {end.to_iso8601_string()}")

    futures = [t_fetch.submit(a, start, end) for a in adapters]
    merged = merge_results(f.result() for f in futures)
    logger.info(f"Merged orders={len(merged.orders)}, refunds={len(merged.refunds)}, customers={len(merged.customers)}")

    result = t_compute(merged, config)
    if load:
        t_load(merged, result, merchant_id or merged.provider, db_path)

    logger.info(f"Net sales {result.net_sales} {result.currency} over {result.order_count} orders")
    return build_payload(result, merchant_id)


if __name__ == "__main__":
    # Local examples:
    # run_flow(["shopify"])  # 30-day KPIs for one store
    # run_flow(["shopify", "stripe"], window_days=90, include_growth=True)  # multi-provider with growth
    # run_flow(["square"], load=True, merchant_id="0xabc")  # persist + attestation
    run_flow(["shopify"])
