import json
import os
from datetime import datetime
from pathlib import Path

import duckdb
import pandas as pd

from ..models import KPIResult
from ..transform.frames import CUSTOMER_COLS, ORDER_COLS, REFUND_COLS, daily_frame
from ..utils.logging import get_logger

log = get_logger(__name__)

DB_PATH = os.getenv("DUCKDB_PATH", "./data/kpi.duckdb")


def _naive_utc(dt) -> datetime:
    return pd.Timestamp(dt).tz_convert("UTC").tz_localize(None).to_pydatetime()


class DuckDBClient:
    def __init__(self, db_path: str = DB_PATH):
        if db_path != ":memory:":
            Path(os.path.dirname(db_path) or ".").mkdir(parents=True, exist_ok=True)
        self.con = duckdb.connect(db_path)
        self.con.execute("PRAGMA threads=4")

    def close(self):
        self.con.close()

    def init_schema(self):
        ddl_path = Path(__file__).with_name("ddl.sql")
        with open(ddl_path, "r", encoding="utf-8") as f:
            self.con.execute(f.read())
        log.info("Schema ensured.")

    def _align_cols(self, df: pd.DataFrame, cols: list) -> pd.DataFrame:
        df = df.copy()
        for c in cols:
            if c not in df.columns:
                df[c] = None
        # keep only desired columns in correct order
        return df[cols]

    def _upsert(self, table: str, id_col: str, df: pd.DataFrame):
        keys = [f"{s}|{i}" for s, i in zip(df["source"], df[id_col])]
        # Delete-then-insert to emulate upsert on (source, id)
        self.con.execute(
            f"DELETE FROM {table} WHERE source || '|' || {id_col} IN (SELECT UNNEST(?))",
            [keys],
        )
        # DuckDB registers the pandas DF name as a view automatically
        self.con.execute(f"INSERT INTO {table} SELECT * FROM df")
        log.info(f"Loaded {len(df)} rows into {table}")

    def load_orders(self, df_orders: pd.DataFrame):
        if df_orders.empty:
            return
        self._upsert("fct_orders", "order_id", self._align_cols(df_orders, ORDER_COLS))

    def load_refunds(self, df_refunds: pd.DataFrame):
        if df_refunds.empty:
            return
        self._upsert("fct_refunds", "refund_id", self._align_cols(df_refunds, REFUND_COLS))

    def load_customers(self, df_customers: pd.DataFrame):
        if df_customers.empty:
            return
        self._upsert("dim_customers", "customer_id", self._align_cols(df_customers, CUSTOMER_COLS))

    def save_snapshot(self, result: KPIResult, merchant_id: str):
        """Store one KPI snapshot row plus its daily series; a rerun for the same window end replaces it."""
        window_end = _naive_utc(result.window_end)
        self.con.execute(
            "DELETE FROM kpi_snapshots WHERE merchant_id = ? AND window_end = ? AND window_days = ?",
            [merchant_id, window_end, result.window_days],
        )
        self.con.execute(
            "INSERT INTO kpi_snapshots VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            [
                merchant_id,
                result.window_days,
                _naive_utc(result.window_start),
                window_end,
                result.timezone,
                result.currency,
                float(result.gross_sales),
                float(result.total_discounts),
                float(result.total_refunds),
                float(result.net_sales),
                result.order_count,
                result.refund_count,
                float(result.average_order_value),
                float(result.refund_rate),
                result.new_customer_count,
                result.returning_customer_count,
                result.customer_signal,
                json.dumps(result.to_dict(), sort_keys=True),
            ],
        )

        df = daily_frame(result)
        df.insert(0, "window_end", window_end)
        df.insert(0, "merchant_id", merchant_id)
        self.con.execute(
            "DELETE FROM kpi_daily WHERE merchant_id = ? AND window_end = ?",
            [merchant_id, window_end],
        )
        self.con.execute('INSERT INTO kpi_daily SELECT merchant_id, window_end, CAST("date" AS DATE), net_sales, order_count FROM df')
        log.info(f"Saved KPI snapshot for {merchant_id} ({len(df)} daily rows)")

    def read_daily(self, merchant_id: str) -> pd.DataFrame:
        """Daily series of the latest snapshot stored for a merchant."""
        return self.con.execute(
            """
            SELECT "date", net_sales, order_count
            FROM kpi_daily
            WHERE merchant_id = ?
              AND window_end = (SELECT MAX(window_end) FROM kpi_daily WHERE merchant_id = ?)
            ORDER BY "date"
            """,
            [merchant_id, merchant_id],
        ).df()

    def read_snapshots(self, merchant_id: str) -> pd.DataFrame:
        return self.con.execute(
            "SELECT * FROM kpi_snapshots WHERE merchant_id = ? ORDER BY window_end",
            [merchant_id],
        ).df()
