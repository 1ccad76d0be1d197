from decimal import Decimal

import pendulum as p
import pytest
import requests

from factories import FakeResponse, FakeWooAPI
from rbf_kpi.errors import ProviderFetchError
from rbf_kpi.extract.wc_client import WooClient
from rbf_kpi.extract.woocommerce import WooCommerceAdapter, normalize_customer, normalize_order

START = p.datetime(2025, 2, 13, tz="UTC")
END = p.datetime(2025, 3, 15, tz="UTC")


def woo_order(oid, refunds=None, **overrides):
    o = {
        "id": oid,
        "status": "completed",
        "currency": "USD",
        "date_created_gmt": "2025-03-10T10:00:00",
        "total": "118.00",
        "total_tax": "8.00",
        "shipping_total": "10.00",
        "discount_total": "10.00",
        "customer_id": 7,
        "line_items": [{"id": 1}, {"id": 2}],
        "refunds": refunds or [],
    }
    o.update(overrides)
    return o


class TestNormalize:
    def test_gross_excludes_tax_and_shipping(self):
        o = normalize_order(woo_order(1))

        assert o.gross_amount == Decimal("110.00")
        assert o.discount_amount == Decimal("10.00")
        assert o.created_at == p.datetime(2025, 3, 10, 10, tz="UTC")
        assert o.customer_id == "7"
        assert o.item_count == 2
        assert o.source == "woocommerce"

    def test_guest_checkout_has_no_customer(self):
        assert normalize_order(woo_order(1, customer_id=0)).customer_id is None

    @pytest.mark.parametrize("status, cancelled", [("cancelled", True), ("failed", True), ("refunded", False)])
    def test_cancelled_statuses(self, status, cancelled):
        assert normalize_order(woo_order(1, status=status)).is_cancelled is cancelled

    def test_customer(self):
        c = normalize_customer({"id": 3, "date_created_gmt": "2025-03-01T00:00:00", "orders_count": 2})

        assert c.id == "3"
        assert c.orders_count == 2


class TestClient:
    def test_paged_stops_on_short_page(self):
        api = FakeWooAPI({"orders": [FakeResponse([woo_order(1), woo_order(2)]), FakeResponse([woo_order(3)])]})

        rows = WooClient(api=api).paged("orders", {"per_page": 2})

        assert [r["id"] for r in rows] == [1, 2, 3]
        assert [c[1]["page"] for c in api.calls] == [1, 2]

    def test_http_error(self):
        api = FakeWooAPI({"orders": FakeResponse({"code": "woocommerce_rest_cannot_view"}, status_code=401, text="nope")})

        with pytest.raises(ProviderFetchError) as exc:
            WooClient(api=api).get("orders", {})

        assert exc.value.provider == "woocommerce"
        assert exc.value.http_status == 401

    def test_timeout(self):
        api = FakeWooAPI({"orders": requests.Timeout()})

        with pytest.raises(ProviderFetchError) as exc:
            WooClient(api=api).get("orders", {})

        assert exc.value.http_status is None

    def test_missing_credentials(self, monkeypatch):
        for k in ("WC_BASE_URL", "WC_CONSUMER_KEY", "WC_CONSUMER_SECRET"):
            monkeypatch.delenv(k, raising=False)

        with pytest.raises(ValueError):
            WooClient()


class TestAdapter:
    def test_orders_query_is_utc_bounded(self):
        api = FakeWooAPI({"orders": FakeResponse([woo_order(1)])})

        orders = WooCommerceAdapter(WooClient(api=api)).fetch_orders(START, END)

        assert len(orders) == 1
        params = api.calls[0][1]
        assert params["after"] == "2025-02-13T00:00:00Z"
        assert params["before"] == "2025-03-15T00:00:00Z"
        assert params["dates_are_gmt"] == "true"

    def test_refunds_only_for_refunded_orders(self):
        api = FakeWooAPI(
            {
                "orders": FakeResponse([woo_order(1, refunds=[{"id": 5, "total": "-20.00"}]), woo_order(2)]),
                "orders/1/refunds": FakeResponse(
                    [{"id": 5, "amount": "20.00", "date_created_gmt": "2025-03-11T09:00:00"}]
                ),
            }
        )
        adapter = WooCommerceAdapter(WooClient(api=api))

        adapter.fetch_orders(START, END)
        refunds = adapter.fetch_refunds(START, END)

        assert len(refunds) == 1
        assert refunds[0].order_id == "1"
        assert refunds[0].amount == Decimal("20.00")
        assert refunds[0].currency == "USD"
        # orders listed once, refunds looked up once
        assert [c[0] for c in api.calls] == ["orders", "orders/1/refunds"]

    def test_refund_lookups_are_capped(self):
        api = FakeWooAPI(
            {
                "orders": FakeResponse([woo_order(1, refunds=[{"id": 5}]), woo_order(2, refunds=[{"id": 6}])]),
                "orders/1/refunds": FakeResponse([{"id": 5, "amount": "1.00"}]),
            }
        )

        refunds = WooCommerceAdapter(WooClient(api=api), max_refund_lookups=1).fetch_refunds(START, END)

        assert len(refunds) == 1
        assert "orders/2/refunds" not in [c[0] for c in api.calls]

    def test_failed_refund_lookup_is_skipped(self):
        api = FakeWooAPI(
            {
                "orders": FakeResponse([woo_order(1, refunds=[{"id": 5}])]),
                "orders/1/refunds": FakeResponse({}, status_code=500, text="boom"),
            }
        )

        assert WooCommerceAdapter(WooClient(api=api)).fetch_refunds(START, END) == []

    def test_order_failure_propagates(self):
        api = FakeWooAPI({"orders": FakeResponse({}, status_code=503)})

        with pytest.raises(ProviderFetchError):
            WooCommerceAdapter(WooClient(api=api)).fetch_orders(START, END)

    def test_customers(self):
        api = FakeWooAPI({"customers": FakeResponse([{"id": 1, "date_created_gmt": "2025-03-01T00:00:00"}])})

        customers = WooCommerceAdapter(WooClient(api=api)).fetch_customers(START, END)

        assert [c.id for c in customers] == ["1"]
        assert api.calls[0][1]["role"] == "all"
