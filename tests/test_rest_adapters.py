"""
Shopify, Stripe, Square and Toast adapters against a replayed HTTP session.
"""

from decimal import Decimal

import pendulum as p
import pytest

from factories import FakeResponse, FakeSession
from rbf_kpi.errors import ProviderFetchError
from rbf_kpi.extract.base import ProviderAdapter
from rbf_kpi.extract.http_client import ProviderClient
from rbf_kpi.extract.shopify import ShopifyAdapter
from rbf_kpi.extract.square import SquareAdapter
from rbf_kpi.extract.square import normalize_order as square_order
from rbf_kpi.extract.stripe import StripeAdapter, normalize_charge
from rbf_kpi.extract.toast import ToastAdapter, extract_refunds
from rbf_kpi.extract.toast import normalize_order as toast_order

START = p.datetime(2025, 2, 13, tz="UTC")
END = p.datetime(2025, 3, 15, tz="UTC")


def client_for(provider, *responses):
    session = FakeSession(*responses)
    return ProviderClient(provider, "https://api.example.com", session=session), session


class TestShopify:
    ORDER = {
        "id": 1001,
        "created_at": "2025-03-10T10:00:00-05:00",
        "total_line_items_price": "120.00",
        "total_discounts": "20.00",
        "financial_status": "paid",
        "cancelled_at": None,
        "customer": {"id": 42},
        "line_items": [{"id": 1}],
        "currency": "CAD",
        "refunds": [
            {
                "id": 9,
                "created_at": "2025-03-11T10:00:00-05:00",
                "transactions": [
                    {"kind": "refund", "status": "success", "amount": "15.00", "currency": "CAD"},
                    {"kind": "refund", "status": "failure", "amount": "99.00"},
                ],
            }
        ],
    }

    def test_follows_link_pagination(self):
        second = {**self.ORDER, "id": 1002, "refunds": []}
        client, session = client_for(
            "shopify",
            FakeResponse({"orders": [self.ORDER]}, links={"next": {"url": "https://api.example.com/orders.json?page_info=abc"}}),
            FakeResponse({"orders": [second]}),
        )

        orders = ShopifyAdapter("shop", "token", client=client).fetch_orders(START, END)

        assert [o.id for o in orders] == ["1001", "1002"]
        assert session.calls[0]["params"]["created_at_min"] == "2025-02-13T00:00:00Z"
        assert session.calls[1]["url"].endswith("page_info=abc")
        assert session.calls[1]["params"] is None

    def test_normalized_order(self):
        client, _ = client_for("shopify", FakeResponse({"orders": [self.ORDER]}))

        o = ShopifyAdapter("shop", "token", client=client).fetch_orders(START, END)[0]

        assert o.gross_amount == Decimal("120.00")
        assert o.discount_amount == Decimal("20.00")
        assert o.currency == "CAD"
        assert o.customer_id == "42"
        assert o.created_at == p.datetime(2025, 3, 10, 15, tz="UTC")
        assert o.is_cancelled is False

    def test_cancelled(self):
        cancelled = {**self.ORDER, "cancelled_at": "2025-03-11T00:00:00Z"}
        client, _ = client_for("shopify", FakeResponse({"orders": [cancelled]}))

        assert ShopifyAdapter("shop", "token", client=client).fetch_orders(START, END)[0].is_cancelled

    def test_nested_refunds_reuse_the_order_listing(self):
        client, session = client_for("shopify", FakeResponse({"orders": [self.ORDER]}))
        adapter = ShopifyAdapter("shop", "token", client=client)

        adapter.fetch_orders(START, END)
        refunds = adapter.fetch_refunds(START, END)

        assert len(session.calls) == 1
        assert len(refunds) == 1
        assert refunds[0].amount == Decimal("15.00")
        assert refunds[0].order_id == "1001"

    def test_missing_nested_refunds_are_looked_up_within_the_limit(self):
        bare = {k: v for k, v in self.ORDER.items() if k != "refunds"}
        client, session = client_for(
            "shopify",
            FakeResponse({"orders": [bare, {**bare, "id": 1002}]}),
            FakeResponse({"refunds": [{"id": 1, "created_at": "2025-03-12T00:00:00Z",
                                       "transactions": [{"kind": "refund", "amount": "5.00"}]}]}),
        )

        refunds = ShopifyAdapter("shop", "token", client=client, max_refund_lookups=1).fetch_refunds(START, END)

        assert [r.amount for r in refunds] == [Decimal("5.00")]
        assert len(session.calls) == 2
        assert session.calls[1]["url"].endswith("orders/1001/refunds.json")

    def test_auth_failure(self):
        client, _ = client_for("shopify", FakeResponse({}, status_code=401, text="Invalid API key"))

        with pytest.raises(ProviderFetchError) as exc:
            ShopifyAdapter("shop", "token", client=client).fetch_orders(START, END)

        assert exc.value.provider == "shopify"
        assert exc.value.http_status == 401


class TestStripe:
    def charge(self, cid, amount=1999, **overrides):
        c = {"id": cid, "amount": amount, "currency": "usd", "created": 1741600000, "paid": True,
             "status": "succeeded", "customer": "cus_1"}
        c.update(overrides)
        return c

    def test_cursor_pagination(self):
        client, session = client_for(
            "stripe",
            FakeResponse({"data": [self.charge("ch_1"), self.charge("ch_2")], "has_more": True}),
            FakeResponse({"data": [self.charge("ch_3")], "has_more": False}),
        )

        orders = StripeAdapter("sk", client=client).fetch_orders(START, END)

        assert [o.id for o in orders] == ["ch_1", "ch_2", "ch_3"]
        assert session.calls[0]["params"]["created[gte]"] == int(START.timestamp())
        assert session.calls[0]["params"]["created[lt]"] == int(END.timestamp())
        assert session.calls[1]["params"]["starting_after"] == "ch_2"

    def test_minor_units(self):
        o = normalize_charge(self.charge("ch", amount=1999))
        assert o.gross_amount == Decimal("19.99")
        assert o.currency == "USD"
        assert o.created_at == p.from_timestamp(1741600000, tz="UTC")

        assert normalize_charge(self.charge("jp", amount=500, currency="jpy")).gross_amount == Decimal("500")

    def test_unpaid_charge_is_cancelled(self):
        assert normalize_charge(self.charge("ch", paid=False, status="failed")).is_cancelled

    def test_failed_refunds_are_dropped(self):
        client, _ = client_for(
            "stripe",
            FakeResponse(
                {
                    "data": [
                        {"id": "re_1", "amount": 500, "currency": "usd", "charge": "ch_1", "created": 1741600000,
                         "status": "succeeded"},
                        {"id": "re_2", "amount": 700, "currency": "usd", "charge": "ch_2", "created": 1741600000,
                         "status": "failed"},
                    ],
                    "has_more": False,
                }
            ),
        )

        refunds = StripeAdapter("sk", client=client).fetch_refunds(START, END)

        assert [(r.id, r.order_id, r.amount) for r in refunds] == [("re_1", "ch_1", Decimal("5.00"))]

    def test_no_customer_records(self):
        client, session = client_for("stripe")

        assert StripeAdapter("sk", client=client).fetch_customers(START, END) == []
        assert session.calls == []


class TestSquare:
    ORDER = {
        "id": "sq1",
        "created_at": "2025-03-10T12:00:00Z",
        "state": "COMPLETED",
        "customer_id": "C1",
        "line_items": [{}, {}, {}],
        "total_money": {"amount": 11000, "currency": "USD"},
        "total_tax_money": {"amount": 1000, "currency": "USD"},
        "total_service_charge_money": {"amount": 0, "currency": "USD"},
        "total_discount_money": {"amount": 500, "currency": "USD"},
    }

    def test_gross_adds_back_discount(self):
        o = square_order(self.ORDER)

        assert o.gross_amount == Decimal("105.00")
        assert o.discount_amount == Decimal("5.00")
        assert o.item_count == 3

    def test_canceled_state(self):
        assert square_order({**self.ORDER, "state": "CANCELED"}).is_cancelled

    def test_search_cursor(self):
        client, session = client_for(
            "square",
            FakeResponse({"orders": [self.ORDER], "cursor": "next"}),
            FakeResponse({"orders": [{**self.ORDER, "id": "sq2"}]}),
        )

        orders = SquareAdapter("tok", client=client).fetch_orders(START, END)

        assert [o.id for o in orders] == ["sq1", "sq2"]
        assert session.calls[0]["method"] == "POST"
        created = session.calls[0]["json"]["query"]["filter"]["date_time_filter"]["created_at"]
        assert created == {"start_at": "2025-02-13T00:00:00Z", "end_at": "2025-03-15T00:00:00Z"}
        assert "cursor" not in session.calls[0]["json"]
        assert session.calls[1]["json"]["cursor"] == "next"

    def test_refund_statuses(self):
        client, _ = client_for(
            "square",
            FakeResponse(
                {
                    "refunds": [
                        {"id": "rf1", "status": "COMPLETED", "order_id": "sq1", "created_at": "2025-03-11T00:00:00Z",
                         "amount_money": {"amount": 250, "currency": "USD"}},
                        {"id": "rf2", "status": "FAILED", "payment_id": "pay2", "created_at": "2025-03-11T00:00:00Z",
                         "amount_money": {"amount": 999, "currency": "USD"}},
                    ]
                }
            ),
        )

        refunds = SquareAdapter("tok", client=client).fetch_refunds(START, END)

        assert [(r.id, r.amount) for r in refunds] == [("rf1", Decimal("2.50"))]


class TestToast:
    ORDER = {
        "guid": "t-1",
        "createdDate": "2025-03-10T18:00:00.000Z",
        "voided": False,
        "checks": [
            {
                "amount": 45.0,
                "appliedDiscounts": [{"discountAmount": 5.0}],
                "selections": [{"guid": "s1"}, {"guid": "s2", "voided": True}],
                "customer": {"guid": "guest-1"},
                "payments": [
                    {"guid": "pay-1", "refund": {"refundAmount": 10.0, "refundDate": "2025-03-12T10:00:00.000Z"}},
                    {"guid": "pay-2"},
                ],
            },
            {"deleted": True, "amount": 999.0},
        ],
    }

    def test_order_from_checks(self):
        o = toast_order(self.ORDER)

        assert o.gross_amount == Decimal("50.0")
        assert o.discount_amount == Decimal("5.0")
        assert o.item_count == 1
        assert o.customer_id == "guest-1"
        assert o.currency == "USD"

    def test_nested_refunds(self):
        refunds = extract_refunds(self.ORDER)

        assert len(refunds) == 1
        assert refunds[0].id == "pay-1"
        assert refunds[0].order_id == "t-1"
        assert refunds[0].amount == Decimal("10.0")
        assert refunds[0].created_at == p.datetime(2025, 3, 12, 10, tz="UTC")

    def test_bulk_listing_is_fetched_once(self):
        client, session = client_for("toast", FakeResponse([self.ORDER]))
        adapter = ToastAdapter("tok", "rest-guid", client=client)

        assert len(adapter.fetch_orders(START, END)) == 1
        assert len(adapter.fetch_refunds(START, END)) == 1
        assert len(session.calls) == 1
        assert session.calls[0]["params"]["page"] == 1


@pytest.mark.parametrize(
    "adapter",
    [
        ShopifyAdapter("shop", "t"),
        StripeAdapter("t"),
        SquareAdapter("t"),
        ToastAdapter("t", "g"),
    ],
)
def test_adapters_satisfy_the_protocol(adapter):
    assert isinstance(adapter, ProviderAdapter)
