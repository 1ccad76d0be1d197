import pytest

from factories import NOW, make_order, make_refund
from rbf_kpi.transform.kpi import KPIConfig


@pytest.fixture
def config():
    return KPIConfig(timezone="America/New_York", window_days=30, now=NOW)


@pytest.fixture
def simple_orders():
    """A(100, discount 10), B(200), C(50, cancelled) inside the trailing 30 days."""
    return [
        make_order("A", days_ago=3, gross="100.00", discount="10.00"),
        make_order("B", days_ago=2, gross="200.00"),
        make_order("C", days_ago=1, gross="50.00", cancelled=True),
    ]


@pytest.fixture
def simple_refunds():
    return [make_refund("R1", order_id="A", days_ago=1, amount="30.00")]
