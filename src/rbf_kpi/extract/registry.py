import os
from typing import Callable, Dict

from .base import ProviderAdapter
from .paypal import PayPalAdapter
from .plaid import PlaidAdapter
from .shopify import ShopifyAdapter
from .square import SquareAdapter
from .stripe import StripeAdapter
from .toast import ToastAdapter
from .wc_client import WooClient
from .woocommerce import WooCommerceAdapter


def _require(*names: str) -> Dict[str, str]:
    values = {n: os.getenv(n, "").strip() for n in names}
    missing = [n for n, v in values.items() if not v]
    if missing:
        raise ValueError(f"missing credentials: set {', '.join(missing)}")
    return values


def _shopify() -> ShopifyAdapter:
    env = _require("SHOPIFY_SHOP", "SHOPIFY_ACCESS_TOKEN")
    return ShopifyAdapter(env["SHOPIFY_SHOP"], env["SHOPIFY_ACCESS_TOKEN"])


def _stripe() -> StripeAdapter:
    return StripeAdapter(_require("STRIPE_ACCESS_TOKEN")["STRIPE_ACCESS_TOKEN"])


def _square() -> SquareAdapter:
    token = _require("SQUARE_ACCESS_TOKEN")["SQUARE_ACCESS_TOKEN"]
    return SquareAdapter(token, environment=os.getenv("SQUARE_ENV", "sandbox"))


def _paypal() -> PayPalAdapter:
    token = _require("PAYPAL_ACCESS_TOKEN")["PAYPAL_ACCESS_TOKEN"]
    return PayPalAdapter(token, environment=os.getenv("PAYPAL_ENV", "sandbox"))


def _toast() -> ToastAdapter:
    env = _require("TOAST_ACCESS_TOKEN", "TOAST_RESTAURANT_GUID")
    return ToastAdapter(
        env["TOAST_ACCESS_TOKEN"],
        env["TOAST_RESTAURANT_GUID"],
        environment=os.getenv("TOAST_ENV", "sandbox"),
    )


def _woocommerce() -> WooCommerceAdapter:
    return WooCommerceAdapter(WooClient())


def _plaid() -> PlaidAdapter:
    env = _require("PLAID_ACCESS_TOKEN", "PLAID_CLIENT_ID", "PLAID_SECRET")
    return PlaidAdapter(
        env["PLAID_ACCESS_TOKEN"],
        client_id=env["PLAID_CLIENT_ID"],
        secret=env["PLAID_SECRET"],
        environment=os.getenv("PLAID_ENV", "sandbox"),
    )


FACTORIES: Dict[str, Callable[[], ProviderAdapter]] = {
    "shopify": _shopify,
    "stripe": _stripe,
    "square": _square,
    "paypal": _paypal,
    "toast": _toast,
    "woocommerce": _woocommerce,
    "plaid": _plaid,
}


def adapter_from_env(provider: str) -> ProviderAdapter:
    """Build a provider adapter from credentials in the environment (.env)."""
    try:
        factory = FACTORIES[provider.lower()]
    except KeyError:
        raise ValueError(f"unknown provider {provider!r}; expected one of {sorted(FACTORIES)}") from None
    return factory()
