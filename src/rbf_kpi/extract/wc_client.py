import os
from typing import Dict, Any, List

import requests
from woocommerce import API

from ..errors import ProviderFetchError
from .http_client import DEFAULT_TIMEOUT

PROVIDER = "woocommerce"


class WooClient:
    def __init__(
        self,
        base_url: str | None = None,
        consumer_key: str | None = None,
        consumer_secret: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        api=None,
    ):
        if api is not None:
            self.wcapi = api
            return

        url = (base_url or os.getenv("WC_BASE_URL", "")).strip().rstrip("/")
        ck = consumer_key or os.getenv("WC_CONSUMER_KEY")
        cs = consumer_secret or os.getenv("WC_CONSUMER_SECRET")

        if not url or not ck or not cs:
            raise ValueError("Woo credentials missing: set WC_BASE_URL, WC_CONSUMER_KEY, WC_CONSUMER_SECRET")

        # Using query_string_auth=True helps with hosts that block Basic Auth or add WAF rules (e.g., Cloudflare)
        self.wcapi = API(
            url=url + "/",
            consumer_key=ck,
            consumer_secret=cs,
            version="wc/v3",
            timeout=timeout,
            wp_api=True,
            query_string_auth=True,
        )

    def get(self, path: str, params: Dict[str, Any]) -> Any:
        try:
            resp = self.wcapi.get(path.lstrip("/"), params=params)
        except requests.Timeout as e:
            raise ProviderFetchError(PROVIDER, None, f"GET {path} timed out") from e
        except requests.RequestException as e:
            raise ProviderFetchError(PROVIDER, None, f"GET {path} failed: {e}") from e
        # woocommerce lib returns a requests.Response
        if resp.status_code >= 300:
            raise ProviderFetchError(PROVIDER, resp.status_code, f"GET {path}: {(resp.text or '')[:500]}")
        try:
            return resp.json()
        except ValueError as e:
            raise ProviderFetchError(PROVIDER, resp.status_code, f"GET {path}: response is not JSON") from e

    def paged(self, path: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        page = 1
        per_page = int(params.get("per_page", 100))
        out: List[Dict[str, Any]] = []
        while True:
            q = {**params, "page": page, "per_page": per_page}
            data = self.get(path, q)
            if not data:
                break
            out.extend(data)
            if len(data) < per_page:
                break
            page += 1
        return out
