import os
from typing import Any, Dict, Optional

import requests

from ..errors import ProviderFetchError

DEFAULT_TIMEOUT = float(os.getenv("PROVIDER_TIMEOUT", "30"))


class ProviderClient:
    """
    Thin JSON-over-HTTP client shared by the REST adapters.
    Any non-2xx status, timeout, connection failure or non-JSON body surfaces as
    ProviderFetchError so callers never see raw requests exceptions.
    """

    def __init__(
        self,
        provider: str,
        base_url: str,
        headers: Optional[Dict[str, str]] = None,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.provider = provider
        self.base_url = base_url.rstrip("/")
        self.headers = {"Accept": "application/json", **(headers or {})}
        self.timeout = timeout
        self.session = session or requests.Session()

    def url(self, path: str) -> str:
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    def request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ):
        """Send one request and return the checked response object."""
        try:
            resp = self.session.request(
                method,
                self.url(path),
                params=params,
                json=json,
                headers=self.headers,
                timeout=self.timeout,
            )
        except requests.Timeout as e:
            raise ProviderFetchError(self.provider, None, f"{method} {path} timed out after {self.timeout}s") from e
        except requests.RequestException as e:
            raise ProviderFetchError(self.provider, None, f"{method} {path} failed: {e}") from e

        if resp.status_code >= 300:
            raise ProviderFetchError(self.provider, resp.status_code, f"{method} {path}: {(resp.text or '')[:500]}")
        return resp

    def parse(self, resp, path: str) -> Any:
        try:
            return resp.json()
        except ValueError as e:
            raise ProviderFetchError(self.provider, resp.status_code, f"{path}: response is not JSON") from e

    def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return self.parse(self.request("GET", path, params=params), path)

    def post(self, path: str, json: Dict[str, Any], params: Optional[Dict[str, Any]] = None) -> Any:
        return self.parse(self.request("POST", path, params=params, json=json), path)
