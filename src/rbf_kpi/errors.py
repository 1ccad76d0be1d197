class KPIError(Exception):
    """Base class for errors raised by the KPI pipeline."""


class ProviderFetchError(KPIError):
    """An upstream commerce API could not be read (non-2xx, timeout, bad body)."""

    def __init__(self, provider: str, http_status: int | None, message: str):
        self.provider = provider
        self.http_status = http_status
        self.message = message
        status = http_status if http_status is not None else "no response"
        super().__init__(f"{provider} fetch failed ({status}): {message}")


class InvalidKPIConfig(KPIError):
    """The engine was handed a structurally invalid configuration."""

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"invalid KPI config field '{field}': {reason}")
