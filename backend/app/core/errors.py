from __future__ import annotations

from typing import Any, Dict, Optional


class ConfigError(RuntimeError):
    """Raised by startup validation when required settings are missing or invalid."""
    pass


class CheckoutError(Exception):
    """Base for every failure a checkout request can surface to the caller."""

    kind = "checkout_error"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_payload(self) -> Dict[str, Any]:
        return {"error": self.message, "kind": self.kind}


class MalformedRequest(CheckoutError):
    """The product list is missing, not a list, or empty."""

    kind = "malformed_request"
    status_code = 400


class InvalidEntry(CheckoutError):
    """A single cart entry failed validation; the whole cart is rejected."""

    kind = "invalid_entry"
    status_code = 400

    def __init__(self, *, index: int, name: str, field: str, value: Any):
        super().__init__(f'Invalid {field} for "{name}": {value}')
        self.index = index
        self.name = name
        self.field = field
        self.value = value

    def to_payload(self) -> Dict[str, Any]:
        payload = super().to_payload()
        payload["index"] = self.index
        payload["field"] = self.field
        return payload


class ProviderFailure(CheckoutError):
    """
    The payment provider could not create a session.
    The caller only ever sees the generic message; details stay in the logs.
    """

    kind = "provider_failure"
    status_code = 502
    public_message = "Failed to create checkout session."

    def __init__(self, detail: Optional[str] = None):
        super().__init__(self.public_message)
        self.detail = detail or ""


class ProviderTimeout(ProviderFailure):
    kind = "provider_timeout"
    status_code = 504
    public_message = "Payment provider timed out."
