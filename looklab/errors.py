"""Error taxonomy shared by the vendor layer, the orchestrator and the routes."""

from __future__ import annotations

from typing import Any


class LookLabError(Exception):
    """Base class for every error raised by looklab."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(LookLabError):
    """Malformed or out-of-range request. Raised before any network call."""


class MissingConfigurationError(LookLabError):
    """A required credential or setting is absent. Raised before any network call."""


class VendorError(LookLabError):
    """Vendor answered with a non-2xx status or an embedded error code.

    ``body`` is the parsed JSON body when the vendor sent JSON, otherwise the
    raw response text.
    """

    def __init__(self, message: str, status_code: int | None = None, body: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body

    def __str__(self) -> str:
        if self.status_code is None:
            return self.message
        return f"{self.message} (HTTP {self.status_code})"


class NetworkError(LookLabError):
    """Transport-level failure (timeout, DNS, connection reset) after retries."""

    def __init__(self, message: str, attempts: int = 1):
        super().__init__(message)
        self.attempts = attempts
