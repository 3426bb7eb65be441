"""Error taxonomy shared by the library, the CLI and the web backend.

Every error carries the HTTP status the web layer should answer with, so
routers never need to translate exceptions by hand.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


class SanityError(Exception):
    """Base class for all expected failures."""

    status_code: int = 500

    def __init__(self, message: str, detail: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.message}
        if self.detail is not None:
            body["detail"] = self.detail
        return body


class ConfigurationError(SanityError):
    """Required settings are absent from both overrides and defaults."""

    status_code = 400


class AuthenticationError(SanityError):
    """The remote service rejected our credentials."""

    status_code = 502


class AuthorizationError(SanityError):
    """The credentials are valid but lack the required privilege."""

    status_code = 403


class UpstreamRequestError(SanityError):
    """A remote service answered with a non-success status."""

    status_code = 502

    def __init__(
        self,
        message: str,
        status: int | None = None,
        code: str = "",
        detail: Any = None,
    ) -> None:
        super().__init__(message, detail)
        self.status = status
        self.code = code

    def to_dict(self) -> dict[str, Any]:
        body = super().to_dict()
        body["upstream_status"] = self.status
        if self.code:
            body["upstream_code"] = self.code
        return body


class NotFoundError(SanityError):
    """A local or remote entity does not exist."""

    status_code = 404


class ValidationError(SanityError):
    """Caller input is malformed."""

    status_code = 400


class BatchFailedError(SanityError):
    """Every item of a batch failed; raised only when nothing succeeded."""

    status_code = 502

    def __init__(self, message: str, failures: list[dict[str, Any]]) -> None:
        super().__init__(message, detail=failures)
        self.failures = failures


@dataclass
class PartialBatchFailure:
    """Outcome of a batch in which some independent items failed.

    Returned as data, never raised.
    """

    successes: list[dict[str, Any]] = field(default_factory=list)
    failures: list[dict[str, Any]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.ok,
            "successes": self.successes,
            "errors": self.failures,
        }
