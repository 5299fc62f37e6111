"""Exception taxonomy for the exchange runtime.

Transport errors come from the admin API and are always propagated.
Validation errors are raised before any remote call is made.
Decode errors stay inside the notification router.
"""

from __future__ import annotations

from typing import Any


class ExchangeRuntimeError(Exception):
    """Base class for all runtime errors."""


# =============================================================================
# Transport
# =============================================================================


class TransportError(ExchangeRuntimeError):
    """The admin API call did not succeed."""

    def __init__(self, message: str, *, method: str = "", path: str = "") -> None:
        super().__init__(message)
        self.method = method
        self.path = path


class RemoteRejectedError(TransportError):
    """The agent answered with an HTTP error status."""

    def __init__(
        self,
        status_code: int,
        body: Any = None,
        *,
        method: str = "",
        path: str = "",
    ) -> None:
        super().__init__(
            f"{method} {path} rejected with HTTP {status_code}: {body}",
            method=method,
            path=path,
        )
        self.status_code = status_code
        self.body = body


class RemoteUnreachableError(TransportError):
    """The agent could not be reached (connect failure or timeout)."""


# =============================================================================
# Validation
# =============================================================================


class ValidationError(ExchangeRuntimeError):
    """A command was rejected locally, before any remote call."""


class PrerequisiteError(ValidationError):
    """The state a command depends on has not been reached yet."""

    def __init__(self, command: str, missing: str) -> None:
        super().__init__(f"Cannot {command}: {missing}")
        self.command = command
        self.missing = missing


class InvalidIntervalError(ValidationError):
    """A non-revocation interval has from > to."""


class DriverClosedError(ValidationError):
    """The driver has been shut down and accepts no new commands."""


# =============================================================================
# Notifications and proofs
# =============================================================================


class DecodeError(ExchangeRuntimeError):
    """A webhook payload could not be decoded for its topic."""


class MissingAttributeError(ExchangeRuntimeError):
    """A proof cannot be assembled because requested referents are unresolved."""

    def __init__(self, missing: list[str]) -> None:
        super().__init__(f"Missing required attribute(s): {', '.join(sorted(missing))}")
        self.missing = sorted(missing)
