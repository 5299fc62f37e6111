"""Runtime configuration.

Settings come from ``ARIES_*`` environment variables and can be overridden
by CLI flags. Non-revocation windows are policy and live here rather than
in the driver.
"""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass, field, replace
from typing import Any

ONE_WEEK_SECONDS = 7 * 24 * 60 * 60

MATCH_POLICY_FIRST = "first"
MATCH_POLICY_MOST_RECENT = "most_recent"
MATCH_POLICIES = (MATCH_POLICY_FIRST, MATCH_POLICY_MOST_RECENT)


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    return int(value)


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    return float(value)


@dataclass(frozen=True)
class RuntimeSettings:
    """Effective configuration for one controller process."""

    admin_url: str = "http://localhost:4457"
    admin_api_key: str | None = field(default=None, repr=False)
    webhook_host: str = "0.0.0.0"
    webhook_port: int = 4455
    label: str = "Alice"
    request_timeout: float = 30.0
    shutdown_timeout: float = 5.0

    # Non-revocation window policy
    lookback_seconds: int = ONE_WEEK_SECONDS
    lookahead_seconds: int = ONE_WEEK_SECONDS

    match_policy: str = MATCH_POLICY_FIRST

    def __post_init__(self) -> None:
        if self.match_policy not in MATCH_POLICIES:
            raise ValueError(
                f"Unknown match policy {self.match_policy!r}, expected one of {MATCH_POLICIES}"
            )
        if self.lookback_seconds < 0 or self.lookahead_seconds < 0:
            raise ValueError("Non-revocation window offsets must not be negative")

    @classmethod
    def from_env(cls, **overrides: Any) -> RuntimeSettings:
        """Build settings from the environment, then apply non-None overrides."""
        settings = cls(
            admin_url=os.environ.get("ARIES_ADMIN_URL", cls.admin_url),
            admin_api_key=os.environ.get("ARIES_ADMIN_API_KEY") or None,
            webhook_host=os.environ.get("ARIES_WEBHOOK_HOST", cls.webhook_host),
            webhook_port=_env_int("ARIES_WEBHOOK_PORT", cls.webhook_port),
            label=os.environ.get("ARIES_LABEL", cls.label),
            request_timeout=_env_float("ARIES_REQUEST_TIMEOUT", cls.request_timeout),
            shutdown_timeout=_env_float("ARIES_SHUTDOWN_TIMEOUT", cls.shutdown_timeout),
            lookback_seconds=_env_int("ARIES_LOOKBACK_SECONDS", cls.lookback_seconds),
            lookahead_seconds=_env_int("ARIES_LOOKAHEAD_SECONDS", cls.lookahead_seconds),
            match_policy=os.environ.get("ARIES_MATCH_POLICY", cls.match_policy),
        )
        return settings.with_overrides(**overrides)

    def with_overrides(self, **overrides: Any) -> RuntimeSettings:
        """Return a copy with every non-None override applied."""
        changes = {key: value for key, value in overrides.items() if value is not None}
        return replace(self, **changes) if changes else self

    def to_dict(self, *, redact: bool = True) -> dict[str, Any]:
        """Settings as a plain dict (API key redacted by default)."""
        data = asdict(self)
        if redact and data.get("admin_api_key"):
            data["admin_api_key"] = "***"
        return data
