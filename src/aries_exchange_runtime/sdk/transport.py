"""Admin API transport.

Architecture:
- AdminTransport is the PROTOCOL every transport implements: one
  ``call(method, path, query, body)`` returning the decoded JSON body
- HTTPAdminTransport talks to a live agent over httpx
- MockAdminTransport records calls and replays canned responses (tests)

Failures surface as typed errors: RemoteRejectedError when the agent
answered with an error status, RemoteUnreachableError when it could not
be reached at all. Nothing here retries.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

import httpx

from ..errors import RemoteRejectedError, RemoteUnreachableError

logger = logging.getLogger(__name__)

QueryParams = dict[str, Any]


@dataclass
class AdminTransportConfig:
    """Connection settings for the agent's admin API."""

    base_url: str = "http://localhost:4457"
    api_key: str | None = field(default=None, repr=False)
    timeout: float = 30.0

    def headers(self) -> dict[str, str]:
        if self.api_key:
            return {"X-API-Key": self.api_key}
        return {}


@runtime_checkable
class AdminTransport(Protocol):
    """Protocol for admin API transports."""

    async def call(
        self,
        method: str,
        path: str,
        query: QueryParams | None = None,
        body: Any = None,
    ) -> Any:
        """Perform one admin API call and return the decoded response body."""
        ...

    async def close(self) -> None:
        """Release any underlying connection resources."""
        ...


def _clean_query(query: QueryParams | None) -> dict[str, str] | None:
    """Drop unset parameters and stringify the rest (booleans as true/false)."""
    if not query:
        return None
    cleaned: dict[str, str] = {}
    for key, value in query.items():
        if value is None or value == "":
            continue
        if isinstance(value, bool):
            cleaned[key] = "true" if value else "false"
        else:
            cleaned[key] = str(value)
    return cleaned or None


def _decode_body(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


class HTTPAdminTransport:
    """Transport over the agent's admin HTTP API.

    The httpx client is created lazily and reused across calls.
    """

    def __init__(
        self,
        config: AdminTransportConfig | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config or AdminTransportConfig()
        self._http_client = http_client

    def _client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                base_url=self.config.base_url,
                headers=self.config.headers(),
                timeout=httpx.Timeout(self.config.timeout),
            )
        return self._http_client

    async def call(
        self,
        method: str,
        path: str,
        query: QueryParams | None = None,
        body: Any = None,
    ) -> Any:
        method = method.upper()
        logger.debug(f"{method} {path} query={query}")
        try:
            response = await self._client().request(
                method,
                path,
                params=_clean_query(query),
                json=body,
            )
        except httpx.TimeoutException as e:
            raise RemoteUnreachableError(
                f"{method} {path} timed out: {e}", method=method, path=path
            ) from e
        except httpx.TransportError as e:
            raise RemoteUnreachableError(
                f"{method} {path} could not reach agent: {e}", method=method, path=path
            ) from e

        if response.is_error:
            raise RemoteRejectedError(
                response.status_code,
                _decode_body(response),
                method=method,
                path=path,
            )
        return _decode_body(response)

    async def close(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None


@dataclass
class RecordedCall:
    """A call captured by MockAdminTransport."""

    method: str
    path: str
    query: QueryParams | None = None
    body: Any = None


Responder = Callable[[RecordedCall], Any]


class MockAdminTransport:
    """Mock transport for testing.

    Allows registering canned responses per (method, path) and records
    every call. A response may be a value, a callable receiving the
    RecordedCall, or an exception instance to raise.

    Usage:
        transport = MockAdminTransport()
        transport.set_response("POST", "/schemas", {"schema_id": "s-1"})

        client = AdminClient(transport)
        await client.register_schema("degree", "1.0", ["name"])

        assert transport.recorded_calls[0].path == "/schemas"
    """

    def __init__(self) -> None:
        self._responses: dict[tuple[str, str], Any] = {}
        self._recorded_calls: list[RecordedCall] = []
        self.closed = False

    @property
    def recorded_calls(self) -> list[RecordedCall]:
        """Get all calls made through this transport."""
        return self._recorded_calls.copy()

    def calls_to(self, method: str, path: str) -> list[RecordedCall]:
        return [
            c for c in self._recorded_calls if c.method == method.upper() and c.path == path
        ]

    def set_response(self, method: str, path: str, response: Any) -> None:
        self._responses[(method.upper(), path)] = response

    def clear(self) -> None:
        self._recorded_calls.clear()
        self._responses.clear()

    async def call(
        self,
        method: str,
        path: str,
        query: QueryParams | None = None,
        body: Any = None,
    ) -> Any:
        recorded = RecordedCall(method=method.upper(), path=path, query=query, body=body)
        self._recorded_calls.append(recorded)

        response = self._responses.get((recorded.method, path))
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(recorded)
        return response

    async def close(self) -> None:
        self.closed = True


def create_http_transport(
    base_url: str = "http://localhost:4457",
    api_key: str | None = None,
    timeout: float = 30.0,
) -> HTTPAdminTransport:
    """Create an HTTP transport for a running agent."""
    return HTTPAdminTransport(
        AdminTransportConfig(base_url=base_url, api_key=api_key, timeout=timeout)
    )


def create_mock_transport() -> MockAdminTransport:
    """Create a mock transport for testing."""
    return MockAdminTransport()
