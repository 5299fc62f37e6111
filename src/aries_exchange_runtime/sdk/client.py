"""SDK Client - typed wrapper over the agent's admin API.

The client is a thin mapping from operations to admin API paths. All
I/O goes through an AdminTransport, so the same client works against a
live agent (HTTPAdminTransport) or in tests (MockAdminTransport).
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any

from ..errors import TransportError
from ..models import (
    DEFAULT_HANDSHAKE_PROTOCOLS,
    ConnectionRecord,
    CredentialExchangeRecord,
    CredentialPreview,
    DIDInfo,
    PresentationCredential,
    PresentationExchangeRecord,
    ProofSubmission,
    SchemaRecord,
)
from .transport import AdminTransport, create_http_transport

logger = logging.getLogger(__name__)


@dataclass
class ConnectionAPI:
    """Out-of-band invitations, connections and DID exchange."""

    _client: AdminClient

    async def create_invitation(
        self,
        alias: str,
        my_label: str,
        *,
        handshake_protocols: tuple[str, ...] = DEFAULT_HANDSHAKE_PROTOCOLS,
        auto_accept: bool = True,
        multi_use: bool = False,
    ) -> dict[str, Any]:
        """Create an out-of-band invitation. Returns the full invitation record."""
        body = {
            "alias": alias,
            "my_label": my_label,
            "handshake_protocols": list(handshake_protocols),
        }
        return await self._client.call(
            "POST",
            "/out-of-band/create-invitation",
            query={"auto_accept": auto_accept, "multi_use": multi_use},
            body=body,
        )

    async def receive_invitation(
        self, invitation: dict[str, Any], *, auto_accept: bool = True
    ) -> ConnectionRecord:
        data = await self._client.call(
            "POST",
            "/out-of-band/receive-invitation",
            query={"auto_accept": auto_accept},
            body=invitation,
        )
        return ConnectionRecord.model_validate(data)

    async def get(self, connection_id: str) -> ConnectionRecord:
        data = await self._client.call("GET", f"/connections/{connection_id}")
        return ConnectionRecord.model_validate(data)

    async def accept_invitation(
        self,
        connection_id: str,
        *,
        my_endpoint: str | None = None,
        my_label: str | None = None,
    ) -> ConnectionRecord:
        data = await self._client.call(
            "POST",
            f"/didexchange/{connection_id}/accept-invitation",
            query={"my_endpoint": my_endpoint, "my_label": my_label},
        )
        return ConnectionRecord.model_validate(data)

    async def accept_request(
        self, connection_id: str, *, my_endpoint: str | None = None
    ) -> ConnectionRecord:
        data = await self._client.call(
            "POST",
            f"/didexchange/{connection_id}/accept-request",
            query={"my_endpoint": my_endpoint},
        )
        return ConnectionRecord.model_validate(data)

    async def create_request(
        self,
        their_public_did: str,
        *,
        mediation_id: str | None = None,
        my_endpoint: str | None = None,
        my_label: str | None = None,
    ) -> ConnectionRecord:
        data = await self._client.call(
            "POST",
            "/didexchange/create-request",
            query={
                "their_public_did": their_public_did,
                "mediation_id": mediation_id,
                "my_endpoint": my_endpoint,
                "my_label": my_label,
            },
        )
        return ConnectionRecord.model_validate(data)


@dataclass
class LedgerAPI:
    """Schema and credential definition publication."""

    _client: AdminClient

    async def register_schema(
        self, name: str, version: str, attributes: list[str]
    ) -> SchemaRecord:
        data = await self._client.call(
            "POST",
            "/schemas",
            body={
                "schema_name": name,
                "schema_version": version,
                "attributes": attributes,
            },
        )
        schema = data.get("schema") or {}
        return SchemaRecord(
            schema_id=data.get("schema_id") or schema.get("id", ""),
            name=schema.get("name", name),
            version=schema.get("version", version),
            attribute_names=schema.get("attrNames", attributes),
        )

    async def create_credential_definition(
        self,
        schema_id: str,
        *,
        tag: str = "tag",
        support_revocation: bool = True,
        revocation_registry_size: int = 10,
    ) -> str:
        body: dict[str, Any] = {
            "schema_id": schema_id,
            "tag": tag,
            "support_revocation": support_revocation,
        }
        if support_revocation:
            body["revocation_registry_size"] = revocation_registry_size
        data = await self._client.call("POST", "/credential-definitions", body=body)
        return data["credential_definition_id"]


@dataclass
class CredentialAPI:
    """Issue-credential 1.0 operations and stored-credential metadata."""

    _client: AdminClient

    async def issue(
        self,
        connection_id: str,
        preview: CredentialPreview,
        *,
        comment: str = "",
        cred_def_id: str,
        issuer_did: str | None = None,
        schema_id: str | None = None,
    ) -> CredentialExchangeRecord:
        body: dict[str, Any] = {
            "connection_id": connection_id,
            "credential_proposal": preview.to_payload(),
            "comment": comment,
            "cred_def_id": cred_def_id,
            "auto_remove": False,
            "trace": False,
        }
        if issuer_did:
            body["issuer_did"] = issuer_did
        if schema_id:
            body["schema_id"] = schema_id
        data = await self._client.call("POST", "/issue-credential/send", body=body)
        return CredentialExchangeRecord.model_validate(data)

    async def mime_types(self, referent: str) -> dict[str, str]:
        data = await self._client.call("GET", f"/credential/mime-types/{referent}")
        return (data or {}).get("results") or {}


@dataclass
class PresentationAPI:
    """Present-proof 1.0 operations."""

    _client: AdminClient

    async def send_proposal(self, body: dict[str, Any]) -> PresentationExchangeRecord:
        data = await self._client.call("POST", "/present-proof/send-proposal", body=body)
        return PresentationExchangeRecord.model_validate(data)

    async def send_request(
        self, pres_ex_id: str, body: dict[str, Any]
    ) -> PresentationExchangeRecord:
        data = await self._client.call(
            "POST", f"/present-proof/records/{pres_ex_id}/send-request", body=body
        )
        return PresentationExchangeRecord.model_validate(data)

    async def credentials(
        self,
        pres_ex_id: str,
        *,
        referent: str | None = None,
        count: int | None = None,
        start: int | None = None,
        extra_query: str | None = None,
    ) -> list[PresentationCredential]:
        """Held credentials that can satisfy the request, in agent order."""
        data = await self._client.call(
            "GET",
            f"/present-proof/records/{pres_ex_id}/credentials",
            query={
                "referent": referent,
                "count": count,
                "start": start,
                "extra_query": extra_query,
            },
        )
        return [PresentationCredential.model_validate(item) for item in data or []]

    async def send_presentation(
        self, pres_ex_id: str, proof: ProofSubmission
    ) -> PresentationExchangeRecord:
        data = await self._client.call(
            "POST",
            f"/present-proof/records/{pres_ex_id}/send-presentation",
            body=proof.to_payload(),
        )
        return PresentationExchangeRecord.model_validate(data)

    async def verify(self, pres_ex_id: str) -> PresentationExchangeRecord:
        data = await self._client.call(
            "POST", f"/present-proof/records/{pres_ex_id}/verify-presentation"
        )
        return PresentationExchangeRecord.model_validate(data)

    async def problem_report(self, pres_ex_id: str, description: str) -> None:
        await self._client.call(
            "POST",
            f"/present-proof/records/{pres_ex_id}/problem-report",
            body={"description": description},
        )


@dataclass
class WalletAPI:
    """Wallet DID management."""

    _client: AdminClient

    async def query_dids(
        self,
        *,
        did: str | None = None,
        verkey: str | None = None,
        posture: str | None = None,
        key_type: str | None = None,
        method: str | None = None,
    ) -> list[DIDInfo]:
        data = await self._client.call(
            "GET",
            "/wallet/did",
            query={
                "did": did,
                "verkey": verkey,
                "posture": posture,
                "key_type": key_type,
                "method": method,
            },
        )
        return [DIDInfo.model_validate(item) for item in (data or {}).get("results", [])]

    async def create_local_did(self) -> DIDInfo:
        data = await self._client.call("POST", "/wallet/did/create", body={})
        return DIDInfo.model_validate(data["result"])

    async def get_public_did(self) -> DIDInfo | None:
        data = await self._client.call("GET", "/wallet/did/public")
        result = (data or {}).get("result")
        return DIDInfo.model_validate(result) if result else None

    async def set_public_did(self, did: str) -> DIDInfo:
        data = await self._client.call("POST", "/wallet/did/public", query={"did": did})
        return DIDInfo.model_validate(data["result"])

    async def set_did_endpoint(
        self, did: str, endpoint: str, endpoint_type: str = "Endpoint"
    ) -> None:
        await self._client.call(
            "POST",
            "/wallet/set-did-endpoint",
            body={"did": did, "endpoint": endpoint, "endpoint_type": endpoint_type},
        )

    async def get_did_endpoint(self, did: str) -> str | None:
        data = await self._client.call("GET", "/wallet/get-did-endpoint", query={"did": did})
        return (data or {}).get("endpoint")

    async def rotate_keypair(self, did: str) -> None:
        await self._client.call("PATCH", "/wallet/did/local/rotate-keypair", query={"did": did})


class AdminClient:
    """SDK client for one agent's admin API."""

    def __init__(self, transport: AdminTransport) -> None:
        self._transport = transport

    @property
    def transport(self) -> AdminTransport:
        return self._transport

    @property
    def connections(self) -> ConnectionAPI:
        return ConnectionAPI(_client=self)

    @property
    def ledger(self) -> LedgerAPI:
        return LedgerAPI(_client=self)

    @property
    def credentials(self) -> CredentialAPI:
        return CredentialAPI(_client=self)

    @property
    def presentations(self) -> PresentationAPI:
        return PresentationAPI(_client=self)

    @property
    def wallet(self) -> WalletAPI:
        return WalletAPI(_client=self)

    async def call(
        self,
        method: str,
        path: str,
        query: dict[str, Any] | None = None,
        body: Any = None,
    ) -> Any:
        return await self._transport.call(method, path, query, body)

    async def is_ready(self) -> bool:
        """True when the agent reports itself ready. Transport errors propagate."""
        data = await self.call("GET", "/status/ready")
        return bool((data or {}).get("ready"))

    async def wait_until_ready(self, timeout: float = 30.0, interval: float = 0.5) -> None:
        """Poll readiness until the agent is up or ``timeout`` elapses.

        Raises the last TransportError (or TimeoutError) when the agent
        never becomes ready.
        """
        deadline = time.monotonic() + timeout
        last_error: TransportError | None = None
        while True:
            try:
                if await self.is_ready():
                    return
            except TransportError as e:
                last_error = e
                logger.debug(f"Agent not ready yet: {e}")
            if time.monotonic() >= deadline:
                if last_error is not None:
                    raise last_error
                raise TimeoutError(f"Agent not ready after {timeout}s")
            await asyncio.sleep(interval)

    async def close(self) -> None:
        await self._transport.close()


def create_client(
    base_url: str = "http://localhost:4457",
    api_key: str | None = None,
    timeout: float = 30.0,
) -> AdminClient:
    """Create an SDK client for a running agent."""
    return AdminClient(create_http_transport(base_url, api_key=api_key, timeout=timeout))
