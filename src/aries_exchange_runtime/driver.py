"""Command Driver - turns operator intents into admin API calls.

Each operation reads the store once, checks that the state it depends on
has been reached, and only then calls the agent. A missing prerequisite is
a PrerequisiteError raised before any request is made.

Transitions are only *confirmed* by the next notification for the same
exchange; the driver proceeds optimistically from the latest snapshot.
Records returned by the agent are adopted into the store without
overwriting a snapshot that already arrived by notification.
"""

from __future__ import annotations

import json
import logging
import secrets
from collections.abc import Mapping
from typing import Any

from .assembler import ProofAssembler
from .config import RuntimeSettings
from .errors import DriverClosedError, PrerequisiteError, ValidationError
from .matcher import CredentialMatcher
from .models import (
    AttributeConstraint,
    ConnectionRecord,
    CredentialExchangeRecord,
    CredentialExchangeState,
    CredentialPreview,
    CredentialPreviewAttribute,
    NonRevocationInterval,
    PresentationCredential,
    PresentationExchangeRecord,
    PresentationExchangeState,
    PresentationPreview,
    PresentationPreviewAttribute,
    ProofRequest,
    ProofSubmission,
    RequestedAttribute,
    SchemaRecord,
)
from .sdk.client import AdminClient
from .store import ExchangeStateStore

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "text/plain"

Window = NonRevocationInterval | tuple[int, int]


def _interval(window: Window | None) -> NonRevocationInterval | None:
    """Normalise a window; tuples are validated (from <= to) here."""
    if window is None or isinstance(window, NonRevocationInterval):
        return window
    from_, to = window
    return NonRevocationInterval.create(from_, to)


class CommandDriver:
    """Operator commands for one controller session."""

    def __init__(
        self,
        client: AdminClient,
        store: ExchangeStateStore,
        settings: RuntimeSettings | None = None,
        *,
        matcher: CredentialMatcher | None = None,
        assembler: ProofAssembler | None = None,
        issuer_did: str | None = None,
    ) -> None:
        self._client = client
        self._store = store
        self.settings = settings or RuntimeSettings()
        self._matcher = matcher or CredentialMatcher(client, self.settings.match_policy)
        self._assembler = assembler or ProofAssembler()
        self.issuer_did = issuer_did
        self._closed = False

    @property
    def store(self) -> ExchangeStateStore:
        return self._store

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Refuse new commands. Calls already in flight complete normally."""
        self._closed = True

    def _check_open(self, command: str) -> None:
        if self._closed:
            raise DriverClosedError(f"Cannot {command}: driver is shut down")

    # =========================================================================
    # Time windows
    # =========================================================================

    def retrospective_window(self, now: int | None = None) -> NonRevocationInterval:
        """``now - lookback`` through ``now``."""
        return NonRevocationInterval.around_now(self.settings.lookback_seconds, 0, now=now)

    def forward_window(self, now: int | None = None) -> NonRevocationInterval:
        """``now - lookback`` through ``now + lookahead``."""
        return NonRevocationInterval.around_now(
            self.settings.lookback_seconds, self.settings.lookahead_seconds, now=now
        )

    # =========================================================================
    # Prerequisite lookups
    # =========================================================================

    def _require_connection(self, command: str) -> ConnectionRecord:
        connection = self._store.current_connection()
        if connection is None:
            raise PrerequisiteError(command, "no connection has been established")
        return connection

    def _require_schema(self, command: str) -> SchemaRecord:
        schema = self._store.current_schema()
        if schema is None:
            raise PrerequisiteError(command, "no schema has been registered")
        return schema

    def _require_cred_def(self, command: str) -> str:
        cred_def_id = self._store.current_credential_definition_id()
        if not cred_def_id:
            raise PrerequisiteError(command, "no credential definition has been created")
        return cred_def_id

    def _require_presentation(self, command: str) -> PresentationExchangeRecord:
        pres_ex = self._store.current_presentation_exchange()
        if pres_ex is None:
            raise PrerequisiteError(command, "no presentation exchange is in progress")
        return pres_ex

    # =========================================================================
    # Connections
    # =========================================================================

    async def create_invitation(self, alias: str) -> dict[str, Any]:
        """Create an out-of-band invitation for ``alias``.

        Returns the invitation message to hand to the counterparty.
        """
        self._check_open("create invitation")
        record = await self._client.connections.create_invitation(alias, self.settings.label)
        if record.get("connection_id"):
            self._store.adopt_connection(
                ConnectionRecord(
                    connection_id=record["connection_id"],
                    alias=alias,
                    state=record.get("state"),
                )
            )
        logger.info(f"Created invitation {record.get('invi_msg_id')} for {alias!r}")
        return record.get("invitation") or record

    async def receive_invitation(self, invitation: Mapping[str, Any] | str) -> ConnectionRecord:
        self._check_open("receive invitation")
        if isinstance(invitation, str):
            try:
                invitation = json.loads(invitation)
            except json.JSONDecodeError as e:
                raise ValidationError(f"Invitation is not valid JSON: {e}") from e
        if not isinstance(invitation, Mapping):
            raise ValidationError("Invitation must be a JSON object")

        connection = await self._client.connections.receive_invitation(dict(invitation))
        held = self._store.adopt_connection(connection)
        logger.info(f"Receiving invitation on connection {held.connection_id}")
        return held

    async def accept_invitation(self, connection_id: str | None = None) -> ConnectionRecord:
        """Explicitly accept a received invitation (DID exchange)."""
        self._check_open("accept invitation")
        target = connection_id or self._require_connection("accept invitation").connection_id
        connection = await self._client.connections.accept_invitation(
            target, my_label=self.settings.label
        )
        return self._store.adopt_connection(connection)

    async def accept_request(self, connection_id: str | None = None) -> ConnectionRecord:
        """Explicitly accept a received DID exchange request."""
        self._check_open("accept request")
        target = connection_id or self._require_connection("accept request").connection_id
        connection = await self._client.connections.accept_request(target)
        return self._store.adopt_connection(connection)

    async def create_did_exchange_request(self, their_public_did: str) -> ConnectionRecord:
        """Start a DID exchange against a public DID, without an invitation."""
        self._check_open("create DID exchange request")
        if not their_public_did:
            raise ValidationError("A public DID is required")
        connection = await self._client.connections.create_request(
            their_public_did, my_label=self.settings.label
        )
        return self._store.adopt_connection(connection)

    # =========================================================================
    # Issuance
    # =========================================================================

    async def register_schema(
        self, name: str, version: str, attributes: list[str]
    ) -> SchemaRecord:
        self._check_open("register schema")
        attributes = [a.strip() for a in attributes if a and a.strip()]
        if not name or not version or not attributes:
            raise ValidationError("Schema needs a name, a version and at least one attribute")
        schema = await self._client.ledger.register_schema(name, version, attributes)
        self._store.set_schema(schema)
        logger.info(f"Registered schema {schema.schema_id}")
        return schema

    async def create_credential_definition(
        self,
        *,
        tag: str = "tag",
        support_revocation: bool = True,
        revocation_registry_size: int = 10,
    ) -> str:
        self._check_open("create credential definition")
        schema = self._require_schema("create credential definition")
        cred_def_id = await self._client.ledger.create_credential_definition(
            schema.schema_id,
            tag=tag,
            support_revocation=support_revocation,
            revocation_registry_size=revocation_registry_size,
        )
        self._store.set_credential_definition_id(cred_def_id)
        logger.info(f"Created credential definition {cred_def_id}")
        return cred_def_id

    async def issue_credential(
        self, values: Mapping[str, str], comment: str = ""
    ) -> CredentialExchangeRecord:
        """Offer a credential over the current connection.

        ``values`` must provide every attribute of the current schema.
        """
        self._check_open("issue credential")
        connection = self._require_connection("issue credential")
        schema = self._require_schema("issue credential")
        cred_def_id = self._require_cred_def("issue credential")

        missing = [name for name in schema.attribute_names if name not in values]
        if missing:
            raise ValidationError(f"Missing credential attribute value(s): {', '.join(missing)}")

        preview = CredentialPreview(
            attributes=[
                CredentialPreviewAttribute(
                    name=name, mime_type=DEFAULT_MIME_TYPE, value=str(values[name])
                )
                for name in schema.attribute_names
            ]
        )
        record = await self._client.credentials.issue(
            connection.connection_id,
            preview,
            comment=comment,
            cred_def_id=cred_def_id,
            issuer_did=self.issuer_did,
            schema_id=schema.schema_id,
        )
        return self._store.adopt_credential_exchange(record)

    # =========================================================================
    # Presentation
    # =========================================================================

    async def propose_presentation(self, comment: str = "") -> PresentationExchangeRecord:
        """Propose presenting the credential received in the current exchange."""
        self._check_open("propose presentation")
        connection = self._require_connection("propose presentation")
        cred_ex = self._store.current_credential_exchange()
        if cred_ex is None or cred_ex.credential is None:
            raise PrerequisiteError("propose presentation", "no credential has been stored")
        if cred_ex.state == CredentialExchangeState.ABANDONED:
            raise PrerequisiteError("propose presentation", "the credential exchange was abandoned")

        credential = cred_ex.credential
        mime_types = await self._client.credentials.mime_types(credential.referent)
        cred_def_id = cred_ex.credential_definition_id or credential.cred_def_id
        preview = PresentationPreview(
            attributes=[
                PresentationPreviewAttribute(
                    name=name,
                    cred_def_id=cred_def_id,
                    mime_type=mime_types.get(name),
                    value=value,
                    referent=credential.referent,
                )
                for name, value in sorted(credential.attrs.items())
            ]
        )
        body = {
            "comment": comment,
            "auto_present": False,
            "presentation_proposal": preview.to_payload(),
            "connection_id": connection.connection_id,
            "trace": False,
        }
        record = await self._client.presentations.send_proposal(body)
        return self._store.adopt_presentation_exchange(record)

    def build_proof_request(
        self,
        pres_ex: PresentationExchangeRecord,
        *,
        attribute_window: Window | None = None,
        request_window: Window | None = None,
        restrict_to_cred_def: bool = True,
        now: int | None = None,
    ) -> ProofRequest:
        """Proof request asking for every attribute of the exchange's proposal."""
        proposal_attributes = pres_ex.proposal_attributes()
        if not proposal_attributes:
            raise PrerequisiteError(
                "request presentation", "the presentation proposal has no attributes"
            )

        per_attribute = _interval(attribute_window) or self.retrospective_window(now)
        global_window = _interval(request_window) or self.forward_window(now)

        requested: dict[str, RequestedAttribute] = {}
        for attr in proposal_attributes:
            constraint = AttributeConstraint(
                referent=attr.name,
                name=attr.name,
                cred_def_id=attr.cred_def_id if restrict_to_cred_def else None,
                non_revoked=per_attribute,
            )
            requested[constraint.referent] = RequestedAttribute.for_constraint(constraint)

        return ProofRequest(
            name="Proof request",
            version="1.0",
            nonce=str(secrets.randbits(80)),
            requested_attributes=requested,
            non_revoked=global_window,
        )

    async def request_presentation(
        self,
        comment: str = "",
        *,
        attribute_window: Window | None = None,
        request_window: Window | None = None,
        restrict_to_cred_def: bool = True,
    ) -> PresentationExchangeRecord:
        """Answer the current proposal with a proof request.

        Windows default to the configured lookback/lookahead. An explicit
        window with from > to raises InvalidIntervalError before any call.
        """
        self._check_open("request presentation")
        pres_ex = self._require_presentation("request presentation")
        connection_id = pres_ex.connection_id or self._require_connection(
            "request presentation"
        ).connection_id

        proof_request = self.build_proof_request(
            pres_ex,
            attribute_window=attribute_window,
            request_window=request_window,
            restrict_to_cred_def=restrict_to_cred_def,
        )
        body = {
            "comment": comment,
            "connection_id": connection_id,
            "proof_request": proof_request.to_payload(),
            "trace": False,
        }
        record = await self._client.presentations.send_request(
            pres_ex.presentation_exchange_id, body
        )
        return self._store.adopt_presentation_exchange(record)

    async def prepare_presentation(
        self,
        pres_ex: PresentationExchangeRecord,
        self_attested: Mapping[str, str] | None = None,
    ) -> ProofSubmission:
        """Match held credentials against the request and assemble the proof.

        Raises:
            MissingAttributeError: If a requested referent cannot be resolved
            TransportError: If candidate credentials could not be fetched
        """
        request = pres_ex.presentation_request
        if request is None:
            raise PrerequisiteError("submit presentation", "no presentation request was received")

        pres_ex_id = pres_ex.presentation_exchange_id
        attributes = await self._matcher.match(pres_ex_id, request.attribute_constraints())
        predicates = await self._matcher.match(pres_ex_id, request.predicate_constraints())
        return self._assembler.assemble(
            request,
            attributes.matched,
            self_attested=self_attested,
            predicates=predicates.matched,
        )

    async def submit_presentation(
        self, self_attested: Mapping[str, str] | None = None
    ) -> PresentationExchangeRecord:
        """Send a proof for the request of the current presentation exchange."""
        self._check_open("submit presentation")
        pres_ex = self._require_presentation("submit presentation")
        if pres_ex.state != PresentationExchangeState.REQUEST_RECEIVED:
            raise PrerequisiteError(
                "submit presentation",
                f"exchange is in state {pres_ex.state!r}, not "
                f"{PresentationExchangeState.REQUEST_RECEIVED.value!r}",
            )

        proof = await self.prepare_presentation(pres_ex, self_attested)
        record = await self._client.presentations.send_presentation(
            pres_ex.presentation_exchange_id, proof
        )
        return self._store.adopt_presentation_exchange(record)

    async def verify_presentation(self) -> PresentationExchangeRecord:
        self._check_open("verify presentation")
        pres_ex = self._require_presentation("verify presentation")
        if pres_ex.state != PresentationExchangeState.PRESENTATION_RECEIVED:
            raise PrerequisiteError(
                "verify presentation",
                f"exchange is in state {pres_ex.state!r}, not "
                f"{PresentationExchangeState.PRESENTATION_RECEIVED.value!r}",
            )
        record = await self._client.presentations.verify(pres_ex.presentation_exchange_id)
        self._store.adopt_presentation_exchange(record)
        logger.info(f"Presentation {record.presentation_exchange_id} verified={record.verified}")
        return record

    async def list_proof_credentials(self) -> list[PresentationCredential]:
        """Held credentials that could answer the current presentation request."""
        self._check_open("list proof credentials")
        pres_ex = self._require_presentation("list proof credentials")
        return await self._client.presentations.credentials(pres_ex.presentation_exchange_id)

    async def send_problem_report(self, description: str) -> None:
        """Abandon the current presentation exchange with a problem report."""
        self._check_open("send problem report")
        pres_ex = self._require_presentation("send problem report")
        await self._client.presentations.problem_report(
            pres_ex.presentation_exchange_id, description
        )

    # =========================================================================
    # Introspection
    # =========================================================================

    def status(self) -> dict[str, Any]:
        summary: dict[str, Any] = dict(self._store.summary())
        schema = self._store.current_schema()
        summary["schema"] = schema.schema_id if schema else None
        summary["credential_definition"] = self._store.current_credential_definition_id()
        return summary
