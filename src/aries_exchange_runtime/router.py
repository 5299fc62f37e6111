"""Topic Router - dispatches webhook notifications to typed handlers.

Topics form a closed enumeration. ``route()`` decodes the payload into the
topic's record type and invokes exactly one handler: a store write for the
state-bearing topics, a logged diagnostic for the others.

``route()`` never raises for a bad notification. Unknown topics, malformed
payloads and handler failures are logged and dropped so that the ingress
keeps accepting deliveries.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING, assert_never, cast

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from .errors import DecodeError, InvalidIntervalError, TransportError
from .events import (
    ConnectionUpdated,
    ConnectionUpdatedProps,
    CredentialExchangeUpdated,
    CredentialExchangeUpdatedProps,
    CredentialRevoked,
    CredentialRevokedProps,
    OutOfBandProps,
    OutOfBandUpdated,
    PresentationExchangeUpdated,
    PresentationExchangeUpdatedProps,
    ProblemReported,
    ProblemReportProps,
    RevocationRegistryUpdated,
    RevocationRegistryUpdatedProps,
)
from .models import (
    ConnectionRecord,
    CredentialExchangeRecord,
    CredentialRevocationEvent,
    OutOfBandEvent,
    PresentationExchangeRecord,
    ProblemReportEvent,
    RevocationRegistryRecord,
)

if TYPE_CHECKING:
    from .bus import EventBus
    from .sdk.client import AdminClient
    from .store import ExchangeStateStore

logger = logging.getLogger(__name__)


class Topic(str, Enum):
    """Every webhook topic the router understands."""

    CONNECTIONS = "connections"
    ISSUE_CREDENTIAL = "issue_credential"
    PRESENT_PROOF = "present_proof"
    REVOCATION_REGISTRY = "revocation_registry"
    PROBLEM_REPORT = "problem_report"
    ISSUER_CRED_REV = "issuer_cred_rev"
    OUT_OF_BAND = "out_of_band"

    @classmethod
    def parse(cls, topic: str) -> Topic | None:
        try:
            return cls(topic.strip("/"))
        except ValueError:
            return None


TOPIC_PAYLOADS: dict[Topic, type[BaseModel]] = {
    Topic.CONNECTIONS: ConnectionRecord,
    Topic.ISSUE_CREDENTIAL: CredentialExchangeRecord,
    Topic.PRESENT_PROOF: PresentationExchangeRecord,
    Topic.REVOCATION_REGISTRY: RevocationRegistryRecord,
    Topic.PROBLEM_REPORT: ProblemReportEvent,
    Topic.ISSUER_CRED_REV: CredentialRevocationEvent,
    Topic.OUT_OF_BAND: OutOfBandEvent,
}


def decode_payload(topic: Topic, raw_payload: bytes | str) -> BaseModel:
    """Decode a raw webhook body into the topic's record type."""
    model = TOPIC_PAYLOADS[topic]
    try:
        return model.model_validate_json(raw_payload)
    except (PydanticValidationError, InvalidIntervalError) as e:
        raise DecodeError(f"Malformed {topic.value} payload: {e}") from e


class TopicRouter:
    """Routes notifications into the store and onto the event bus."""

    def __init__(
        self,
        store: ExchangeStateStore,
        bus: EventBus | None = None,
        client: AdminClient | None = None,
    ) -> None:
        """
        Args:
            store: Store that receives every state-bearing snapshot
            bus: Optional bus that receives one event per handled notification
            client: Optional admin client used to look up counterparty labels
        """
        self._store = store
        self._bus = bus
        self._client = client

    async def route(self, topic: str, raw_payload: bytes | str) -> None:
        """Decode and handle one notification. Never raises for bad input."""
        parsed = Topic.parse(topic)
        if parsed is None:
            logger.warning(f"Dropping notification for unknown topic {topic!r}")
            return

        try:
            record = decode_payload(parsed, raw_payload)
        except DecodeError as e:
            logger.warning(f"Dropping notification: {e}")
            return

        try:
            await self.dispatch(parsed, record)
        except Exception:
            logger.exception(f"Handler for topic {parsed.value} failed")

    async def dispatch(self, topic: Topic, record: BaseModel) -> None:
        """Invoke the single handler for an already-decoded record."""
        match topic:
            case Topic.CONNECTIONS:
                await self._on_connection(cast(ConnectionRecord, record))
            case Topic.ISSUE_CREDENTIAL:
                await self._on_credential_exchange(cast(CredentialExchangeRecord, record))
            case Topic.PRESENT_PROOF:
                await self._on_presentation_exchange(cast(PresentationExchangeRecord, record))
            case Topic.REVOCATION_REGISTRY:
                await self._on_revocation_registry(cast(RevocationRegistryRecord, record))
            case Topic.PROBLEM_REPORT:
                await self._on_problem_report(cast(ProblemReportEvent, record))
            case Topic.ISSUER_CRED_REV:
                await self._on_credential_revocation(cast(CredentialRevocationEvent, record))
            case Topic.OUT_OF_BAND:
                await self._on_out_of_band(cast(OutOfBandEvent, record))
            case _:
                assert_never(topic)

    # =========================================================================
    # State-bearing handlers
    # =========================================================================

    async def _on_connection(self, record: ConnectionRecord) -> None:
        self._store.set_connection(record)
        if not record.alias and self._client is not None:
            record = await self._with_counterparty_label(record)

        logger.info(
            f"Connection {record.display_name!r} ({record.connection_id}) "
            f"updated to state {record.state!r} rfc23 state {record.rfc23_state!r}"
        )
        await self._publish(
            ConnectionUpdated,
            ConnectionUpdatedProps(
                connection_id=record.connection_id,
                alias=record.alias,
                state=record.state,
                rfc23_state=record.rfc23_state,
            ),
        )

    async def _on_credential_exchange(self, record: CredentialExchangeRecord) -> None:
        self._store.set_credential_exchange(record)
        counterparty = await self._counterparty(record.connection_id)
        logger.info(
            f"Credential exchange {record.credential_exchange_id} with {counterparty} "
            f"updated to state {record.state!r}"
        )
        if record.error_msg:
            logger.warning(f"Credential exchange {record.credential_exchange_id}: {record.error_msg}")
        await self._publish(
            CredentialExchangeUpdated,
            CredentialExchangeUpdatedProps(
                credential_exchange_id=record.credential_exchange_id,
                connection_id=record.connection_id,
                counterparty=counterparty,
                state=record.state,
            ),
        )

    async def _on_presentation_exchange(self, record: PresentationExchangeRecord) -> None:
        self._store.set_presentation_exchange(record)
        counterparty = await self._counterparty(record.connection_id)
        logger.info(
            f"Presentation exchange {record.presentation_exchange_id} with {counterparty} "
            f"updated to state {record.state!r}"
        )
        await self._publish(
            PresentationExchangeUpdated,
            PresentationExchangeUpdatedProps(
                presentation_exchange_id=record.presentation_exchange_id,
                connection_id=record.connection_id,
                counterparty=counterparty,
                state=record.state,
                verified=record.verified,
            ),
        )

    async def _on_revocation_registry(self, record: RevocationRegistryRecord) -> None:
        self._store.set_revocation_registry(record)
        logger.info(f"Revocation registry {record.revoc_reg_id} updated to state {record.state!r}")
        await self._publish(
            RevocationRegistryUpdated,
            RevocationRegistryUpdatedProps(revoc_reg_id=record.revoc_reg_id, state=record.state),
        )

    # =========================================================================
    # Diagnostic handlers
    # =========================================================================

    async def _on_problem_report(self, report: ProblemReportEvent) -> None:
        logger.warning(
            f"Problem report received (thread {report.thread_id}): {report.summary or report}"
        )
        await self._publish(
            ProblemReported,
            ProblemReportProps(
                thread_id=report.thread_id,
                description=report.summary,
                report=report.model_dump(mode="json", by_alias=True, exclude_none=True),
            ),
        )

    async def _on_credential_revocation(self, event: CredentialRevocationEvent) -> None:
        logger.info(
            f"Issuer credential revocation: {event.cred_ex_id} - {event.record_id} - {event.state}"
        )
        await self._publish(
            CredentialRevoked,
            CredentialRevokedProps(
                cred_ex_id=event.cred_ex_id, record_id=event.record_id, state=event.state
            ),
        )

    async def _on_out_of_band(self, event: OutOfBandEvent) -> None:
        logger.info(f"Out of band invitation {event.invi_msg_id!r} state {event.state!r}")
        await self._publish(
            OutOfBandUpdated,
            OutOfBandProps(invi_msg_id=event.invi_msg_id, state=event.state),
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _with_counterparty_label(self, record: ConnectionRecord) -> ConnectionRecord:
        """Fill an empty alias from the agent's view of the connection.

        The received snapshot is already stored; the labelled copy replaces
        it only if no later delivery for the connection arrived meanwhile.
        """
        try:
            remote = await self._client.connections.get(record.connection_id)
        except TransportError as e:
            logger.warning(f"Could not resolve label for {record.connection_id}: {e}")
            return record
        if not remote.their_label:
            return record

        labelled = record.model_copy(update={"alias": remote.their_label})
        if not self._store.replace_connection_if(record, labelled):
            logger.debug(f"Connection {record.connection_id} changed during label lookup")
        return labelled

    async def _counterparty(self, connection_id: str | None) -> str | None:
        """Display label for a connection: store first, then the agent."""
        if not connection_id:
            return None
        known = self._store.get_connection(connection_id)
        if known is not None:
            return known.display_name
        if self._client is None:
            return connection_id
        try:
            remote = await self._client.connections.get(connection_id)
        except TransportError as e:
            logger.debug(f"Could not resolve counterparty for {connection_id}: {e}")
            return connection_id
        return remote.display_name

    async def _publish(self, event_def, properties: BaseModel) -> None:
        if self._bus is not None:
            await self._bus.publish(event_def, properties)
