"""Exchange State Store.

Holds the latest known snapshot of every connection, credential exchange,
presentation exchange and revocation registry, plus one "current" slot per
kind for whatever the operator is working with.

Contract:
- Writes come from notification handlers. The driver only ``adopt``s the
  records returned by its own calls: a record is inserted when its id is
  new, and an existing snapshot for that id is never overwritten by it.
- Every write replaces the whole record; there is no field patching.
  A handler that enriches a record after storing it uses ``replace_if``,
  which only succeeds while its own snapshot is still the held one.
- Each kind has its own lock. A write builds a new immutable snapshot and
  swaps it in, so readers see either the previous or the new state.
- No lock is ever held across I/O; all methods here are synchronous.

There is no ordering token in the notifications, so the store is an
overwrite-on-write register: the last delivered snapshot wins.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Generic, TypeVar

from .models import (
    ConnectionRecord,
    CredentialExchangeRecord,
    PresentationExchangeRecord,
    RevocationRegistryRecord,
    SchemaRecord,
)

logger = logging.getLogger(__name__)

R = TypeVar("R")


class RecordKind(str, Enum):
    """Kinds of record held by the store."""

    CONNECTION = "connection"
    CREDENTIAL_EXCHANGE = "credential_exchange"
    PRESENTATION_EXCHANGE = "presentation_exchange"
    REVOCATION_REGISTRY = "revocation_registry"


@dataclass(frozen=True)
class KindSnapshot(Generic[R]):
    """Immutable view of one kind: all records by id plus the current id."""

    records: Mapping[str, R] = field(default_factory=lambda: MappingProxyType({}))
    current_id: str | None = None

    @property
    def current(self) -> R | None:
        if self.current_id is None:
            return None
        return self.records.get(self.current_id)


class RecordSlot(Generic[R]):
    """Copy-on-write register for one record kind."""

    def __init__(self, kind: RecordKind, key: Callable[[R], str]) -> None:
        self.kind = kind
        self._key = key
        self._lock = threading.Lock()
        self._snapshot: KindSnapshot[R] = KindSnapshot()

    def snapshot(self) -> KindSnapshot[R]:
        return self._snapshot

    def get(self, record_id: str) -> R | None:
        return self._snapshot.records.get(record_id)

    def current(self) -> R | None:
        return self._snapshot.current

    def list(self) -> list[R]:
        return list(self._snapshot.records.values())

    def set(self, record: R, *, make_current: bool = True) -> R:
        record_id = self._key(record)
        with self._lock:
            previous = self._snapshot
            records = dict(previous.records)
            records[record_id] = record
            self._snapshot = KindSnapshot(
                records=MappingProxyType(records),
                current_id=record_id if make_current else previous.current_id,
            )
        logger.debug(f"Stored {self.kind.value} {record_id}")
        return record

    def adopt(self, record: R) -> R:
        """Insert a record only if its id is unknown, then make it current.

        Returns the record the store now holds for that id, which is the
        earlier snapshot when one already arrived by notification.
        """
        record_id = self._key(record)
        with self._lock:
            previous = self._snapshot
            held = previous.records.get(record_id)
            records = previous.records
            if held is None:
                held = record
                records = MappingProxyType({**previous.records, record_id: record})
            self._snapshot = KindSnapshot(records=records, current_id=record_id)
        return held

    def replace_if(self, expected: R, record: R) -> bool:
        """Swap in ``record`` only while the slot still holds ``expected``.

        Used to write a derived copy of a snapshot without overwriting a
        newer delivery that landed in between. The current id is unchanged.
        """
        record_id = self._key(record)
        with self._lock:
            previous = self._snapshot
            if previous.records.get(record_id) is not expected:
                return False
            self._snapshot = KindSnapshot(
                records=MappingProxyType({**previous.records, record_id: record}),
                current_id=previous.current_id,
            )
        return True

    def select(self, record_id: str) -> R:
        """Point the current slot at an already-known record."""
        with self._lock:
            previous = self._snapshot
            if record_id not in previous.records:
                raise KeyError(f"Unknown {self.kind.value}: {record_id}")
            self._snapshot = KindSnapshot(records=previous.records, current_id=record_id)
            return previous.records[record_id]

    def clear(self) -> None:
        with self._lock:
            self._snapshot = KindSnapshot()


class ExchangeStateStore:
    """Process-wide latest-snapshot store, one slot per record kind."""

    def __init__(self) -> None:
        self._connections: RecordSlot[ConnectionRecord] = RecordSlot(
            RecordKind.CONNECTION, lambda r: r.connection_id
        )
        self._credential_exchanges: RecordSlot[CredentialExchangeRecord] = RecordSlot(
            RecordKind.CREDENTIAL_EXCHANGE, lambda r: r.credential_exchange_id
        )
        self._presentation_exchanges: RecordSlot[PresentationExchangeRecord] = RecordSlot(
            RecordKind.PRESENTATION_EXCHANGE, lambda r: r.presentation_exchange_id
        )
        self._revocation_registries: RecordSlot[RevocationRegistryRecord] = RecordSlot(
            RecordKind.REVOCATION_REGISTRY, lambda r: r.revoc_reg_id
        )

        # Results of the driver's own synchronous calls
        self._artifact_lock = threading.Lock()
        self._schema: SchemaRecord | None = None
        self._credential_definition_id: str | None = None

    # =========================================================================
    # Connections
    # =========================================================================

    def set_connection(self, record: ConnectionRecord) -> ConnectionRecord:
        return self._connections.set(record)

    def get_connection(self, connection_id: str) -> ConnectionRecord | None:
        return self._connections.get(connection_id)

    def current_connection(self) -> ConnectionRecord | None:
        return self._connections.current()

    def list_connections(self) -> list[ConnectionRecord]:
        return self._connections.list()

    def adopt_connection(self, record: ConnectionRecord) -> ConnectionRecord:
        return self._connections.adopt(record)

    def select_connection(self, connection_id: str) -> ConnectionRecord:
        return self._connections.select(connection_id)

    def replace_connection_if(
        self, expected: ConnectionRecord, record: ConnectionRecord
    ) -> bool:
        return self._connections.replace_if(expected, record)

    # =========================================================================
    # Credential exchanges
    # =========================================================================

    def set_credential_exchange(
        self, record: CredentialExchangeRecord
    ) -> CredentialExchangeRecord:
        return self._credential_exchanges.set(record)

    def get_credential_exchange(self, cred_ex_id: str) -> CredentialExchangeRecord | None:
        return self._credential_exchanges.get(cred_ex_id)

    def current_credential_exchange(self) -> CredentialExchangeRecord | None:
        return self._credential_exchanges.current()

    def list_credential_exchanges(self) -> list[CredentialExchangeRecord]:
        return self._credential_exchanges.list()

    def adopt_credential_exchange(
        self, record: CredentialExchangeRecord
    ) -> CredentialExchangeRecord:
        return self._credential_exchanges.adopt(record)

    def select_credential_exchange(self, cred_ex_id: str) -> CredentialExchangeRecord:
        return self._credential_exchanges.select(cred_ex_id)

    # =========================================================================
    # Presentation exchanges
    # =========================================================================

    def set_presentation_exchange(
        self, record: PresentationExchangeRecord
    ) -> PresentationExchangeRecord:
        return self._presentation_exchanges.set(record)

    def get_presentation_exchange(self, pres_ex_id: str) -> PresentationExchangeRecord | None:
        return self._presentation_exchanges.get(pres_ex_id)

    def current_presentation_exchange(self) -> PresentationExchangeRecord | None:
        return self._presentation_exchanges.current()

    def list_presentation_exchanges(self) -> list[PresentationExchangeRecord]:
        return self._presentation_exchanges.list()

    def adopt_presentation_exchange(
        self, record: PresentationExchangeRecord
    ) -> PresentationExchangeRecord:
        return self._presentation_exchanges.adopt(record)

    def select_presentation_exchange(self, pres_ex_id: str) -> PresentationExchangeRecord:
        return self._presentation_exchanges.select(pres_ex_id)

    # =========================================================================
    # Revocation registries (passive)
    # =========================================================================

    def set_revocation_registry(
        self, record: RevocationRegistryRecord
    ) -> RevocationRegistryRecord:
        return self._revocation_registries.set(record)

    def get_revocation_registry(self, rev_reg_id: str) -> RevocationRegistryRecord | None:
        return self._revocation_registries.get(rev_reg_id)

    def current_revocation_registry(self) -> RevocationRegistryRecord | None:
        return self._revocation_registries.current()

    def list_revocation_registries(self) -> list[RevocationRegistryRecord]:
        return self._revocation_registries.list()

    # =========================================================================
    # Schema and credential definition
    # =========================================================================

    def set_schema(self, schema: SchemaRecord) -> SchemaRecord:
        with self._artifact_lock:
            self._schema = schema
        return schema

    def current_schema(self) -> SchemaRecord | None:
        return self._schema

    def set_credential_definition_id(self, cred_def_id: str) -> str:
        with self._artifact_lock:
            self._credential_definition_id = cred_def_id
        return cred_def_id

    def current_credential_definition_id(self) -> str | None:
        return self._credential_definition_id

    # =========================================================================
    # Introspection
    # =========================================================================

    def snapshot(self, kind: RecordKind) -> KindSnapshot:
        """Immutable snapshot for one kind."""
        match kind:
            case RecordKind.CONNECTION:
                return self._connections.snapshot()
            case RecordKind.CREDENTIAL_EXCHANGE:
                return self._credential_exchanges.snapshot()
            case RecordKind.PRESENTATION_EXCHANGE:
                return self._presentation_exchanges.snapshot()
            case RecordKind.REVOCATION_REGISTRY:
                return self._revocation_registries.snapshot()

    def summary(self) -> dict[str, dict[str, str | None]]:
        """Current id and state per kind, for status displays."""
        current: dict[str, object | None] = {
            RecordKind.CONNECTION.value: self.current_connection(),
            RecordKind.CREDENTIAL_EXCHANGE.value: self.current_credential_exchange(),
            RecordKind.PRESENTATION_EXCHANGE.value: self.current_presentation_exchange(),
            RecordKind.REVOCATION_REGISTRY.value: self.current_revocation_registry(),
        }
        result: dict[str, dict[str, str | None]] = {}
        for kind, record in current.items():
            snap = self.snapshot(RecordKind(kind))
            result[kind] = {
                "id": snap.current_id,
                "state": getattr(record, "state", None),
            }
        return result

    def reset(self) -> None:
        """Drop all records (for testing)."""
        for slot in (
            self._connections,
            self._credential_exchanges,
            self._presentation_exchanges,
            self._revocation_registries,
        ):
            slot.clear()
        with self._artifact_lock:
            self._schema = None
            self._credential_definition_id = None
