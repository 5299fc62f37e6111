"""Unit tests for the exchange state store."""

from __future__ import annotations

import threading

import pytest

from aries_exchange_runtime.models import (
    CredentialExchangeRecord,
    PresentationExchangeRecord,
    RevocationRegistryRecord,
    SchemaRecord,
)
from aries_exchange_runtime.store import ExchangeStateStore, RecordKind

from conftest import connection


class TestLastWriteWins:
    """The store keeps whatever snapshot was delivered last."""

    def test_later_delivery_overwrites(self, store: ExchangeStateStore):
        store.set_connection(connection(state="request"))
        store.set_connection(connection(state="active"))

        assert store.get_connection("conn-1").state == "active"

    def test_out_of_order_delivery_keeps_last_delivered(self, store: ExchangeStateStore):
        """No ordering token exists: an older snapshot delivered last wins."""
        newer = connection(state="active", updated_at="2024-01-02T00:00:00Z")
        older = connection(state="request", updated_at="2024-01-01T00:00:00Z")

        store.set_connection(newer)
        store.set_connection(older)

        assert store.get_connection("conn-1") == older

    def test_repeated_delivery_is_idempotent(self, store: ExchangeStateStore):
        record = connection(state="active")

        store.set_connection(record)
        first = store.snapshot(RecordKind.CONNECTION)
        store.set_connection(record)
        second = store.snapshot(RecordKind.CONNECTION)

        assert dict(first.records) == dict(second.records)
        assert first.current_id == second.current_id

    def test_current_follows_last_write(self, store: ExchangeStateStore):
        store.set_connection(connection("conn-1"))
        store.set_connection(connection("conn-2"))

        assert store.current_connection().connection_id == "conn-2"
        assert len(store.list_connections()) == 2


class TestAdopt:
    """Driver results never overwrite a notification snapshot."""

    def test_adopt_inserts_unknown_record(self, store: ExchangeStateStore):
        held = store.adopt_connection(connection(state="invitation"))

        assert held.state == "invitation"
        assert store.current_connection() == held

    def test_adopt_keeps_existing_snapshot(self, store: ExchangeStateStore):
        store.set_connection(connection(state="active"))

        held = store.adopt_connection(connection(state="invitation"))

        assert held.state == "active"
        assert store.get_connection("conn-1").state == "active"

    def test_adopt_makes_record_current(self, store: ExchangeStateStore):
        store.set_connection(connection("conn-1"))
        store.set_connection(connection("conn-2"))

        store.adopt_connection(connection("conn-1", state="invitation"))

        assert store.current_connection().connection_id == "conn-1"


class TestSelect:
    def test_select_known_record(self, store: ExchangeStateStore):
        store.set_connection(connection("conn-1"))
        store.set_connection(connection("conn-2"))

        selected = store.select_connection("conn-1")

        assert selected.connection_id == "conn-1"
        assert store.current_connection().connection_id == "conn-1"

    def test_select_unknown_record(self, store: ExchangeStateStore):
        with pytest.raises(KeyError):
            store.select_connection("missing")

    def test_select_credential_exchange(self, store: ExchangeStateStore):
        store.set_credential_exchange(CredentialExchangeRecord(credential_exchange_id="cx-1"))
        store.set_credential_exchange(CredentialExchangeRecord(credential_exchange_id="cx-2"))

        selected = store.select_credential_exchange("cx-1")

        assert selected.credential_exchange_id == "cx-1"
        assert store.current_credential_exchange().credential_exchange_id == "cx-1"

    def test_select_presentation_exchange(self, store: ExchangeStateStore):
        store.set_presentation_exchange(PresentationExchangeRecord(presentation_exchange_id="px-1"))
        store.set_presentation_exchange(PresentationExchangeRecord(presentation_exchange_id="px-2"))

        selected = store.select_presentation_exchange("px-1")

        assert selected.presentation_exchange_id == "px-1"
        assert store.current_presentation_exchange().presentation_exchange_id == "px-1"

    def test_select_unknown_exchange(self, store: ExchangeStateStore):
        with pytest.raises(KeyError):
            store.select_presentation_exchange("missing")


class TestReplaceIf:
    """Derived copies only replace the snapshot they were derived from."""

    def test_replaces_held_snapshot(self, store: ExchangeStateStore):
        received = store.set_connection(connection(state="active"))
        labelled = received.model_copy(update={"alias": "Bob"})

        assert store.replace_connection_if(received, labelled)
        assert store.get_connection("conn-1").alias == "Bob"

    def test_newer_delivery_is_kept(self, store: ExchangeStateStore):
        received = store.set_connection(connection(state="request"))
        store.set_connection(connection(state="active"))

        replaced = store.replace_connection_if(
            received, received.model_copy(update={"alias": "Bob"})
        )

        assert not replaced
        assert store.get_connection("conn-1").state == "active"
        assert store.get_connection("conn-1").alias is None

    def test_current_is_unchanged(self, store: ExchangeStateStore):
        received = store.set_connection(connection("conn-1"))
        store.set_connection(connection("conn-2"))

        store.replace_connection_if(received, received.model_copy(update={"alias": "Bob"}))

        assert store.current_connection().connection_id == "conn-2"


class TestKinds:
    """Each kind is held separately."""

    def test_kinds_are_independent(self, store: ExchangeStateStore):
        store.set_credential_exchange(
            CredentialExchangeRecord(credential_exchange_id="cx-1", state="offer_sent")
        )
        store.set_presentation_exchange(
            PresentationExchangeRecord(presentation_exchange_id="px-1", state="request_sent")
        )
        store.set_revocation_registry(RevocationRegistryRecord(revoc_reg_id="rr-1", state="active"))

        assert store.current_connection() is None
        assert store.current_credential_exchange().state == "offer_sent"
        assert store.current_presentation_exchange().state == "request_sent"
        assert store.list_revocation_registries()[0].revoc_reg_id == "rr-1"

    def test_summary(self, store: ExchangeStateStore):
        store.set_connection(connection(state="active"))

        summary = store.summary()

        assert summary["connection"] == {"id": "conn-1", "state": "active"}
        assert summary["presentation_exchange"] == {"id": None, "state": None}

    def test_schema_and_cred_def(self, store: ExchangeStateStore):
        schema = SchemaRecord(schema_id="s-1", name="degree", version="1.0", attribute_names=["name"])

        store.set_schema(schema)
        store.set_credential_definition_id("cd-1")

        assert store.current_schema() == schema
        assert store.current_credential_definition_id() == "cd-1"

    def test_reset(self, store: ExchangeStateStore):
        store.set_connection(connection())
        store.set_credential_definition_id("cd-1")

        store.reset()

        assert store.list_connections() == []
        assert store.current_credential_definition_id() is None


class TestConcurrency:
    def test_concurrent_writes_lose_no_record(self, store: ExchangeStateStore):
        def writer(prefix: str) -> None:
            for i in range(200):
                store.set_connection(connection(f"{prefix}-{i}"))

        threads = [threading.Thread(target=writer, args=(p,)) for p in "abcd"]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(store.list_connections()) == 800

    def test_snapshot_is_immutable(self, store: ExchangeStateStore):
        store.set_connection(connection())
        snapshot = store.snapshot(RecordKind.CONNECTION)

        store.set_connection(connection("conn-2"))

        assert list(snapshot.records) == ["conn-1"]
        with pytest.raises(TypeError):
            snapshot.records["x"] = connection("x")  # type: ignore[index]
