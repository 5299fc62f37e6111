"""Unit tests for webhook topic routing."""

from __future__ import annotations

import asyncio
import json
import logging
from unittest.mock import AsyncMock, MagicMock

import pytest

from aries_exchange_runtime.bus import EventBus
from aries_exchange_runtime.errors import DecodeError, RemoteUnreachableError
from aries_exchange_runtime.events import ConnectionUpdated, ProblemReported
from aries_exchange_runtime.models import ConnectionRecord
from aries_exchange_runtime.router import Topic, TopicRouter, decode_payload
from aries_exchange_runtime.sdk import AdminClient, MockAdminTransport
from aries_exchange_runtime.store import ExchangeStateStore, RecordKind


def body(payload: dict) -> bytes:
    return json.dumps(payload).encode()


class TestTopic:
    def test_parse_known(self):
        assert Topic.parse("present_proof") is Topic.PRESENT_PROOF

    def test_parse_strips_slashes(self):
        assert Topic.parse("connections/") is Topic.CONNECTIONS

    def test_parse_unknown(self):
        assert Topic.parse("basicmessages") is None


class TestDecodePayload:
    def test_decodes_into_topic_type(self):
        record = decode_payload(
            Topic.ISSUE_CREDENTIAL,
            body({"credential_exchange_id": "cx-1", "state": "offer_received"}),
        )

        assert record.credential_exchange_id == "cx-1"

    def test_malformed_json(self):
        with pytest.raises(DecodeError):
            decode_payload(Topic.CONNECTIONS, b"{not json")

    def test_missing_identifier(self):
        with pytest.raises(DecodeError):
            decode_payload(Topic.CONNECTIONS, body({"state": "active"}))

    def test_invalid_interval_becomes_decode_error(self):
        payload = {
            "presentation_exchange_id": "px-1",
            "presentation_request": {"non_revoked": {"from": 5, "to": 1}},
        }

        with pytest.raises(DecodeError):
            decode_payload(Topic.PRESENT_PROOF, body(payload))


class TestStateBearingTopics:
    """State-bearing notifications land in the store."""

    @pytest.fixture
    def router(self, store: ExchangeStateStore) -> TopicRouter:
        return TopicRouter(store)

    @pytest.mark.asyncio
    async def test_connection_stored(self, router: TopicRouter, store: ExchangeStateStore):
        await router.route(
            "connections",
            body({"connection_id": "conn-1", "state": "active", "alias": "Bob"}),
        )

        assert store.current_connection().alias == "Bob"

    @pytest.mark.asyncio
    async def test_reverse_order_delivery_keeps_last(
        self, router: TopicRouter, store: ExchangeStateStore
    ):
        await router.route(
            "present_proof",
            body({"presentation_exchange_id": "px-1", "state": "verified"}),
        )
        await router.route(
            "present_proof",
            body({"presentation_exchange_id": "px-1", "state": "request_sent"}),
        )

        assert store.get_presentation_exchange("px-1").state == "request_sent"

    @pytest.mark.asyncio
    async def test_revocation_registry_stored(
        self, router: TopicRouter, store: ExchangeStateStore
    ):
        await router.route(
            "revocation_registry",
            body({"revoc_reg_id": "rr-1", "state": "active"}),
        )

        assert store.current_revocation_registry().state == "active"


class TestDroppedNotifications:
    """Bad notifications are logged and never raise."""

    @pytest.mark.asyncio
    async def test_unknown_topic(self, store: ExchangeStateStore, caplog):
        router = TopicRouter(store)

        with caplog.at_level(logging.WARNING):
            await router.route("basicmessages", body({"content": "hi"}))

        assert "unknown topic" in caplog.text
        assert store.summary()["connection"]["id"] is None

    @pytest.mark.asyncio
    async def test_malformed_payload(self, store: ExchangeStateStore, caplog):
        router = TopicRouter(store)

        with caplog.at_level(logging.WARNING):
            await router.route("issue_credential", b"<html>")

        assert "Dropping notification" in caplog.text
        assert store.list_credential_exchanges() == []

    @pytest.mark.asyncio
    async def test_out_of_order_interval_dropped(self, store: ExchangeStateStore, caplog):
        router = TopicRouter(store)
        payload = {
            "presentation_exchange_id": "px-1",
            "state": "request_received",
            "presentation_request": {
                "requested_attributes": {"name": {"name": "name"}},
                "non_revoked": {"from": 200, "to": 100},
            },
        }

        with caplog.at_level(logging.WARNING):
            await router.route("present_proof", body(payload))

        assert "Dropping notification" in caplog.text
        assert store.list_presentation_exchanges() == []

    @pytest.mark.asyncio
    async def test_problem_report_leaves_state_unchanged(self, store: ExchangeStateStore):
        router = TopicRouter(store)
        await router.route(
            "present_proof", body({"presentation_exchange_id": "px-1", "state": "request_sent"})
        )
        before = {kind: store.snapshot(kind) for kind in RecordKind}

        await router.route(
            "problem_report",
            body({"~thread": {"thid": "px-thread"}, "description": {"en": "abandoned"}}),
        )

        assert {kind: store.snapshot(kind) for kind in RecordKind} == before

    @pytest.mark.asyncio
    async def test_handler_failure_is_contained(self, store: ExchangeStateStore, caplog):
        bus = EventBus()
        router = TopicRouter(store, bus)

        async def broken(record):
            raise RuntimeError("boom")

        router._on_revocation_registry = broken  # type: ignore[method-assign]

        with caplog.at_level(logging.ERROR):
            await router.route("revocation_registry", body({"revoc_reg_id": "rr-1"}))

        assert "failed" in caplog.text


class TestCounterpartyResolution:
    """Connection labels are filled in from the agent when missing."""

    @pytest.mark.asyncio
    async def test_alias_filled_from_their_label(
        self, store: ExchangeStateStore, transport: MockAdminTransport, client: AdminClient
    ):
        transport.set_response(
            "GET",
            "/connections/conn-1",
            {"connection_id": "conn-1", "their_label": "Bob", "state": "active"},
        )
        router = TopicRouter(store, client=client)

        await router.route("connections", body({"connection_id": "conn-1", "state": "active"}))

        assert store.get_connection("conn-1").alias == "Bob"

    @pytest.mark.asyncio
    async def test_lookup_failure_still_stores(
        self, store: ExchangeStateStore, transport: MockAdminTransport, client: AdminClient
    ):
        transport.set_response(
            "GET", "/connections/conn-1", RemoteUnreachableError("agent down")
        )
        router = TopicRouter(store, client=client)

        await router.route("connections", body({"connection_id": "conn-1", "state": "request"}))

        assert store.get_connection("conn-1").state == "request"
        assert store.get_connection("conn-1").alias is None

    @pytest.mark.asyncio
    async def test_newer_delivery_during_lookup_is_kept(self, store: ExchangeStateStore):
        release = asyncio.Event()

        async def slow_lookup(connection_id):
            await release.wait()
            return ConnectionRecord(connection_id=connection_id, their_label="Robert")

        client = MagicMock()
        client.connections.get = AsyncMock(side_effect=slow_lookup)
        router = TopicRouter(store, client=client)

        first = asyncio.create_task(
            router.route("connections", body({"connection_id": "conn-1", "state": "request"}))
        )
        await asyncio.sleep(0.01)
        assert store.get_connection("conn-1").state == "request"

        await router.route(
            "connections", body({"connection_id": "conn-1", "state": "active", "alias": "Bob"})
        )
        release.set()
        await first

        held = store.get_connection("conn-1")
        assert held.state == "active"
        assert held.alias == "Bob"
        client.connections.get.assert_awaited_once_with("conn-1")

    @pytest.mark.asyncio
    async def test_known_connection_not_fetched(
        self, store: ExchangeStateStore, transport: MockAdminTransport, client: AdminClient
    ):
        router = TopicRouter(store, client=client)
        await router.route(
            "connections", body({"connection_id": "conn-1", "alias": "Bob", "state": "active"})
        )

        await router.route(
            "issue_credential",
            body({"credential_exchange_id": "cx-1", "connection_id": "conn-1"}),
        )

        assert transport.recorded_calls == []


class TestPublishing:
    @pytest.mark.asyncio
    async def test_connection_update_published(self, store: ExchangeStateStore, bus: EventBus):
        received = []

        async def on_event(payload):
            received.append(payload)

        await bus.subscribe(ConnectionUpdated, on_event)
        router = TopicRouter(store, bus)

        await router.route(
            "connections", body({"connection_id": "conn-1", "alias": "Bob", "state": "active"})
        )

        assert received == [
            {
                "type": "exchange.connection.updated",
                "properties": {
                    "connection_id": "conn-1",
                    "alias": "Bob",
                    "state": "active",
                    "rfc23_state": None,
                },
            }
        ]

    @pytest.mark.asyncio
    async def test_problem_report_published(self, store: ExchangeStateStore, bus: EventBus):
        received = []

        async def on_event(payload):
            received.append(payload)

        await bus.subscribe(ProblemReported, on_event)
        router = TopicRouter(store, bus)

        await router.route(
            "problem_report",
            body({"~thread": {"thid": "t-1"}, "description": {"en": "no credential"}}),
        )

        assert received[0]["properties"]["thread_id"] == "t-1"
        assert received[0]["properties"]["description"] == "no credential"


class TestCounterpartyWithMockedClient:
    @pytest.mark.asyncio
    async def test_unknown_connection_looked_up_once(self, store: ExchangeStateStore):
        client = MagicMock()
        client.connections.get = AsyncMock(
            return_value=ConnectionRecord(connection_id="conn-7", their_label="Faber")
        )
        bus = EventBus()
        received = []

        async def on_event(payload):
            received.append(payload["properties"])

        await bus.subscribe_all(on_event)
        router = TopicRouter(store, bus, client)

        await router.route(
            "issue_credential",
            body({"credential_exchange_id": "cx-1", "connection_id": "conn-7"}),
        )

        client.connections.get.assert_awaited_once_with("conn-7")
        assert received[0]["counterparty"] == "Faber"
        assert store.get_connection("conn-7") is None
