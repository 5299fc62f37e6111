"""Integration tests for the notification ingress application.

Posts webhook deliveries through the Starlette app and checks that they
land in the store, the way the agent would deliver them.
"""

from __future__ import annotations

import json

import pytest
from starlette.testclient import TestClient

from aries_exchange_runtime.app import create_app
from aries_exchange_runtime.bus import EventBus
from aries_exchange_runtime.router import TopicRouter
from aries_exchange_runtime.routes.events import format_sse
from aries_exchange_runtime.store import ExchangeStateStore


@pytest.fixture
def http(store: ExchangeStateStore) -> TestClient:
    bus = EventBus()
    app = create_app(TopicRouter(store, bus), store, bus)
    return TestClient(app)


# =============================================================================
# Tests: Health and Status
# =============================================================================


class TestHealthEndpoint:
    def test_health_returns_ok(self, http: TestClient):
        response = http.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_status_reflects_store(self, http: TestClient):
        http.post(
            "/webhooks/topic/connections/",
            json={"connection_id": "conn-1", "state": "active", "alias": "Bob"},
        )

        response = http.get("/status")

        assert response.status_code == 200
        assert response.json()["connection"] == {"id": "conn-1", "state": "active"}


# =============================================================================
# Tests: Webhook delivery
# =============================================================================


class TestWebhookDelivery:
    def test_connection_delivery_stored(self, http: TestClient, store: ExchangeStateStore):
        response = http.post(
            "/webhooks/topic/connections/",
            json={"connection_id": "conn-1", "state": "request", "their_label": "Bob"},
        )

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}
        assert store.current_connection().their_label == "Bob"

    def test_path_without_trailing_slash(self, http: TestClient, store: ExchangeStateStore):
        http.post(
            "/webhooks/topic/issue_credential",
            json={"credential_exchange_id": "cx-1", "state": "offer_received"},
        )

        assert store.current_credential_exchange().state == "offer_received"

    def test_deliveries_in_sequence(self, http: TestClient, store: ExchangeStateStore):
        for state in ("proposal_received", "request_sent", "presentation_received", "verified"):
            http.post(
                "/webhooks/topic/present_proof/",
                json={"presentation_exchange_id": "px-1", "state": state},
            )

        assert store.get_presentation_exchange("px-1").state == "verified"

    def test_unknown_topic_acknowledged(self, http: TestClient, store: ExchangeStateStore):
        response = http.post("/webhooks/topic/basicmessages/", json={"content": "hi"})

        assert response.status_code == 200
        assert store.summary()["connection"]["id"] is None

    def test_malformed_payload_acknowledged(self, http: TestClient, store: ExchangeStateStore):
        response = http.post(
            "/webhooks/topic/present_proof/",
            content=b"not json",
            headers={"content-type": "application/json"},
        )

        assert response.status_code == 200
        assert store.list_presentation_exchanges() == []

    def test_problem_report_does_not_change_state(
        self, http: TestClient, store: ExchangeStateStore
    ):
        http.post(
            "/webhooks/topic/present_proof/",
            json={"presentation_exchange_id": "px-1", "state": "request_sent"},
        )

        response = http.post(
            "/webhooks/topic/problem_report/",
            json={
                "@type": "https://didcomm.org/notification/1.0/problem-report",
                "~thread": {"thid": "px-thread"},
                "description": {"en": "no matching credential"},
            },
        )

        assert response.status_code == 200
        assert store.get_presentation_exchange("px-1").state == "request_sent"

    def test_get_not_allowed(self, http: TestClient):
        response = http.get("/webhooks/topic/connections/")

        assert response.status_code == 405


class TestEventStreamFraming:
    def test_frame_names_event_type(self):
        frame = format_sse({"type": "exchange.connection.updated", "properties": {"state": "active"}})

        lines = frame.split("\n")
        assert lines[0] == "event: exchange.connection.updated"
        assert json.loads(lines[1].removeprefix("data: "))["properties"] == {"state": "active"}
        assert frame.endswith("\n\n")
