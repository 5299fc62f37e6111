"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import pytest

from aries_exchange_runtime.bus import EventBus
from aries_exchange_runtime.config import RuntimeSettings
from aries_exchange_runtime.models import (
    ConnectionRecord,
    PresentationCredential,
    PresentationExchangeRecord,
)
from aries_exchange_runtime.sdk import AdminClient, MockAdminTransport
from aries_exchange_runtime.store import ExchangeStateStore

PRES_EX_ID = "pres-ex-1"


@pytest.fixture
def transport() -> MockAdminTransport:
    return MockAdminTransport()


@pytest.fixture
def client(transport: MockAdminTransport) -> AdminClient:
    return AdminClient(transport)


@pytest.fixture
def store() -> ExchangeStateStore:
    return ExchangeStateStore()


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def settings() -> RuntimeSettings:
    return RuntimeSettings(label="Alice")


def connection(connection_id: str = "conn-1", **fields) -> ConnectionRecord:
    return ConnectionRecord(connection_id=connection_id, **({"state": "active"} | fields))


def candidate(
    referent: str,
    attrs: dict[str, str],
    cred_def_id: str = "cd-1",
    **fields,
) -> dict:
    """Raw candidate entry as returned by the credentials listing."""
    return {
        "cred_info": {
            "referent": referent,
            "attrs": attrs,
            "cred_def_id": cred_def_id,
            **fields,
        },
        "presentation_referents": [],
    }


def parse_candidate(raw: dict) -> PresentationCredential:
    return PresentationCredential.model_validate(raw)


def proposal_exchange(
    attributes: list[dict],
    *,
    pres_ex_id: str = PRES_EX_ID,
    state: str = "proposal_received",
    connection_id: str = "conn-1",
) -> PresentationExchangeRecord:
    return PresentationExchangeRecord.model_validate(
        {
            "presentation_exchange_id": pres_ex_id,
            "connection_id": connection_id,
            "state": state,
            "presentation_proposal_dict": {
                "presentation_proposal": {"attributes": attributes},
            },
        }
    )


def request_exchange(
    requested_attributes: dict[str, dict],
    *,
    pres_ex_id: str = PRES_EX_ID,
    state: str = "request_received",
    requested_predicates: dict[str, dict] | None = None,
) -> PresentationExchangeRecord:
    return PresentationExchangeRecord.model_validate(
        {
            "presentation_exchange_id": pres_ex_id,
            "connection_id": "conn-1",
            "state": state,
            "presentation_request": {
                "name": "Proof request",
                "version": "1.0",
                "nonce": "1234",
                "requested_attributes": requested_attributes,
                "requested_predicates": requested_predicates or {},
            },
        }
    )
