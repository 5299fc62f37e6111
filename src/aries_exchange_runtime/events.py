"""Event type definitions.

Every notification the router handles is republished as one of these
events. State-bearing topics carry the id and state of the stored record;
diagnostic topics carry what the agent reported.
"""

from typing import Any

from pydantic import BaseModel

from .bus import define_event

# =============================================================================
# Ingress lifecycle
# =============================================================================


class IngressConnectedProps(BaseModel):
    """An SSE subscriber connected to the ingress."""

    pass


IngressConnected = define_event("ingress.connected", IngressConnectedProps)


# =============================================================================
# State-bearing updates
# =============================================================================


class ConnectionUpdatedProps(BaseModel):
    connection_id: str
    alias: str | None = None
    state: str | None = None
    rfc23_state: str | None = None


class CredentialExchangeUpdatedProps(BaseModel):
    credential_exchange_id: str
    connection_id: str | None = None
    counterparty: str | None = None
    state: str | None = None


class PresentationExchangeUpdatedProps(BaseModel):
    presentation_exchange_id: str
    connection_id: str | None = None
    counterparty: str | None = None
    state: str | None = None
    verified: str | None = None


class RevocationRegistryUpdatedProps(BaseModel):
    revoc_reg_id: str
    state: str | None = None


ConnectionUpdated = define_event("exchange.connection.updated", ConnectionUpdatedProps)
CredentialExchangeUpdated = define_event(
    "exchange.credential.updated", CredentialExchangeUpdatedProps
)
PresentationExchangeUpdated = define_event(
    "exchange.presentation.updated", PresentationExchangeUpdatedProps
)
RevocationRegistryUpdated = define_event(
    "exchange.revocation_registry.updated", RevocationRegistryUpdatedProps
)


# =============================================================================
# Diagnostics
# =============================================================================


class ProblemReportProps(BaseModel):
    """The counterparty reported a problem. Exchange state is left untouched."""

    thread_id: str | None = None
    description: str = ""
    report: dict[str, Any] = {}


class CredentialRevokedProps(BaseModel):
    cred_ex_id: str | None = None
    record_id: str | None = None
    state: str | None = None


class OutOfBandProps(BaseModel):
    invi_msg_id: str | None = None
    state: str | None = None


ProblemReported = define_event("exchange.problem_report", ProblemReportProps)
CredentialRevoked = define_event("exchange.credential_revoked", CredentialRevokedProps)
OutOfBandUpdated = define_event("exchange.out_of_band", OutOfBandProps)
