"""Record and request types for the credential-exchange protocols.

Field names follow the agent's admin API and webhook payloads, including
the hyphenated and ``@``-prefixed keys of the protocol previews. Records
are frozen: an update always replaces the whole record.
"""

from __future__ import annotations

import time
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .errors import InvalidIntervalError

CREDENTIAL_PREVIEW_TYPE = "https://didcomm.org/issue-credential/1.0/credential-preview"
PRESENTATION_PREVIEW_TYPE = "https://didcomm.org/present-proof/1.0/presentation-preview"
DEFAULT_HANDSHAKE_PROTOCOLS = ("https://didcomm.org/didexchange/1.0",)


class RecordModel(BaseModel):
    """Base model for agent records: immutable, tolerant of extra fields."""

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        extra="ignore",
    )


# =============================================================================
# State enumerations
# =============================================================================


class ConnectionState(str, Enum):
    """Connection protocol states as reported by the agent."""

    INVITATION = "invitation"
    REQUEST = "request"
    RESPONSE = "response"
    ACTIVE = "active"
    COMPLETED = "completed"
    ABANDONED = "abandoned"
    ERROR = "error"


class CredentialExchangeState(str, Enum):
    """Issue-credential 1.0 exchange states."""

    PROPOSAL_SENT = "proposal_sent"
    PROPOSAL_RECEIVED = "proposal_received"
    OFFER_SENT = "offer_sent"
    OFFER_RECEIVED = "offer_received"
    REQUEST_SENT = "request_sent"
    REQUEST_RECEIVED = "request_received"
    CREDENTIAL_ISSUED = "credential_issued"
    CREDENTIAL_RECEIVED = "credential_received"
    CREDENTIAL_ACKED = "credential_acked"
    DONE = "done"
    ABANDONED = "abandoned"


class PresentationExchangeState(str, Enum):
    """Present-proof 1.0 exchange states."""

    PROPOSAL_SENT = "proposal_sent"
    PROPOSAL_RECEIVED = "proposal_received"
    REQUEST_SENT = "request_sent"
    REQUEST_RECEIVED = "request_received"
    PRESENTATION_SENT = "presentation_sent"
    PRESENTATION_RECEIVED = "presentation_received"
    VERIFIED = "verified"
    PRESENTATION_ACKED = "presentation_acked"
    ABANDONED = "abandoned"


ACTIVE_CONNECTION_STATES = frozenset(
    {ConnectionState.ACTIVE.value, ConnectionState.COMPLETED.value, ConnectionState.RESPONSE.value}
)


# =============================================================================
# Non-revocation and constraints
# =============================================================================


class NonRevocationInterval(RecordModel):
    """Inclusive [from, to] window in epoch seconds."""

    from_: int | None = Field(default=None, alias="from")
    to: int | None = None

    @model_validator(mode="after")
    def _check_order(self) -> NonRevocationInterval:
        if self.from_ is not None and self.to is not None and self.from_ > self.to:
            raise InvalidIntervalError(
                f"Non-revocation interval has from ({self.from_}) after to ({self.to})"
            )
        return self

    @classmethod
    def create(cls, from_: int | None, to: int | None) -> NonRevocationInterval:
        """Build an interval, raising InvalidIntervalError when from > to."""
        if from_ is not None and to is not None and from_ > to:
            raise InvalidIntervalError(
                f"Non-revocation interval has from ({from_}) after to ({to})"
            )
        return cls(from_=from_, to=to)

    @classmethod
    def around_now(
        cls,
        lookback_seconds: int,
        lookahead_seconds: int = 0,
        *,
        now: int | None = None,
    ) -> NonRevocationInterval:
        """Window from ``now - lookback`` to ``now + lookahead``."""
        current = int(time.time()) if now is None else now
        return cls.create(current - lookback_seconds, current + lookahead_seconds)

    def to_payload(self) -> dict[str, int]:
        return self.model_dump(by_alias=True, exclude_none=True)


class AttributeConstraint(RecordModel):
    """A request to disclose one attribute."""

    referent: str
    name: str
    cred_def_id: str | None = None
    non_revoked: NonRevocationInterval | None = None
    names: list[str] = Field(default_factory=list)

    @property
    def required_names(self) -> list[str]:
        """Every attribute one credential must carry; a group needs all of them."""
        return list(self.names) or [self.name]


class PredicateConstraint(RecordModel):
    """A numeric predicate over one attribute (e.g. age >= 18)."""

    referent: str
    name: str
    p_type: str = ">="
    p_value: int
    cred_def_id: str | None = None
    non_revoked: NonRevocationInterval | None = None

    @property
    def required_names(self) -> list[str]:
        return [self.name]


class MatchedCredential(RecordModel):
    """Binds a constraint referent to one held credential."""

    referent: str
    cred_id: str
    attrs: dict[str, str] = Field(default_factory=dict)
    cred_def_id: str | None = None


# =============================================================================
# Proof requests and submissions
# =============================================================================


def _restricted_cred_def(restrictions: list[dict[str, Any]]) -> str | None:
    for restriction in restrictions:
        cred_def_id = restriction.get("cred_def_id")
        if cred_def_id:
            return cred_def_id
    return None


class RequestedAttribute(RecordModel):
    name: str | None = None
    names: list[str] | None = None
    restrictions: list[dict[str, Any]] = Field(default_factory=list)
    non_revoked: NonRevocationInterval | None = None

    @classmethod
    def for_constraint(cls, constraint: AttributeConstraint) -> RequestedAttribute:
        restrictions = (
            [{"cred_def_id": constraint.cred_def_id}] if constraint.cred_def_id else []
        )
        if constraint.names:
            return cls(
                names=list(constraint.names),
                restrictions=restrictions,
                non_revoked=constraint.non_revoked,
            )
        return cls(
            name=constraint.name,
            restrictions=restrictions,
            non_revoked=constraint.non_revoked,
        )


class RequestedPredicate(RecordModel):
    name: str
    p_type: str
    p_value: int
    restrictions: list[dict[str, Any]] = Field(default_factory=list)
    non_revoked: NonRevocationInterval | None = None


class ProofRequest(RecordModel):
    """An indy proof request as sent to (or received from) a counterparty."""

    name: str = "Proof request"
    version: str = "1.0"
    nonce: str | None = None
    requested_attributes: dict[str, RequestedAttribute] = Field(default_factory=dict)
    requested_predicates: dict[str, RequestedPredicate] = Field(default_factory=dict)
    non_revoked: NonRevocationInterval | None = None

    def attribute_constraints(self) -> list[AttributeConstraint]:
        """One constraint per requested-attribute referent."""
        constraints = []
        for referent, spec in self.requested_attributes.items():
            name = spec.name or (spec.names[0] if spec.names else referent)
            constraints.append(
                AttributeConstraint(
                    referent=referent,
                    name=name,
                    names=list(spec.names or []),
                    cred_def_id=_restricted_cred_def(spec.restrictions),
                    non_revoked=spec.non_revoked or self.non_revoked,
                )
            )
        return constraints

    def predicate_constraints(self) -> list[PredicateConstraint]:
        return [
            PredicateConstraint(
                referent=referent,
                name=spec.name,
                p_type=spec.p_type,
                p_value=spec.p_value,
                cred_def_id=_restricted_cred_def(spec.restrictions),
                non_revoked=spec.non_revoked or self.non_revoked,
            )
            for referent, spec in self.requested_predicates.items()
        ]

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class RequestedCredentialRef(RecordModel):
    cred_id: str
    revealed: bool = True
    timestamp: int | None = None


class PredicateCredentialRef(RecordModel):
    cred_id: str
    timestamp: int | None = None


class ProofSubmission(RecordModel):
    """Body of a send-presentation call."""

    requested_attributes: dict[str, RequestedCredentialRef] = Field(default_factory=dict)
    requested_predicates: dict[str, PredicateCredentialRef] = Field(default_factory=dict)
    self_attested_attributes: dict[str, str] = Field(default_factory=dict)
    trace: bool = False

    def referents(self) -> set[str]:
        """Every attribute referent covered by this submission."""
        return set(self.requested_attributes) | set(self.self_attested_attributes)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


# =============================================================================
# Previews
# =============================================================================


class CredentialPreviewAttribute(RecordModel):
    name: str
    mime_type: str | None = Field(default=None, alias="mime-type")
    value: str


class CredentialPreview(RecordModel):
    type: str = Field(default=CREDENTIAL_PREVIEW_TYPE, alias="@type")
    attributes: list[CredentialPreviewAttribute] = Field(default_factory=list)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class PresentationPreviewAttribute(RecordModel):
    name: str
    cred_def_id: str | None = None
    mime_type: str | None = Field(default=None, alias="mime-type")
    value: str | None = None
    referent: str | None = None


class PresentationPreviewPredicate(RecordModel):
    name: str
    cred_def_id: str | None = None
    predicate: str
    threshold: int


class PresentationPreview(RecordModel):
    type: str = Field(default=PRESENTATION_PREVIEW_TYPE, alias="@type")
    attributes: list[PresentationPreviewAttribute] = Field(default_factory=list)
    predicates: list[PresentationPreviewPredicate] = Field(default_factory=list)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class CredentialProposal(RecordModel):
    credential_proposal: CredentialPreview | None = None
    cred_def_id: str | None = None
    schema_id: str | None = None
    comment: str | None = None


class PresentationProposal(RecordModel):
    presentation_proposal: PresentationPreview | None = None
    comment: str | None = None


# =============================================================================
# Agent records (state-bearing webhook topics)
# =============================================================================


class ConnectionRecord(RecordModel):
    connection_id: str
    state: str | None = None
    rfc23_state: str | None = None
    alias: str | None = None
    their_label: str | None = None
    their_did: str | None = None
    my_did: str | None = None
    invitation_key: str | None = None
    invitation_msg_id: str | None = None
    their_role: str | None = None
    updated_at: str | None = None

    @property
    def display_name(self) -> str:
        return self.alias or self.their_label or self.connection_id

    @property
    def is_active(self) -> bool:
        return self.state in ACTIVE_CONNECTION_STATES


class IndyCredInfo(RecordModel):
    referent: str
    attrs: dict[str, str] = Field(default_factory=dict)
    schema_id: str | None = None
    cred_def_id: str | None = None
    rev_reg_id: str | None = None
    cred_rev_id: str | None = None


class CredentialExchangeRecord(RecordModel):
    credential_exchange_id: str
    connection_id: str | None = None
    state: str | None = None
    role: str | None = None
    credential_definition_id: str | None = None
    schema_id: str | None = None
    credential_proposal_dict: CredentialProposal | None = None
    credential_offer_dict: dict[str, Any] | None = None
    credential: IndyCredInfo | None = None
    error_msg: str | None = None
    updated_at: str | None = None

    def preview_attributes(self) -> list[CredentialPreviewAttribute]:
        proposal = self.credential_proposal_dict
        if proposal is None or proposal.credential_proposal is None:
            return []
        return list(proposal.credential_proposal.attributes)


class PresentationExchangeRecord(RecordModel):
    presentation_exchange_id: str
    connection_id: str | None = None
    state: str | None = None
    role: str | None = None
    presentation_proposal_dict: PresentationProposal | None = None
    presentation_request: ProofRequest | None = None
    verified: str | None = None
    error_msg: str | None = None
    updated_at: str | None = None

    def proposal_attributes(self) -> list[PresentationPreviewAttribute]:
        proposal = self.presentation_proposal_dict
        if proposal is None or proposal.presentation_proposal is None:
            return []
        return list(proposal.presentation_proposal.attributes)


class RevocationRegistryRecord(RecordModel):
    revoc_reg_id: str
    state: str | None = None
    cred_def_id: str | None = None
    tails_public_uri: str | None = None
    max_cred_num: int | None = None


# =============================================================================
# Diagnostic events (non-state-bearing topics)
# =============================================================================


class ProblemReportEvent(RecordModel):
    """Counterparty problem report. Payload shape varies, extras are kept."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="allow")

    type: str | None = Field(default=None, alias="@type")
    id: str | None = Field(default=None, alias="@id")
    thread: dict[str, Any] | None = Field(default=None, alias="~thread")
    description: dict[str, Any] | str | None = None
    explain_ltxt: str | None = Field(default=None, alias="explain-ltxt")

    @property
    def thread_id(self) -> str | None:
        return (self.thread or {}).get("thid")

    @property
    def summary(self) -> str:
        if isinstance(self.description, dict):
            return self.description.get("en") or self.description.get("code") or ""
        return self.description or self.explain_ltxt or ""


class CredentialRevocationEvent(RecordModel):
    record_id: str | None = None
    state: str | None = None
    cred_ex_id: str | None = None
    rev_reg_id: str | None = None
    cred_rev_id: str | None = None


class OutOfBandEvent(RecordModel):
    invi_msg_id: str | None = None
    state: str | None = None
    oob_id: str | None = None
    connection_id: str | None = None


# =============================================================================
# Driver-side records
# =============================================================================


class SchemaRecord(RecordModel):
    schema_id: str
    name: str
    version: str
    attribute_names: list[str] = Field(default_factory=list)


class DIDInfo(RecordModel):
    did: str
    verkey: str | None = None
    posture: str | None = None
    key_type: str | None = None
    method: str | None = None


class PresentationCredential(RecordModel):
    """One entry of a presentation's candidate-credential listing."""

    cred_info: IndyCredInfo
    interval: NonRevocationInterval | None = None
    presentation_referents: list[str] = Field(default_factory=list)
