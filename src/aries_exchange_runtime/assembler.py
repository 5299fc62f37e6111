"""Proof Assembler - builds the send-presentation body for a proof request.

Every referent of the *request* (never the proposal) appears exactly once
in the submission, either as a reference to a held credential or as a
self-attested literal. An unresolved referent is an error; an incomplete
proof is never produced. Predicates are passed through with their
credential reference and are not evaluated here.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping

from .errors import MissingAttributeError
from .models import (
    MatchedCredential,
    PredicateCredentialRef,
    ProofRequest,
    ProofSubmission,
    RequestedCredentialRef,
)

logger = logging.getLogger(__name__)


class ProofAssembler:
    """Combines matched credentials into a ProofSubmission."""

    def __init__(self, *, revealed: bool = True, trace: bool = False) -> None:
        self.revealed = revealed
        self.trace = trace

    def assemble(
        self,
        request: ProofRequest,
        matched: Mapping[str, MatchedCredential],
        self_attested: Mapping[str, str] | None = None,
        predicates: Mapping[str, MatchedCredential] | None = None,
    ) -> ProofSubmission:
        """Build the submission for ``request``.

        Raises:
            MissingAttributeError: If any requested referent is unresolved
        """
        self_attested = self_attested or {}
        predicates = predicates or {}

        requested_attributes: dict[str, RequestedCredentialRef] = {}
        self_attested_attributes: dict[str, str] = {}
        requested_predicates: dict[str, PredicateCredentialRef] = {}
        missing: list[str] = []

        for referent in request.requested_attributes:
            if referent in matched:
                requested_attributes[referent] = RequestedCredentialRef(
                    cred_id=matched[referent].cred_id,
                    revealed=self.revealed,
                )
            elif referent in self_attested:
                self_attested_attributes[referent] = self_attested[referent]
            else:
                missing.append(referent)

        for referent in request.requested_predicates:
            if referent in predicates:
                requested_predicates[referent] = PredicateCredentialRef(
                    cred_id=predicates[referent].cred_id
                )
            else:
                missing.append(referent)

        if missing:
            raise MissingAttributeError(missing)

        extra = (set(matched) | set(self_attested)) - set(request.requested_attributes)
        if extra:
            logger.debug(f"Ignoring referents not in the request: {sorted(extra)}")

        return ProofSubmission(
            requested_attributes=requested_attributes,
            requested_predicates=requested_predicates,
            self_attested_attributes=self_attested_attributes,
            trace=self.trace,
        )
