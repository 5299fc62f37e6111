"""Credential Matcher - picks one held credential per disclosure constraint.

For each constraint the agent is asked which held credentials can satisfy
that referent of the presentation request. Candidates that do not carry the
constrained attribute, or that come from a different credential definition
than the one the constraint is restricted to, are discarded locally.

Selection policy when several candidates qualify:
- ``first``: the first candidate in the agent's own order (default)
- ``most_recent``: the candidate with the highest ``timestamp`` attribute,
  falling back to the highest credential revocation id

A constraint with no candidate is reported as unmatched; it does not fail
the match. A transport failure fails the whole match.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from .config import MATCH_POLICIES, MATCH_POLICY_FIRST, MATCH_POLICY_MOST_RECENT
from .models import (
    AttributeConstraint,
    MatchedCredential,
    PredicateConstraint,
    PresentationCredential,
)
from .sdk.client import AdminClient

logger = logging.getLogger(__name__)

Constraint = AttributeConstraint | PredicateConstraint


@dataclass
class MatchResult:
    """Outcome of one match: chosen credentials by referent, and the misses."""

    matched: dict[str, MatchedCredential] = field(default_factory=dict)
    unmatched: set[str] = field(default_factory=set)

    @property
    def complete(self) -> bool:
        return not self.unmatched

    def __len__(self) -> int:
        return len(self.matched)


def _as_int(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _recency(candidate: PresentationCredential) -> int:
    info = candidate.cred_info
    timestamp = _as_int(info.attrs.get("timestamp"))
    if timestamp is not None:
        return timestamp
    rev_id = _as_int(info.cred_rev_id)
    return rev_id if rev_id is not None else -1


def qualifies(candidate: PresentationCredential, constraint: Constraint) -> bool:
    """True when the candidate can satisfy the constraint."""
    info = candidate.cred_info
    if not all(name in info.attrs for name in constraint.required_names):
        return False
    if constraint.cred_def_id and info.cred_def_id != constraint.cred_def_id:
        return False
    if candidate.presentation_referents and constraint.referent not in candidate.presentation_referents:
        return False
    return True


class CredentialMatcher:
    """Matches constraints against the wallet via the agent."""

    def __init__(self, client: AdminClient, policy: str = MATCH_POLICY_FIRST) -> None:
        if policy not in MATCH_POLICIES:
            raise ValueError(f"Unknown match policy {policy!r}")
        self._client = client
        self.policy = policy

    def select(
        self, candidates: list[PresentationCredential]
    ) -> PresentationCredential | None:
        if not candidates:
            return None
        if self.policy == MATCH_POLICY_MOST_RECENT:
            return max(candidates, key=_recency)
        return candidates[0]

    async def match(
        self, pres_ex_id: str, constraints: Iterable[Constraint]
    ) -> MatchResult:
        """Match every constraint of a presentation exchange.

        Args:
            pres_ex_id: Presentation exchange whose request is being answered
            constraints: Attribute or predicate constraints, keyed by referent

        Returns:
            MatchResult with one MatchedCredential per satisfied referent

        Raises:
            TransportError: If the agent could not be queried
        """
        result = MatchResult()
        for constraint in constraints:
            candidates = await self._client.presentations.credentials(
                pres_ex_id, referent=constraint.referent
            )
            eligible = [c for c in candidates if qualifies(c, constraint)]
            chosen = self.select(eligible)
            if chosen is None:
                logger.info(
                    f"No held credential satisfies {constraint.referent!r} "
                    f"({len(candidates)} candidate(s) returned)"
                )
                result.unmatched.add(constraint.referent)
                continue

            if len(eligible) > 1:
                logger.debug(
                    f"{len(eligible)} candidates for {constraint.referent!r}, "
                    f"policy {self.policy} chose {chosen.cred_info.referent}"
                )
            result.matched[constraint.referent] = MatchedCredential(
                referent=constraint.referent,
                cred_id=chosen.cred_info.referent,
                attrs=chosen.cred_info.attrs,
                cred_def_id=chosen.cred_info.cred_def_id,
            )
        return result
