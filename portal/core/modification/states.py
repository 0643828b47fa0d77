"""Modification review states and transitions.

State Machine Diagram:

    ┌──────────┐   submit   ┌──────────────┐
    │ IN_DRAFT │───────────►│ WITH_SPONSOR │
    └────┬─────┘            └──────┬───────┘
         │                         │
         │          ┌──────────────┼──────────────┬─────────────────┐
         │          │              │              │                 │
         │   ┌──────▼───────┐ ┌────▼─────┐ ┌──────▼────────┐ ┌──────▼────────────┐
         │   │ WITH_REVIEW_ │ │ APPROVED │ │NOT_AUTHORISED │ │ REQUEST_REVISIONS │
         │   │ BODY         │ └──────────┘ └───────────────┘ └──────┬────────────┘
         │   └──────┬───────┘                                       │ submit
         │          │                                               └──► WITH_SPONSOR
         │    ┌─────┴───────┐
         │ ┌──▼───────┐ ┌───▼──────────┐
         │ │ APPROVED │ │ NOT_APPROVED │
         │ └──────────┘ └──────────────┘
         │
         └── withdraw (also from WITH_SPONSOR) ──► WITHDRAWN

Display statuses ("Received", "Review in progress") are projections of
WITH_REVIEW_BODY and never persisted.
"""

from enum import Enum
from typing import Dict, FrozenSet, NamedTuple, Optional, Set

from portal.core.rbac.permissions import Permission, Permissions
from portal.core.statuses import DisplayStatus, ModificationStatus

REVIEW_REQUIRED = "Review required"
NO_REVIEW_REQUIRED = "No review required"


class ReviewOutcome(str, Enum):
    """Decisions an actor can take on a modification."""

    # Sponsor decisions
    AUTHORISED = "Authorised"
    REQUEST_REVISIONS = "RequestRevisions"
    NOT_AUTHORISED = "NotAuthorised"

    # Applicant actions
    SUBMIT_TO_SPONSOR = "SubmitToSponsor"
    WITHDRAW = "Withdraw"

    # Review body outcomes
    REVIEW_APPROVED = "Approved"
    REVIEW_NOT_APPROVED = "NotApproved"


class TransitionRule(NamedTuple):
    """Preconditions of an outcome."""
    outcome: ReviewOutcome
    source_states: FrozenSet[ModificationStatus]
    permission: Permission
    requires_authoriser: bool = False
    feature_flag: Optional[str] = None


# Define all valid transitions
TRANSITION_RULES: list[TransitionRule] = [
    # Sponsor decisions
    TransitionRule(
        ReviewOutcome.AUTHORISED,
        frozenset([ModificationStatus.WITH_SPONSOR]),
        Permissions.Sponsor.MODIFICATIONS_AUTHORISE,
        requires_authoriser=True,
    ),
    TransitionRule(
        ReviewOutcome.REQUEST_REVISIONS,
        frozenset([ModificationStatus.WITH_SPONSOR]),
        Permissions.Sponsor.MODIFICATIONS_AUTHORISE,
        requires_authoriser=True,
        feature_flag="revision_and_authorisation",
    ),
    TransitionRule(
        ReviewOutcome.NOT_AUTHORISED,
        frozenset([ModificationStatus.WITH_SPONSOR]),
        Permissions.Sponsor.MODIFICATIONS_AUTHORISE,
        requires_authoriser=True,
    ),

    # Applicant actions
    TransitionRule(
        ReviewOutcome.SUBMIT_TO_SPONSOR,
        frozenset([ModificationStatus.IN_DRAFT, ModificationStatus.REQUEST_REVISIONS]),
        Permissions.MyResearch.MODIFICATIONS_SUBMIT,
    ),
    TransitionRule(
        ReviewOutcome.WITHDRAW,
        frozenset([ModificationStatus.IN_DRAFT, ModificationStatus.WITH_SPONSOR]),
        Permissions.MyResearch.MODIFICATIONS_WITHDRAW,
        feature_flag="withdraw_modification",
    ),

    # Review body outcomes
    TransitionRule(
        ReviewOutcome.REVIEW_APPROVED,
        frozenset([ModificationStatus.WITH_REVIEW_BODY]),
        Permissions.Approvals.MODIFICATIONS_APPROVE,
    ),
    TransitionRule(
        ReviewOutcome.REVIEW_NOT_APPROVED,
        frozenset([ModificationStatus.WITH_REVIEW_BODY]),
        Permissions.Approvals.MODIFICATIONS_APPROVE,
    ),
]

RULES_BY_OUTCOME: Dict[ReviewOutcome, TransitionRule] = {
    rule.outcome: rule for rule in TRANSITION_RULES
}


# Terminal states (no outgoing transitions)
TERMINAL_STATES: Set[ModificationStatus] = {
    ModificationStatus.APPROVED,
    ModificationStatus.NOT_APPROVED,
    ModificationStatus.NOT_AUTHORISED,
    ModificationStatus.WITHDRAWN,
}


def get_transition_rule(outcome: ReviewOutcome) -> TransitionRule:
    """Get the rule for an outcome."""
    return RULES_BY_OUTCOME[outcome]


def allowed_source_states(outcome: ReviewOutcome) -> FrozenSet[ModificationStatus]:
    """States a record must be in for the outcome to apply."""
    return RULES_BY_OUTCOME[outcome].source_states


def can_transition(from_state: ModificationStatus, outcome: ReviewOutcome) -> bool:
    """Check if an outcome is valid from the given state."""
    return from_state in allowed_source_states(outcome)


def is_terminal(status: ModificationStatus) -> bool:
    return status in TERMINAL_STATES


def to_display_status(status: str, reviewer_name: Optional[str] = None) -> str:
    """Project a persisted status to the label shown to users.

    "With review body" reads "Received" until a reviewer is assigned and
    "Review in progress" afterwards. Every other status passes through.
    The result is for display only and must not be fed back as a status.
    """
    value = status.value if isinstance(status, ModificationStatus) else str(status)
    if value.casefold() != ModificationStatus.WITH_REVIEW_BODY.value.casefold():
        return value
    if reviewer_name and reviewer_name.strip():
        return DisplayStatus.REVIEW_IN_PROGRESS.value
    return DisplayStatus.RECEIVED.value
