"""Modification review state machine.

Computes the next persisted status, the fields to persist and the audit
entry for a review outcome. The machine never persists anything itself and
never raises for an expected outcome: every result is a ``TransitionResult``.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Dict, Mapping, Optional, Sequence

from portal.core.config import FeatureFlags
from portal.core.modification.guard import GuardReason, GuardResult
from portal.core.modification.states import (
    NO_REVIEW_REQUIRED,
    REVIEW_REQUIRED,
    ReviewOutcome,
    TERMINAL_STATES,
    to_display_status,
)
from portal.core.statuses import ModificationStatus


class FollowUp(str, Enum):
    """Extra step the caller must take before the outcome can commit."""

    ROUTE_TO_REVIEW_BODY = "ROUTE_TO_REVIEW_BODY"
    REQUIRE_REVISION_TEXT = "REQUIRE_REVISION_TEXT"
    REQUIRE_REASON = "REQUIRE_REASON"


class ErrorCode(str, Enum):
    PERMISSION_DENIED = "PERMISSION_DENIED"
    INVALID_SOURCE_STATE = "INVALID_SOURCE_STATE"
    FEATURE_DISABLED = "FEATURE_DISABLED"
    MISSING_REQUIRED_FIELD = "MISSING_REQUIRED_FIELD"
    DUPLICATE_REQUEST = "DUPLICATE_REQUEST"
    STALE_STATE_CONFLICT = "STALE_STATE_CONFLICT"


_GUARD_ERRORS = {
    GuardReason.FEATURE_DISABLED: ErrorCode.FEATURE_DISABLED,
    GuardReason.PERMISSION_DENIED: ErrorCode.PERMISSION_DENIED,
    GuardReason.INVALID_SOURCE_STATE: ErrorCode.INVALID_SOURCE_STATE,
}

_EMPTY_PAYLOAD: Mapping[str, Any] = MappingProxyType({})


def _blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


@dataclass(frozen=True)
class ModificationRecord:
    """A project modification as stored by the record service."""

    id: str
    project_record_id: str
    status: ModificationStatus
    review_type: Optional[str] = None
    revision_description: Optional[str] = None
    reason_not_approved: Optional[str] = None
    reviewer_name: Optional[str] = None
    version: int = 0

    @property
    def display_status(self) -> str:
        return to_display_status(self.status, self.reviewer_name)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATES


@dataclass(frozen=True)
class TransitionRequest:
    """An actor's decision on a modification.

    ``observed_status`` is the status the actor last saw; the transition only
    commits if the record still has it.
    """

    record_id: str
    observed_status: ModificationStatus
    outcome: ReviewOutcome
    actor_id: Optional[str] = None
    is_authoriser: bool = False
    review_type: Optional[str] = None
    revision_description: Optional[str] = None
    reason_not_approved: Optional[str] = None


@dataclass(frozen=True)
class AuditEntry:
    """Append-only record of a committed transition."""

    record_id: str
    actor_id: Optional[str]
    outcome: ReviewOutcome
    old_status: ModificationStatus
    new_status: ModificationStatus
    payload: Mapping[str, Any]
    timestamp: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "record_id": self.record_id,
            "actor_id": self.actor_id,
            "outcome": self.outcome.value,
            "old_status": self.old_status.value,
            "new_status": self.new_status.value,
            "payload": dict(self.payload),
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class TransitionResult:
    """Outcome of computing (and possibly committing) a transition."""

    record_id: str
    old_status: ModificationStatus
    new_status: ModificationStatus
    applied: bool
    follow_up: Optional[FollowUp] = None
    error: Optional[ErrorCode] = None
    field: Optional[str] = None
    payload: Mapping[str, Any] = dataclasses.field(default_factory=lambda: _EMPTY_PAYLOAD)
    audit: Optional[AuditEntry] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def as_conflict(self) -> "TransitionResult":
        """The same result after losing the conditional update."""
        return replace(
            self,
            new_status=self.old_status,
            applied=False,
            error=ErrorCode.STALE_STATE_CONFLICT,
            audit=None,
        )

    def as_review_body_occupied(self) -> "TransitionResult":
        """The same result after a sibling reached the review body first."""
        return replace(
            self,
            new_status=self.old_status,
            applied=False,
            follow_up=FollowUp.ROUTE_TO_REVIEW_BODY,
            payload=_EMPTY_PAYLOAD,
            audit=None,
        )


def _unchanged(
    record: ModificationRecord,
    request: TransitionRequest,
    *,
    error: Optional[ErrorCode] = None,
    follow_up: Optional[FollowUp] = None,
    field_name: Optional[str] = None,
) -> TransitionResult:
    return TransitionResult(
        record_id=record.id,
        old_status=request.observed_status,
        new_status=request.observed_status,
        applied=False,
        follow_up=follow_up,
        error=error,
        field=field_name,
    )


class ModificationStateMachine:
    """
    State machine for the modification review workflow.

    ``compute`` takes the record as loaded, the actor's request, the guard's
    verdict and the other modifications of the same project, and returns the
    transition to commit (``applied=True``) or the reason nothing happens.
    """

    def __init__(
        self,
        features: Optional[FeatureFlags] = None,
        *,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.features = features or FeatureFlags()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._handlers = {
            ReviewOutcome.AUTHORISED: self._authorised,
            ReviewOutcome.REQUEST_REVISIONS: self._request_revisions,
            ReviewOutcome.NOT_AUTHORISED: self._not_authorised,
            ReviewOutcome.SUBMIT_TO_SPONSOR: self._submit_to_sponsor,
            ReviewOutcome.WITHDRAW: self._withdraw,
            ReviewOutcome.REVIEW_APPROVED: self._review_approved,
            ReviewOutcome.REVIEW_NOT_APPROVED: self._review_not_approved,
        }

    def compute(
        self,
        record: ModificationRecord,
        request: TransitionRequest,
        guard: GuardResult,
        siblings: Sequence[ModificationRecord] = (),
    ) -> TransitionResult:
        """
        Compute the transition for a request.

        Args:
            record: The modification as currently loaded
            request: The actor's decision
            guard: Result of ``TransitionGuard.check`` for this request
            siblings: Modifications of the same project record

        Returns:
            TransitionResult; ``applied`` is True only when the caller
            should persist ``new_status`` and ``payload``
        """
        if not guard.allowed:
            return _unchanged(record, request, error=_GUARD_ERRORS[guard.reason])

        handler = self._handlers[request.outcome]
        return handler(record, request, siblings)

    def _apply(
        self,
        record: ModificationRecord,
        request: TransitionRequest,
        new_status: ModificationStatus,
        payload: Optional[Dict[str, Any]] = None,
    ) -> TransitionResult:
        frozen = MappingProxyType(dict(payload or {}))
        audit = AuditEntry(
            record_id=record.id,
            actor_id=request.actor_id,
            outcome=request.outcome,
            old_status=request.observed_status,
            new_status=new_status,
            payload=frozen,
            timestamp=self._clock(),
        )
        return TransitionResult(
            record_id=record.id,
            old_status=request.observed_status,
            new_status=new_status,
            applied=True,
            payload=frozen,
            audit=audit,
        )

    # ---- Sponsor decisions ------------------------------------------------------------

    def _authorised(self, record, request, siblings) -> TransitionResult:
        review_type = NO_REVIEW_REQUIRED if _blank(request.review_type) else request.review_type.strip()

        # At most one modification per project may be with the review body
        if any(
            other.id != record.id and other.status is ModificationStatus.WITH_REVIEW_BODY
            for other in siblings
        ):
            return _unchanged(record, request, follow_up=FollowUp.ROUTE_TO_REVIEW_BODY)

        if review_type.casefold() == REVIEW_REQUIRED.casefold():
            new_status = ModificationStatus.WITH_REVIEW_BODY
        else:
            new_status = ModificationStatus.APPROVED
        return self._apply(record, request, new_status, {"review_type": review_type})

    def _request_revisions(self, record, request, siblings) -> TransitionResult:
        if _blank(request.revision_description):
            return _unchanged(
                record,
                request,
                error=ErrorCode.MISSING_REQUIRED_FIELD,
                follow_up=FollowUp.REQUIRE_REVISION_TEXT,
                field_name="revision_description",
            )
        if not _blank(record.revision_description):
            return _unchanged(record, request, error=ErrorCode.DUPLICATE_REQUEST)

        return self._apply(
            record,
            request,
            ModificationStatus.REQUEST_REVISIONS,
            {"revision_description": request.revision_description.strip()},
        )

    def _not_authorised(self, record, request, siblings) -> TransitionResult:
        reason = request.reason_not_approved
        if self.features.not_authorised_reason and _blank(reason):
            return _unchanged(record, request, follow_up=FollowUp.REQUIRE_REASON)

        payload = {} if _blank(reason) else {"reason_not_approved": reason.strip()}
        return self._apply(record, request, ModificationStatus.NOT_AUTHORISED, payload)

    # ---- Applicant actions ------------------------------------------------------------

    def _submit_to_sponsor(self, record, request, siblings) -> TransitionResult:
        # A resubmission consumes the outstanding revision request
        return self._apply(
            record,
            request,
            ModificationStatus.WITH_SPONSOR,
            {"revision_description": None},
        )

    def _withdraw(self, record, request, siblings) -> TransitionResult:
        return self._apply(record, request, ModificationStatus.WITHDRAWN)

    # ---- Review body outcomes ---------------------------------------------------------

    def _review_approved(self, record, request, siblings) -> TransitionResult:
        return self._apply(record, request, ModificationStatus.APPROVED)

    def _review_not_approved(self, record, request, siblings) -> TransitionResult:
        if _blank(request.reason_not_approved):
            return _unchanged(
                record,
                request,
                error=ErrorCode.MISSING_REQUIRED_FIELD,
                field_name="reason_not_approved",
            )
        return self._apply(
            record,
            request,
            ModificationStatus.NOT_APPROVED,
            {"reason_not_approved": request.reason_not_approved.strip()},
        )
