"""Modification review workflow for the submission portal.

Implements the transition guard, the review state machine and the service
that commits transitions to record storage.
"""

from .states import ReviewOutcome, TERMINAL_STATES, to_display_status
from .guard import GuardReason, GuardResult, TransitionGuard
from .machine import (
    AuditEntry,
    ErrorCode,
    FollowUp,
    ModificationRecord,
    ModificationStateMachine,
    TransitionRequest,
    TransitionResult,
)
from .store import InMemoryRecordStore, RecordNotFoundError, RecordStore, ReviewBodyOccupiedError
from .service import ModificationReviewService

__all__ = [
    "ReviewOutcome",
    "TERMINAL_STATES",
    "to_display_status",
    "GuardReason",
    "GuardResult",
    "TransitionGuard",
    "AuditEntry",
    "ErrorCode",
    "FollowUp",
    "ModificationRecord",
    "ModificationStateMachine",
    "TransitionRequest",
    "TransitionResult",
    "InMemoryRecordStore",
    "RecordNotFoundError",
    "RecordStore",
    "ReviewBodyOccupiedError",
    "ModificationReviewService",
]
