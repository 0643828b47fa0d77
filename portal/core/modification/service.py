"""Modification review service.

Sequences a review decision end to end:

    load → guard → compute → conditional persist → audit → commit → notify

The guard and state machine are pure. All I/O goes through the
``RecordStore`` given to the service.
"""

import logging
from typing import Callable, Dict, List, Optional

from portal.core.config import FeatureFlags
from portal.core.modification.guard import TransitionGuard
from portal.core.modification.machine import (
    ModificationRecord,
    ModificationStateMachine,
    TransitionRequest,
    TransitionResult,
)
from portal.core.modification.states import ReviewOutcome
from portal.core.modification.store import RecordStore, ReviewBodyOccupiedError
from portal.core.policy.engine import PolicyEvaluator
from portal.core.rbac.claims import Principal
from portal.core.statuses import ModificationStatus

logger = logging.getLogger(__name__)

TransitionCallback = Callable[[TransitionResult], None]


class ModificationReviewService:
    """
    High-level service for modification review decisions.

    Handles:
    - Loading the record and the project's other modifications
    - Guarding and computing the transition
    - Committing it with a conditional update and writing the audit entry
    - Notifying callbacks registered for the new status (e.g. reviewer assignment)
    """

    def __init__(
        self,
        store: RecordStore,
        evaluator: PolicyEvaluator,
        features: Optional[FeatureFlags] = None,
        *,
        machine: Optional[ModificationStateMachine] = None,
    ):
        """
        Initialize the review service.

        Args:
            store: Record storage collaborator
            evaluator: Policy evaluator bound to the current catalog snapshot
            features: Feature flags for the guard and state machine
            machine: State machine override (tests inject a fixed clock)
        """
        self.store = store
        self.features = features or FeatureFlags()
        self.guard = TransitionGuard(evaluator, self.features)
        self.machine = machine or ModificationStateMachine(self.features)
        self._callbacks: Dict[ModificationStatus, List[TransitionCallback]] = {}

    def register_callback(self, status: ModificationStatus, callback: TransitionCallback) -> None:
        """
        Register a callback run after a transition into ``status`` commits.

        Args:
            status: Target status to hook
            callback: Function called with the committed result
        """
        self._callbacks.setdefault(status, []).append(callback)

    def on_review_body_submission(self, callback: TransitionCallback) -> None:
        """Register a reviewer-assignment hook."""
        self.register_callback(ModificationStatus.WITH_REVIEW_BODY, callback)

    def get(self, record_id: str) -> ModificationRecord:
        """
        Load a modification.

        Raises:
            RecordNotFoundError: If the id is unknown
        """
        return self.store.get_record(record_id)

    def decide(self, principal: Principal, request: TransitionRequest) -> TransitionResult:
        """
        Apply an actor's decision to a modification.

        Returns:
            The committed result, or the result explaining why nothing changed

        Raises:
            RecordNotFoundError: If the record id is unknown
        """
        record = self.store.get_record(request.record_id)
        guard_result = self.guard.check(principal, record, request)

        siblings: List[ModificationRecord] = []
        if guard_result.allowed and request.outcome is ReviewOutcome.AUTHORISED:
            siblings = self.store.list_for_project(record.project_record_id)

        result = self.machine.compute(record, request, guard_result, siblings)
        if not result.applied:
            logger.info(
                "Modification %s: %s not applied (error=%s follow_up=%s)",
                record.id,
                request.outcome.value,
                result.error.value if result.error else None,
                result.follow_up.value if result.follow_up else None,
            )
            return result

        try:
            committed = self.store.update_status(
                record.id,
                request.observed_status,
                result.new_status,
                result.payload,
            )
        except ReviewBodyOccupiedError as exc:
            logger.info(
                "Modification %s: project %s already has a modification with the review body",
                record.id,
                exc.project_record_id,
            )
            return result.as_review_body_occupied()

        if not committed:
            logger.warning(
                "Modification %s: stale status %r, %s rejected for actor %s",
                record.id,
                request.observed_status.value,
                request.outcome.value,
                request.actor_id,
            )
            return result.as_conflict()

        self.store.append_audit(result.audit)
        self.store.commit()
        logger.info(
            "Modification %s: %s -> %s by %s",
            record.id,
            result.old_status.value,
            result.new_status.value,
            request.actor_id,
        )
        self._execute_callbacks(result)
        return result

    def _execute_callbacks(self, result: TransitionResult) -> None:
        """Run callbacks for the committed status. Failures never undo the commit."""
        for callback in self._callbacks.get(result.new_status, []):
            try:
                callback(result)
            except Exception:
                logger.exception(
                    "Callback %r failed for modification %s",
                    getattr(callback, "__name__", callback),
                    result.record_id,
                )
