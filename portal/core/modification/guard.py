"""Transition guard.

Wraps the policy evaluator with the preconditions of a review outcome.
Checks run in a fixed order so that a security failure is never reported
as a stale page:

1. Feature flag for the outcome
2. Permission (plus modification status gate) and authoriser flag
3. Source state
"""

from dataclasses import dataclass
from enum import Enum
import logging
from typing import TYPE_CHECKING, Optional

from portal.core.config import FeatureFlags
from portal.core.modification.states import get_transition_rule
from portal.core.policy.engine import AuthorizationDecision, PolicyEvaluator
from portal.core.policy.requests import AuthorizationRequest
from portal.core.rbac.claims import Principal
from portal.core.rbac.permissions import EntityType

if TYPE_CHECKING:
    from portal.core.modification.machine import ModificationRecord, TransitionRequest

logger = logging.getLogger(__name__)


class GuardReason(str, Enum):
    ALLOWED = "ALLOWED"
    FEATURE_DISABLED = "FEATURE_DISABLED"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    INVALID_SOURCE_STATE = "INVALID_SOURCE_STATE"


@dataclass(frozen=True)
class GuardResult:
    allowed: bool
    reason: GuardReason
    decision: Optional[AuthorizationDecision] = None

    def __bool__(self) -> bool:
        return self.allowed


class TransitionGuard:
    """Decides whether a principal may apply an outcome to a record."""

    def __init__(self, evaluator: PolicyEvaluator, features: Optional[FeatureFlags] = None):
        self.evaluator = evaluator
        self.features = features or FeatureFlags()

    def check(
        self,
        principal: Principal,
        record: "ModificationRecord",
        request: "TransitionRequest",
    ) -> GuardResult:
        rule = get_transition_rule(request.outcome)

        if not self.features.is_enabled(rule.feature_flag):
            return self._result(record, request, GuardReason.FEATURE_DISABLED)

        # The gate uses the status the caller acted on; a stale value is
        # caught by the conditional update.
        auth_request = AuthorizationRequest.for_permission(
            rule.permission,
            status_entity=EntityType.MODIFICATION,
            status_value=request.observed_status.value,
        )
        decision = self.evaluator.evaluate(principal, auth_request)
        if not decision.allow:
            return self._result(record, request, GuardReason.PERMISSION_DENIED, decision)

        if rule.requires_authoriser and not (request.is_authoriser or principal.is_admin):
            return self._result(record, request, GuardReason.PERMISSION_DENIED, decision)

        if request.observed_status not in rule.source_states:
            return self._result(record, request, GuardReason.INVALID_SOURCE_STATE, decision)

        return self._result(record, request, GuardReason.ALLOWED, decision)

    @staticmethod
    def _result(record, request, reason: GuardReason, decision=None) -> GuardResult:
        logger.debug(
            "Guard %s for record=%s outcome=%s observed=%s actor=%s",
            reason.value,
            record.id,
            request.outcome.value,
            request.observed_status.value,
            request.actor_id,
        )
        return GuardResult(reason is GuardReason.ALLOWED, reason, decision)
