"""Policy evaluation engine for the submission portal.

Evaluates an ``AuthorizationRequest`` for a ``Principal`` against a catalog
snapshot. Evaluation is a pure function of its three inputs: the same
principal, request and snapshot always produce the same decision.

Order of evaluation:
1. Anonymous gate
2. System administrator short-circuit
3. Base decision (permission / role / workspace tokens)
4. Record status gate
5. Final decision = base AND status
"""

from dataclasses import dataclass
from enum import Enum
import logging
from typing import Optional

from portal.core.policy.requests import (
    AuthorizationMode,
    AuthorizationRequest,
    Combine,
    StatusGate,
)
from portal.core.rbac.catalog import RoleCatalog, default_catalog
from portal.core.rbac.claims import Principal

logger = logging.getLogger(__name__)


class DecisionReason(str, Enum):
    """Why a decision came out the way it did. Informational only."""

    ALLOWED = "allowed"
    ANONYMOUS_ONLY = "anonymous_only"
    NOT_AUTHENTICATED = "not_authenticated"
    ADMIN_BYPASS = "admin_bypass"
    MISSING_TOKENS = "missing_tokens"
    USER_DISABLED = "user_disabled"
    STATUS_NOT_ALLOWED = "status_not_allowed"


@dataclass(frozen=True)
class AuthorizationDecision:
    """Outcome of an evaluation. ``allow`` is the only field callers act on."""

    allow: bool
    reason: DecisionReason

    def __bool__(self) -> bool:
        return self.allow

    @classmethod
    def permit(cls, reason: DecisionReason = DecisionReason.ALLOWED) -> "AuthorizationDecision":
        return cls(True, reason)

    @classmethod
    def deny(cls, reason: DecisionReason) -> "AuthorizationDecision":
        return cls(False, reason)


class PolicyEvaluator:
    """
    Evaluates authorization requests.

    The evaluator holds one catalog snapshot. Hot reload replaces the
    evaluator (or passes a new snapshot), it never changes this one.
    """

    def __init__(self, catalog: Optional[RoleCatalog] = None):
        """
        Initialize the evaluator.

        Args:
            catalog: Catalog snapshot used for workspace membership
        """
        self.catalog = catalog or default_catalog()

    def evaluate(self, principal: Principal, request: AuthorizationRequest) -> AuthorizationDecision:
        """
        Decide whether the principal satisfies the request.

        Args:
            principal: Expanded actor snapshot
            request: Validated authorization request

        Returns:
            AuthorizationDecision; never raises for an expected outcome
        """
        decision = self._evaluate(principal, request)
        logger.debug(
            "Authorization %s for user=%s mode=%s tokens=%s gate=%s reason=%s",
            "allowed" if decision.allow else "denied",
            principal.user_id,
            request.mode.value,
            sorted(str(getattr(t, "value", t)) for t in request.tokens),
            request.status_gate,
            decision.reason.value,
        )
        return decision

    def _evaluate(self, principal: Principal, request: AuthorizationRequest) -> AuthorizationDecision:
        # Anonymous-only content is shown exactly when nobody is signed in
        if request.anonymous_visible:
            if principal.is_authenticated:
                return AuthorizationDecision.deny(DecisionReason.ANONYMOUS_ONLY)
            return AuthorizationDecision.permit()

        if not principal.is_authenticated:
            return AuthorizationDecision.deny(DecisionReason.NOT_AUTHENTICATED)

        if principal.is_admin:
            return AuthorizationDecision.permit(DecisionReason.ADMIN_BYPASS)

        base = self._base_decision(principal, request)
        if not base.allow:
            return base

        if not self._status_allowed(principal, request.status_gate):
            return AuthorizationDecision.deny(DecisionReason.STATUS_NOT_ALLOWED)

        return AuthorizationDecision.permit()

    def _base_decision(self, principal: Principal, request: AuthorizationRequest) -> AuthorizationDecision:
        if request.mode is AuthorizationMode.NONE:
            return AuthorizationDecision.permit()

        if request.mode is AuthorizationMode.WORKSPACE:
            if principal.is_disabled:
                return AuthorizationDecision.deny(DecisionReason.USER_DISABLED)
            for workspace in request.tokens:
                if principal.roles & self.catalog.roles_for_workspace(workspace):
                    return AuthorizationDecision.permit()
            return AuthorizationDecision.deny(DecisionReason.MISSING_TOKENS)

        held = principal.permissions if request.mode is AuthorizationMode.PERMISSION else principal.roles
        if request.combine is Combine.ALL:
            allowed = request.tokens <= held
        else:
            allowed = bool(request.tokens & held)

        if allowed:
            return AuthorizationDecision.permit()
        return AuthorizationDecision.deny(DecisionReason.MISSING_TOKENS)

    @staticmethod
    def _status_allowed(principal: Principal, gate: Optional[StatusGate]) -> bool:
        if gate is None:
            return True
        wanted = gate.status_value.casefold()
        allowed = principal.allowed_statuses.get(gate.entity_type, frozenset())
        return any(status.casefold() == wanted for status in allowed)


def evaluate(
    principal: Principal,
    request: AuthorizationRequest,
    catalog: Optional[RoleCatalog] = None,
) -> AuthorizationDecision:
    """Evaluate a request with a one-off evaluator."""
    return PolicyEvaluator(catalog).evaluate(principal, request)
