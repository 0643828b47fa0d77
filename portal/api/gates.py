"""Authorization consumers.

``is_visible`` answers render-time questions ("show this link?") and
``RequireAuthorization`` enforces the same requirement at request time.
Both build their request with ``AuthorizationRequest.build`` and ask the
same evaluator, so what a page shows and what the API accepts never
disagree.
"""

from typing import Any, Optional

from fastapi import Depends, HTTPException, status

from portal.api.deps import get_evaluator, get_principal
from portal.core.policy.engine import AuthorizationDecision, PolicyEvaluator
from portal.core.policy.requests import AuthorizationRequest
from portal.core.rbac.claims import Principal


def is_visible(principal: Principal, evaluator: PolicyEvaluator, **requirement: Any) -> bool:
    """
    Decide whether a piece of UI should be shown.

    Usage:
        is_visible(principal, evaluator,
                   permission="sponsor.modifications.authorise",
                   status_entity="modification", status_value=record.status)

    Raises:
        ConfigurationError: If the requirement is malformed
    """
    return evaluator.evaluate(principal, AuthorizationRequest.build(**requirement)).allow


def enforce(
    principal: Principal,
    evaluator: PolicyEvaluator,
    request: AuthorizationRequest,
) -> AuthorizationDecision:
    """Evaluate a request and raise 401/403 on deny."""
    decision = evaluator.evaluate(principal, request)
    if decision.allow:
        return decision
    if not principal.is_authenticated:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="Insufficient permissions",
    )


class RequireAuthorization:
    """
    FastAPI dependency enforcing an authorization requirement.

    The requirement is validated when the dependency is created, so a
    malformed one fails at import time rather than on first request.

    Usage:
        @router.get("/sponsor", dependencies=[Depends(RequireAuthorization(workspace="sponsor"))])
        async def sponsor_home():
            ...

        @router.post("/x", dependencies=[Depends(RequireAuthorization.policy("myresearch.modifications.submit"))])
        async def submit():
            ...
    """

    def __init__(self, request: Optional[AuthorizationRequest] = None, **requirement: Any):
        self.request = request or AuthorizationRequest.build(**requirement)

    @classmethod
    def policy(cls, name: str) -> "RequireAuthorization":
        """Dependency for a named workspace or permission policy."""
        return cls(AuthorizationRequest.from_policy_name(name))

    def __call__(
        self,
        principal: Principal = Depends(get_principal),
        evaluator: PolicyEvaluator = Depends(get_evaluator),
    ) -> Principal:
        enforce(principal, evaluator, self.request)
        return principal
