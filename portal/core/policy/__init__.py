"""Policy evaluation for the submission portal.

Evaluates authorization requests against an expanded principal.
"""

from .requests import (
    AuthorizationMode,
    AuthorizationRequest,
    Combine,
    ConfigurationError,
    StatusGate,
)
from .engine import AuthorizationDecision, DecisionReason, PolicyEvaluator, evaluate

__all__ = [
    "AuthorizationMode",
    "AuthorizationRequest",
    "Combine",
    "ConfigurationError",
    "StatusGate",
    "AuthorizationDecision",
    "DecisionReason",
    "PolicyEvaluator",
    "evaluate",
]
