from functools import lru_cache
from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from portal.core.config import Settings, get_settings
from portal.core.modification.service import ModificationReviewService
from portal.core.policy.engine import PolicyEvaluator
from portal.core.rbac.catalog import CatalogHolder
from portal.core.rbac.claims import ClaimsExpander, IdentityClaims, Principal
from portal.db.repository import SqlRecordStore
from portal.db.session import get_db

ANONYMOUS_CLAIMS = IdentityClaims(authenticated=False)


@lru_cache
def get_catalog_holder() -> CatalogHolder:
    """Process-wide catalog holder, loaded once at first use."""
    settings = get_settings()
    return CatalogHolder(path=settings.catalog_path)


def get_evaluator(holder: CatalogHolder = Depends(get_catalog_holder)) -> PolicyEvaluator:
    """Evaluator bound to the catalog snapshot current at request start."""
    return PolicyEvaluator(holder.current)


def get_claims(request: Request) -> IdentityClaims:
    """Claims placed on the request by the upstream authentication layer."""
    claims: Optional[IdentityClaims] = getattr(request.state, "claims", None)
    return claims or ANONYMOUS_CLAIMS


def get_principal(
    claims: IdentityClaims = Depends(get_claims),
    evaluator: PolicyEvaluator = Depends(get_evaluator),
) -> Principal:
    """Expand claims once per request against the same snapshot the evaluator uses."""
    return ClaimsExpander(evaluator.catalog).expand(claims)


def get_record_store(db: Session = Depends(get_db)) -> SqlRecordStore:
    return SqlRecordStore(db)


def get_review_service(
    request: Request,
    store: SqlRecordStore = Depends(get_record_store),
    evaluator: PolicyEvaluator = Depends(get_evaluator),
    settings: Settings = Depends(get_settings),
) -> ModificationReviewService:
    service = ModificationReviewService(store, evaluator, settings.feature_flags())
    for callback in getattr(request.app.state, "review_body_callbacks", []):
        service.on_review_body_submission(callback)
    return service
