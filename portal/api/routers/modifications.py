"""Modification review API endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, field_validator

from portal.api.deps import get_evaluator, get_review_service
from portal.api.gates import RequireAuthorization, enforce
from portal.core.modification import (
    ErrorCode,
    ModificationRecord,
    ModificationReviewService,
    RecordNotFoundError,
    ReviewOutcome,
    TransitionRequest,
    TransitionResult,
)
from portal.core.policy.engine import PolicyEvaluator
from portal.core.policy.requests import AuthorizationRequest, Combine
from portal.core.rbac.claims import Principal
from portal.core.rbac.permissions import EntityType, Permissions
from portal.core.statuses import ModificationStatus

router = APIRouter(prefix="/modifications", tags=["modifications"])

# Anyone who may open a modification from one of the workspaces
READ_PERMISSIONS = [
    Permissions.MyResearch.MODIFICATIONS_READ,
    Permissions.Sponsor.MODIFICATIONS_REVIEW,
    Permissions.Approvals.MODIFICATIONS_REVIEW,
]

require_read = RequireAuthorization(permissions=READ_PERMISSIONS, combine=Combine.ANY)
require_signed_in = RequireAuthorization()

_ERROR_STATUS = {
    ErrorCode.PERMISSION_DENIED: status.HTTP_403_FORBIDDEN,
    ErrorCode.FEATURE_DISABLED: status.HTTP_404_NOT_FOUND,
    ErrorCode.INVALID_SOURCE_STATE: status.HTTP_409_CONFLICT,
    ErrorCode.DUPLICATE_REQUEST: status.HTTP_409_CONFLICT,
    ErrorCode.STALE_STATE_CONFLICT: status.HTTP_409_CONFLICT,
    ErrorCode.MISSING_REQUIRED_FIELD: status.HTTP_422_UNPROCESSABLE_ENTITY,
}


# Schemas
class ModificationResponse(BaseModel):
    id: str
    project_record_id: str
    status: str
    display_status: str
    review_type: Optional[str] = None
    revision_description: Optional[str] = None
    reason_not_approved: Optional[str] = None
    reviewer_name: Optional[str] = None
    version: int

    @classmethod
    def from_record(cls, record: ModificationRecord) -> "ModificationResponse":
        return cls(
            id=record.id,
            project_record_id=record.project_record_id,
            status=record.status.value,
            display_status=record.display_status,
            review_type=record.review_type,
            revision_description=record.revision_description,
            reason_not_approved=record.reason_not_approved,
            reviewer_name=record.reviewer_name,
            version=record.version,
        )


class DecisionRequest(BaseModel):
    outcome: ReviewOutcome
    observed_status: str
    review_type: Optional[str] = None
    revision_description: Optional[str] = None
    reason_not_approved: Optional[str] = None

    @field_validator("observed_status")
    @classmethod
    def validate_observed_status(cls, value: str) -> str:
        # Display labels are not statuses
        return ModificationStatus.parse(value).value


class DecisionResponse(BaseModel):
    record_id: str
    old_status: str
    new_status: str
    applied: bool
    follow_up: Optional[str] = None

    @classmethod
    def from_result(cls, result: TransitionResult) -> "DecisionResponse":
        return cls(
            record_id=result.record_id,
            old_status=result.old_status.value,
            new_status=result.new_status.value,
            applied=result.applied,
            follow_up=result.follow_up.value if result.follow_up else None,
        )


def _load(service: ModificationReviewService, modification_id: str) -> ModificationRecord:
    try:
        return service.get(modification_id)
    except RecordNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Modification not found")


# Endpoints
@router.get("/{modification_id}", response_model=ModificationResponse)
async def get_modification(
    modification_id: str,
    principal: Principal = Depends(require_read),
    evaluator: PolicyEvaluator = Depends(get_evaluator),
    service: ModificationReviewService = Depends(get_review_service),
):
    """Get a modification, if its current status is visible to the caller."""
    record = _load(service, modification_id)

    enforce(
        principal,
        evaluator,
        AuthorizationRequest.build(
            permissions=READ_PERMISSIONS,
            status_entity=EntityType.MODIFICATION,
            status_value=record.status.value,
        ),
    )
    return ModificationResponse.from_record(record)


@router.post("/{modification_id}/decision", response_model=DecisionResponse)
async def decide_modification(
    modification_id: str,
    body: DecisionRequest,
    principal: Principal = Depends(require_signed_in),
    service: ModificationReviewService = Depends(get_review_service),
):
    """Apply a review decision to a modification.

    Whether the caller is an authoriser comes from their identity claims.
    """
    request = TransitionRequest(
        record_id=modification_id,
        observed_status=ModificationStatus.parse(body.observed_status),
        outcome=body.outcome,
        actor_id=principal.user_id,
        is_authoriser=principal.is_authoriser,
        review_type=body.review_type,
        revision_description=body.revision_description,
        reason_not_approved=body.reason_not_approved,
    )

    try:
        result = service.decide(principal, request)
    except RecordNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Modification not found")

    if result.error is not None:
        raise HTTPException(
            status_code=_ERROR_STATUS[result.error],
            detail={
                "error": result.error.value,
                "field": result.field,
                "follow_up": result.follow_up.value if result.follow_up else None,
            },
        )

    return DecisionResponse.from_result(result)
