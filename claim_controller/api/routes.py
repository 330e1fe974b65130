"""API route handlers."""

from fastapi import APIRouter, Depends, HTTPException, status
from claim_controller.api.dependencies import get_db
from claim_controller.core.config import settings
from claim_controller.core.errors import StoreError
from claim_controller.schemas.claim import (
    ClaimResponse,
    ErrorResponse,
    ValidateClaimRequest,
    ValidateClaimResponse,
)
from claim_controller.services.admission import (
    AdmissionError,
    OPERATION_UPDATE,
    review_claim,
)


router = APIRouter(
    tags=["Claims"],
)


@router.post(
    "/validate-claim",
    response_model=ValidateClaimResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Malformed admission review"},
    },
)
async def validate_claim(review: ValidateClaimRequest):
    """
    Admission review for claims.

    Creates and deletes are allowed. Updates are rejected when they change
    the desired replica count, an unset count being treated as 1.
    """
    if not settings.admission_enabled:
        return ValidateClaimResponse(uid=review.uid, allowed=True, message="admission disabled")

    target = review.object or review.old_object
    if target is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "INVALID_REVIEW", "message": "Review carries no claim object"},
        )
    if review.operation.upper() == OPERATION_UPDATE and (review.object is None or review.old_object is None):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "INVALID_REVIEW", "message": "Update review needs both old and new claim"},
        )

    try:
        result = review_claim(
            operation=review.operation,
            claim_key=f"{target.namespace}/{target.name}",
            new_replicas=review.object.spec.replicas if review.object else None,
            old_replicas=review.old_object.spec.replicas if review.old_object else None,
        )
    except AdmissionError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "UNSUPPORTED_OPERATION", "message": str(e)},
        )

    return ValidateClaimResponse(uid=review.uid, allowed=result.allowed, message=result.message)


@router.get(
    "/claims/{namespace}/{name}",
    response_model=ClaimResponse,
    responses={
        404: {"model": ErrorResponse, "description": "Claim not found"},
        503: {"model": ErrorResponse, "description": "Object store unavailable"},
    },
)
async def get_claim(namespace: str, name: str, db=Depends(get_db)):
    """Current spec and status of a claim."""
    try:
        claim = await db.get_claim(namespace, name)
    except StoreError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"code": "STORE_UNAVAILABLE", "message": str(e)},
        )

    if claim is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"code": "CLAIM_NOT_FOUND", "message": f"Claim {namespace}/{name} not found"},
        )

    return ClaimResponse.from_claim(claim)
