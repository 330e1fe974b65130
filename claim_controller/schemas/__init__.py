"""API schemas."""

from claim_controller.schemas.claim import (
    ClaimResponse,
    ClaimStatusResponse,
    ConditionResponse,
    ValidateClaimRequest,
    ValidateClaimResponse,
    ErrorResponse,
    ErrorDetail,
)

__all__ = [
    "ClaimResponse",
    "ClaimStatusResponse",
    "ConditionResponse",
    "ValidateClaimRequest",
    "ValidateClaimResponse",
    "ErrorResponse",
    "ErrorDetail",
]
