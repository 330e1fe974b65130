"""Pydantic schemas for API requests and responses."""

from typing import Optional
from pydantic import BaseModel, Field
from claim_controller.models.claim import Claim, ClaimPhase


# Request Schemas
class ClaimSpec(BaseModel):
    """Desired state fields of a claim relevant to admission."""

    replicas: Optional[int] = Field(None, ge=0, description="Desired sandbox count (unset means 1)")


class ClaimReviewObject(BaseModel):
    """Claim as submitted in an admission review."""

    namespace: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    spec: ClaimSpec = Field(default_factory=ClaimSpec)


class ValidateClaimRequest(BaseModel):
    """Admission review request for a claim create/update/delete."""

    uid: str = Field(..., description="Review identifier echoed back in the response")
    operation: str = Field(..., description="CREATE, UPDATE or DELETE")
    object: Optional[ClaimReviewObject] = Field(None, description="Claim after the change")
    old_object: Optional[ClaimReviewObject] = Field(None, description="Claim before the change")


# Response Schemas
class ValidateClaimResponse(BaseModel):
    """Admission review verdict."""

    uid: str
    allowed: bool
    message: str = ""


class ConditionResponse(BaseModel):
    """Condition entry on a claim status."""

    type: str
    status: bool
    reason: str = ""
    message: str = ""
    last_transition_time: Optional[int] = None


class ClaimStatusResponse(BaseModel):
    """Observed state of a claim."""

    phase: ClaimPhase
    observed_generation: int = 0
    claim_start_time: Optional[int] = None
    claimed_replicas: int = 0
    completion_time: Optional[int] = None
    message: str = ""
    conditions: list[ConditionResponse] = []


class ClaimResponse(BaseModel):
    """Claim with its spec and status."""

    namespace: str
    name: str
    uid: str
    generation: int
    pool_name: str
    replicas: int = Field(..., description="Effective desired replica count")
    claim_timeout_seconds: Optional[float] = None
    ttl_after_completed_seconds: Optional[float] = None
    resource_version: str
    status: ClaimStatusResponse

    @classmethod
    def from_claim(cls, claim: Claim) -> "ClaimResponse":
        data = claim.to_dict()
        data["replicas"] = claim.get_desired_replicas()
        return cls(**data)


# Error Response Schema
class ErrorDetail(BaseModel):
    """Error detail schema."""

    code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")
    request_id: Optional[str] = Field(None, description="Request ID for tracking")


class ErrorResponse(BaseModel):
    """Standard error response."""

    error: ErrorDetail
