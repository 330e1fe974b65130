"""Admission checks for claim create/update/delete requests."""

from dataclasses import dataclass
from typing import Optional

from claim_controller.core.logging import logger
from claim_controller.core.metrics import admission_total
from claim_controller.models.claim import DEFAULT_REPLICAS

OPERATION_CREATE = "CREATE"
OPERATION_UPDATE = "UPDATE"
OPERATION_DELETE = "DELETE"


class AdmissionError(Exception):
    """Raised when an admission request cannot be evaluated."""

    pass


@dataclass(frozen=True)
class AdmissionResult:
    """Outcome of an admission review."""

    allowed: bool
    message: str = ""


def _effective_replicas(replicas: Optional[int]) -> int:
    return replicas if replicas is not None else DEFAULT_REPLICAS


def validate_claim_update(old_replicas: Optional[int], new_replicas: Optional[int]) -> AdmissionResult:
    """Reject any change to the desired replica count (unset counts as 1)."""
    old_value = _effective_replicas(old_replicas)
    new_value = _effective_replicas(new_replicas)

    if old_value != new_value:
        return AdmissionResult(
            allowed=False,
            message=f"spec.replicas is immutable, cannot change from {old_value} to {new_value}",
        )
    return AdmissionResult(allowed=True)


def review_claim(
    operation: str,
    claim_key: str,
    new_replicas: Optional[int] = None,
    old_replicas: Optional[int] = None,
) -> AdmissionResult:
    """
    Review a claim admission request.

    Creates and deletes are always allowed; updates must keep the replica count.

    Raises:
        AdmissionError: Unsupported operation
    """
    operation = operation.upper()

    if operation == OPERATION_UPDATE:
        result = validate_claim_update(old_replicas, new_replicas)
    elif operation in (OPERATION_CREATE, OPERATION_DELETE):
        result = AdmissionResult(allowed=True)
    else:
        raise AdmissionError(f"unsupported operation: {operation}")

    admission_total.labels(operation=operation, allowed=str(result.allowed).lower()).inc()
    if not result.allowed:
        logger.info(
            f"Rejecting claim {operation.lower()} for {claim_key}: {result.message}",
            extra={"claim": claim_key, "action": "admission", "outcome": "denied"},
        )
    return result
