"""Claim and pool domain models."""

import copy
from enum import Enum
from typing import Optional

from claim_controller.models.condition import Condition

DEFAULT_REPLICAS = 1

CONDITION_COMPLETED = "Completed"
CONDITION_TIMED_OUT = "TimedOut"


class ClaimPhase(str, Enum):
    """Claim lifecycle phase."""

    NOT_STARTED = ""
    CLAIMING = "Claiming"
    COMPLETED = "Completed"


class ClaimStatus:
    """Derived claim status, persisted separately from the claim spec."""

    def __init__(
        self,
        phase: ClaimPhase = ClaimPhase.NOT_STARTED,
        observed_generation: int = 0,
        claim_start_time: Optional[int] = None,
        claimed_replicas: int = 0,
        completion_time: Optional[int] = None,
        message: str = "",
        conditions: Optional[list] = None,
    ):
        self.phase = phase
        self.observed_generation = observed_generation
        self.claim_start_time = claim_start_time
        self.claimed_replicas = claimed_replicas
        self.completion_time = completion_time
        self.message = message
        self.conditions: list[Condition] = list(conditions or [])

    def copy(self) -> "ClaimStatus":
        """Return an independent deep copy."""
        return copy.deepcopy(self)

    def __eq__(self, other) -> bool:
        if not isinstance(other, ClaimStatus):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "phase": self.phase.value,
            "observed_generation": self.observed_generation,
            "claim_start_time": self.claim_start_time,
            "claimed_replicas": self.claimed_replicas,
            "completion_time": self.completion_time,
            "message": self.message,
            "conditions": [c.to_dict() for c in self.conditions],
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "ClaimStatus":
        """Build a status from its dictionary form."""
        if not data:
            return cls()
        return cls(
            phase=ClaimPhase(data.get("phase", "")),
            observed_generation=int(data.get("observed_generation", 0)),
            claim_start_time=int(data["claim_start_time"]) if data.get("claim_start_time") is not None else None,
            claimed_replicas=int(data.get("claimed_replicas", 0)),
            completion_time=int(data["completion_time"]) if data.get("completion_time") is not None else None,
            message=data.get("message", ""),
            conditions=[Condition.from_dict(c) for c in data.get("conditions", [])],
        )


class Claim:
    """A request for N interchangeable sandboxes from a named pool."""

    def __init__(
        self,
        namespace: str,
        name: str,
        pool_name: str,
        uid: str = "",
        generation: int = 1,
        replicas: Optional[int] = None,
        claim_timeout_seconds: Optional[float] = None,
        ttl_after_completed_seconds: Optional[float] = None,
        resource_version: str = "",
        status: Optional[ClaimStatus] = None,
    ):
        self.namespace = namespace
        self.name = name
        self.pool_name = pool_name
        self.uid = uid
        self.generation = generation
        self.replicas = replicas
        self.claim_timeout_seconds = claim_timeout_seconds
        self.ttl_after_completed_seconds = ttl_after_completed_seconds
        self.resource_version = resource_version
        self.status = status or ClaimStatus()

    @property
    def key(self) -> str:
        """Namespaced name of the claim."""
        return f"{self.namespace}/{self.name}"

    def get_desired_replicas(self) -> int:
        """Desired replica count, defaulting to one when unset."""
        if self.replicas is not None:
            return self.replicas
        return DEFAULT_REPLICAS

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "namespace": self.namespace,
            "name": self.name,
            "uid": self.uid,
            "generation": self.generation,
            "pool_name": self.pool_name,
            "replicas": self.replicas,
            "claim_timeout_seconds": self.claim_timeout_seconds,
            "ttl_after_completed_seconds": self.ttl_after_completed_seconds,
            "resource_version": self.resource_version,
            "status": self.status.to_dict(),
        }


class SandboxPool:
    """Pool descriptor a claim draws sandboxes from. Contents are opaque here."""

    def __init__(self, namespace: str, name: str, uid: str = "", resource_version: str = ""):
        self.namespace = namespace
        self.name = name
        self.uid = uid
        self.resource_version = resource_version

    @property
    def key(self) -> str:
        """Namespaced name of the pool."""
        return f"{self.namespace}/{self.name}"

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "namespace": self.namespace,
            "name": self.name,
            "uid": self.uid,
            "resource_version": self.resource_version,
        }
