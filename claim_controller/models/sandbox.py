"""Sandbox domain models."""

from enum import Enum
from typing import Optional

from claim_controller.models.condition import Condition, get_condition

# Exclusive binding label pair written onto a sandbox when a claim takes it
LABEL_CLAIMED_BY = "claim-controller/claimed-by"
LABEL_CLAIMED_BY_NAME = "claim-controller/claimed-by-name"

CONDITION_READY = "Ready"


class SandboxPhase(str, Enum):
    """Sandbox lifecycle phase reported by the runtime."""

    PENDING = "Pending"
    RUNNING = "Running"
    PAUSED = "Paused"
    RESUMING = "Resuming"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    TERMINATING = "Terminating"


class SandboxState(str, Enum):
    """Derived sandbox state, computed from observed fields."""

    CREATING = "Creating"
    AVAILABLE = "Available"
    RUNNING = "Running"
    PAUSED = "Paused"
    DEAD = "Dead"


class Sandbox:
    """Sandbox domain model."""

    def __init__(
        self,
        namespace: str,
        name: str,
        uid: str = "",
        resource_version: str = "",
        labels: Optional[dict] = None,
        owner_pool: Optional[str] = None,
        deletion_requested: bool = False,
        shutdown_time: Optional[int] = None,
        phase: SandboxPhase = SandboxPhase.PENDING,
        pod_ip: str = "",
        conditions: Optional[list] = None,
        paused: bool = False,
    ):
        self.namespace = namespace
        self.name = name
        self.uid = uid
        self.resource_version = resource_version
        self.labels = dict(labels or {})
        self.owner_pool = owner_pool
        self.deletion_requested = deletion_requested
        self.shutdown_time = shutdown_time
        self.phase = phase
        self.pod_ip = pod_ip
        self.conditions: list[Condition] = list(conditions or [])
        self.paused = paused

    @property
    def key(self) -> str:
        """Namespaced name of the sandbox."""
        return f"{self.namespace}/{self.name}"

    def is_controlled_by_pool(self) -> bool:
        """Check if a pool controller still owns this sandbox."""
        return bool(self.owner_pool)

    def is_ready(self) -> bool:
        """Check if the sandbox has an address and a true Ready condition."""
        if not self.pod_ip:
            return False
        ready = get_condition(self.conditions, CONDITION_READY)
        return ready is not None and ready.status is True

    def is_claimed(self) -> bool:
        """Check if any claim holds a binding on this sandbox."""
        return bool(self.labels.get(LABEL_CLAIMED_BY) or self.labels.get(LABEL_CLAIMED_BY_NAME))

    def is_claimed_by(self, claim_uid: str, claim_name: str) -> bool:
        """Check if both binding labels point at the given claim."""
        return (
            self.labels.get(LABEL_CLAIMED_BY) == claim_uid
            and self.labels.get(LABEL_CLAIMED_BY_NAME) == claim_name
        )

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "namespace": self.namespace,
            "name": self.name,
            "uid": self.uid,
            "resource_version": self.resource_version,
            "labels": dict(self.labels),
            "owner_pool": self.owner_pool,
            "deletion_requested": self.deletion_requested,
            "shutdown_time": self.shutdown_time,
            "phase": self.phase.value,
            "pod_ip": self.pod_ip,
            "conditions": [c.to_dict() for c in self.conditions],
            "paused": self.paused,
        }
