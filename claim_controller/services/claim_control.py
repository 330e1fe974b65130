"""Claim phase state machine.

``calculate_claim_status`` decides the next status of a claim from the claim,
its pool descriptor and its current status. When it does not settle the pass
on its own, the phase-specific ``ClaimControl.ensure_*`` step runs and returns
a ``RequeueStrategy`` telling the scheduler when to look at the claim again.
"""

import time
from dataclasses import dataclass
from typing import Callable, Optional

from claim_controller.core.config import settings
from claim_controller.core.events import EVENT_NORMAL, EventRecorder
from claim_controller.core.logging import logger
from claim_controller.core.metrics import claims_cleaned_up_total
from claim_controller.models.claim import (
    CONDITION_COMPLETED,
    CONDITION_TIMED_OUT,
    Claim,
    ClaimPhase,
    ClaimStatus,
    SandboxPool,
)
from claim_controller.models.condition import Condition
from claim_controller.services.matcher import ClaimMatcher

REASON_POOL_NOT_FOUND = "PoolNotFound"
REASON_CLAIM_TIMEOUT_REACHED = "ClaimTimeoutReached"
REASON_TIMEOUT_REACHED = "TimeoutReached"
REASON_ALL_REPLICAS_CLAIMED = "AllReplicasClaimed"

MESSAGE_POOL_NOT_FOUND = "SandboxPool not found or deleted"


@dataclass(frozen=True)
class RequeueStrategy:
    """When the scheduler should evaluate a claim again."""

    immediate: bool = False
    after: float = 0.0

    @classmethod
    def no_requeue(cls) -> "RequeueStrategy":
        return cls()

    @classmethod
    def requeue_immediately(cls) -> "RequeueStrategy":
        return cls(immediate=True)

    @classmethod
    def requeue_after(cls, seconds: float) -> "RequeueStrategy":
        if seconds <= 0:
            return cls(immediate=True)
        return cls(after=seconds)

    @property
    def requeue(self) -> bool:
        """Whether any requeue is requested."""
        return self.immediate or self.after > 0


def _now(now: Optional[float]) -> int:
    return int(time.time() if now is None else now)


def set_condition(conditions: Optional[list], new_condition: Condition):
    """
    Set or update a condition in a condition list.

    Replaces the first entry with the same type in place, otherwise appends.
    Other entries keep their order. A ``None`` list is left alone.
    ``last_transition_time`` is taken from ``new_condition`` on every call,
    even when nothing else changed.
    """
    if conditions is None:
        return

    for i, condition in enumerate(conditions):
        if condition.type == new_condition.type:
            conditions[i] = new_condition
            return

    conditions.append(new_condition)


def is_claim_timeout(claim: Claim, status: ClaimStatus, now: Optional[float] = None) -> bool:
    """Check if the claim has run past its timeout since it started claiming."""
    if claim.claim_timeout_seconds is None or status.claim_start_time is None:
        return False
    elapsed = _now(now) - status.claim_start_time
    # A start time in the future (clock skew) never counts as timed out
    if elapsed < 0:
        return False
    return elapsed >= claim.claim_timeout_seconds


def is_replicas_met(claim: Claim, status: ClaimStatus) -> bool:
    """Check if the desired number of replicas has been claimed."""
    return status.claimed_replicas >= claim.get_desired_replicas()


def transition_to_completed(
    status: ClaimStatus, reason: str, message: str, now: Optional[float] = None
) -> ClaimStatus:
    """Move a status to Completed with a generic reason."""
    now = _now(now)
    status.phase = ClaimPhase.COMPLETED
    status.message = message
    status.completion_time = now

    set_condition(
        status.conditions,
        Condition(
            type=CONDITION_COMPLETED,
            status=True,
            reason=reason,
            message=message,
            last_transition_time=now,
        ),
    )
    return status


def transition_to_completed_with_timeout(
    status: ClaimStatus, elapsed: float, claim: Claim, now: Optional[float] = None
) -> ClaimStatus:
    """Move a status to Completed because the claim timed out."""
    now = _now(now)
    desired = claim.get_desired_replicas()

    status.phase = ClaimPhase.COMPLETED
    status.message = (
        f"Timeout reached after {elapsed}s, claimed {status.claimed_replicas}/{desired} sandboxes"
    )
    status.completion_time = now

    set_condition(
        status.conditions,
        Condition(
            type=CONDITION_TIMED_OUT,
            status=True,
            reason=REASON_CLAIM_TIMEOUT_REACHED,
            message=f"Timeout after {elapsed}s, claimed {status.claimed_replicas}/{desired}",
            last_transition_time=now,
        ),
    )
    set_condition(
        status.conditions,
        Condition(
            type=CONDITION_COMPLETED,
            status=True,
            reason=REASON_TIMEOUT_REACHED,
            message=status.message,
            last_transition_time=now,
        ),
    )
    return status


def transition_to_completed_with_success(
    status: ClaimStatus, claim: Claim, now: Optional[float] = None
) -> ClaimStatus:
    """Move a status to Completed after every desired replica was claimed."""
    now = _now(now)
    desired = claim.get_desired_replicas()

    status.phase = ClaimPhase.COMPLETED
    status.message = f"Successfully claimed {status.claimed_replicas}/{desired} sandboxes"
    status.completion_time = now

    set_condition(
        status.conditions,
        Condition(
            type=CONDITION_COMPLETED,
            status=True,
            reason=REASON_ALL_REPLICAS_CLAIMED,
            message=f"Successfully claimed all {status.claimed_replicas} sandboxes",
            last_transition_time=now,
        ),
    )
    return status


def calculate_claim_status(
    claim: Claim,
    pool: Optional[SandboxPool],
    status: ClaimStatus,
    now: Optional[float] = None,
) -> tuple[ClaimStatus, bool]:
    """
    Determine the next status of a claim and whether to skip business logic.

    ``status`` is the caller's working copy and is updated in place.

    Handled scenarios, in order:
      1. New claim (NOT_STARTED)   -> Claiming, continue
      2. Already Completed         -> Completed, continue (TTL cleanup)
      3. Pool not found            -> Completed, skip
      4. Timeout exceeded          -> Completed, skip
      5. All replicas claimed      -> Completed, skip
      6. Otherwise                 -> unchanged, continue

    Returns:
        Tuple of (status, skip_business_logic)
    """
    now = _now(now)

    # Always track spec changes
    status.observed_generation = claim.generation

    if status.phase == ClaimPhase.NOT_STARTED:
        logger.info(
            f"Initializing claim {claim.key}, desired replicas {claim.get_desired_replicas()}",
            extra={"claim": claim.key, "action": "calculate_status", "phase": ClaimPhase.CLAIMING.value},
        )
        status.phase = ClaimPhase.CLAIMING
        status.claim_start_time = now
        return status, False

    if status.phase == ClaimPhase.COMPLETED:
        # Completed is absorbing, but ensure_claim_completed still runs for TTL cleanup
        return status, False

    if pool is None:
        logger.info(
            f"Pool {claim.pool_name} not found for claim {claim.key}",
            extra={"claim": claim.key, "pool": claim.pool_name, "reason": REASON_POOL_NOT_FOUND},
        )
        return transition_to_completed(
            status, REASON_POOL_NOT_FOUND, MESSAGE_POOL_NOT_FOUND, now=now
        ), True

    if is_claim_timeout(claim, status, now=now):
        elapsed = now - status.claim_start_time
        logger.info(
            f"Claim {claim.key} timed out after {elapsed}s "
            f"({status.claimed_replicas}/{claim.get_desired_replicas()} claimed)",
            extra={"claim": claim.key, "reason": REASON_CLAIM_TIMEOUT_REACHED},
        )
        return transition_to_completed_with_timeout(status, elapsed, claim, now=now), True

    if is_replicas_met(claim, status):
        logger.info(
            f"Claim {claim.key} has all {claim.get_desired_replicas()} replicas",
            extra={"claim": claim.key, "reason": REASON_ALL_REPLICAS_CLAIMED},
        )
        return transition_to_completed_with_success(status, claim, now=now), True

    return status, False


class ClaimControl:
    """Phase-specific side effects of claim reconciliation."""

    def __init__(
        self,
        db,
        recorder: EventRecorder,
        matcher: ClaimMatcher,
        clock: Callable[[], float] = time.time,
    ):
        self.db = db
        self.recorder = recorder
        self.matcher = matcher
        self.clock = clock

    async def ensure(
        self,
        phase: ClaimPhase,
        claim: Claim,
        pool: Optional[SandboxPool],
        status: ClaimStatus,
    ) -> RequeueStrategy:
        """Run the ensure step for the phase the claim was observed in."""
        if phase == ClaimPhase.NOT_STARTED:
            return await self.ensure_claim_pending(claim, pool, status)
        if phase == ClaimPhase.CLAIMING:
            return await self.ensure_claim_claiming(claim, pool, status)
        if phase == ClaimPhase.COMPLETED:
            return await self.ensure_claim_completed(claim, pool, status)
        raise ValueError(f"Unknown claim phase: {phase!r}")

    async def ensure_claim_pending(
        self, claim: Claim, pool: Optional[SandboxPool], status: ClaimStatus
    ) -> RequeueStrategy:
        """Start claiming and come straight back."""
        status.phase = ClaimPhase.CLAIMING
        if status.claim_start_time is None:
            status.claim_start_time = _now(self.clock())

        self.recorder.event(claim.key, EVENT_NORMAL, "ClaimStarted", "Started claiming sandboxes")
        return RequeueStrategy.requeue_immediately()

    async def ensure_claim_claiming(
        self, claim: Claim, pool: Optional[SandboxPool], status: ClaimStatus
    ) -> RequeueStrategy:
        """
        Refresh the claimed replica count, binding more sandboxes if short.

        Returns an immediate requeue once the count satisfies the claim so the
        next pass completes it, otherwise a delayed requeue to poll again.

        Raises:
            StoreError: Counting or binding failed; status must not be persisted
        """
        desired = claim.get_desired_replicas()
        claimed = await self.matcher.count_bound_sandboxes(claim)

        if claimed < desired and pool is not None:
            newly_bound = await self.matcher.bind_available_sandboxes(claim, pool, desired - claimed)
            if newly_bound:
                self.recorder.event(
                    claim.key,
                    EVENT_NORMAL,
                    "SandboxesClaimed",
                    f"Claimed {newly_bound} sandbox(es), {claimed + newly_bound}/{desired} total",
                )
            claimed += newly_bound

        status.claimed_replicas = claimed

        if claimed >= desired:
            return RequeueStrategy.requeue_immediately()
        return RequeueStrategy.requeue_after(settings.claiming_requeue_delay_sec)

    async def ensure_claim_completed(
        self, claim: Claim, pool: Optional[SandboxPool], status: ClaimStatus
    ) -> RequeueStrategy:
        """Delete the claim once its post-completion TTL has run out."""
        ttl = claim.ttl_after_completed_seconds
        if ttl is None:
            return RequeueStrategy.no_requeue()

        if status.completion_time is None:
            logger.warning(
                f"Completed claim {claim.key} has no completion time, skipping TTL cleanup",
                extra={"claim": claim.key, "action": "ttl_cleanup"},
            )
            return RequeueStrategy.no_requeue()

        elapsed = max(0, _now(self.clock()) - status.completion_time)
        if elapsed < ttl:
            return RequeueStrategy.requeue_after(ttl - elapsed)

        deleted = await self.db.delete_claim(claim.namespace, claim.name)
        if deleted:
            claims_cleaned_up_total.inc()
            self.recorder.event(
                claim.key,
                EVENT_NORMAL,
                "ClaimCleanedUp",
                f"Deleted completed claim after TTL of {ttl}s",
            )
        return RequeueStrategy.no_requeue()
