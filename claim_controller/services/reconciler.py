"""Claim reconciler: load, decide, persist."""

import time
from typing import Optional

from claim_controller.core.errors import ConflictError, NotFoundError
from claim_controller.core.logging import log_reconcile
from claim_controller.core.metrics import (
    phase_transitions_total,
    reconcile_latency,
    reconcile_total,
)
from claim_controller.models.claim import CONDITION_COMPLETED, Claim, ClaimPhase, ClaimStatus
from claim_controller.models.condition import get_condition
from claim_controller.services.claim_control import (
    MESSAGE_POOL_NOT_FOUND,
    REASON_POOL_NOT_FOUND,
    ClaimControl,
    RequeueStrategy,
    calculate_claim_status,
    transition_to_completed,
)


class Reconciler:
    """
    Runs one reconciliation pass for a claim.

    A pass reads the claim and its pool, computes the next status, runs the
    ensure step for the phase the claim was observed in, and writes the
    status back with a version check. Store errors propagate to the caller,
    which retries the pass later.
    """

    def __init__(self, db, control: ClaimControl):
        self.db = db
        self.control = control

    async def reconcile(self, namespace: str, name: str) -> RequeueStrategy:
        """
        Reconcile the claim ``namespace/name``.

        Returns:
            When the claim should be looked at again

        Raises:
            ConflictError: The claim changed while the pass ran
            StoreError: Any other object store failure
        """
        key = f"{namespace}/{name}"
        start_time = time.time()

        try:
            claim = await self.db.get_claim(namespace, name)
            if claim is None:
                # Nothing to reconcile
                self._record(key, "not_found", start_time, message=f"Claim {key} not found")
                return RequeueStrategy.no_requeue()

            pool = await self.db.get_pool(claim.namespace, claim.pool_name)

            observed_phase = claim.status.phase
            now = self.control.clock()
            new_status, skip = calculate_claim_status(claim, pool, claim.status.copy(), now=now)

            if pool is None and observed_phase == ClaimPhase.NOT_STARTED:
                # A new claim whose pool is already gone completes in this same pass
                new_status = transition_to_completed(
                    new_status, REASON_POOL_NOT_FOUND, MESSAGE_POOL_NOT_FOUND, now=now
                )
                skip = True

            if skip:
                # Terminal for this pass: persist first, then hand over to the Completed step
                if not await self._persist(claim, new_status):
                    self._record(key, "not_found", start_time, message=f"Claim {key} deleted during pass")
                    return RequeueStrategy.no_requeue()
                strategy = await self.control.ensure_claim_completed(claim, pool, new_status)
            else:
                strategy = await self.control.ensure(observed_phase, claim, pool, new_status)
                if new_status != claim.status and not await self._persist(claim, new_status):
                    self._record(key, "not_found", start_time, message=f"Claim {key} deleted during pass")
                    return RequeueStrategy.no_requeue()

            if new_status.phase != observed_phase:
                phase_transitions_total.labels(
                    phase=new_status.phase.value,
                    reason=self._transition_reason(new_status),
                ).inc()

            self._record(
                key,
                "success",
                start_time,
                phase=new_status.phase.value,
                message=f"Reconciled claim {key}: phase={new_status.phase.value} "
                f"claimed={new_status.claimed_replicas}/{claim.get_desired_replicas()}",
            )
            return strategy

        except ConflictError as e:
            reconcile_total.labels(outcome="conflict").inc()
            reconcile_latency.labels(outcome="conflict").observe(time.time() - start_time)
            log_reconcile(
                claim=key,
                action="reconcile",
                outcome="conflict",
                message=f"Claim {key} changed during reconcile, will retry: {e}",
            )
            raise
        except Exception as e:
            reconcile_total.labels(outcome="error").inc()
            reconcile_latency.labels(outcome="error").observe(time.time() - start_time)
            log_reconcile(
                claim=key,
                action="reconcile",
                outcome="error",
                error=str(e),
                message=f"Reconcile of claim {key} failed: {e}",
            )
            raise

    async def _persist(self, claim: Claim, status: ClaimStatus) -> bool:
        """Write the status with a version check. Returns False if the claim is gone."""
        try:
            claim.resource_version = await self.db.update_claim_status(claim, status)
        except NotFoundError:
            return False
        claim.status = status
        return True

    @staticmethod
    def _transition_reason(status: ClaimStatus) -> str:
        completed = get_condition(status.conditions, CONDITION_COMPLETED)
        if completed is not None:
            return completed.reason
        return "ClaimStarted"

    @staticmethod
    def _record(
        key: str,
        outcome: str,
        start_time: float,
        phase: Optional[str] = None,
        message: Optional[str] = None,
    ):
        reconcile_total.labels(outcome=outcome).inc()
        reconcile_latency.labels(outcome=outcome).observe(time.time() - start_time)
        log_reconcile(
            claim=key,
            action="reconcile",
            outcome=outcome,
            phase=phase,
            latency_ms=int((time.time() - start_time) * 1000),
            message=message,
        )
