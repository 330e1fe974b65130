"""Matching sandboxes to claims: counting bound sandboxes and binding new ones."""

import random

from claim_controller.core.logging import logger
from claim_controller.core.metrics import bind_conflicts_total, claims_bound_total
from claim_controller.models.claim import Claim, SandboxPool
from claim_controller.models.sandbox import SandboxState
from claim_controller.services.state import SandboxStateCache


class ClaimMatcher:
    """Counts and binds sandboxes for claims through the object store."""

    def __init__(self, db, state_cache: SandboxStateCache):
        self.db = db
        self.state_cache = state_cache

    async def count_bound_sandboxes(self, claim: Claim) -> int:
        """
        Count sandboxes currently bound to a claim.

        Both binding labels must match, so a sandbox bound to an earlier claim
        that had the same name but a different UID is not counted. Health is
        not considered here.

        Raises:
            StoreError: The list query failed
        """
        sandboxes = await self.db.list_claimed_sandboxes(
            namespace=claim.namespace,
            claim_uid=claim.uid,
            claim_name=claim.name,
        )
        return sum(1 for sandbox in sandboxes if sandbox.is_claimed_by(claim.uid, claim.name))

    async def bind_available_sandboxes(self, claim: Claim, pool: SandboxPool, limit: int) -> int:
        """
        Bind up to ``limit`` available pool sandboxes to a claim.

        Candidates are shuffled so concurrent claims on the same pool spread
        over different sandboxes. Each bind is a version-checked write; a
        candidate that changed underneath us is skipped.

        Returns:
            Number of sandboxes bound by this call
        """
        if limit <= 0:
            return 0

        candidates = [
            sandbox
            for sandbox in await self.db.list_pool_sandboxes(claim.namespace, pool.name)
            if not sandbox.is_claimed()
            and self.state_cache.get(sandbox)[0] == SandboxState.AVAILABLE
        ]
        random.shuffle(candidates)

        bound = 0
        conflicts = 0
        for candidate in candidates:
            if bound >= limit:
                break

            sandbox = await self.db.bind_sandbox(candidate, claim)
            if sandbox is None:
                # Another claim took it, or it changed since we listed it
                conflicts += 1
                continue

            bound += 1
            logger.info(
                f"Bound sandbox {sandbox.key} to claim {claim.key}",
                extra={"claim": claim.key, "sandbox": sandbox.key, "action": "bind"},
            )

        if bound:
            claims_bound_total.inc(bound)
        if conflicts:
            bind_conflicts_total.inc(conflicts)

        return bound
