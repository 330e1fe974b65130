#!/usr/bin/env python3
"""Setup local DynamoDB table and seed it with a pool, ready sandboxes and a claim."""

import asyncio
import time
import uuid
from claim_controller.db.dynamodb import db_client
from claim_controller.models.claim import Claim, SandboxPool
from claim_controller.models.condition import Condition
from claim_controller.models.sandbox import CONDITION_READY, Sandbox, SandboxPhase

NAMESPACE = "default"
POOL_NAME = "python-pool"


async def main():
    """Create table and seed test data."""
    print("🔧 Setting up local DynamoDB...")

    print("📋 Creating table...")
    await db_client.create_table()

    print("🌱 Seeding pool...")
    pool = await db_client.put_pool(SandboxPool(NAMESPACE, POOL_NAME, uid=str(uuid.uuid4())))
    print(f"  ✅ Created pool: {pool.key}")

    print("🌱 Seeding ready sandboxes...")
    now = int(time.time())
    for i in range(1, 11):
        sandbox = Sandbox(
            namespace=NAMESPACE,
            name=f"{POOL_NAME}-{i}",
            uid=str(uuid.uuid4()),
            owner_pool=POOL_NAME,
            phase=SandboxPhase.RUNNING,
            pod_ip=f"10.0.0.{i}",
            conditions=[Condition(CONDITION_READY, True, reason="PodReady", last_transition_time=now)],
        )
        await db_client.put_sandbox(sandbox)
        print(f"  ✅ Created sandbox: {sandbox.key}")

    print("🌱 Seeding claim...")
    claim = await db_client.put_claim(
        Claim(
            namespace=NAMESPACE,
            name="demo-claim",
            pool_name=POOL_NAME,
            uid=str(uuid.uuid4()),
            replicas=3,
            claim_timeout_seconds=300,
            ttl_after_completed_seconds=600,
        )
    )
    print(f"  ✅ Created claim: {claim.key}")

    print("\n📍 You can now:")
    print("  1. Run: python -m claim_controller.jobs.worker")
    print("  2. Run: uvicorn claim_controller.main:app --reload --port 8080")
    print(f"  3. Visit: http://localhost:8080/v1/claims/{NAMESPACE}/demo-claim")


if __name__ == "__main__":
    asyncio.run(main())
