"""Pytest configuration and fixtures."""

import pytest
from unittest.mock import AsyncMock, Mock
from claim_controller.db.dynamodb import DynamoDBClient
from claim_controller.models.claim import Claim, ClaimPhase, ClaimStatus, SandboxPool
from claim_controller.models.condition import Condition
from claim_controller.models.sandbox import (
    CONDITION_READY,
    LABEL_CLAIMED_BY,
    LABEL_CLAIMED_BY_NAME,
    Sandbox,
    SandboxPhase,
)

NOW = 1_700_000_000


@pytest.fixture
def now():
    """Fixed Unix time used as the controller clock."""
    return NOW


@pytest.fixture
def pool():
    """Pool descriptor in the default namespace."""
    return SandboxPool(namespace="default", name="python-pool", uid="pool-uid", resource_version="1")


def make_claim(
    name="my-claim",
    uid="claim-uid",
    replicas=None,
    phase=ClaimPhase.NOT_STARTED,
    claimed_replicas=0,
    claim_start_time=None,
    completion_time=None,
    claim_timeout_seconds=None,
    ttl_after_completed_seconds=None,
    resource_version="7",
):
    """Build a claim against the python-pool pool."""
    return Claim(
        namespace="default",
        name=name,
        pool_name="python-pool",
        uid=uid,
        generation=2,
        replicas=replicas,
        claim_timeout_seconds=claim_timeout_seconds,
        ttl_after_completed_seconds=ttl_after_completed_seconds,
        resource_version=resource_version,
        status=ClaimStatus(
            phase=phase,
            claimed_replicas=claimed_replicas,
            claim_start_time=claim_start_time,
            completion_time=completion_time,
        ),
    )


def make_sandbox(
    name="sbx-1",
    resource_version="1",
    owner_pool="python-pool",
    phase=SandboxPhase.RUNNING,
    pod_ip="10.0.0.1",
    ready=True,
    claimed_by=None,
    claimed_by_name=None,
    **kwargs,
):
    """Build a sandbox; by default a ready sandbox still owned by its pool."""
    labels = {}
    if claimed_by:
        labels[LABEL_CLAIMED_BY] = claimed_by
    if claimed_by_name:
        labels[LABEL_CLAIMED_BY_NAME] = claimed_by_name
    conditions = [Condition(CONDITION_READY, ready, reason="PodReady", last_transition_time=NOW)]
    return Sandbox(
        namespace="default",
        name=name,
        uid=f"{name}-uid",
        resource_version=resource_version,
        labels=labels,
        owner_pool=owner_pool,
        phase=phase,
        pod_ip=pod_ip,
        conditions=conditions,
        **kwargs,
    )


@pytest.fixture
def mock_db():
    """Object store client with every call mocked."""
    db = AsyncMock(spec=DynamoDBClient)
    db.table = Mock()
    return db


@pytest.fixture
def recorder():
    """Event recorder double."""
    return Mock()


@pytest.fixture
def claim_factory():
    """Factory for claims, see ``make_claim``."""
    return make_claim


@pytest.fixture
def sandbox_factory():
    """Factory for sandboxes, see ``make_sandbox``."""
    return make_sandbox
