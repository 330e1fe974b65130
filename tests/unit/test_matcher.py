"""Unit tests for counting and binding sandboxes."""

import pytest
from claim_controller.core.errors import StoreError
from claim_controller.models.sandbox import LABEL_CLAIMED_BY, LABEL_CLAIMED_BY_NAME, SandboxPhase
from claim_controller.services.matcher import ClaimMatcher
from claim_controller.services.state import SandboxStateCache


@pytest.fixture
def matcher(mock_db):
    """Matcher with a fresh state cache."""
    return ClaimMatcher(mock_db, SandboxStateCache())


def _bound(sandbox, claim):
    sandbox.owner_pool = None
    sandbox.labels[LABEL_CLAIMED_BY] = claim.uid
    sandbox.labels[LABEL_CLAIMED_BY_NAME] = claim.name
    return sandbox


@pytest.mark.asyncio
async def test_count_requires_both_labels(matcher, mock_db, claim_factory, sandbox_factory):
    """Test sandboxes of an earlier claim with the same name are not counted."""
    claim = claim_factory()
    mock_db.list_claimed_sandboxes.return_value = [
        sandbox_factory(name="a", owner_pool=None, claimed_by="claim-uid", claimed_by_name="my-claim"),
        sandbox_factory(name="b", owner_pool=None, claimed_by="claim-uid", claimed_by_name="my-claim"),
        sandbox_factory(name="c", owner_pool=None, claimed_by="old-uid", claimed_by_name="my-claim"),
    ]

    assert await matcher.count_bound_sandboxes(claim) == 2
    mock_db.list_claimed_sandboxes.assert_awaited_once_with(
        namespace="default", claim_uid="claim-uid", claim_name="my-claim"
    )


@pytest.mark.asyncio
async def test_count_includes_unhealthy_sandboxes(matcher, mock_db, claim_factory, sandbox_factory):
    """Test health plays no part in the bound count."""
    claim = claim_factory()
    mock_db.list_claimed_sandboxes.return_value = [
        sandbox_factory(
            name="a",
            owner_pool=None,
            phase=SandboxPhase.FAILED,
            claimed_by="claim-uid",
            claimed_by_name="my-claim",
        ),
    ]

    assert await matcher.count_bound_sandboxes(claim) == 1


@pytest.mark.asyncio
async def test_count_failure_propagates(matcher, mock_db, claim_factory):
    """Test list errors surface to the caller."""
    mock_db.list_claimed_sandboxes.side_effect = StoreError("boom")

    with pytest.raises(StoreError):
        await matcher.count_bound_sandboxes(claim_factory())


@pytest.mark.asyncio
async def test_bind_only_available_sandboxes(matcher, mock_db, claim_factory, sandbox_factory, pool):
    """Test only ready, unclaimed pool sandboxes are bound."""
    claim = claim_factory(replicas=5)
    ready = sandbox_factory(name="ready")
    not_ready = sandbox_factory(name="not-ready", ready=False)
    pending = sandbox_factory(name="pending", phase=SandboxPhase.PENDING)
    taken = sandbox_factory(name="taken", claimed_by="other", claimed_by_name="other")
    mock_db.list_pool_sandboxes.return_value = [ready, not_ready, pending, taken]
    mock_db.bind_sandbox.side_effect = lambda sandbox, claim: _bound(sandbox, claim)

    bound = await matcher.bind_available_sandboxes(claim, pool, 5)

    assert bound == 1
    mock_db.bind_sandbox.assert_awaited_once_with(ready, claim)


@pytest.mark.asyncio
async def test_bind_stops_at_limit(matcher, mock_db, claim_factory, sandbox_factory, pool):
    """Test no more than the requested number of sandboxes are bound."""
    claim = claim_factory(replicas=2)
    mock_db.list_pool_sandboxes.return_value = [sandbox_factory(name=f"sbx-{i}") for i in range(5)]
    mock_db.bind_sandbox.side_effect = lambda sandbox, claim: _bound(sandbox, claim)

    assert await matcher.bind_available_sandboxes(claim, pool, 2) == 2
    assert mock_db.bind_sandbox.await_count == 2


@pytest.mark.asyncio
async def test_bind_skips_conflicts(matcher, mock_db, claim_factory, sandbox_factory, pool):
    """Test a candidate lost to another claim is skipped for the next one."""
    claim = claim_factory(replicas=2)
    mock_db.list_pool_sandboxes.return_value = [sandbox_factory(name=f"sbx-{i}") for i in range(3)]
    results = iter([None, True, True])

    def bind(sandbox, claim):
        return _bound(sandbox, claim) if next(results) else None

    mock_db.bind_sandbox.side_effect = bind

    assert await matcher.bind_available_sandboxes(claim, pool, 2) == 2
    assert mock_db.bind_sandbox.await_count == 3


@pytest.mark.asyncio
async def test_bind_nothing_requested(matcher, mock_db, claim_factory, pool):
    """Test a zero limit never queries the pool."""
    assert await matcher.bind_available_sandboxes(claim_factory(), pool, 0) == 0
    mock_db.list_pool_sandboxes.assert_not_awaited()
