"""Unit tests for the phase-specific ensure steps."""

import pytest
from unittest.mock import AsyncMock, Mock
from claim_controller.core.config import settings
from claim_controller.core.errors import StoreError
from claim_controller.models.claim import ClaimPhase
from claim_controller.services.claim_control import ClaimControl, RequeueStrategy
from claim_controller.services.matcher import ClaimMatcher


@pytest.fixture
def matcher():
    """Matcher with mocked counting and binding."""
    matcher = Mock(spec=ClaimMatcher)
    matcher.count_bound_sandboxes = AsyncMock(return_value=0)
    matcher.bind_available_sandboxes = AsyncMock(return_value=0)
    return matcher


@pytest.fixture
def control(mock_db, recorder, matcher, now):
    """ClaimControl with a fixed clock."""
    return ClaimControl(mock_db, recorder, matcher, clock=lambda: now)


@pytest.mark.asyncio
async def test_ensure_pending_starts_claiming(control, claim_factory, pool, recorder, now):
    """Test the pending step sets Claiming and asks to come straight back."""
    claim = claim_factory()
    status = claim.status.copy()

    strategy = await control.ensure_claim_pending(claim, pool, status)

    assert strategy == RequeueStrategy.requeue_immediately()
    assert status.phase == ClaimPhase.CLAIMING
    assert status.claim_start_time == now
    recorder.event.assert_called_once()


@pytest.mark.asyncio
async def test_ensure_pending_keeps_existing_start_time(control, claim_factory, pool, now):
    """Test an already set start time is not moved."""
    claim = claim_factory(claim_start_time=now - 30)
    status = claim.status.copy()

    await control.ensure_claim_pending(claim, pool, status)

    assert status.claim_start_time == now - 30


@pytest.mark.asyncio
async def test_ensure_claiming_short_binds_and_polls(control, matcher, claim_factory, pool):
    """Test a short claim binds what it can and polls again later."""
    matcher.count_bound_sandboxes.return_value = 2
    matcher.bind_available_sandboxes.return_value = 3
    claim = claim_factory(phase=ClaimPhase.CLAIMING, replicas=10)
    status = claim.status.copy()

    strategy = await control.ensure_claim_claiming(claim, pool, status)

    matcher.bind_available_sandboxes.assert_awaited_once_with(claim, pool, 8)
    assert status.claimed_replicas == 5
    assert strategy == RequeueStrategy.requeue_after(settings.claiming_requeue_delay_sec)


@pytest.mark.asyncio
async def test_ensure_claiming_met_requeues_immediately(control, matcher, claim_factory, pool):
    """Test reaching the desired count asks for an immediate pass."""
    matcher.count_bound_sandboxes.return_value = 1
    matcher.bind_available_sandboxes.return_value = 1
    claim = claim_factory(phase=ClaimPhase.CLAIMING, replicas=2)
    status = claim.status.copy()

    strategy = await control.ensure_claim_claiming(claim, pool, status)

    assert status.claimed_replicas == 2
    assert strategy.immediate is True


@pytest.mark.asyncio
async def test_ensure_claiming_already_met_does_not_bind(control, matcher, claim_factory, pool):
    """Test no binding happens once enough sandboxes are bound."""
    matcher.count_bound_sandboxes.return_value = 3
    claim = claim_factory(phase=ClaimPhase.CLAIMING, replicas=3)

    await control.ensure_claim_claiming(claim, pool, claim.status.copy())

    matcher.bind_available_sandboxes.assert_not_awaited()


@pytest.mark.asyncio
async def test_ensure_claiming_count_failure_propagates(control, matcher, claim_factory, pool):
    """Test a failed count aborts the step without touching the status."""
    matcher.count_bound_sandboxes.side_effect = StoreError("list failed")
    claim = claim_factory(phase=ClaimPhase.CLAIMING, replicas=3, claimed_replicas=1)
    status = claim.status.copy()

    with pytest.raises(StoreError):
        await control.ensure_claim_claiming(claim, pool, status)

    assert status.claimed_replicas == 1


@pytest.mark.asyncio
async def test_ensure_completed_without_ttl(control, mock_db, claim_factory, pool, now):
    """Test a completed claim without TTL is left alone."""
    claim = claim_factory(phase=ClaimPhase.COMPLETED, completion_time=now - 10_000)

    strategy = await control.ensure_claim_completed(claim, pool, claim.status.copy())

    assert strategy == RequeueStrategy.no_requeue()
    mock_db.delete_claim.assert_not_awaited()


@pytest.mark.asyncio
async def test_ensure_completed_waits_for_ttl(control, mock_db, claim_factory, pool, now):
    """Test the claim is requeued for the remaining TTL."""
    claim = claim_factory(
        phase=ClaimPhase.COMPLETED, completion_time=now - 20, ttl_after_completed_seconds=60
    )

    strategy = await control.ensure_claim_completed(claim, pool, claim.status.copy())

    assert strategy == RequeueStrategy.requeue_after(40)
    mock_db.delete_claim.assert_not_awaited()


@pytest.mark.asyncio
async def test_ensure_completed_deletes_after_ttl(control, mock_db, recorder, claim_factory, pool, now):
    """Test the claim is deleted once its TTL has passed."""
    mock_db.delete_claim.return_value = True
    claim = claim_factory(
        phase=ClaimPhase.COMPLETED, completion_time=now - 60, ttl_after_completed_seconds=60
    )

    strategy = await control.ensure_claim_completed(claim, pool, claim.status.copy())

    assert strategy == RequeueStrategy.no_requeue()
    mock_db.delete_claim.assert_awaited_once_with("default", "my-claim")
    recorder.event.assert_called_once()


@pytest.mark.asyncio
async def test_ensure_completed_missing_completion_time(control, mock_db, claim_factory, pool):
    """Test a completed claim without a completion time is not cleaned up."""
    claim = claim_factory(phase=ClaimPhase.COMPLETED, ttl_after_completed_seconds=60)

    strategy = await control.ensure_claim_completed(claim, pool, claim.status.copy())

    assert strategy == RequeueStrategy.no_requeue()
    mock_db.delete_claim.assert_not_awaited()


@pytest.mark.asyncio
async def test_ensure_dispatches_by_phase(control, claim_factory, pool):
    """Test ensure runs the step for the given phase."""
    control.ensure_claim_pending = AsyncMock(return_value=RequeueStrategy.requeue_immediately())
    control.ensure_claim_claiming = AsyncMock(return_value=RequeueStrategy.requeue_after(2))
    control.ensure_claim_completed = AsyncMock(return_value=RequeueStrategy.no_requeue())
    claim = claim_factory()

    await control.ensure(ClaimPhase.NOT_STARTED, claim, pool, claim.status)
    await control.ensure(ClaimPhase.CLAIMING, claim, pool, claim.status)
    await control.ensure(ClaimPhase.COMPLETED, claim, pool, claim.status)

    control.ensure_claim_pending.assert_awaited_once()
    control.ensure_claim_claiming.assert_awaited_once()
    control.ensure_claim_completed.assert_awaited_once()
