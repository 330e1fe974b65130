"""Unit tests for claim status calculation and condition handling."""

import pytest
from claim_controller.models.claim import (
    CONDITION_COMPLETED,
    CONDITION_TIMED_OUT,
    ClaimPhase,
)
from claim_controller.models.condition import Condition, get_condition
from claim_controller.services.claim_control import (
    REASON_ALL_REPLICAS_CLAIMED,
    REASON_CLAIM_TIMEOUT_REACHED,
    REASON_POOL_NOT_FOUND,
    REASON_TIMEOUT_REACHED,
    RequeueStrategy,
    calculate_claim_status,
    is_claim_timeout,
    set_condition,
)


# ---------------------------------------------------------------------------
# set_condition
# ---------------------------------------------------------------------------

def test_set_condition_updates_existing_in_place():
    """Test an existing condition type is replaced without growing the list."""
    conditions = [
        Condition("A", False, reason="Old", last_transition_time=1),
        Condition("B", True, reason="Keep", last_transition_time=1),
    ]

    set_condition(conditions, Condition("A", True, reason="New", message="m", last_transition_time=5))

    assert len(conditions) == 2
    assert conditions[0] == Condition("A", True, reason="New", message="m", last_transition_time=5)
    assert conditions[1].reason == "Keep"


def test_set_condition_appends_new_type():
    """Test a new condition type is appended exactly once."""
    conditions = [Condition("A", True)]

    set_condition(conditions, Condition("B", False, reason="Added"))

    assert [c.type for c in conditions] == ["A", "B"]


def test_set_condition_none_list_is_noop():
    """Test a missing condition list is left alone without error."""
    assert set_condition(None, Condition("A", True)) is None


def test_set_condition_always_takes_new_transition_time():
    """Test the transition time is overwritten even when nothing else changed."""
    conditions = [Condition("A", True, reason="Same", last_transition_time=1)]

    set_condition(conditions, Condition("A", True, reason="Same", last_transition_time=99))

    assert conditions[0].last_transition_time == 99


# ---------------------------------------------------------------------------
# RequeueStrategy
# ---------------------------------------------------------------------------

def test_requeue_strategies():
    """Test the requeue directive constructors."""
    assert RequeueStrategy.no_requeue().requeue is False
    assert RequeueStrategy.requeue_immediately().immediate is True
    assert RequeueStrategy.requeue_after(3).after == 3
    assert RequeueStrategy.requeue_after(3).immediate is False
    assert RequeueStrategy.requeue_after(0) == RequeueStrategy.requeue_immediately()


# ---------------------------------------------------------------------------
# calculate_claim_status
# ---------------------------------------------------------------------------

def test_new_claim_starts_claiming(claim_factory, pool, now):
    """Test a new claim moves to Claiming with a start time."""
    claim = claim_factory()

    status, skip = calculate_claim_status(claim, pool, claim.status.copy(), now=now)

    assert status.phase == ClaimPhase.CLAIMING
    assert status.claim_start_time == now
    assert status.observed_generation == claim.generation
    assert skip is False


def test_calculate_does_not_touch_claim_status(claim_factory, pool, now):
    """Test only the working copy passed in is changed."""
    claim = claim_factory()

    calculate_claim_status(claim, pool, claim.status.copy(), now=now)

    assert claim.status.phase == ClaimPhase.NOT_STARTED
    assert claim.status.claim_start_time is None


def test_completed_is_absorbing(claim_factory, now):
    """Test a completed claim stays completed even without its pool."""
    claim = claim_factory(phase=ClaimPhase.COMPLETED, completion_time=now - 10)

    status, skip = calculate_claim_status(claim, None, claim.status.copy(), now=now)

    assert status.phase == ClaimPhase.COMPLETED
    assert status.completion_time == now - 10
    assert skip is False


@pytest.mark.parametrize("claimed", [0, 3, 10])
def test_pool_not_found_completes(claim_factory, now, claimed):
    """Test a missing pool completes the claim regardless of progress."""
    claim = claim_factory(
        phase=ClaimPhase.CLAIMING, replicas=10, claimed_replicas=claimed, claim_start_time=now - 1
    )

    status, skip = calculate_claim_status(claim, None, claim.status.copy(), now=now)

    assert skip is True
    assert status.phase == ClaimPhase.COMPLETED
    assert status.message == "SandboxPool not found or deleted"
    assert status.completion_time == now
    completed = get_condition(status.conditions, CONDITION_COMPLETED)
    assert completed.status is True
    assert completed.reason == REASON_POOL_NOT_FOUND


def test_timeout_completes_with_both_conditions(claim_factory, pool, now):
    """Test an expired claim completes with TimedOut and Completed conditions."""
    claim = claim_factory(
        phase=ClaimPhase.CLAIMING,
        replicas=10,
        claimed_replicas=3,
        claim_start_time=now - 10,
        claim_timeout_seconds=5,
    )

    status, skip = calculate_claim_status(claim, pool, claim.status.copy(), now=now)

    assert skip is True
    assert status.phase == ClaimPhase.COMPLETED
    assert status.message == "Timeout reached after 10s, claimed 3/10 sandboxes"
    assert status.completion_time == now

    timed_out = get_condition(status.conditions, CONDITION_TIMED_OUT)
    completed = get_condition(status.conditions, CONDITION_COMPLETED)
    assert timed_out.status is True
    assert timed_out.reason == REASON_CLAIM_TIMEOUT_REACHED
    assert completed.status is True
    assert completed.reason == REASON_TIMEOUT_REACHED


def test_timeout_checked_before_replicas(claim_factory, pool, now):
    """Test a claim that timed out with all replicas still reports the timeout."""
    claim = claim_factory(
        phase=ClaimPhase.CLAIMING,
        replicas=2,
        claimed_replicas=2,
        claim_start_time=now - 10,
        claim_timeout_seconds=5,
    )

    status, _ = calculate_claim_status(claim, pool, claim.status.copy(), now=now)

    assert get_condition(status.conditions, CONDITION_COMPLETED).reason == REASON_TIMEOUT_REACHED


@pytest.mark.parametrize("timeout", [1, 5, 3600])
def test_start_time_in_future_never_times_out(claim_factory, pool, now, timeout):
    """Test clock skew never reports a timeout."""
    claim = claim_factory(
        phase=ClaimPhase.CLAIMING,
        replicas=10,
        claim_start_time=now + 100,
        claim_timeout_seconds=timeout,
    )

    assert is_claim_timeout(claim, claim.status, now=now) is False
    status, skip = calculate_claim_status(claim, pool, claim.status.copy(), now=now)
    assert status.phase == ClaimPhase.CLAIMING
    assert skip is False


def test_no_timeout_configured(claim_factory, now):
    """Test a claim without a timeout never times out."""
    claim = claim_factory(phase=ClaimPhase.CLAIMING, claim_start_time=now - 10_000)
    assert is_claim_timeout(claim, claim.status, now=now) is False


@pytest.mark.parametrize(
    "claimed, expected_phase, expected_skip",
    [
        (9, ClaimPhase.CLAIMING, False),
        (10, ClaimPhase.COMPLETED, True),
        (15, ClaimPhase.COMPLETED, True),
    ],
)
def test_replica_threshold(claim_factory, pool, now, claimed, expected_phase, expected_skip):
    """Test completion happens once the claimed count reaches the desired count."""
    claim = claim_factory(
        phase=ClaimPhase.CLAIMING, replicas=10, claimed_replicas=claimed, claim_start_time=now - 1
    )

    status, skip = calculate_claim_status(claim, pool, claim.status.copy(), now=now)

    assert status.phase == expected_phase
    assert skip is expected_skip
    if expected_phase == ClaimPhase.COMPLETED:
        assert get_condition(status.conditions, CONDITION_COMPLETED).reason == REASON_ALL_REPLICAS_CLAIMED
        assert status.message == f"Successfully claimed {claimed}/10 sandboxes"


def test_unset_replicas_defaults_to_one(claim_factory, pool, now):
    """Test one claimed sandbox satisfies a claim without a replica count."""
    claim = claim_factory(phase=ClaimPhase.CLAIMING, claimed_replicas=1, claim_start_time=now - 1)

    status, skip = calculate_claim_status(claim, pool, claim.status.copy(), now=now)

    assert status.phase == ClaimPhase.COMPLETED
    assert skip is True


@pytest.mark.parametrize(
    "overrides",
    [
        {},
        {"phase": ClaimPhase.CLAIMING, "replicas": 10, "claimed_replicas": 4, "claim_start_time": 1_699_999_990},
        {"phase": ClaimPhase.CLAIMING, "replicas": 10, "claimed_replicas": 10, "claim_start_time": 1_699_999_990},
        {"phase": ClaimPhase.COMPLETED, "completion_time": 1_699_999_000},
    ],
)
def test_calculate_is_idempotent(claim_factory, pool, now, overrides):
    """Test two calls on the same inputs agree."""
    claim = claim_factory(**overrides)

    first = calculate_claim_status(claim, pool, claim.status.copy(), now=now)
    second = calculate_claim_status(claim, pool, claim.status.copy(), now=now)

    assert first == second


def test_phase_never_regresses(claim_factory, pool, now):
    """Test successive passes walk forward through the phases only."""
    order = [ClaimPhase.NOT_STARTED, ClaimPhase.CLAIMING, ClaimPhase.COMPLETED]
    claim = claim_factory(replicas=2)
    seen = [claim.status.phase]

    for step, claimed in enumerate([0, 1, 2, 2, 0]):
        status = claim.status.copy()
        status.claimed_replicas = claimed
        claim.status, _ = calculate_claim_status(claim, pool, status, now=now + step)
        seen.append(claim.status.phase)

    indexes = [order.index(phase) for phase in seen]
    assert indexes == sorted(indexes)
    assert seen[-1] == ClaimPhase.COMPLETED
