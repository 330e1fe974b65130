"""Claim reconciliation services."""

from claim_controller.services.state import (
    SandboxStateCache,
    StateEntry,
    classify_sandbox,
)
from claim_controller.services.matcher import ClaimMatcher
from claim_controller.services.claim_control import (
    ClaimControl,
    RequeueStrategy,
    calculate_claim_status,
    set_condition,
)
from claim_controller.services.reconciler import Reconciler

__all__ = [
    "SandboxStateCache",
    "StateEntry",
    "classify_sandbox",
    "ClaimMatcher",
    "ClaimControl",
    "RequeueStrategy",
    "calculate_claim_status",
    "set_condition",
    "Reconciler",
]
