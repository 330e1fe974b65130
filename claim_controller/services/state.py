"""Sandbox state classification and its per-version cache."""

import time
from dataclasses import dataclass
from typing import Callable, Optional

from claim_controller.core.metrics import state_cache_lookups
from claim_controller.models.sandbox import Sandbox, SandboxPhase, SandboxState

# Reasons are unique and stable so they can be searched for when debugging
_TERMINAL_PHASE_REASONS = {
    SandboxPhase.SUCCEEDED: "ResourceSucceeded",
    SandboxPhase.FAILED: "ResourceFailed",
    SandboxPhase.TERMINATING: "ResourceTerminating",
}


def classify_sandbox(sandbox: Sandbox, now: Optional[float] = None) -> tuple[SandboxState, str]:
    """
    Map a sandbox's observed fields to a derived state and a reason code.

    Checks run in priority order and the first match wins.

    Args:
        sandbox: The sandbox to classify
        now: Current Unix time (defaults to time.time())

    Returns:
        Tuple of (state, reason)
    """
    if now is None:
        now = time.time()

    if sandbox.deletion_requested:
        return SandboxState.DEAD, "ResourceDeleted"
    if sandbox.shutdown_time is not None and now - sandbox.shutdown_time > 0:
        return SandboxState.DEAD, "ShutdownTimeReached"
    if sandbox.phase == SandboxPhase.PENDING:
        return SandboxState.CREATING, "ResourcePending"
    if sandbox.phase in _TERMINAL_PHASE_REASONS:
        return SandboxState.DEAD, _TERMINAL_PHASE_REASONS[sandbox.phase]

    ready = sandbox.is_ready()
    if sandbox.is_controlled_by_pool():
        if ready:
            return SandboxState.AVAILABLE, "ControlledAndReady"
        return SandboxState.CREATING, "ControlledNotReady"

    if sandbox.phase == SandboxPhase.RUNNING:
        if sandbox.paused:
            return SandboxState.PAUSED, "ClaimedAndPaused"
        if ready:
            return SandboxState.RUNNING, "ClaimedAndReady"
        # A claimed sandbox that runs but never became ready is treated as failed
        return SandboxState.DEAD, "ClaimedButNotReady"

    # Paused and Resuming both count as paused
    return SandboxState.PAUSED, "NotRunningClaimed"


@dataclass(frozen=True)
class StateEntry:
    """Cached classification result for one sandbox version."""

    state: SandboxState
    reason: str


class SandboxStateCache:
    """
    Memoizes sandbox classification per (namespace, name, resource version).

    Safe for concurrent use from threads and asyncio tasks without locks:
    lookups and insert-if-absent rely on ``dict.get`` and ``dict.setdefault``
    being atomic, so callers working on different sandboxes never wait on
    each other. Entries are never expired on their own; callers must
    ``invalidate`` a sandbox once they observe it deleted.
    """

    def __init__(self, classifier: Callable[[Sandbox], tuple[SandboxState, str]] = classify_sandbox):
        self._classify = classifier
        # (namespace, name) -> {resource_version: StateEntry}
        self._entries: dict[tuple[str, str], dict[str, StateEntry]] = {}

    def get(self, sandbox: Sandbox) -> tuple[SandboxState, str]:
        """
        Return the (state, reason) for a sandbox, computing it on a miss.

        An object without a resource version has never been persisted and is
        classified fresh every time without touching the cache. When several
        callers race on the same key, all of them get the first stored value.
        """
        version = sandbox.resource_version
        if not version:
            state_cache_lookups.labels(result="bypass").inc()
            return self._classify(sandbox)

        identity = (sandbox.namespace, sandbox.name)
        versions = self._entries.get(identity)
        if versions is not None:
            entry = versions.get(version)
            if entry is not None:
                state_cache_lookups.labels(result="hit").inc()
                return entry.state, entry.reason

        state_cache_lookups.labels(result="miss").inc()
        state, reason = self._classify(sandbox)

        versions = self._entries.setdefault(identity, {})
        stored = versions.setdefault(version, StateEntry(state=state, reason=reason))
        return stored.state, stored.reason

    def invalidate(self, namespace: str, name: str):
        """Drop every cached version of a sandbox."""
        if not namespace or not name:
            return
        self._entries.pop((namespace, name), None)

    def __len__(self) -> int:
        """Number of cached (identity, version) entries."""
        return sum(len(versions) for versions in list(self._entries.values()))
