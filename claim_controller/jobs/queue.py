"""Work queue of claim keys with de-duplication and delayed requeue."""

import asyncio
from typing import Optional

from claim_controller.core.config import settings
from claim_controller.core.metrics import queue_depth


class ClaimQueue:
    """
    Queue of ``namespace/name`` claim keys for reconcile workers.

    A key is never handed to two workers at once. Adding a key that is
    already queued is a no-op; adding a key that is being processed marks it
    dirty and it is queued again once the worker calls ``done``.
    """

    def __init__(self):
        self._ready: asyncio.Queue = asyncio.Queue()
        self._dirty: set[str] = set()
        self._processing: set[str] = set()
        self._delayed: dict[str, asyncio.TimerHandle] = {}
        self._failures: dict[str, int] = {}
        self._shutting_down = False

    def add(self, key: str):
        """Queue a key for processing."""
        if self._shutting_down or key in self._dirty:
            return
        self._dirty.add(key)
        if key in self._processing:
            return
        self._ready.put_nowait(key)
        queue_depth.set(self._ready.qsize())

    def add_after(self, key: str, delay: float):
        """Queue a key once ``delay`` seconds have passed. The earliest pending delay wins."""
        if self._shutting_down:
            return
        if delay <= 0:
            self.add(key)
            return

        loop = asyncio.get_running_loop()
        existing = self._delayed.get(key)
        if existing is not None:
            if existing.when() <= loop.time() + delay:
                return
            existing.cancel()
        self._delayed[key] = loop.call_later(delay, self._fire, key)

    def add_rate_limited(self, key: str):
        """Queue a key after an exponential backoff based on its consecutive failures."""
        failures = self._failures.get(key, 0) + 1
        self._failures[key] = failures
        self.add_after(key, self.backoff_seconds(failures))

    def forget(self, key: str):
        """Reset the failure count of a key."""
        self._failures.pop(key, None)

    @staticmethod
    def backoff_seconds(failures: int) -> float:
        """Backoff delay for the given number of consecutive failures."""
        delay_ms = settings.requeue_backoff_base_ms * (2 ** (failures - 1))
        return min(delay_ms / 1000.0, settings.requeue_backoff_max_seconds)

    def _fire(self, key: str):
        self._delayed.pop(key, None)
        self.add(key)

    async def get(self) -> Optional[str]:
        """Wait for the next key. Returns None once the queue is shut down."""
        key = await self._ready.get()
        if key is None:
            return None
        self._dirty.discard(key)
        self._processing.add(key)
        queue_depth.set(self._ready.qsize())
        return key

    def done(self, key: str):
        """Mark a key as processed, re-queueing it if it was added meanwhile."""
        self._processing.discard(key)
        if key in self._dirty and not self._shutting_down:
            self._ready.put_nowait(key)
            queue_depth.set(self._ready.qsize())

    def shutdown(self, workers: int):
        """Stop accepting keys and wake ``workers`` waiting consumers."""
        self._shutting_down = True
        for handle in self._delayed.values():
            handle.cancel()
        self._delayed.clear()
        for _ in range(workers):
            self._ready.put_nowait(None)

    def __len__(self) -> int:
        return self._ready.qsize()
