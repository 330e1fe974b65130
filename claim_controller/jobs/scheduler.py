"""Background reconciliation jobs using asyncio tasks."""

import asyncio
import time
from typing import Optional
from claim_controller.core.config import settings
from claim_controller.core.events import EventRecorder
from claim_controller.core.logging import log_reconcile, logger
from claim_controller.jobs.queue import ClaimQueue
from claim_controller.services.claim_control import ClaimControl
from claim_controller.services.matcher import ClaimMatcher
from claim_controller.services.reconciler import Reconciler
from claim_controller.services.state import SandboxStateCache

# Global task references
_scheduler_tasks: list[asyncio.Task] = []
_shutdown_event: Optional[asyncio.Event] = None
_queue: Optional[ClaimQueue] = None


class Controller:
    """Wires the reconciliation components around one object store client."""

    def __init__(self, db, recorder: Optional[EventRecorder] = None):
        self.db = db
        self.state_cache = SandboxStateCache()
        self.matcher = ClaimMatcher(db, self.state_cache)
        self.control = ClaimControl(db, recorder or EventRecorder(), self.matcher)
        self.reconciler = Reconciler(db, self.control)
        self.queue = ClaimQueue()
        # Sandboxes seen on the previous resync, for spotting deletions
        self.known_sandboxes: set[tuple[str, str]] = set()

    async def resync(self) -> dict:
        """
        Queue every claim and drop cache entries of sandboxes that disappeared.

        Returns:
            Counts of queued claims and invalidated sandboxes
        """
        claims = await self.db.list_claims()
        for claim in claims:
            self.queue.add(claim.key)

        sandboxes = await self.db.list_sandboxes()
        current = {(sandbox.namespace, sandbox.name) for sandbox in sandboxes}
        deleted = self.known_sandboxes - current
        for namespace, name in deleted:
            self.state_cache.invalidate(namespace, name)
        self.known_sandboxes = current

        return {"claims": len(claims), "invalidated": len(deleted)}

    async def process_next(self) -> bool:
        """
        Reconcile the next queued claim and requeue it as directed.

        Returns:
            False once the queue has shut down
        """
        key = await self.queue.get()
        if key is None:
            return False

        try:
            namespace, name = key.split("/", 1)
            strategy = await self.reconciler.reconcile(namespace, name)
            self.queue.forget(key)
            if strategy.immediate:
                self.queue.add(key)
            elif strategy.after > 0:
                self.queue.add_after(key, strategy.after)
        except Exception:
            # Already logged by the reconciler; retry with backoff
            self.queue.add_rate_limited(key)
        finally:
            self.queue.done(key)

        return True


async def resync_job(controller: Controller):
    """
    Resync job - runs every RESYNC_INTERVAL_SEC.

    Lists all claims and queues them for reconciliation.
    """
    job_name = "resync_job"
    print(f"[{job_name}] Starting (interval: {settings.resync_interval_sec}s)")

    while not _shutdown_event.is_set():
        start_time = time.time()
        try:
            result = await controller.resync()
            log_reconcile(
                claim="*",
                action="background_resync",
                outcome="success",
                latency_ms=int((time.time() - start_time) * 1000),
                message=f"Queued {result['claims']} claims, invalidated {result['invalidated']} deleted sandboxes",
            )
        except Exception as e:
            log_reconcile(
                claim="*",
                action="background_resync",
                outcome="error",
                error=str(e),
                message=f"Resync job failed: {e}",
            )

        # Wait for next interval (or shutdown)
        try:
            await asyncio.wait_for(
                _shutdown_event.wait(),
                timeout=settings.resync_interval_sec
            )
            break  # Shutdown requested
        except asyncio.TimeoutError:
            continue  # Normal interval timeout, run again


async def reconcile_worker(controller: Controller, worker_id: int):
    """Reconcile worker - takes claim keys off the queue until shutdown."""
    logger.info(f"[reconcile_worker-{worker_id}] Starting")
    while await controller.process_next():
        pass
    logger.info(f"[reconcile_worker-{worker_id}] Stopped")


def start_background_jobs(controller: Controller) -> list[asyncio.Task]:
    """
    Start the resync job and reconcile workers as asyncio tasks.

    Called during worker startup.
    """
    global _shutdown_event, _scheduler_tasks, _queue

    _shutdown_event = asyncio.Event()
    _queue = controller.queue

    _scheduler_tasks = [asyncio.create_task(resync_job(controller), name="resync_job")]
    _scheduler_tasks += [
        asyncio.create_task(reconcile_worker(controller, i), name=f"reconcile_worker_{i}")
        for i in range(settings.max_concurrent_reconciles)
    ]

    print(f"✅ Started resync job and {settings.max_concurrent_reconciles} reconcile workers")
    return _scheduler_tasks


async def stop_background_jobs():
    """
    Stop all background jobs gracefully.

    Called during worker shutdown.
    """
    if _shutdown_event:
        print("🛑 Stopping background jobs...")
        _shutdown_event.set()
        if _queue is not None:
            _queue.shutdown(settings.max_concurrent_reconciles)

        # Wait for all tasks to complete (with timeout)
        if _scheduler_tasks:
            await asyncio.wait(_scheduler_tasks, timeout=10.0)

        print("✅ All background jobs stopped")


def request_shutdown():
    """Signal all background jobs to stop. Safe to call from a signal handler."""
    if _shutdown_event:
        _shutdown_event.set()
    if _queue is not None:
        _queue.shutdown(settings.max_concurrent_reconciles)
