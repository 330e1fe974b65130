"""Background reconciliation jobs."""

from claim_controller.jobs.queue import ClaimQueue
from claim_controller.jobs.scheduler import Controller, start_background_jobs, stop_background_jobs

__all__ = ["ClaimQueue", "Controller", "start_background_jobs", "stop_background_jobs"]
