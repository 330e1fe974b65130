"""Fire-and-forget event recording for claims."""

import logging

from claim_controller.core.logging import logger

EVENT_NORMAL = "Normal"
EVENT_WARNING = "Warning"


class EventRecorder:
    """
    Records human-readable progress notices about controller objects.

    Events go to the structured log, whose handlers report their own
    emit failures, so recording never raises into reconciliation.
    """

    def __init__(self, log: logging.Logger = None):
        self.log = log or logger

    def event(self, object_key: str, event_type: str, reason: str, message: str):
        """Record an event for the object identified by ``object_key``."""
        level = logging.WARNING if event_type == EVENT_WARNING else logging.INFO
        self.log.log(
            level,
            message,
            extra={"claim": object_key, "action": "event", "reason": reason},
        )
