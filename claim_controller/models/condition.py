"""Status condition model shared by claims and sandboxes."""

from typing import Optional


class Condition:
    """A named, timestamped boolean fact attached to an object's status."""

    def __init__(
        self,
        type: str,
        status: bool,
        reason: str = "",
        message: str = "",
        last_transition_time: Optional[int] = None,
    ):
        self.type = type
        self.status = status
        self.reason = reason
        self.message = message
        self.last_transition_time = last_transition_time

    def __eq__(self, other) -> bool:
        if not isinstance(other, Condition):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self) -> str:
        return f"Condition(type={self.type!r}, status={self.status!r}, reason={self.reason!r})"

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "type": self.type,
            "status": self.status,
            "reason": self.reason,
            "message": self.message,
            "last_transition_time": self.last_transition_time,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Condition":
        """Build a condition from its dictionary form."""
        last = data.get("last_transition_time")
        return cls(
            type=data["type"],
            status=bool(data.get("status", False)),
            reason=data.get("reason", ""),
            message=data.get("message", ""),
            last_transition_time=int(last) if last is not None else None,
        )


def get_condition(conditions: Optional[list], condition_type: str) -> Optional[Condition]:
    """Return the most recent condition entry of the given type."""
    for condition in reversed(conditions or []):
        if condition.type == condition_type:
            return condition
    return None
