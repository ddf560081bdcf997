"""
Error taxonomy for the reminders engine.

Step validation is never an exception: a wizard step that is not valid
simply reports False from is_valid(). Everything here is scoped to a
single draft or notification and is never fatal to the process.
"""

from typing import Optional


class ReminderError(Exception):
    """Base class for all reminders engine errors."""

    def __init__(self, message: str, key: Optional[str] = None):
        super().__init__(message)
        self.key = key


class GenerationFailure(ReminderError):
    """Template generation failed or timed out. The user may retry."""


class InvalidTransition(ReminderError):
    """A status change or edit that the lifecycle state machine forbids."""

    def __init__(self, key: str, current, target):
        current_value = getattr(current, "value", current)
        target_value = getattr(target, "value", target)
        super().__init__(
            f"Notification {key} cannot go from {current_value} to {target_value}",
            key=key,
        )
        self.current = current
        self.target = target


class NotFound(ReminderError):
    """The targeted notification (or referenced contact) does not exist."""

    def __init__(self, key: str, kind: str = "Notification"):
        super().__init__(f"{kind} not found: {key}", key=key)
        self.kind = kind


class Busy(ReminderError):
    """Another mutating operation is already in flight for the same target."""

    def __init__(self, key: str, operation: Optional[str] = None):
        detail = f" ({operation})" if operation else ""
        super().__init__(f"Operation already in progress for {key}{detail}", key=key)
        self.operation = operation
