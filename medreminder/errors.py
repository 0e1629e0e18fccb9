"""
Error taxonomy for the reminder engine.

- ValidationError / DosingRuleValidationError: bad input, rejected before any mutation
- NotFoundError: unknown medicine
- NotifierError: alert backend failure, always logged and swallowed by callers
- StorageError: persistence failure, the only error that aborts an operation
"""

from typing import Any, Dict, List, Optional


class ReminderError(Exception):
    """Base exception for reminder engine errors"""
    code = "REMINDER_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None, code: Optional[str] = None):
        if code:
            self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details
        }


class ValidationError(ReminderError):
    """Input rejected before any mutation."""
    code = "VALIDATION_ERROR"

    def __init__(self, errors: List[str], details: Optional[Dict[str, Any]] = None):
        self.errors = list(errors)
        details = dict(details or {})
        details.setdefault("errors", self.errors)
        super().__init__("; ".join(self.errors) or "Invalid input", details)


class DosingRuleValidationError(ValidationError):
    """Dosing rule failed validation."""


class NotFoundError(ReminderError):
    """Referenced medicine does not exist."""
    code = "NOT_FOUND"


class NotifierError(ReminderError):
    """Notifier backend could not schedule or cancel an alert."""
    code = "NOTIFIER_ERROR"


class StorageError(ReminderError):
    """Persistence layer failure."""
    code = "STORAGE_ERROR"
