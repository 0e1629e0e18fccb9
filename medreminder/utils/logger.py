"""
Structured logging for the reminder engine.

Audit events (occurrence transitions, alert requests) are emitted as one JSON
object per line so they can be replayed or shipped to a log store.
"""

import json
import logging
import sys
from datetime import datetime
from typing import Any, Dict, Optional


class StructuredLogger:
    """JSON-lines logger for one engine component, with optional bound fields."""

    def __init__(self, component: str, level: int = logging.INFO, context: Optional[Dict[str, Any]] = None):
        """
        Args:
            component: Component name, also the stdlib logger name
            level: Logging level
            context: Fields added to every event, e.g. medicine_id
        """
        self.component = component
        self.context = dict(context or {})
        self.logger = logging.getLogger(f"medreminder.{component}")
        self.logger.setLevel(level)

        if not self.logger.handlers:
            handler = logging.StreamHandler(sys.stdout)
            handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
            self.logger.addHandler(handler)

    def bind(self, **context) -> "StructuredLogger":
        """Child logger that adds the given fields to every event."""
        merged = dict(self.context)
        merged.update(context)
        return StructuredLogger(self.component, self.logger.level, merged)

    def _emit(self, level: int, event: str, fields: Dict[str, Any]):
        if not self.logger.isEnabledFor(level):
            return
        record = {
            "timestamp": datetime.now().isoformat(),
            "level": logging.getLevelName(level),
            "component": self.component,
            "event": event,
        }
        record.update(self.context)
        record.update(fields)
        self.logger.log(level, json.dumps(record, default=str))

    def debug(self, event: str, **fields):
        self._emit(logging.DEBUG, event, fields)

    def info(self, event: str, **fields):
        self._emit(logging.INFO, event, fields)

    def warning(self, event: str, **fields):
        self._emit(logging.WARNING, event, fields)

    def error(self, event: str, **fields):
        self._emit(logging.ERROR, event, fields)


def get_logger(component: str) -> StructuredLogger:
    """
    Get a structured logger for an engine component.

    Args:
        component: Component name, e.g. "reminder-scheduler"
    """
    return StructuredLogger(component)
