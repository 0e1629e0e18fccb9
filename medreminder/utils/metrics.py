"""
Metrics Collection for the reminder engine.

In-process counters for occurrence transitions and notifier failures.
"""

import threading
from collections import defaultdict
from datetime import datetime
from typing import Any, Dict

COUNTERS = (
    "occurrences_generated_total",
    "occurrences_canceled_total",
    "occurrences_paused_total",
    "occurrences_taken_total",
    "occurrences_snoozed_total",
    "occurrences_missed_total",
    "reconcile_errors_total",
    "notifier_errors_total",
)


class MetricsCollector:
    """Collects and manages metrics for the reminder engine."""

    def __init__(self):
        self.metrics = defaultdict(int)
        self.lock = threading.Lock()

        for name in COUNTERS:
            self.metrics[name] = 0

    def increment_counter(self, metric_name: str, value: int = 1):
        """Increment a counter metric."""
        if value <= 0:
            return
        with self.lock:
            self.metrics[metric_name] += value

    def get_metrics(self) -> Dict[str, Any]:
        """Get current metrics values."""
        with self.lock:
            return {
                "counters": dict(self.metrics),
                "timestamp": datetime.now().isoformat()
            }

    def reset(self):
        with self.lock:
            for name in list(self.metrics):
                self.metrics[name] = 0


# Global metrics instance
metrics_collector = MetricsCollector()
