"""
Notifier capability.

The engine never delivers notifications itself. It asks a Notifier to arrange
a local/push alert for an occurrence and to cancel it again. Notifier state is
never authoritative: every call is best effort and failures are logged.
"""

import abc
import json
import logging
import uuid
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from dapr.clients import DaprClient

from medreminder.core.config import ReminderSettings
from medreminder.errors import NotifierError
from medreminder.utils.metrics import metrics_collector

logger = logging.getLogger(__name__)


class Notifier(abc.ABC):
    """Abstract alert backend."""

    @abc.abstractmethod
    def request_alert(self, occurrence_id: str, scheduled_at: datetime, title: str, body: str) -> str:
        """
        Arrange an alert for an occurrence.

        Returns:
            Opaque alert handle used to cancel the alert later
        """
        pass

    @abc.abstractmethod
    def cancel_alert(self, handle: str) -> None:
        pass


class LoggingNotifier(Notifier):
    """Development backend: logs alerts instead of delivering them."""

    def request_alert(self, occurrence_id: str, scheduled_at: datetime, title: str, body: str) -> str:
        logger.info(f"[DEV MODE] Alert for occurrence {occurrence_id} at {scheduled_at.isoformat()}: {title} - {body}")
        return f"log_{occurrence_id}_{int(scheduled_at.timestamp())}"

    def cancel_alert(self, handle: str) -> None:
        logger.info(f"[DEV MODE] Cancel alert {handle}")


class DaprNotifier(Notifier):
    """Publishes alert requests to a Dapr pub/sub topic for the device/push service."""

    def __init__(self, pubsub_name: str = "reminder-pubsub", topic: str = "medication-alerts",
                 source: str = "medreminder"):
        self.pubsub_name = pubsub_name
        self.topic = topic
        self.source = source

    def _publish(self, event_type: str, data: Dict[str, Any]) -> str:
        event_envelope = {
            "event_id": str(uuid.uuid4()),
            "type": event_type,
            "timestamp": datetime.now().isoformat(),
            "source": self.source,
            "data": data
        }
        try:
            with DaprClient() as client:
                client.publish_event(
                    pubsub_name=self.pubsub_name,
                    topic_name=self.topic,
                    data=json.dumps(event_envelope),
                    data_content_type="application/json"
                )
        except Exception as e:
            raise NotifierError(f"Failed to publish {event_type} to topic {self.topic}: {e}") from e

        logger.info(f"Published event {event_type} to topic {self.topic}")
        return event_envelope["event_id"]

    def request_alert(self, occurrence_id: str, scheduled_at: datetime, title: str, body: str) -> str:
        self._publish("alert.requested", {
            "occurrence_id": occurrence_id,
            "scheduled_at": scheduled_at.isoformat(),
            "title": title,
            "body": body
        })
        # The device side keys pending alerts by occurrence and slot
        return f"{occurrence_id}@{scheduled_at.isoformat()}"

    def cancel_alert(self, handle: str) -> None:
        self._publish("alert.canceled", {"handle": handle})


class AlertDispatcher:
    """
    Fire-and-forget wrapper around a Notifier.

    Retries each call a bounded number of times, then logs and counts the
    failure. Never raises.
    """

    def __init__(self, notifier: Notifier, max_attempts: int = 2):
        self.notifier = notifier
        self.max_attempts = max(1, max_attempts)

    def request(self, occurrence_id: str, scheduled_at: datetime, title: str, body: str) -> Optional[str]:
        for attempt in range(1, self.max_attempts + 1):
            try:
                return self.notifier.request_alert(occurrence_id, scheduled_at, title, body)
            except Exception as e:
                logger.warning(
                    f"Alert request for occurrence {occurrence_id} failed "
                    f"(attempt {attempt}/{self.max_attempts}): {str(e)}"
                )
        metrics_collector.increment_counter("notifier_errors_total")
        logger.error(f"Giving up on alert for occurrence {occurrence_id}")
        return None

    def cancel(self, handle: Optional[str]) -> bool:
        if not handle:
            return False
        for attempt in range(1, self.max_attempts + 1):
            try:
                self.notifier.cancel_alert(handle)
                return True
            except Exception as e:
                logger.warning(f"Alert cancel for {handle} failed (attempt {attempt}/{self.max_attempts}): {str(e)}")
        metrics_collector.increment_counter("notifier_errors_total")
        logger.error(f"Giving up on canceling alert {handle}")
        return False


_MEAL_HINTS = {
    "before_meal": "before a meal",
    "after_meal": "after a meal",
    "bedtime": "at bedtime",
}


def format_alert(medicine_name: str, dose_amount: float, dose_unit: str, meal_tag: str) -> Tuple[str, str]:
    """Title and body text for a medication alert."""
    amount = int(dose_amount) if float(dose_amount).is_integer() else dose_amount
    body = f"Time to take {medicine_name}, {amount} {dose_unit}".rstrip()
    hint = _MEAL_HINTS.get(meal_tag)
    if hint:
        body = f"{body} ({hint})"
    return "Medication reminder", body


def build_notifier(settings: ReminderSettings) -> Notifier:
    """Select the notifier backend from settings."""
    if settings.notifier_backend == "dapr":
        return DaprNotifier(pubsub_name=settings.dapr_pubsub_name, topic=settings.dapr_alert_topic)
    if settings.notifier_backend != "log":
        logger.warning(f"Unknown NOTIFIER_BACKEND '{settings.notifier_backend}', using log backend")
    return LoggingNotifier()
