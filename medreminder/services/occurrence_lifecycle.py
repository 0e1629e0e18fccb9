"""
Occurrence Lifecycle

State machine for a single reminder:

    scheduled -> taken | snoozed | missed | paused
    snoozed   -> taken | snoozed | missed
    paused    -> scheduled   (rule re-enabled, done by ReminderScheduler)
    taken, missed: terminal

Operations on unknown ids or wrong states return a LifecycleResult instead of
raising, so batch UI flows and reconciliation passes keep going.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

from medreminder.core.clock import Clock
from medreminder.errors import ValidationError
from medreminder.models.intake_log import IntakeAction, IntakeLogEntry, IntakeSource
from medreminder.models.occurrence import Occurrence, OccurrenceStatus
from medreminder.services.intake_log import IntakeLogStore
from medreminder.services.notifier import AlertDispatcher, format_alert
from medreminder.services.reminder_store import ReminderStore
from medreminder.utils.logger import get_logger
from medreminder.utils.metrics import metrics_collector

logger = logging.getLogger(__name__)
lifecycle_logger = get_logger("occurrence-lifecycle")

DEFAULT_GRACE_MINUTES = 60
MAX_SNOOZE_MINUTES = 24 * 60

ALLOWED_TRANSITIONS = {
    OccurrenceStatus.SCHEDULED.value: {
        OccurrenceStatus.TAKEN.value,
        OccurrenceStatus.SNOOZED.value,
        OccurrenceStatus.MISSED.value,
        OccurrenceStatus.PAUSED.value,
    },
    OccurrenceStatus.SNOOZED.value: {
        OccurrenceStatus.TAKEN.value,
        OccurrenceStatus.SNOOZED.value,
        OccurrenceStatus.MISSED.value,
    },
    OccurrenceStatus.PAUSED.value: {OccurrenceStatus.SCHEDULED.value},
    OccurrenceStatus.TAKEN.value: set(),
    OccurrenceStatus.MISSED.value: set(),
}


def can_transition(current: str, target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, set())


@dataclass
class LifecycleResult:
    """Outcome of a lifecycle operation"""
    success: bool
    code: str  # "ok", "no_op", "not_found", "invalid_state"
    message: str
    occurrence: Optional[Occurrence] = None


class OccurrenceLifecycle:
    """Taken/snooze/missed transitions plus the intake audit trail."""

    def __init__(
        self,
        store: ReminderStore,
        intake_log: IntakeLogStore,
        dispatcher: AlertDispatcher,
        clock: Clock,
        grace_minutes: int = DEFAULT_GRACE_MINUTES
    ):
        self.store = store
        self.intake_log = intake_log
        self.dispatcher = dispatcher
        self.clock = clock
        self.grace_minutes = grace_minutes

    def mark_taken(
        self,
        medicine_id: str,
        reminder_id: str,
        source: IntakeSource = IntakeSource.APP
    ) -> LifecycleResult:
        """
        Mark an occurrence as taken.

        Calling again on a taken occurrence is a no-op (success=False,
        code="no_op") and writes no second log entry.
        """
        occ = self.store.get(medicine_id, reminder_id)
        if occ is None:
            return LifecycleResult(False, "not_found", f"Reminder {reminder_id} not found")

        if occ.status == OccurrenceStatus.TAKEN.value:
            return LifecycleResult(False, "no_op", "Reminder already marked as taken", occ)

        if not can_transition(occ.status, OccurrenceStatus.TAKEN.value):
            return LifecycleResult(False, "invalid_state", f"Cannot mark a {occ.status} reminder as taken", occ)

        now = self.clock.now()
        self.dispatcher.cancel(occ.alert_handle)
        occ.alert_handle = None
        occ.status = OccurrenceStatus.TAKEN.value
        occ.taken_at = now
        occ.updated_at = now
        self.store.save(occ)

        self.intake_log.append(IntakeLogEntry(
            medicine_id=medicine_id,
            reminder_id=occ.id,
            action=IntakeAction.TAKEN.value,
            at=now,
            scheduled_at=occ.scheduled_at,
            source=IntakeSource(source).value,
        ))

        metrics_collector.increment_counter("occurrences_taken_total")
        lifecycle_logger.info(
            "Occurrence taken", medicine_id=medicine_id, reminder_id=occ.id, source=IntakeSource(source).value
        )
        return LifecycleResult(True, "ok", "Marked as taken", occ)

    def snooze(
        self,
        medicine_id: str,
        reminder_id: str,
        minutes: int,
        source: IntakeSource = IntakeSource.APP
    ) -> LifecycleResult:
        """
        Reschedule an occurrence in place to now + minutes.

        The occurrence keeps its id; snooze_count is incremented.

        Raises:
            ValidationError: If minutes is not 1-1440
        """
        if isinstance(minutes, bool) or not isinstance(minutes, int) or not 1 <= minutes <= MAX_SNOOZE_MINUTES:
            raise ValidationError([f"snooze minutes must be 1-{MAX_SNOOZE_MINUTES}"], {"minutes": minutes})

        occ = self.store.get(medicine_id, reminder_id)
        if occ is None:
            return LifecycleResult(False, "not_found", f"Reminder {reminder_id} not found")

        if not can_transition(occ.status, OccurrenceStatus.SNOOZED.value):
            return LifecycleResult(False, "invalid_state", f"Cannot snooze a {occ.status} reminder", occ)

        now = self.clock.now()
        previous_slot = occ.scheduled_at
        new_time = now + timedelta(minutes=minutes)

        self.dispatcher.cancel(occ.alert_handle)
        occ.scheduled_at = new_time
        occ.status = OccurrenceStatus.SNOOZED.value
        occ.snooze_count = (occ.snooze_count or 0) + 1
        occ.updated_at = now

        medicine = self.store.get_medicine(medicine_id)
        title, body = format_alert(
            medicine.name if medicine else "your medicine", occ.dose_amount, occ.dose_unit, occ.meal_tag
        )
        occ.alert_handle = self.dispatcher.request(occ.id, new_time, title, body)
        self.store.save(occ)

        self.intake_log.append(IntakeLogEntry(
            medicine_id=medicine_id,
            reminder_id=occ.id,
            action=IntakeAction.SNOOZED.value,
            at=now,
            scheduled_at=previous_slot,
            source=IntakeSource(source).value,
            snooze_minutes=minutes,
        ))

        metrics_collector.increment_counter("occurrences_snoozed_total")
        lifecycle_logger.info(
            "Occurrence snoozed",
            medicine_id=medicine_id,
            reminder_id=occ.id,
            minutes=minutes,
            snooze_count=occ.snooze_count
        )
        return LifecycleResult(True, "ok", f"Snoozed for {minutes} minutes", occ)

    def reconcile_overdue(
        self,
        medicine_id: str,
        now: Optional[datetime] = None,
        grace_minutes: Optional[int] = None
    ) -> List[Occurrence]:
        """
        Flip overdue scheduled/snoozed occurrences to missed.

        An occurrence is overdue when scheduled_at + grace < now. missed_at is
        the instant the grace period ran out, so the outcome does not depend
        on when reconciliation happens to run.

        Returns:
            Occurrences transitioned to missed by this call
        """
        now = now or self.clock.now()
        grace = timedelta(minutes=self.grace_minutes if grace_minutes is None else grace_minutes)

        missed = []
        for occ in self.store.list_pending_before(medicine_id, now - grace):
            previous = (occ.status, occ.missed_at, occ.updated_at, occ.alert_handle)
            missed_at = occ.scheduled_at + grace
            entry = IntakeLogEntry(
                medicine_id=medicine_id,
                reminder_id=occ.id,
                action=IntakeAction.MISSED.value,
                at=missed_at,
                scheduled_at=occ.scheduled_at,
                source=IntakeSource.SYSTEM.value,
            )
            try:
                occ.status = OccurrenceStatus.MISSED.value
                occ.missed_at = missed_at
                occ.updated_at = now
                occ.alert_handle = None
                self.store.save(occ)
                self.intake_log.append(entry)
                missed.append(occ)
            except SQLAlchemyError:
                raise
            except Exception as e:
                # Roll the item back to its prior state
                occ.status, occ.missed_at, occ.updated_at, occ.alert_handle = previous
                self.store.save(occ)
                self.intake_log.discard(entry)
                metrics_collector.increment_counter("reconcile_errors_total")
                logger.error(f"Failed to reconcile occurrence {occ.id} for medicine {medicine_id}: {str(e)}")
                continue

        metrics_collector.increment_counter("occurrences_missed_total", len(missed))
        if missed:
            lifecycle_logger.info("Overdue occurrences missed", medicine_id=medicine_id, count=len(missed))
        return missed
