"""Medication reminder service: caller-facing operations over one session."""
import logging
import threading
from contextlib import contextmanager
from datetime import datetime, time, timedelta
from typing import Dict, Iterator, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from medreminder.core.clock import Clock, SystemClock
from medreminder.core.config import ReminderSettings, settings as default_settings
from medreminder.errors import NotFoundError, StorageError, ValidationError
from medreminder.models.intake_log import IntakeLogEntry, IntakeSource
from medreminder.models.medicine import Medicine
from medreminder.models.occurrence import Occurrence, OccurrenceStatus
from medreminder.schemas.dosing_rule import DosingRule, MealTag
from medreminder.schemas.reminders import AdherenceStats, MissedDoseGuidance
from medreminder.services.adherence_calculator import AdherenceCalculator
from medreminder.services.intake_log import IntakeLogStore
from medreminder.services.notifier import AlertDispatcher, Notifier, build_notifier
from medreminder.services.occurrence_lifecycle import LifecycleResult, OccurrenceLifecycle
from medreminder.services.reminder_scheduler import ReminderScheduler, ScheduleResult
from medreminder.services.reminder_store import ReminderStore
from medreminder.services.rule_validator import DosingRuleValidator

logger = logging.getLogger(__name__)

MISSED_DOSE_STEPS = [
    "If the next dose is due soon, skip the missed dose and continue with the regular schedule.",
    "If the dose was missed only a short while ago, take it as soon as possible.",
    "Do not take a double dose to make up for a missed one.",
    "Follow your prescriber's or pharmacist's instructions for this medicine when they differ.",
]

MEAL_HINTS = {
    MealTag.BEFORE_MEAL.value: "This medicine is set to be taken before a meal.",
    MealTag.AFTER_MEAL.value: "This medicine is set to be taken after a meal.",
    MealTag.BEDTIME.value: "This medicine is set to be taken at bedtime.",
}


class MedicineLocks:
    """Process-wide per-medicine locks; the serialization point for read-modify-write."""

    def __init__(self):
        self._locks: Dict[str, threading.RLock] = {}
        self._guard = threading.Lock()

    def get(self, medicine_id: str) -> threading.RLock:
        with self._guard:
            return self._locks.setdefault(medicine_id, threading.RLock())


medicine_locks = MedicineLocks()


class MedicationReminderService:
    """
    Service class exposing the reminder engine to the API layer.

    Every mutating call (including reads that reconcile first) runs under the
    medicine's lock and commits once; a persistence failure rolls back and
    surfaces as StorageError.
    """

    def __init__(
        self,
        session: Session,
        notifier: Optional[Notifier] = None,
        clock: Optional[Clock] = None,
        config: Optional[ReminderSettings] = None
    ):
        self.session = session
        self.config = config or default_settings
        self.clock = clock or SystemClock(self.config.local_timezone)

        self.store = ReminderStore(session)
        self.intake_log = IntakeLogStore(session, cap=self.config.intake_log_cap)
        self.dispatcher = AlertDispatcher(notifier or build_notifier(self.config), self.config.notifier_max_attempts)
        self.scheduler = ReminderScheduler(
            self.store, self.dispatcher, self.clock, horizon_days=self.config.horizon_days
        )
        self.lifecycle = OccurrenceLifecycle(
            self.store, self.intake_log, self.dispatcher, self.clock, grace_minutes=self.config.grace_minutes
        )
        self.calculator = AdherenceCalculator(self.store, self.lifecycle, self.clock)

    @contextmanager
    def transaction(self, medicine_id: str) -> Iterator[None]:
        """Serialize on the medicine and commit once, rolling back on failure."""
        with medicine_locks.get(medicine_id):
            try:
                yield
                self.session.commit()
            except SQLAlchemyError as e:
                self.session.rollback()
                logger.error(f"Storage failure for medicine {medicine_id}: {str(e)}")
                raise StorageError("Reminder storage is unavailable", {"medicine_id": medicine_id}) from e
            except Exception:
                self.session.rollback()
                raise

    def _require_medicine(self, medicine_id: str) -> Medicine:
        medicine = self.store.get_medicine(medicine_id)
        if medicine is None:
            raise NotFoundError(f"Medicine {medicine_id} not found", {"medicine_id": medicine_id})
        return medicine

    # Medicines

    def register_medicine(self, medicine_id: str, name: str, rule: Optional[DosingRule] = None) -> Medicine:
        """Create a medicine and, when a rule is given, schedule it."""
        normalised = DosingRuleValidator.ensure_valid(rule) if rule is not None else None

        with self.transaction(medicine_id):
            if self.store.get_medicine(medicine_id) is not None:
                raise ValidationError([f"Medicine {medicine_id} already exists"], {"medicine_id": medicine_id})

            now = self.clock.now()
            medicine = Medicine(id=medicine_id, name=name.strip(), created_at=now, updated_at=now)
            medicine.set_rule(normalised)
            self.session.add(medicine)
            self.session.flush()

            if normalised is not None:
                self.scheduler.apply_rule(medicine, normalised)

        self.session.refresh(medicine)
        return medicine

    def get_medicine(self, medicine_id: str) -> Medicine:
        return self._require_medicine(medicine_id)

    def list_medicine_ids(self) -> List[str]:
        return list(self.session.exec(select(Medicine.id).order_by(Medicine.id)).all())

    # Rules

    def apply_dosing_rule(self, medicine_id: str, rule: DosingRule) -> ScheduleResult:
        """
        Replace a medicine's dosing rule and regenerate its future occurrences.

        Raises:
            DosingRuleValidationError: Rule rejected; nothing is changed
            NotFoundError: Unknown medicine
        """
        normalised = DosingRuleValidator.ensure_valid(rule)

        with self.transaction(medicine_id):
            medicine = self._require_medicine(medicine_id)
            result = self.scheduler.apply_rule(medicine, normalised)
            medicine.set_rule(normalised)
            medicine.updated_at = self.clock.now()
            self.session.add(medicine)
        return result

    def pause_or_resume(self, medicine_id: str, paused: bool) -> ScheduleResult:
        """Toggle the paused flag on the stored rule and re-apply it."""
        with medicine_locks.get(medicine_id):
            medicine = self._require_medicine(medicine_id)
            rule = medicine.get_rule()
            if rule is None:
                raise ValidationError([f"Medicine {medicine_id} has no dosing rule"], {"medicine_id": medicine_id})
            return self.apply_dosing_rule(medicine_id, rule.model_copy(update={"paused": paused}))

    def delete_medicine_reminders(self, medicine_id: str) -> int:
        """
        Delete a medicine with all of its occurrences.

        Intake log entries are kept as the historical record.

        Returns:
            Number of occurrences deleted
        """
        with self.transaction(medicine_id):
            medicine = self._require_medicine(medicine_id)
            deleted = self.scheduler.delete_all(medicine_id)
            self.session.delete(medicine)
        return deleted

    # Reads (reconcile first)

    def reconcile(self, medicine_id: str) -> List[Occurrence]:
        with self.transaction(medicine_id):
            return self.lifecycle.reconcile_overdue(medicine_id, self.clock.now())

    def get_today_occurrences(self, medicine_id: str) -> List[Occurrence]:
        self._require_medicine(medicine_id)
        self.reconcile(medicine_id)

        today = self.clock.today()
        start = datetime.combine(today, time(0, 0))
        return self.store.list_for_medicine(medicine_id, start=start, end=start + timedelta(days=1))

    def get_occurrences(self, medicine_id: str, days: int = 30) -> List[Occurrence]:
        """Timeline from the start of the last `days` days onwards, upcoming included."""
        if not 1 <= days <= 365:
            raise ValidationError(["days must be 1-365"], {"days": days})
        self._require_medicine(medicine_id)
        self.reconcile(medicine_id)

        start = datetime.combine(self.clock.today() - timedelta(days=days - 1), time(0, 0))
        return self.store.list_for_medicine(medicine_id, start=start)

    def get_adherence_stats(self, medicine_id: str, days: int = 7) -> AdherenceStats:
        self._require_medicine(medicine_id)
        with self.transaction(medicine_id):
            return self.calculator.compute_stats(medicine_id, days)

    def get_intake_log(self, medicine_id: Optional[str] = None, limit: Optional[int] = None) -> List[IntakeLogEntry]:
        """Intake log for one medicine, or the whole log when medicine_id is None."""
        if medicine_id is not None:
            if self.store.get_medicine(medicine_id) is not None:
                self.reconcile(medicine_id)
        else:
            for known_id in self.list_medicine_ids():
                self.reconcile(known_id)
        return self.intake_log.list_entries(medicine_id, limit)

    # Lifecycle

    def mark_taken(self, medicine_id: str, occurrence_id: str, source: IntakeSource = IntakeSource.APP) -> LifecycleResult:
        with self.transaction(medicine_id):
            self.lifecycle.reconcile_overdue(medicine_id, self.clock.now())
            return self.lifecycle.mark_taken(medicine_id, occurrence_id, source)

    def snooze(
        self,
        medicine_id: str,
        occurrence_id: str,
        minutes: int,
        source: IntakeSource = IntakeSource.APP
    ) -> LifecycleResult:
        with self.transaction(medicine_id):
            self.lifecycle.reconcile_overdue(medicine_id, self.clock.now())
            return self.lifecycle.snooze(medicine_id, occurrence_id, minutes, source)

    def get_missed_dose_guidance(self, medicine_id: str, occurrence_id: str) -> MissedDoseGuidance:
        """Generic make-up dose advice for one occurrence."""
        self._require_medicine(medicine_id)
        self.reconcile(medicine_id)

        occ = self.store.get(medicine_id, occurrence_id)
        if occ is None:
            raise NotFoundError(f"Reminder {occurrence_id} not found", {"occurrence_id": occurrence_id})

        now = self.clock.now()
        upcoming = self.store.list_for_medicine(
            medicine_id,
            statuses=[OccurrenceStatus.SCHEDULED.value, OccurrenceStatus.SNOOZED.value],
            start=now
        )
        next_occ = next((o for o in upcoming if o.id != occ.id), None)

        return MissedDoseGuidance(
            medicine_id=medicine_id,
            occurrence_id=occ.id,
            scheduled_at=occ.scheduled_at,
            minutes_since_scheduled=int(round((now - occ.scheduled_at).total_seconds() / 60)),
            next_scheduled_at=next_occ.scheduled_at if next_occ else None,
            steps=list(MISSED_DOSE_STEPS),
            meal_hint=MEAL_HINTS.get(occ.meal_tag),
            details={"status": occ.status, "snooze_count": occ.snooze_count},
        )
