"""Reminder Scheduler Service."""
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from medreminder.core.clock import Clock
from medreminder.models.medicine import Medicine
from medreminder.models.occurrence import Occurrence, OccurrenceStatus
from medreminder.schemas.dosing_rule import DosingRule
from medreminder.services.notifier import AlertDispatcher, format_alert
from medreminder.services.occurrence_generator import DEFAULT_HORIZON_DAYS, OccurrenceGenerator
from medreminder.services.reminder_store import ReminderStore
from medreminder.utils.logger import get_logger
from medreminder.utils.metrics import metrics_collector

scheduler_logger = get_logger("reminder-scheduler")


@dataclass
class ScheduleResult:
    """Summary of one apply_rule call"""
    scheduled: int = 0
    revived: int = 0
    canceled: int = 0
    paused: int = 0


class ReminderScheduler:
    """Keeps a medicine's future occurrences in line with its dosing rule."""

    def __init__(
        self,
        store: ReminderStore,
        dispatcher: AlertDispatcher,
        clock: Clock,
        generator: Optional[OccurrenceGenerator] = None,
        horizon_days: int = DEFAULT_HORIZON_DAYS
    ):
        self.store = store
        self.dispatcher = dispatcher
        self.clock = clock
        self.generator = generator or OccurrenceGenerator()
        self.horizon_days = horizon_days

    def apply_rule(self, medicine: Medicine, rule: DosingRule) -> ScheduleResult:
        """
        Bring stored occurrences in line with a (validated) rule.

        Active rule: cancel not-yet-due occurrences, then regenerate.
        Disabled or paused rule: flip not-yet-due occurrences to paused.

        Args:
            medicine: Owning medicine
            rule: Normalised dosing rule

        Returns:
            ScheduleResult with per-outcome counts
        """
        now = self.clock.now()
        result = ScheduleResult()

        if not rule.enabled or rule.paused:
            result.paused = len(self.pause_future(medicine.id, now))
            return result

        result.canceled = len(self.cancel_future(medicine.id, now))

        generated = self.generator.generate(medicine.id, rule, now, self.horizon_days)
        existing = self.store.get_many(occ.id for occ in generated)
        generated_ids = set()

        fresh = []
        for occ in generated:
            generated_ids.add(occ.id)
            stored = existing.get(occ.id)
            if stored is None:
                fresh.append(occ)
            elif stored.status == OccurrenceStatus.PAUSED.value:
                self._revive(stored, occ, now)
                self._request_alert(medicine, stored)
                result.revived += 1
            # Taken/missed records for the same slot are never resurrected

        for occ in self.store.add_new(fresh):
            self._request_alert(medicine, occ)
            result.scheduled += 1

        stale_paused = [
            occ for occ in self.store.list_for_medicine(medicine.id, statuses=[OccurrenceStatus.PAUSED.value])
            if occ.scheduled_at > now and occ.id not in generated_ids
        ]
        if stale_paused:
            self.store.delete(stale_paused)
            result.canceled += len(stale_paused)

        metrics_collector.increment_counter("occurrences_generated_total", result.scheduled + result.revived)
        scheduler_logger.bind(medicine_id=medicine.id).info(
            "Rule applied",
            mode=rule.mode.value,
            scheduled=result.scheduled,
            revived=result.revived,
            canceled=result.canceled
        )
        return result

    def cancel_future(self, medicine_id: str, now: Optional[datetime] = None) -> List[Occurrence]:
        """
        Remove not-yet-due scheduled/snoozed occurrences and cancel their alerts.

        Returns:
            The removed occurrences
        """
        now = now or self.clock.now()
        future = self.store.list_future_pending(medicine_id, now)
        for occ in future:
            self.dispatcher.cancel(occ.alert_handle)
        self.store.delete(future)

        metrics_collector.increment_counter("occurrences_canceled_total", len(future))
        if future:
            scheduler_logger.info("Future occurrences canceled", medicine_id=medicine_id, count=len(future))
        return future

    def pause_future(self, medicine_id: str, now: Optional[datetime] = None) -> List[Occurrence]:
        """
        Mark not-yet-due scheduled/snoozed occurrences as paused, keeping the records.

        Returns:
            The paused occurrences
        """
        now = now or self.clock.now()
        future = self.store.list_future_pending(medicine_id, now)
        for occ in future:
            self.dispatcher.cancel(occ.alert_handle)
            occ.alert_handle = None
            occ.status = OccurrenceStatus.PAUSED.value
            occ.updated_at = now
            self.store.save(occ)

        metrics_collector.increment_counter("occurrences_paused_total", len(future))
        if future:
            scheduler_logger.info("Future occurrences paused", medicine_id=medicine_id, count=len(future))
        return future

    def delete_all(self, medicine_id: str) -> int:
        """Hard-delete every occurrence of a medicine and cancel pending alerts."""
        occurrences = self.store.list_for_medicine(medicine_id)
        for occ in occurrences:
            if occ.is_pending:
                self.dispatcher.cancel(occ.alert_handle)
        deleted = self.store.delete(occurrences)

        scheduler_logger.info("All occurrences deleted", medicine_id=medicine_id, count=deleted)
        return deleted

    def _revive(self, stored: Occurrence, generated: Occurrence, now: datetime) -> None:
        stored.status = OccurrenceStatus.SCHEDULED.value
        stored.scheduled_at = generated.scheduled_at
        stored.dose_amount = generated.dose_amount
        stored.dose_unit = generated.dose_unit
        stored.meal_tag = generated.meal_tag
        stored.updated_at = now
        self.store.save(stored)

    def _request_alert(self, medicine: Medicine, occ: Occurrence) -> None:
        title, body = format_alert(medicine.name, occ.dose_amount, occ.dose_unit, occ.meal_tag)
        occ.alert_handle = self.dispatcher.request(occ.id, occ.scheduled_at, title, body)
        self.store.save(occ)
