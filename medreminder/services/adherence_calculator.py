"""Adherence Calculator."""
from datetime import datetime, time, timedelta
from typing import Dict

from medreminder.core.clock import Clock
from medreminder.errors import ValidationError
from medreminder.models.occurrence import OccurrenceStatus
from medreminder.schemas.reminders import AdherenceStats, DailyAdherence
from medreminder.services.occurrence_lifecycle import OccurrenceLifecycle
from medreminder.services.reminder_store import ReminderStore

MAX_WINDOW_DAYS = 365


class AdherenceCalculator:
    """Counts and rates over a window of local days, reconciled first."""

    def __init__(self, store: ReminderStore, lifecycle: OccurrenceLifecycle, clock: Clock):
        self.store = store
        self.lifecycle = lifecycle
        self.clock = clock

    def compute_stats(self, medicine_id: str, days: int = 7) -> AdherenceStats:
        """
        Compute adherence for [today - (days-1), today].

        Paused occurrences are not counted as scheduled. The rate is
        taken / scheduled rounded to 3 places, 0 when nothing was scheduled.

        Raises:
            ValidationError: If days is not 1-365
        """
        if not 1 <= days <= MAX_WINDOW_DAYS:
            raise ValidationError([f"days must be 1-{MAX_WINDOW_DAYS}"], {"days": days})

        now = self.clock.now()
        self.lifecycle.reconcile_overdue(medicine_id, now)

        end_date = now.date()
        start_date = end_date - timedelta(days=days - 1)
        window_start = datetime.combine(start_date, time(0, 0))
        window_end = datetime.combine(end_date + timedelta(days=1), time(0, 0))

        daily: Dict = {
            start_date + timedelta(days=offset): DailyAdherence(date=start_date + timedelta(days=offset))
            for offset in range(days)
        }
        stats = AdherenceStats(medicine_id=medicine_id, days=days, start_date=start_date, end_date=end_date)

        for occ in self.store.list_for_medicine(medicine_id, start=window_start, end=window_end):
            if occ.status == OccurrenceStatus.PAUSED.value:
                continue
            bucket = daily[occ.scheduled_at.date()]
            stats.scheduled += 1
            bucket.scheduled += 1
            if occ.status == OccurrenceStatus.TAKEN.value:
                stats.taken += 1
                bucket.taken += 1
            elif occ.status == OccurrenceStatus.MISSED.value:
                stats.missed += 1
                bucket.missed += 1
            elif occ.status == OccurrenceStatus.SNOOZED.value:
                stats.snoozed += 1

        stats.adherence_rate = round(stats.taken / stats.scheduled, 3) if stats.scheduled > 0 else 0.0
        stats.daily = [daily[key] for key in sorted(daily)]
        return stats
