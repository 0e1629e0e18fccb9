"""Occurrence Generator."""
from datetime import date, datetime, time, timedelta
from typing import Dict, List

from medreminder.models.occurrence import Occurrence, OccurrenceStatus, occurrence_id
from medreminder.schemas.dosing_rule import DosingMode, DosingRule
from medreminder.services.rule_validator import hhmm_to_minutes

DEFAULT_HORIZON_DAYS = 30


def _minutes_to_time(total_minutes: int) -> time:
    total_minutes = max(0, min(23 * 60 + 59, total_minutes))
    return time(total_minutes // 60, total_minutes % 60)


def spread_times_per_day(times_per_day: int, window_start: str, window_end: str) -> List[str]:
    """
    Distribute N clock times evenly across a local time-of-day window.

    Args:
        times_per_day: Number of doses per day
        window_start: First dose time, HH:MM
        window_end: Last dose time, HH:MM

    Returns:
        Sorted HH:MM strings; a single window_start for N=1 or an empty window
    """
    start = hhmm_to_minutes(window_start)
    span = hhmm_to_minutes(window_end) - start

    if times_per_day <= 1 or span <= 0:
        offsets = [0]
    else:
        # Half-up rounding keeps 08:00-20:00 / 3 on whole hours
        offsets = [int(span * i / (times_per_day - 1) + 0.5) for i in range(times_per_day)]

    times = {_minutes_to_time(start + offset).strftime("%H:%M") for offset in offsets}
    return sorted(times)


class OccurrenceGenerator:
    """Expand a dosing rule into concrete future occurrences. Pure, no I/O."""

    @staticmethod
    def effective_range(rule: DosingRule, now: datetime, horizon_days: int = DEFAULT_HORIZON_DAYS):
        """
        Compute the inclusive local date range to generate for.

        horizon_days counts calendar days including the first one.

        Returns:
            (effective_start, effective_end); empty when end < start
        """
        today = now.date()
        effective_start = max(rule.start_date or today, today)
        horizon_end = effective_start + timedelta(days=max(horizon_days, 1) - 1)
        effective_end = min(rule.end_date, horizon_end) if rule.end_date else horizon_end
        return effective_start, effective_end

    def generate(
        self,
        medicine_id: str,
        rule: DosingRule,
        now: datetime,
        horizon_days: int = DEFAULT_HORIZON_DAYS
    ) -> List[Occurrence]:
        """
        Generate occurrences strictly after now, ascending by scheduled_at.

        Args:
            medicine_id: Owning medicine
            rule: Validated dosing rule
            now: Generation instant (naive local time)
            horizon_days: Days of schedule to produce for open-ended courses

        Returns:
            List of unsaved Occurrence records with deterministic ids
        """
        if not rule.is_active:
            return []

        start, end = self.effective_range(rule, now, horizon_days)
        if end < start:
            return []

        slots = [slot for slot in self._slots(rule, start, end) if slot > now]

        by_id: Dict[str, Occurrence] = {}
        for slot in sorted(slots):
            oid = occurrence_id(medicine_id, slot)
            if oid in by_id:
                continue
            by_id[oid] = Occurrence(
                id=oid,
                medicine_id=medicine_id,
                scheduled_at=slot,
                status=OccurrenceStatus.SCHEDULED.value,
                snooze_count=0,
                created_at=now,
                updated_at=now,
                dose_amount=rule.dose_amount,
                dose_unit=rule.dose_unit,
                meal_tag=rule.meal_tag.value,
            )
        return list(by_id.values())

    def _slots(self, rule: DosingRule, start: date, end: date) -> List[datetime]:
        if rule.mode == DosingMode.FIXED_TIMES:
            return self._daily_slots(rule.times, start, end)
        elif rule.mode == DosingMode.TIMES_PER_DAY:
            times = spread_times_per_day(rule.times_per_day or 1, rule.window_start, rule.window_end)
            return self._daily_slots(times, start, end)
        elif rule.mode == DosingMode.INTERVAL_HOURS:
            return self._interval_slots(rule.interval_hours, rule.interval_start_time, start, end)
        elif rule.mode == DosingMode.AS_NEEDED:
            return []
        raise ValueError(f"Unsupported dosing mode: {rule.mode}")

    @staticmethod
    def _daily_slots(times: List[str], start: date, end: date) -> List[datetime]:
        clock_times = [_minutes_to_time(hhmm_to_minutes(t)) for t in times]
        slots = []
        day = start
        while day <= end:
            for clock_time in clock_times:
                slots.append(datetime.combine(day, clock_time))
            day += timedelta(days=1)
        return slots

    @staticmethod
    def _interval_slots(interval_hours: int, start_time: str, start: date, end: date) -> List[datetime]:
        step = timedelta(hours=interval_hours)
        cursor = datetime.combine(start, _minutes_to_time(hhmm_to_minutes(start_time)))
        stop = datetime.combine(end + timedelta(days=1), time(0, 0))
        slots = []
        while cursor < stop:
            slots.append(cursor)
            cursor += step
        return slots
