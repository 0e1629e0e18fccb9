"""Dosing rule value type."""
from datetime import date
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class DosingMode(str, Enum):
    """How occurrences are generated from a rule"""
    FIXED_TIMES = "fixed_times"
    TIMES_PER_DAY = "times_per_day"
    INTERVAL_HOURS = "interval_hours"
    AS_NEEDED = "as_needed"


class MealTag(str, Enum):
    """Meal guidance shown with a reminder; no scheduling effect"""
    NONE = "none"
    BEFORE_MEAL = "before_meal"
    AFTER_MEAL = "after_meal"
    BEDTIME = "bedtime"


class DosingRule(BaseModel):
    """
    Immutable description of when a medicine is taken.

    Range checks live in DosingRuleValidator so that every problem can be
    reported at once with a readable message.
    """
    mode: DosingMode = DosingMode.FIXED_TIMES
    times: List[str] = Field(default_factory=list)  # HH:MM, fixed_times
    times_per_day: Optional[int] = None  # 1-12, times_per_day
    window_start: str = "08:00"
    window_end: str = "20:00"
    interval_hours: Optional[int] = None  # 1-24, interval_hours
    interval_start_time: Optional[str] = None  # HH:MM, interval_hours
    meal_tag: MealTag = MealTag.NONE
    dose_amount: float = 1
    dose_unit: str = "tablet"
    start_date: Optional[date] = None  # None means the day the rule is applied
    end_date: Optional[date] = None
    enabled: bool = True
    paused: bool = False

    class Config:
        frozen = True

    @property
    def is_active(self) -> bool:
        """True when the rule may produce future occurrences."""
        return self.enabled and not self.paused and self.mode != DosingMode.AS_NEEDED

    def describe_frequency(self) -> str:
        """Short human label, e.g. 'every 8 hours (after meal)'."""
        if self.mode == DosingMode.AS_NEEDED:
            base = "as needed"
        elif self.mode == DosingMode.INTERVAL_HOURS:
            base = f"every {self.interval_hours} hours"
        elif self.mode == DosingMode.TIMES_PER_DAY:
            base = f"{self.times_per_day} times a day"
        else:
            base = "at " + ", ".join(self.times)

        if self.meal_tag == MealTag.NONE:
            return base
        return f"{base} ({self.meal_tag.value.replace('_', ' ')})"

    def describe_dose(self) -> str:
        amount = int(self.dose_amount) if float(self.dose_amount).is_integer() else self.dose_amount
        return f"{amount} {self.dose_unit}".strip()
