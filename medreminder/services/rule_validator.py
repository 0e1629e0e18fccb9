"""Dosing Rule Validator."""
import math
import re
from datetime import date
from typing import Any, Dict, List, Optional

from medreminder.errors import DosingRuleValidationError
from medreminder.schemas.dosing_rule import DosingMode, DosingRule

_HHMM_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})$")

MAX_TIMES_PER_DAY = 12
MAX_INTERVAL_HOURS = 24
MAX_DOSE_UNIT_LENGTH = 16


def parse_hhmm(value: Any) -> Optional[str]:
    """
    Normalise a local clock time.

    Args:
        value: Time string such as "8:00" or "20:30"

    Returns:
        Zero-padded "HH:MM" or None if the value is not a valid time
    """
    match = _HHMM_PATTERN.match(str(value or "").strip())
    if not match:
        return None
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        return None
    return f"{hours:02d}:{minutes:02d}"


def hhmm_to_minutes(value: str) -> int:
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


class DosingRuleValidator:
    """Validate and normalise dosing rules."""

    @staticmethod
    def validate_times(times: List[str]) -> Dict[str, Any]:
        """
        Validate fixed clock times.

        Args:
            times: List of HH:MM strings

        Returns:
            Dict with validation result and the sorted, de-duplicated times
        """
        result = {
            "valid": True,
            "errors": [],
            "warnings": [],
            "times": []
        }

        if not times:
            result["valid"] = False
            result["errors"].append("At least one reminder time is required for fixed_times (e.g. 08:00,20:00)")
            return result

        normalised = []
        for raw in times:
            parsed = parse_hhmm(raw)
            if parsed is None:
                result["valid"] = False
                result["errors"].append(f"Invalid time format: {raw} (expected HH:MM)")
                continue
            normalised.append(parsed)

        unique = sorted(set(normalised))
        if len(unique) < len(normalised):
            result["warnings"].append("Duplicate reminder times were merged")
        result["times"] = unique
        return result

    @staticmethod
    def validate_date_range(start_date: Optional[date], end_date: Optional[date]) -> Dict[str, Any]:
        result = {
            "valid": True,
            "errors": [],
            "warnings": []
        }
        if start_date and end_date and start_date > end_date:
            result["valid"] = False
            result["errors"].append("start_date must not be later than end_date")
        return result

    @staticmethod
    def validate_dosing_rule(rule: DosingRule) -> Dict[str, Any]:
        """
        Validate every field that matters for the rule's mode.

        Args:
            rule: Dosing rule to check

        Returns:
            Dict with validation result; "rule" holds the normalised rule when valid
        """
        result = {
            "valid": True,
            "errors": [],
            "warnings": [],
            "rule": None
        }
        updates: Dict[str, Any] = {}

        if rule.mode == DosingMode.FIXED_TIMES:
            times_check = DosingRuleValidator.validate_times(rule.times)
            result["errors"].extend(times_check["errors"])
            result["warnings"].extend(times_check["warnings"])
            updates["times"] = times_check["times"]

        elif rule.mode == DosingMode.TIMES_PER_DAY:
            if rule.times_per_day is None or not 1 <= rule.times_per_day <= MAX_TIMES_PER_DAY:
                result["errors"].append(f"times_per_day must be 1-{MAX_TIMES_PER_DAY}")
            window_start = parse_hhmm(rule.window_start)
            window_end = parse_hhmm(rule.window_end)
            if window_start is None:
                result["errors"].append(f"Invalid window_start: {rule.window_start} (expected HH:MM)")
            if window_end is None:
                result["errors"].append(f"Invalid window_end: {rule.window_end} (expected HH:MM)")
            if window_start and window_end:
                updates["window_start"] = window_start
                updates["window_end"] = window_end
                if hhmm_to_minutes(window_end) <= hhmm_to_minutes(window_start):
                    result["warnings"].append("Reminder window is empty; all doses collapse to window_start")

        elif rule.mode == DosingMode.INTERVAL_HOURS:
            if rule.interval_hours is None or not 1 <= rule.interval_hours <= MAX_INTERVAL_HOURS:
                result["errors"].append(f"interval_hours must be 1-{MAX_INTERVAL_HOURS}")
            start_time = parse_hhmm(rule.interval_start_time)
            if start_time is None:
                result["errors"].append(
                    f"Invalid interval_start_time: {rule.interval_start_time} (expected HH:MM)"
                )
            else:
                updates["interval_start_time"] = start_time

        if rule.dose_amount is None or not math.isfinite(rule.dose_amount) or rule.dose_amount <= 0:
            result["errors"].append("dose_amount must be a positive number")

        dose_unit = (rule.dose_unit or "").strip()
        if not dose_unit:
            result["errors"].append("dose_unit is required")
        elif len(dose_unit) > MAX_DOSE_UNIT_LENGTH:
            result["errors"].append(f"dose_unit exceeds maximum length of {MAX_DOSE_UNIT_LENGTH} characters")
        else:
            updates["dose_unit"] = dose_unit

        range_check = DosingRuleValidator.validate_date_range(rule.start_date, rule.end_date)
        result["errors"].extend(range_check["errors"])

        if result["errors"]:
            result["valid"] = False
            return result

        result["rule"] = rule.model_copy(update=updates)
        return result

    @staticmethod
    def ensure_valid(rule: DosingRule) -> DosingRule:
        """Return the normalised rule or raise DosingRuleValidationError."""
        validation = DosingRuleValidator.validate_dosing_rule(rule)
        if not validation["valid"]:
            raise DosingRuleValidationError(validation["errors"], {"mode": rule.mode.value})
        return validation["rule"]
