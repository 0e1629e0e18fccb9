import unittest
from datetime import date

from medreminder.errors import DosingRuleValidationError
from medreminder.schemas.dosing_rule import DosingMode, DosingRule, MealTag
from medreminder.services.rule_validator import DosingRuleValidator, parse_hhmm


class TestParseHHMM(unittest.TestCase):
    def test_pads_single_digit_hour(self):
        self.assertEqual(parse_hhmm("8:05"), "08:05")
        self.assertEqual(parse_hhmm(" 20:30 "), "20:30")

    def test_rejects_out_of_range_and_garbage(self):
        for raw in ("24:00", "12:60", "noon", "8", "", None, "08:5"):
            self.assertIsNone(parse_hhmm(raw), raw)


class TestDosingRuleValidator(unittest.TestCase):
    def test_fixed_times_are_normalised(self):
        rule = DosingRule(mode=DosingMode.FIXED_TIMES, times=["20:00", "8:00", "08:00"])
        result = DosingRuleValidator.validate_dosing_rule(rule)

        self.assertTrue(result["valid"])
        self.assertEqual(result["rule"].times, ["08:00", "20:00"])
        self.assertIn("Duplicate reminder times were merged", result["warnings"])

    def test_fixed_times_require_at_least_one_valid_time(self):
        empty = DosingRuleValidator.validate_dosing_rule(DosingRule(mode=DosingMode.FIXED_TIMES, times=[]))
        self.assertFalse(empty["valid"])

        bad = DosingRuleValidator.validate_dosing_rule(DosingRule(mode=DosingMode.FIXED_TIMES, times=["8h"]))
        self.assertFalse(bad["valid"])
        self.assertIn("Invalid time format: 8h (expected HH:MM)", bad["errors"])

    def test_times_per_day_range(self):
        for n in (0, 13, None):
            rule = DosingRule(mode=DosingMode.TIMES_PER_DAY, times_per_day=n)
            result = DosingRuleValidator.validate_dosing_rule(rule)
            self.assertFalse(result["valid"])
            self.assertIn("times_per_day must be 1-12", result["errors"])

        ok = DosingRuleValidator.validate_dosing_rule(DosingRule(mode=DosingMode.TIMES_PER_DAY, times_per_day=12))
        self.assertTrue(ok["valid"])

    def test_interval_hours_range_message(self):
        rule = DosingRule(mode=DosingMode.INTERVAL_HOURS, interval_hours=25, interval_start_time="06:00")
        with self.assertRaises(DosingRuleValidationError) as ctx:
            DosingRuleValidator.ensure_valid(rule)

        self.assertIn("interval_hours must be 1-24", ctx.exception.errors)
        self.assertEqual(ctx.exception.code, "VALIDATION_ERROR")

    def test_interval_requires_start_time(self):
        rule = DosingRule(mode=DosingMode.INTERVAL_HOURS, interval_hours=8)
        result = DosingRuleValidator.validate_dosing_rule(rule)
        self.assertFalse(result["valid"])

    def test_start_after_end_rejected(self):
        rule = DosingRule(times=["08:00"], start_date=date(2026, 5, 2), end_date=date(2026, 5, 1))
        result = DosingRuleValidator.validate_dosing_rule(rule)
        self.assertFalse(result["valid"])
        self.assertIn("start_date must not be later than end_date", result["errors"])

    def test_dose_amount_must_be_positive(self):
        rule = DosingRule(times=["08:00"], dose_amount=0)
        result = DosingRuleValidator.validate_dosing_rule(rule)
        self.assertIn("dose_amount must be a positive number", result["errors"])

    def test_dose_amount_must_be_finite(self):
        for amount in (float("nan"), float("inf")):
            result = DosingRuleValidator.validate_dosing_rule(DosingRule(times=["08:00"], dose_amount=amount))
            self.assertFalse(result["valid"])
            self.assertIn("dose_amount must be a positive number", result["errors"])

    def test_all_errors_reported_together(self):
        rule = DosingRule(times=["99:99"], dose_amount=-1, dose_unit=" ",
                          start_date=date(2026, 5, 2), end_date=date(2026, 5, 1))
        result = DosingRuleValidator.validate_dosing_rule(rule)
        self.assertEqual(len(result["errors"]), 4)

    def test_as_needed_needs_no_times(self):
        rule = DosingRule(mode=DosingMode.AS_NEEDED, meal_tag=MealTag.AFTER_MEAL)
        self.assertTrue(DosingRuleValidator.validate_dosing_rule(rule)["valid"])


class TestDosingRuleLabels(unittest.TestCase):
    def test_frequency_label(self):
        rule = DosingRule(mode=DosingMode.INTERVAL_HOURS, interval_hours=8, interval_start_time="06:00",
                          meal_tag=MealTag.AFTER_MEAL)
        self.assertEqual(rule.describe_frequency(), "every 8 hours (after meal)")
        self.assertEqual(DosingRule(mode=DosingMode.AS_NEEDED).describe_frequency(), "as needed")

    def test_rule_is_immutable(self):
        rule = DosingRule(times=["08:00"])
        with self.assertRaises(Exception):
            rule.paused = True


if __name__ == "__main__":
    unittest.main(verbosity=2)
