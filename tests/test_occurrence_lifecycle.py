import unittest
from datetime import timedelta
from unittest.mock import patch

from sqlalchemy.exc import OperationalError

from medreminder.errors import StorageError, ValidationError
from medreminder.models.intake_log import IntakeAction, IntakeSource
from medreminder.models.occurrence import OccurrenceStatus, occurrence_id
from medreminder.services.occurrence_lifecycle import can_transition
from medreminder.utils.metrics import metrics_collector
from tests.helpers import DAY_ONE, at, make_service, twice_daily

MORNING = occurrence_id("med-1", at(8))
EVENING = occurrence_id("med-1", at(20))


class LifecycleTestCase(unittest.TestCase):
    settings_overrides = {}

    def setUp(self):
        self.service, self.session, self.clock, self.notifier = make_service(at(7), **self.settings_overrides)
        self.service.register_medicine("med-1", "Metformin", twice_daily())

    def tearDown(self):
        self.session.close()

    def _occurrence(self, oid):
        return self.service.store.get("med-1", oid)


class TestMarkTaken(LifecycleTestCase):
    def test_mark_taken_then_no_op(self):
        self.clock.set(at(8, 5))

        first = self.service.mark_taken("med-1", MORNING)
        second = self.service.mark_taken("med-1", MORNING)

        self.assertTrue(first.success)
        self.assertEqual(first.code, "ok")
        self.assertFalse(second.success)
        self.assertEqual(second.code, "no_op")

        occ = self._occurrence(MORNING)
        self.assertEqual(occ.status, OccurrenceStatus.TAKEN.value)
        self.assertEqual(occ.taken_at, at(8, 5))
        self.assertIsNone(occ.alert_handle)

        log = self.service.get_intake_log("med-1")
        self.assertEqual(len(log), 1)
        self.assertEqual(log[0].action, IntakeAction.TAKEN.value)
        self.assertEqual(log[0].scheduled_at, at(8))

    def test_mark_taken_cancels_alert(self):
        handle = self._occurrence(MORNING).alert_handle
        self.service.mark_taken("med-1", MORNING)
        self.assertEqual(self.notifier.canceled, [handle])

    def test_source_is_recorded(self):
        self.service.mark_taken("med-1", MORNING, IntakeSource.NOTIFICATION)
        self.assertEqual(self.service.get_intake_log("med-1")[0].source, "notification")

    def test_unknown_occurrence_is_not_found(self):
        result = self.service.mark_taken("med-1", "does-not-exist")
        self.assertFalse(result.success)
        self.assertEqual(result.code, "not_found")

        other_medicine = self.service.mark_taken("med-2", MORNING)
        self.assertEqual(other_medicine.code, "not_found")

    def test_missed_occurrence_cannot_be_taken(self):
        self.clock.set(at(10))
        self.service.reconcile("med-1")

        result = self.service.mark_taken("med-1", MORNING)
        self.assertFalse(result.success)
        self.assertEqual(result.code, "invalid_state")
        self.assertEqual(self._occurrence(MORNING).status, OccurrenceStatus.MISSED.value)

    def test_long_overdue_dose_is_missed_before_taking(self):
        self.clock.set(at(12, day=DAY_ONE + timedelta(days=2)))

        result = self.service.mark_taken("med-1", MORNING)

        self.assertFalse(result.success)
        self.assertEqual(result.code, "invalid_state")
        occ = self._occurrence(MORNING)
        self.assertEqual(occ.status, OccurrenceStatus.MISSED.value)
        self.assertEqual(occ.missed_at, at(9))


class TestSnooze(LifecycleTestCase):
    def test_snooze_moves_slot_and_keeps_id(self):
        self.clock.set(at(8, 5))
        old_handle = self._occurrence(MORNING).alert_handle

        result = self.service.snooze("med-1", MORNING, 10)

        self.assertTrue(result.success)
        occ = self._occurrence(MORNING)
        self.assertEqual(occ.id, MORNING)
        self.assertEqual(occ.status, OccurrenceStatus.SNOOZED.value)
        self.assertEqual(occ.scheduled_at, at(8, 15))
        self.assertEqual(occ.snooze_count, 1)
        self.assertIn(old_handle, self.notifier.canceled)
        self.assertEqual(self.notifier.requested[-1][:2], (MORNING, at(8, 15)))

        entry = self.service.get_intake_log("med-1")[-1]
        self.assertEqual(entry.action, IntakeAction.SNOOZED.value)
        self.assertEqual(entry.scheduled_at, at(8))
        self.assertEqual(entry.snooze_minutes, 10)

    def test_snooze_repeatedly(self):
        self.clock.set(at(8, 5))
        self.service.snooze("med-1", MORNING, 10)
        self.clock.set(at(8, 20))
        self.service.snooze("med-1", MORNING, 30)

        occ = self._occurrence(MORNING)
        self.assertEqual(occ.scheduled_at, at(8, 50))
        self.assertEqual(occ.snooze_count, 2)

    def test_invalid_minutes_rejected(self):
        for minutes in (0, -5, 1441, 2.5, True):
            with self.assertRaises(ValidationError):
                self.service.snooze("med-1", MORNING, minutes)
        self.assertEqual(self._occurrence(MORNING).status, OccurrenceStatus.SCHEDULED.value)

    def test_taken_occurrence_cannot_be_snoozed(self):
        self.service.mark_taken("med-1", MORNING)
        result = self.service.snooze("med-1", MORNING, 10)

        self.assertFalse(result.success)
        self.assertEqual(result.code, "invalid_state")
        self.assertEqual(self._occurrence(MORNING).snooze_count, 0)

    def test_unknown_occurrence_is_not_found(self):
        self.assertEqual(self.service.snooze("med-1", "nope", 10).code, "not_found")

    def test_snoozed_occurrence_can_be_missed(self):
        self.clock.set(at(8, 5))
        self.service.snooze("med-1", MORNING, 10)
        self.clock.set(at(9, 16))

        missed = self.service.reconcile("med-1")

        self.assertEqual([occ.id for occ in missed], [MORNING])
        self.assertEqual(self._occurrence(MORNING).missed_at, at(9, 15))

    def test_long_overdue_dose_cannot_be_snoozed(self):
        self.clock.set(at(12, day=DAY_ONE + timedelta(days=2)))

        result = self.service.snooze("med-1", MORNING, 10)

        self.assertEqual(result.code, "invalid_state")
        occ = self._occurrence(MORNING)
        self.assertEqual(occ.status, OccurrenceStatus.MISSED.value)
        self.assertEqual(occ.scheduled_at, at(8))
        self.assertEqual(occ.snooze_count, 0)


class TestReconcile(LifecycleTestCase):
    def test_overdue_occurrence_is_missed(self):
        self.clock.set(at(9, 30))

        missed = self.service.reconcile("med-1")

        self.assertEqual(len(missed), 1)
        occ = self._occurrence(MORNING)
        self.assertEqual(occ.status, OccurrenceStatus.MISSED.value)
        self.assertEqual(occ.missed_at, at(9))

        log = self.service.get_intake_log("med-1")
        self.assertEqual(len(log), 1)
        self.assertEqual(log[0].action, IntakeAction.MISSED.value)
        self.assertEqual(log[0].source, IntakeSource.SYSTEM.value)
        self.assertEqual(log[0].at, at(9))

    def test_reconcile_is_idempotent(self):
        self.clock.set(at(9, 30))
        self.service.reconcile("med-1")
        self.assertEqual(self.service.reconcile("med-1"), [])
        self.assertEqual(len(self.service.get_intake_log("med-1")), 1)

    def test_grace_boundary_is_exclusive(self):
        self.clock.set(at(9))
        self.assertEqual(self.service.reconcile("med-1"), [])

        self.clock.set(at(9, 1))
        self.assertEqual(len(self.service.reconcile("med-1")), 1)

    def test_taken_occurrence_never_missed(self):
        self.service.mark_taken("med-1", MORNING)
        self.clock.set(at(23))
        missed = self.service.reconcile("med-1")
        self.assertEqual([occ.id for occ in missed], [EVENING])

    def test_reads_reconcile_first(self):
        self.clock.set(at(22))
        today = self.service.get_today_occurrences("med-1")
        self.assertEqual([occ.status for occ in today], [OccurrenceStatus.MISSED.value] * 2)

    def test_replay_converges(self):
        frequent, frequent_session, frequent_clock, _ = make_service(at(7))
        try:
            frequent.register_medicine("med-1", "Metformin", twice_daily())
            for _ in range(33):
                frequent_clock.advance(minutes=30)
                frequent.reconcile("med-1")

            self.clock.set(frequent_clock.now())
            self.service.reconcile("med-1")

            def snapshot(service):
                occurrences = service.store.list_for_medicine("med-1")
                log = service.get_intake_log("med-1")
                return (
                    [(o.id, o.status, o.missed_at) for o in occurrences],
                    [(e.reminder_id, e.action, e.at, e.scheduled_at) for e in log],
                )

            self.assertEqual(snapshot(frequent), snapshot(self.service))
        finally:
            frequent_session.close()


class TestReconcileFailures(LifecycleTestCase):
    def setUp(self):
        super().setUp()
        metrics_collector.reset()

    def _logged_ids(self):
        return [entry.reminder_id for entry in self.service.intake_log.list_entries("med-1")]

    def test_failed_item_is_left_untouched(self):
        self.clock.set(at(9, 30))
        with patch.object(self.service.intake_log, "append", side_effect=RuntimeError("log unavailable")):
            missed = self.service.reconcile("med-1")

        self.assertEqual(missed, [])
        occ = self._occurrence(MORNING)
        self.assertEqual(occ.status, OccurrenceStatus.SCHEDULED.value)
        self.assertIsNone(occ.missed_at)
        self.assertEqual(self._logged_ids(), [])
        self.assertEqual(metrics_collector.get_metrics()["counters"]["reconcile_errors_total"], 1)

    def test_sibling_still_missed_when_one_item_fails(self):
        self.clock.set(at(23))
        original_append = self.service.intake_log.append
        calls = []

        def fail_first(entry):
            calls.append(entry.reminder_id)
            if len(calls) == 1:
                raise RuntimeError("log unavailable")
            return original_append(entry)

        with patch.object(self.service.intake_log, "append", side_effect=fail_first):
            missed = self.service.reconcile("med-1")

        self.assertEqual([occ.id for occ in missed], [EVENING])
        self.assertEqual(self._occurrence(MORNING).status, OccurrenceStatus.SCHEDULED.value)
        self.assertEqual(self._logged_ids(), [EVENING])

        retried = self.service.reconcile("med-1")
        self.assertEqual([occ.id for occ in retried], [MORNING])
        self.assertEqual(self._occurrence(MORNING).missed_at, at(9))

    def test_storage_failure_rolls_back(self):
        self.clock.set(at(9, 30))
        failure = OperationalError("INSERT INTO intake_log", {}, Exception("disk I/O error"))

        with patch.object(self.service.intake_log, "append", side_effect=failure):
            with self.assertRaises(StorageError):
                self.service.reconcile("med-1")

        occ = self._occurrence(MORNING)
        self.assertEqual(occ.status, OccurrenceStatus.SCHEDULED.value)
        self.assertIsNone(occ.missed_at)
        self.assertEqual(self._logged_ids(), [])


class TestCustomGrace(LifecycleTestCase):
    settings_overrides = {"grace_minutes": 15}

    def test_grace_from_settings(self):
        self.clock.set(at(8, 16))
        missed = self.service.reconcile("med-1")
        self.assertEqual(len(missed), 1)
        self.assertEqual(missed[0].missed_at, at(8, 15))


class TestIntakeLogCap(LifecycleTestCase):
    settings_overrides = {"intake_log_cap": 3}

    def test_oldest_entries_are_dropped(self):
        ids = [occurrence_id("med-1", at(hour, day=DAY_ONE + timedelta(days=day)))
               for day in range(2) for hour in (8, 20)]
        for oid in ids:
            self.assertTrue(self.service.mark_taken("med-1", oid).success)

        log = self.service.get_intake_log("med-1")
        self.assertEqual([entry.reminder_id for entry in log], ids[1:])

    def test_limit_returns_most_recent(self):
        self.service.mark_taken("med-1", MORNING)
        self.service.mark_taken("med-1", EVENING)

        log = self.service.get_intake_log("med-1", limit=1)
        self.assertEqual([entry.reminder_id for entry in log], [EVENING])


class TestTransitions(unittest.TestCase):
    def test_terminal_states_have_no_exits(self):
        for target in OccurrenceStatus:
            self.assertFalse(can_transition("taken", target.value))
            self.assertFalse(can_transition("missed", target.value))

    def test_paused_only_resumes(self):
        self.assertTrue(can_transition("paused", "scheduled"))
        self.assertFalse(can_transition("paused", "taken"))


if __name__ == "__main__":
    unittest.main(verbosity=2)
