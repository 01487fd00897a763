import unittest
from datetime import date, time, timedelta

from cadence.domain import Curriculum, ScheduleSlot, SessionRecord, SessionStatus, Weekday
from cadence.errors import IndeterminateComputation, ValidationError
from cadence.recurrence import (
    compute_end_date,
    generate_session_plan,
    next_class_days,
    project_session_date,
)


MON, TUE, WED, THU, FRI = (
    Weekday.MONDAY,
    Weekday.TUESDAY,
    Weekday.WEDNESDAY,
    Weekday.THURSDAY,
    Weekday.FRIDAY,
)
# 2025-01-01 is a Wednesday.
NEW_YEAR = date(2025, 1, 1)


class ProjectSessionDateTestCase(unittest.TestCase):
    def test_cycle_with_offset_start(self) -> None:
        weekdays = {MON, WED, FRI}
        self.assertEqual(project_session_date(NEW_YEAR, weekdays, 1, 1, 3), date(2025, 1, 1))
        self.assertEqual(project_session_date(NEW_YEAR, weekdays, 1, 2, 3), date(2025, 1, 3))
        self.assertEqual(project_session_date(NEW_YEAR, weekdays, 1, 3, 3), date(2025, 1, 6))
        self.assertEqual(project_session_date(NEW_YEAR, weekdays, 2, 1, 3), date(2025, 1, 8))

    def test_start_date_not_enabled_moves_forward(self) -> None:
        tuesday = date(2025, 1, 7)
        first = project_session_date(tuesday, {MON, THU}, 1, 1, 4)
        self.assertEqual(first, date(2025, 1, 9))
        self.assertNotEqual(first, tuesday)
        self.assertEqual(project_session_date(tuesday, {MON, THU}, 1, 2, 4), date(2025, 1, 13))

    def test_single_weekday_is_weekly(self) -> None:
        dates = [project_session_date(NEW_YEAR, {"Wednesday"}, 1, n, 5) for n in range(1, 6)]
        self.assertEqual(dates, [NEW_YEAR + timedelta(weeks=n) for n in range(5)])

    def test_projection_lands_on_enabled_weekdays(self) -> None:
        weekday_sets = [{MON}, {MON, THU}, {TUE, WED, FRI}, {Weekday.SUNDAY, Weekday.SATURDAY}]
        for offset in range(14):
            start = NEW_YEAR + timedelta(days=offset)
            for weekdays in weekday_sets:
                for session in range(1, 13):
                    projected = project_session_date(start, weekdays, 1, session, 12)
                    self.assertIn(Weekday.of(projected), weekdays)
                    self.assertGreaterEqual(projected, start)

    def test_projection_is_monotonic(self) -> None:
        for offset in range(7):
            start = NEW_YEAR + timedelta(days=offset)
            dates = [
                project_session_date(start, {MON, WED, FRI}, phase, session, 4)
                for phase in range(1, 4)
                for session in range(1, 5)
            ]
            self.assertEqual(dates, sorted(dates))

    def test_invalid_input_raises(self) -> None:
        with self.assertRaises(ValueError):
            project_session_date(NEW_YEAR, set(), 1, 1, 3)
        with self.assertRaises(ValueError):
            project_session_date(NEW_YEAR, {MON}, 0, 1, 3)


class ComputeEndDateTestCase(unittest.TestCase):
    def test_matches_projection_without_holidays(self) -> None:
        for offset in range(7):
            start = NEW_YEAR + timedelta(days=offset)
            for weekdays in ({MON}, {MON, WED, FRI}, {TUE, THU}):
                for phases, per_phase in ((1, 1), (2, 3), (4, 5)):
                    result = compute_end_date(start, weekdays, phases * per_phase)
                    self.assertTrue(result.is_ok)
                    self.assertEqual(
                        result.value,
                        project_session_date(start, weekdays, phases, per_phase, per_phase),
                    )

    def test_holiday_is_skipped(self) -> None:
        weekdays = {MON, WED, FRI}
        self.assertEqual(compute_end_date(NEW_YEAR, weekdays, 6).value, date(2025, 1, 13))
        shifted = compute_end_date(NEW_YEAR, weekdays, 6, holidays={date(2025, 1, 6)})
        self.assertEqual(shifted.value, date(2025, 1, 15))

    def test_holiday_on_disabled_day_changes_nothing(self) -> None:
        result = compute_end_date(NEW_YEAR, {MON, WED, FRI}, 6, holidays={date(2025, 1, 7)})
        self.assertEqual(result.value, date(2025, 1, 13))

    def test_indeterminate_without_weekdays_or_sessions(self) -> None:
        empty = compute_end_date(NEW_YEAR, [], 10)
        self.assertFalse(empty.is_ok)
        self.assertIsInstance(empty.error, IndeterminateComputation)
        zero = compute_end_date(NEW_YEAR, {MON}, 0)
        self.assertIsInstance(zero.error, IndeterminateComputation)
        with self.assertRaises(IndeterminateComputation):
            zero.unwrap()

    def test_actual_sessions_take_precedence(self) -> None:
        sessions = [
            SessionRecord(1, 1, date(2025, 1, 6), time(9), time(10)),
            SessionRecord(1, 2, date(2025, 1, 8), time(9), time(10), actual_date=date(2025, 2, 3)),
            SessionRecord(1, 3, date(2025, 3, 1), time(9), time(10), status=SessionStatus.CANCELLED),
        ]
        result = compute_end_date(NEW_YEAR, {MON, WED}, 3, actual_sessions=sessions)
        self.assertEqual(result.value, date(2025, 2, 3))

    def test_only_cancelled_sessions_fall_back_to_projection(self) -> None:
        sessions = [
            SessionRecord(1, 1, date(2025, 3, 1), time(9), time(10), status=SessionStatus.CANCELLED),
        ]
        result = compute_end_date(NEW_YEAR, {WED}, 2, actual_sessions=sessions)
        self.assertEqual(result.value, date(2025, 1, 8))


class NextClassDaysTestCase(unittest.TestCase):
    def test_starts_after_the_given_day_and_skips_holidays(self) -> None:
        days = next_class_days(date(2025, 1, 6), (MON, WED), 3, holidays={date(2025, 1, 8)})
        self.assertEqual(days, [date(2025, 1, 13), date(2025, 1, 15), date(2025, 1, 20)])

    def test_no_days_requested(self) -> None:
        self.assertEqual(next_class_days(NEW_YEAR, (MON,), 0), [])


class GenerateSessionPlanTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.slots = [
            ScheduleSlot(MON, time(9, 0), time(10, 0)),
            ScheduleSlot(WED, time(14, 0), time(15, 30)),
        ]

    def test_builds_every_session_in_order(self) -> None:
        sessions = generate_session_plan(
            date(2025, 1, 6), self.slots, Curriculum(2, 3), teacher_id=4
        ).unwrap()
        self.assertEqual([session.identity for session in sessions][:4], [(1, 1), (1, 2), (1, 3), (2, 1)])
        self.assertEqual(
            [session.scheduled_date for session in sessions],
            [
                date(2025, 1, 6),
                date(2025, 1, 8),
                date(2025, 1, 13),
                date(2025, 1, 15),
                date(2025, 1, 20),
                date(2025, 1, 22),
            ],
        )
        self.assertEqual(sessions[1].start_time, time(14, 0))
        self.assertEqual(sessions[1].end_time, time(15, 30))
        self.assertTrue(all(session.assigned_teacher_id == 4 for session in sessions))

    def test_holidays_push_sessions_back(self) -> None:
        sessions = generate_session_plan(
            date(2025, 1, 6), self.slots, Curriculum(1, 3), holidays={date(2025, 1, 8)}
        ).unwrap()
        self.assertEqual(
            [session.scheduled_date for session in sessions],
            [date(2025, 1, 6), date(2025, 1, 13), date(2025, 1, 15)],
        )

    def test_fixed_duration_overrides_slot_end(self) -> None:
        curriculum = Curriculum(1, 2, session_duration=timedelta(minutes=45))
        sessions = generate_session_plan(date(2025, 1, 6), self.slots, curriculum).unwrap()
        self.assertEqual([session.end_time for session in sessions], [time(9, 45), time(14, 45)])

    def test_rejects_invalid_schedules(self) -> None:
        inverted = generate_session_plan(
            NEW_YEAR, [ScheduleSlot(MON, time(10), time(9))], Curriculum(1, 1)
        )
        self.assertIsInstance(inverted.error, ValidationError)
        duplicated = generate_session_plan(
            NEW_YEAR,
            [ScheduleSlot(MON, time(9), time(10)), ScheduleSlot(MON, time(11), time(12))],
            Curriculum(1, 1),
        )
        self.assertIsInstance(duplicated.error, ValidationError)
        empty = generate_session_plan(NEW_YEAR, [], Curriculum(1, 1))
        self.assertEqual(empty.error.field, "slots")
        no_sessions = generate_session_plan(NEW_YEAR, self.slots, Curriculum(1, 0))
        self.assertEqual(no_sessions.error.field, "sessions_per_phase")


if __name__ == "__main__":
    unittest.main()
