import unittest
from datetime import date, time

from cadence import db
from cadence.domain import ScheduleSlot, SessionStatus, Weekday
from cadence.errors import TransactionFailure, ValidationError
from cadence.models import Teacher
from cadence.store import ScheduleStore

from support import DatabaseTestCase


class ScheduleStoreTestCase(DatabaseTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.store = ScheduleStore()
        self.alice = self.make_teacher("Alice")
        self.bruno = self.make_teacher("Bruno")
        self.room = self.make_room("Room 5")
        self.piano = self.make_class(
            "Piano",
            slots=[(Weekday.MONDAY, time(9), time(10))],
            room=self.room,
            teachers=[self.alice, self.bruno],
        )
        self.archived = self.make_class(
            "Archived",
            slots=[(Weekday.MONDAY, time(9), time(10))],
            room=self.room,
            teachers=[self.alice],
            status="Archived",
        )
        self.theory = self.make_class(
            "Theory",
            slots=[(Weekday.TUESDAY, time(9), time(10))],
            teachers=[self.bruno],
        )

    def test_room_bookings_cover_active_classes_only(self) -> None:
        bookings = self.store.get_room_bookings(self.room.id, exclude_class_ids=set())
        self.assertEqual([booking.class_name for booking in bookings], ["Piano"])
        self.assertEqual(self.store.get_room_bookings(self.room.id, {self.piano.id}), [])

    def test_teacher_bookings(self) -> None:
        bookings = self.store.get_teacher_bookings([self.bruno.id], exclude_class_ids=set())
        self.assertEqual(
            sorted((booking.resource_id, booking.class_name) for booking in bookings),
            [(self.bruno.id, "Piano"), (self.bruno.id, "Theory")],
        )
        self.assertEqual(self.store.get_teacher_bookings([], set()), [])

    def test_detect_conflicts_combines_room_and_teachers(self) -> None:
        conflicts = self.store.detect_conflicts(
            [ScheduleSlot(Weekday.MONDAY, time(9, 30), time(10, 30))],
            self.room.id,
            [self.alice.id],
            exclude_class_ids=set(),
        )
        self.assertEqual(
            [(conflict.resource_kind, conflict.booking.class_name) for conflict in conflicts],
            [("room", "Piano"), ("teacher", "Piano")],
        )

    def test_holidays_and_sessions(self) -> None:
        self.store.add_holiday(date(2025, 1, 13), "Founders Day")
        self.store.add_holiday(date(2025, 3, 1))
        self.assertEqual(
            self.store.get_holidays(date(2025, 1, 1), date(2025, 2, 1)), [date(2025, 1, 13)]
        )

        self.store.generate_sessions(self.piano.id)
        sessions = self.store.get_sessions_for_class(self.piano.id)
        self.assertEqual(len(sessions), 8)
        self.assertNotIn(date(2025, 1, 13), [session.scheduled_date for session in sessions])
        self.assertEqual(sessions[0].status, SessionStatus.SCHEDULED)
        self.assertEqual(sessions[0].assigned_teacher_id, self.alice.id)

    def test_regenerating_replaces_sessions(self) -> None:
        self.store.generate_sessions(self.piano.id)
        self.store.add_holiday(date(2025, 1, 6))
        self.store.generate_sessions(self.piano.id)
        sessions = self.store.get_sessions_for_class(self.piano.id)
        self.assertEqual(len(sessions), 8)
        self.assertEqual(sessions[0].scheduled_date, date(2025, 1, 13))
        self.assertEqual(self.store.get_class(self.piano.id).end_date, date(2025, 3, 3))

    def test_generation_requires_a_start_date(self) -> None:
        undated = self.make_class("Undated", slots=[(Weekday.MONDAY, time(9), time(10))], start_date=None)
        with self.assertRaises(ValidationError):
            self.store.generate_sessions(undated.id)

    def test_override_end_date(self) -> None:
        school_class = self.store.override_end_date(self.piano.id, date(2025, 6, 30), "Recital added")
        self.assertEqual(school_class.end_date, date(2025, 6, 30))
        self.assertEqual(school_class.end_date_note, "Recital added")
        with self.assertRaises(ValidationError):
            self.store.override_end_date(self.piano.id, date(2025, 6, 30), "")
        with self.assertRaises(ValidationError):
            self.store.override_end_date(self.piano.id, date(2024, 1, 1), "Too early")

    def test_failed_transaction_rolls_back(self) -> None:
        with self.assertRaises(TransactionFailure):
            with self.store.transaction() as session:
                session.add(Teacher(name="Carla"))
                session.add(Teacher(name="Alice"))
        self.assertIsNone(db.session.scalar(db.select(Teacher).where(Teacher.name == "Carla")))

    def test_missing_class(self) -> None:
        with self.assertRaises(ValidationError):
            self.store.load_timetable(404)


if __name__ == "__main__":
    unittest.main()
