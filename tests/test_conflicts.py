import unittest
from datetime import time

from cadence.conflicts import (
    ROOM,
    TEACHER,
    bookings_from_slots,
    find_conflicts,
    find_teacher_conflicts,
    overlap_window,
)
from cadence.domain import ResourceBooking, ScheduleSlot, Weekday


MON = Weekday.MONDAY


def booking(class_id: int, start: time, end: time, weekday: Weekday = MON, resource_id: int = 5):
    return ResourceBooking(resource_id, weekday, start, end, class_id, f"Class {class_id}")


class FindConflictsTestCase(unittest.TestCase):
    def test_room_five_overlap(self) -> None:
        existing = [booking(7, time(9, 0), time(10, 0))]
        candidate = [ScheduleSlot(MON, time(9, 30), time(10, 30))]
        conflicts = find_conflicts(candidate, existing, exclude_class_ids=set(), candidate_class_id=8)
        self.assertEqual(len(conflicts), 1)
        conflict = conflicts[0]
        self.assertEqual(conflict.resource_kind, ROOM)
        self.assertEqual(conflict.booking.class_id, 7)
        self.assertEqual((conflict.overlap_start, conflict.overlap_end), (time(9, 30), time(10, 0)))
        payload = conflict.as_dict()
        self.assertEqual(payload["overlap"], {"start_time": "09:30", "end_time": "10:00"})
        self.assertEqual(payload["conflicting_class"]["class_name"], "Class 7")
        self.assertEqual(payload["weekday"], "Monday")

    def test_adjacent_slots_do_not_conflict(self) -> None:
        existing = [booking(7, time(9, 0), time(10, 0))]
        self.assertEqual(find_conflicts([ScheduleSlot(MON, time(10), time(11))], existing, ()), [])
        self.assertEqual(find_conflicts([ScheduleSlot(MON, time(8), time(9))], existing, ()), [])

    def test_other_weekdays_do_not_conflict(self) -> None:
        existing = [booking(7, time(9, 0), time(10, 0), weekday=Weekday.TUESDAY)]
        self.assertEqual(find_conflicts([ScheduleSlot(MON, time(9), time(10))], existing, ()), [])

    def test_excluded_classes_are_ignored(self) -> None:
        existing = [booking(7, time(9), time(10)), booking(9, time(9), time(10))]
        conflicts = find_conflicts([ScheduleSlot(MON, time(9), time(10))], existing, {7})
        self.assertEqual([conflict.booking.class_id for conflict in conflicts], [9])

    def test_every_overlapping_pair_is_reported(self) -> None:
        existing = [booking(7, time(9), time(10)), booking(9, time(9, 45), time(11))]
        candidate = [
            ScheduleSlot(MON, time(9, 30), time(10, 30)),
            ScheduleSlot(Weekday.WEDNESDAY, time(9), time(10)),
        ]
        conflicts = find_conflicts(candidate, existing, ())
        self.assertEqual(
            [(c.booking.class_id, c.overlap_start, c.overlap_end) for c in conflicts],
            [(7, time(9, 30), time(10)), (9, time(9, 45), time(10, 30))],
        )

    def test_overlap_is_symmetric(self) -> None:
        cases = [
            ((time(9), time(10)), (time(9, 30), time(10, 30))),
            ((time(9), time(10)), (time(10), time(11))),
            ((time(8), time(12)), (time(9), time(10))),
            ((time(13), time(14)), (time(9), time(10))),
        ]
        for (a_start, a_end), (b_start, b_end) in cases:
            a_slots = [ScheduleSlot(MON, a_start, a_end)]
            b_slots = [ScheduleSlot(MON, b_start, b_end)]
            forward = find_conflicts(a_slots, bookings_from_slots(5, 2, b_slots), {1})
            backward = find_conflicts(b_slots, bookings_from_slots(5, 1, a_slots), {2})
            self.assertEqual(bool(forward), bool(backward))
            if forward:
                self.assertEqual(
                    (forward[0].overlap_start, forward[0].overlap_end),
                    (backward[0].overlap_start, backward[0].overlap_end),
                )

    def test_overlap_window(self) -> None:
        self.assertEqual(overlap_window(540, 600, 570, 630), (570, 600))
        self.assertIsNone(overlap_window(540, 600, 600, 660))


class TeacherConflictTestCase(unittest.TestCase):
    def test_reports_conflicts_per_teacher(self) -> None:
        bookings = [
            booking(7, time(9), time(10), resource_id=3),
            booking(8, time(9, 30), time(11), resource_id=1),
            booking(9, time(9), time(10), resource_id=1),
        ]
        conflicts = find_teacher_conflicts(
            [ScheduleSlot(MON, time(9, 30), time(10, 30))], bookings, exclude_class_ids={9}
        )
        self.assertEqual(
            [(c.booking.resource_id, c.booking.class_id) for c in conflicts], [(1, 8), (3, 7)]
        )
        self.assertTrue(all(conflict.resource_kind == TEACHER for conflict in conflicts))


if __name__ == "__main__":
    unittest.main()
