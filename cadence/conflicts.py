"""Room and teacher double-booking detection."""
from __future__ import annotations

from collections import defaultdict
from typing import Iterable, Optional

from .domain import Conflict, ResourceBooking, ScheduleSlot
from .utils import from_minutes, to_minutes


ROOM = "room"
TEACHER = "teacher"


def overlap_window(
    a_start: int, a_end: int, b_start: int, b_end: int
) -> Optional[tuple[int, int]]:
    """Overlap of two half-open minute intervals, or ``None``.

    Intervals that only touch (one ends when the other starts) do not
    overlap.
    """

    if a_start < b_end and b_start < a_end:
        return max(a_start, b_start), min(a_end, b_end)
    return None


def find_conflicts(
    candidate_slots: Iterable[ScheduleSlot],
    existing_bookings: Iterable[ResourceBooking],
    exclude_class_ids: Iterable[int],
    *,
    resource_kind: str = ROOM,
    candidate_class_id: Optional[int] = None,
) -> list[Conflict]:
    excluded = set(exclude_class_ids)
    bookings = [booking for booking in existing_bookings if booking.class_id not in excluded]
    conflicts: list[Conflict] = []
    for slot in candidate_slots:
        slot_start = to_minutes(slot.start_time)
        slot_end = to_minutes(slot.end_time)
        for booking in bookings:
            if booking.weekday != slot.weekday:
                continue
            window = overlap_window(
                slot_start,
                slot_end,
                to_minutes(booking.start_time),
                to_minutes(booking.end_time),
            )
            if window is None:
                continue
            conflicts.append(
                Conflict(
                    resource_kind=resource_kind,
                    candidate=slot,
                    booking=booking,
                    overlap_start=from_minutes(window[0]),
                    overlap_end=from_minutes(window[1]),
                    candidate_class_id=candidate_class_id,
                )
            )
    return conflicts


def find_teacher_conflicts(
    candidate_slots: Iterable[ScheduleSlot],
    teacher_bookings: Iterable[ResourceBooking],
    exclude_class_ids: Iterable[int],
    *,
    candidate_class_id: Optional[int] = None,
) -> list[Conflict]:
    """Check several teachers at once, reporting conflicts teacher by teacher."""

    by_teacher: dict[int, list[ResourceBooking]] = defaultdict(list)
    for booking in teacher_bookings:
        by_teacher[booking.resource_id].append(booking)
    slots = list(candidate_slots)
    conflicts: list[Conflict] = []
    for teacher_id in sorted(by_teacher):
        conflicts.extend(
            find_conflicts(
                slots,
                by_teacher[teacher_id],
                exclude_class_ids,
                resource_kind=TEACHER,
                candidate_class_id=candidate_class_id,
            )
        )
    return conflicts


def bookings_from_slots(
    resource_id: int,
    class_id: int,
    slots: Iterable[ScheduleSlot],
    class_name: Optional[str] = None,
) -> list[ResourceBooking]:
    return [
        ResourceBooking(
            resource_id=resource_id,
            weekday=slot.weekday,
            start_time=slot.start_time,
            end_time=slot.end_time,
            class_id=class_id,
            class_name=class_name,
        )
        for slot in slots
    ]
