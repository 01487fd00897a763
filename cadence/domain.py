"""Plain value types shared by the scheduling engine.

Nothing in here touches the database: the store converts persisted rows
into these records before handing them to the engine.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from enum import Enum, IntEnum
from typing import Optional

from .utils import format_time, time_span


class Weekday(IntEnum):
    """Weekdays in canonical order, Sunday first."""

    SUNDAY = 0
    MONDAY = 1
    TUESDAY = 2
    WEDNESDAY = 3
    THURSDAY = 4
    FRIDAY = 5
    SATURDAY = 6

    @classmethod
    def of(cls, day: date) -> "Weekday":
        # date.weekday() counts from Monday.
        return cls((day.weekday() + 1) % 7)

    @classmethod
    def parse(cls, value: "Weekday | int | str") -> "Weekday":
        if isinstance(value, Weekday):
            return value
        if isinstance(value, int):
            return cls(value)
        text = str(value).strip().upper()
        if text.isdigit():
            return cls(int(text))
        for member in cls:
            if member.name == text or member.name[:3] == text:
                return member
        raise ValueError(f"Unknown weekday: {value!r}")

    @property
    def label(self) -> str:
        return self.name.capitalize()


class SessionStatus(str, Enum):
    SCHEDULED = "Scheduled"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"
    RESCHEDULED = "Rescheduled"


class MakeupStrategy(str, Enum):
    ADD_TO_LAST_PHASE = "AddToLastPhase"
    MANUAL = "Manual"


ACTIVE_CLASS_STATUS = "Active"


@dataclass(frozen=True)
class ScheduleSlot:
    weekday: Weekday
    start_time: time
    end_time: time

    @property
    def duration(self) -> timedelta:
        return time_span(self.start_time, self.end_time)

    def as_dict(self) -> dict[str, object]:
        return {
            "weekday": self.weekday.label,
            "start_time": format_time(self.start_time),
            "end_time": format_time(self.end_time),
        }


@dataclass(frozen=True)
class Curriculum:
    phase_count: int
    sessions_per_phase: int
    session_duration: Optional[timedelta] = None

    @property
    def total_sessions(self) -> int:
        return self.phase_count * self.sessions_per_phase


@dataclass
class SessionRecord:
    phase_number: int
    phase_session_number: int
    scheduled_date: date
    start_time: time
    end_time: time
    status: SessionStatus = SessionStatus.SCHEDULED
    assigned_teacher_id: Optional[int] = None
    substitute_teacher_id: Optional[int] = None
    actual_date: Optional[date] = None
    id: Optional[int] = None
    makeup_for_session_id: Optional[int] = None
    notes: Optional[str] = None

    @property
    def identity(self) -> tuple[int, int]:
        return (self.phase_number, self.phase_session_number)

    @property
    def effective_date(self) -> date:
        return self.actual_date or self.scheduled_date

    @property
    def is_cancelled(self) -> bool:
        return self.status == SessionStatus.CANCELLED

    @property
    def duration(self) -> timedelta:
        return time_span(self.start_time, self.end_time)

    def as_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "phase_number": self.phase_number,
            "phase_session_number": self.phase_session_number,
            "scheduled_date": self.scheduled_date.isoformat(),
            "actual_date": self.actual_date.isoformat() if self.actual_date else None,
            "start_time": format_time(self.start_time),
            "end_time": format_time(self.end_time),
            "status": self.status.value,
            "assigned_teacher_id": self.assigned_teacher_id,
            "substitute_teacher_id": self.substitute_teacher_id,
            "makeup_for_session_id": self.makeup_for_session_id,
        }


@dataclass(frozen=True)
class PhaseSpan:
    phase_number: int
    first_session_date: Optional[date]
    last_session_date: Optional[date]

    @property
    def is_resolved(self) -> bool:
        return self.first_session_date is not None and self.last_session_date is not None

    def contains(self, day: date) -> bool:
        if not self.is_resolved:
            return False
        return self.first_session_date <= day <= self.last_session_date


@dataclass(frozen=True)
class ResourceBooking:
    resource_id: int
    weekday: Weekday
    start_time: time
    end_time: time
    class_id: int
    class_name: Optional[str] = None

    def as_dict(self) -> dict[str, object]:
        return {
            "resource_id": self.resource_id,
            "weekday": self.weekday.label,
            "start_time": format_time(self.start_time),
            "end_time": format_time(self.end_time),
            "class_id": self.class_id,
            "class_name": self.class_name,
        }


@dataclass(frozen=True)
class Conflict:
    resource_kind: str
    candidate: ScheduleSlot
    booking: ResourceBooking
    overlap_start: time
    overlap_end: time
    candidate_class_id: Optional[int] = None

    @property
    def weekday(self) -> Weekday:
        return self.candidate.weekday

    def as_dict(self) -> dict[str, object]:
        return {
            "resource_kind": self.resource_kind,
            "resource_id": self.booking.resource_id,
            "weekday": self.weekday.label,
            "candidate": self.candidate.as_dict(),
            "candidate_class_id": self.candidate_class_id,
            "conflicting_class": {
                "class_id": self.booking.class_id,
                "class_name": self.booking.class_name,
                "start_time": format_time(self.booking.start_time),
                "end_time": format_time(self.booking.end_time),
            },
            "overlap": {
                "start_time": format_time(self.overlap_start),
                "end_time": format_time(self.overlap_end),
            },
        }


@dataclass(frozen=True)
class EnrollmentRecord:
    student_id: int
    phase_number: Optional[int]
    enrolled_at: datetime


@dataclass(frozen=True)
class ClassTimetable:
    """Read-only view of a class handed to the workflows."""

    class_id: int
    name: str
    status: str
    start_date: Optional[date]
    end_date: Optional[date]
    slots: tuple[ScheduleSlot, ...]
    curriculum: Curriculum
    level_tag: Optional[str] = None
    phase_number: Optional[int] = None
    room_id: Optional[int] = None
    teacher_ids: tuple[int, ...] = ()
    max_students: Optional[int] = None
    sessions: tuple[SessionRecord, ...] = ()
    enrollments: tuple[EnrollmentRecord, ...] = ()
    holidays: frozenset[date] = field(default_factory=frozenset)

    @property
    def weekdays(self) -> tuple[Weekday, ...]:
        return tuple(sorted({slot.weekday for slot in self.slots}))

    def slot_for(self, weekday: Weekday) -> Optional[ScheduleSlot]:
        for slot in self.slots:
            if slot.weekday == weekday:
                return slot
        return None

    def session_by_id(self, session_id: int) -> Optional[SessionRecord]:
        for session in self.sessions:
            if session.id == session_id:
                return session
        return None


@dataclass(frozen=True)
class SuspensionPlan:
    """Session mutations produced by a suspension, ready to be committed."""

    class_id: int
    reason: str
    strategy: MakeupStrategy
    cancelled_session_ids: tuple[int, ...]
    makeup_sessions: tuple[SessionRecord, ...]
    end_date: Optional[date]

    def as_dict(self) -> dict[str, object]:
        return {
            "class_id": self.class_id,
            "reason": self.reason,
            "strategy": self.strategy.value,
            "cancelled_session_ids": list(self.cancelled_session_ids),
            "makeup_sessions": [session.as_dict() for session in self.makeup_sessions],
            "end_date": self.end_date.isoformat() if self.end_date else None,
        }


@dataclass(frozen=True)
class MergedMetadata:
    """Everything but the schedule needed to create a merged class."""

    name: str
    level_tag: Optional[str]
    phase_number: Optional[int]
    room_id: Optional[int]
    teacher_ids: tuple[int, ...]
    start_date: Optional[date]
    end_date: Optional[date]
    max_students: Optional[int]
    curriculum: Curriculum
    enrollments: tuple[EnrollmentRecord, ...] = ()
    sessions: tuple[SessionRecord, ...] = ()
