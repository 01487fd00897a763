"""Data access for the scheduling engine.

``ScheduleStore`` is the only place that reads or writes persisted rows.
The engine and workflows talk to it in terms of the value types from
:mod:`cadence.domain`; every write goes through :meth:`ScheduleStore.transaction`.
"""
from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from datetime import date, datetime
from typing import Iterable, Iterator, Optional, Sequence

from flask import current_app
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from .conflicts import ROOM, bookings_from_slots, find_conflicts, find_teacher_conflicts
from .domain import (
    ACTIVE_CLASS_STATUS,
    ClassTimetable,
    Conflict,
    MergedMetadata,
    ResourceBooking,
    ScheduleSlot,
    SessionRecord,
    SessionStatus,
    SuspensionPlan,
)
from .errors import ScheduleError, TransactionFailure, ValidationError
from .extensions import db
from .holidays import HolidayCalendar
from .models import (
    ClassScheduleSlot,
    ClassSession,
    Enrollment,
    Holiday,
    MergeHistory,
    Room,
    SchoolClass,
    Suspension,
    Teacher,
    class_teacher,
)
from .recurrence import compute_end_date, generate_session_plan
from .snapshots import restore_class, serialize_class


logger = logging.getLogger(__name__)

CALENDAR_EXTENSION = "cadence.holidays"


def load_holidays(start: date, end: date) -> list[date]:
    """Holiday loader backed by the ``holiday`` table."""

    statement = select(Holiday.day).where(Holiday.day.between(start, end)).order_by(Holiday.day)
    return list(db.session.scalars(statement))


def session_row(record: SessionRecord) -> ClassSession:
    return ClassSession(
        phase_number=record.phase_number,
        phase_session_number=record.phase_session_number,
        scheduled_date=record.scheduled_date,
        scheduled_start_time=record.start_time,
        scheduled_end_time=record.end_time,
        status=record.status.value,
        assigned_teacher_id=record.assigned_teacher_id,
        substitute_teacher_id=record.substitute_teacher_id,
        actual_date=record.actual_date,
        makeup_for_session_id=record.makeup_for_session_id,
        notes=record.notes,
    )


class ScheduleStore:
    def __init__(
        self,
        session: Optional[Session] = None,
        calendar: Optional[HolidayCalendar] = None,
    ) -> None:
        self.session = session if session is not None else db.session
        self._calendar = calendar
        self._depth = 0

    @property
    def calendar(self) -> HolidayCalendar:
        if self._calendar is None:
            self._calendar = current_app.extensions[CALENDAR_EXTENSION]
        return self._calendar

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """Run a block atomically.

        Nested blocks join the outermost one, which commits on success and
        rolls back on any exception. Database errors surface as
        :class:`TransactionFailure`.
        """

        if self._depth:
            self._depth += 1
            try:
                yield self.session
            finally:
                self._depth -= 1
            return

        self._depth = 1
        try:
            yield self.session
            self.session.commit()
        except ScheduleError:
            self.session.rollback()
            raise
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error("Transaction rolled back: %s", exc)
            raise TransactionFailure(f"The change could not be saved: {exc}") from exc
        except Exception:
            self.session.rollback()
            raise
        finally:
            self._depth = 0

    # -- reads -------------------------------------------------------------

    def get_class(self, class_id: int) -> SchoolClass:
        school_class = self.session.get(SchoolClass, class_id)
        if school_class is None:
            raise ValidationError(f"Class {class_id} does not exist", field="class_id")
        return school_class

    def get_room(self, room_id: int) -> Optional[Room]:
        return self.session.get(Room, room_id)

    def existing_teacher_ids(self, teacher_ids: Iterable[int]) -> set[int]:
        wanted = set(teacher_ids)
        if not wanted:
            return set()
        statement = select(Teacher.id).where(Teacher.id.in_(wanted))
        return set(self.session.scalars(statement))

    def holidays_from(self, start: Optional[date]) -> frozenset[date]:
        if start is None:
            return frozenset()
        return self.calendar.holidays_from(start)

    def get_holidays(self, start: date, end: date) -> list[date]:
        return sorted(self.calendar.holidays_between(start, end))

    def load_timetable(self, class_id: int) -> ClassTimetable:
        school_class = self.get_class(class_id)
        return school_class.timetable(self.holidays_from(school_class.start_date))

    def get_sessions_for_class(self, class_id: int) -> list[SessionRecord]:
        statement = (
            select(ClassSession)
            .where(ClassSession.class_id == class_id)
            .order_by(ClassSession.phase_number, ClassSession.phase_session_number)
        )
        return [row.as_record() for row in self.session.scalars(statement)]

    def _active_classes(self, exclude_class_ids: Iterable[int]):
        excluded = set(exclude_class_ids)
        statement = (
            select(SchoolClass)
            .options(selectinload(SchoolClass.slots))
            .where(SchoolClass.status == ACTIVE_CLASS_STATUS)
        )
        if excluded:
            statement = statement.where(SchoolClass.id.not_in(excluded))
        return statement

    def get_room_bookings(self, room_id: int, exclude_class_ids: Iterable[int]) -> list[ResourceBooking]:
        statement = self._active_classes(exclude_class_ids).where(SchoolClass.room_id == room_id)
        bookings: list[ResourceBooking] = []
        for school_class in self.session.scalars(statement):
            bookings.extend(
                bookings_from_slots(room_id, school_class.id, school_class.schedule_slots, school_class.name)
            )
        return bookings

    def get_teacher_bookings(
        self, teacher_ids: Iterable[int], exclude_class_ids: Iterable[int]
    ) -> list[ResourceBooking]:
        wanted = set(teacher_ids)
        if not wanted:
            return []
        statement = (
            self._active_classes(exclude_class_ids)
            .options(selectinload(SchoolClass.teachers))
            .join(class_teacher, class_teacher.c.class_id == SchoolClass.id)
            .where(class_teacher.c.teacher_id.in_(wanted))
            .distinct()
        )
        bookings: list[ResourceBooking] = []
        for school_class in self.session.scalars(statement):
            for teacher_id in school_class.teacher_ids:
                if teacher_id in wanted:
                    bookings.extend(
                        bookings_from_slots(
                            teacher_id, school_class.id, school_class.schedule_slots, school_class.name
                        )
                    )
        return bookings

    def detect_conflicts(
        self,
        slots: Sequence[ScheduleSlot],
        room_id: Optional[int],
        teacher_ids: Iterable[int],
        exclude_class_ids: Iterable[int],
        candidate_class_id: Optional[int] = None,
    ) -> list[Conflict]:
        """Room and teacher conflicts of ``slots`` against active classes."""

        excluded = set(exclude_class_ids)
        teacher_ids = list(teacher_ids)
        conflicts: list[Conflict] = []
        if room_id is not None:
            conflicts.extend(
                find_conflicts(
                    slots,
                    self.get_room_bookings(room_id, excluded),
                    excluded,
                    resource_kind=ROOM,
                    candidate_class_id=candidate_class_id,
                )
            )
        if teacher_ids:
            conflicts.extend(
                find_teacher_conflicts(
                    slots,
                    self.get_teacher_bookings(teacher_ids, excluded),
                    excluded,
                    candidate_class_id=candidate_class_id,
                )
            )
        return conflicts

    def get_merge_history(self, merge_history_id: int) -> MergeHistory:
        history = self.session.get(MergeHistory, merge_history_id)
        if history is None:
            raise ValidationError(
                f"Merge history {merge_history_id} does not exist", field="merge_history_id"
            )
        return history

    def get_suspension(self, suspension_id: int) -> Suspension:
        suspension = self.session.get(Suspension, suspension_id)
        if suspension is None:
            raise ValidationError(f"Suspension {suspension_id} does not exist", field="suspension_id")
        return suspension

    # -- writes ------------------------------------------------------------

    def add_holiday(self, day: date, name: Optional[str] = None) -> Holiday:
        with self.transaction():
            holiday = self.session.scalar(select(Holiday).where(Holiday.day == day))
            if holiday is None:
                holiday = Holiday(day=day, name=name)
                self.session.add(holiday)
            else:
                holiday.name = name or holiday.name
        self.calendar.clear()
        return holiday

    def generate_sessions(self, class_id: int) -> list[ClassSession]:
        """Replace every session of a class with a freshly generated set."""

        with self.transaction():
            school_class = self.get_class(class_id)
            if school_class.start_date is None:
                raise ValidationError("A start date is required to generate sessions", field="start_date")
            teacher_id = school_class.teacher_ids[0] if school_class.teacher_ids else None
            records = generate_session_plan(
                school_class.start_date,
                school_class.schedule_slots,
                school_class.curriculum,
                self.holidays_from(school_class.start_date),
                teacher_id=teacher_id,
            ).unwrap()

            school_class.sessions.clear()
            self.session.flush()
            rows = [session_row(record) for record in records]
            school_class.sessions.extend(rows)
            school_class.end_date = compute_end_date(
                school_class.start_date,
                [slot.weekday for slot in school_class.schedule_slots],
                school_class.curriculum.total_sessions,
                actual_sessions=records,
            ).unwrap()
            school_class.end_date_note = None
            self.session.flush()
        logger.info("Generated %s session(s) for class %s", len(rows), class_id)
        return rows

    def override_end_date(self, class_id: int, end_date: date, note: str) -> SchoolClass:
        note = (note or "").strip()
        if not note:
            raise ValidationError("A note is required when overriding the end date", field="note")
        with self.transaction():
            school_class = self.get_class(class_id)
            if school_class.start_date is not None and end_date < school_class.start_date:
                raise ValidationError("The end date cannot precede the start date", field="end_date")
            school_class.end_date = end_date
            school_class.end_date_note = note
        logger.info("End date of class %s overridden to %s", class_id, end_date)
        return school_class

    def commit_suspension(self, plan: SuspensionPlan) -> Suspension:
        with self.transaction():
            school_class = self.get_class(plan.class_id)
            by_id = {session.id: session for session in school_class.sessions}

            suspension = Suspension(
                class_id=plan.class_id,
                reason=plan.reason,
                makeup_strategy=plan.strategy.value,
                affected_session_ids=json.dumps(list(plan.cancelled_session_ids)),
            )
            self.session.add(suspension)
            self.session.flush()

            for session_id in plan.cancelled_session_ids:
                row = by_id.get(session_id)
                if row is None:
                    raise ValidationError(
                        f"Session {session_id} does not belong to class {plan.class_id}",
                        field="session_ids",
                    )
                if row.status != SessionStatus.SCHEDULED.value:
                    raise ValidationError(
                        f"Session {session_id} is {row.status} and cannot be suspended",
                        field="session_ids",
                    )
                row.status = SessionStatus.CANCELLED.value
                row.notes = f"Cancelled due to: {plan.reason}"
                row.suspension_id = suspension.id

            makeups = [session_row(record) for record in plan.makeup_sessions]
            for row in makeups:
                row.suspension_id = suspension.id
            school_class.sessions.extend(makeups)
            self.session.flush()

            suspension.created_makeup_session_ids = json.dumps([row.id for row in makeups])
            if plan.end_date is not None:
                school_class.end_date = plan.end_date
        return suspension

    def commit_merge(
        self,
        source_class_ids: Sequence[int],
        reconciled_schedule: Sequence[ScheduleSlot],
        merged_metadata: MergedMetadata,
    ) -> tuple[SchoolClass, MergeHistory]:
        with self.transaction():
            originals = [self.get_class(class_id) for class_id in source_class_ids]
            snapshot = [serialize_class(school_class) for school_class in originals]

            teachers = [self.session.get(Teacher, teacher_id) for teacher_id in merged_metadata.teacher_ids]
            if any(teacher is None for teacher in teachers):
                raise ValidationError("Every merged teacher must exist", field="teacher_ids")
            if merged_metadata.room_id is not None and self.get_room(merged_metadata.room_id) is None:
                raise ValidationError(f"Room {merged_metadata.room_id} does not exist", field="room_id")

            curriculum = merged_metadata.curriculum
            merged = SchoolClass(
                name=merged_metadata.name,
                level_tag=merged_metadata.level_tag,
                phase_number=merged_metadata.phase_number,
                status=ACTIVE_CLASS_STATUS,
                room_id=merged_metadata.room_id,
                start_date=merged_metadata.start_date,
                end_date=merged_metadata.end_date,
                max_students=merged_metadata.max_students,
                phase_count=curriculum.phase_count,
                sessions_per_phase=curriculum.sessions_per_phase,
                session_duration_minutes=(
                    int(curriculum.session_duration.total_seconds() // 60)
                    if curriculum.session_duration
                    else None
                ),
            )
            merged.teachers = teachers
            merged.slots = [
                ClassScheduleSlot(weekday=int(slot.weekday), start_time=slot.start_time, end_time=slot.end_time)
                for slot in reconciled_schedule
            ]
            merged.enrollments = [
                Enrollment(
                    student_id=record.student_id,
                    phase_number=record.phase_number,
                    enrolled_at=record.enrolled_at,
                )
                for record in merged_metadata.enrollments
            ]
            carried = [(record, session_row(record)) for record in merged_metadata.sessions]
            merged.sessions = [row for _, row in carried]
            self.session.add(merged)
            # The merged rows take their ids before the originals free theirs.
            self.session.flush()

            renumbered = {record.id: row.id for record, row in carried if record.id is not None}
            for record, row in carried:
                if record.makeup_for_session_id is not None:
                    row.makeup_for_session_id = renumbered.get(record.makeup_for_session_id)

            for school_class in originals:
                self.session.delete(school_class)

            history = MergeHistory(
                merged_class_id=merged.id,
                original_class_ids=json.dumps([school_class.id for school_class in originals]),
                snapshot=json.dumps(snapshot),
            )
            self.session.add(history)
            self.session.flush()
        return merged, history

    def undo_merge(self, history: MergeHistory) -> list[int]:
        """Destroy the merged class and recreate the originals from the snapshot."""

        with self.transaction():
            if history.is_undone:
                raise ValidationError(f"Merge {history.id} has already been undone")
            merged = self.session.get(SchoolClass, history.merged_class_id)
            if merged is not None:
                self.session.delete(merged)
                self.session.flush()

            restored = [restore_class(payload, self.session) for payload in history.original_classes]
            history.is_undone = True
            history.undone_at = datetime.utcnow()
            self.session.flush()
        return [school_class.id for school_class in restored]
