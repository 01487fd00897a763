from __future__ import annotations

import json
from datetime import date, datetime, time, timedelta
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Table,
    Text,
    Time,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .domain import (
    ACTIVE_CLASS_STATUS,
    ClassTimetable,
    Curriculum,
    EnrollmentRecord,
    ScheduleSlot,
    SessionRecord,
    SessionStatus,
    Weekday,
)
from .extensions import db


class_teacher = Table(
    "class_teacher",
    db.Model.metadata,
    Column("class_id", ForeignKey("school_class.id", ondelete="CASCADE"), primary_key=True),
    Column("teacher_id", ForeignKey("teacher.id", ondelete="CASCADE"), primary_key=True),
)


class TimeStampedModel:
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Teacher(db.Model, TimeStampedModel):
    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False, unique=True)
    email: Mapped[Optional[str]] = mapped_column(String(255))

    classes: Mapped[List["SchoolClass"]] = relationship(
        secondary=class_teacher, back_populates="teachers"
    )

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"Teacher<{self.id} {self.name}>"


class Room(db.Model, TimeStampedModel):
    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(120), unique=True, nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, default=20)

    classes: Mapped[List["SchoolClass"]] = relationship(back_populates="room")

    def __repr__(self) -> str:  # pragma: no cover
        return f"Room<{self.id} {self.name}>"


class SchoolClass(db.Model, TimeStampedModel):
    __tablename__ = "school_class"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    level_tag: Mapped[Optional[str]] = mapped_column(String(50))
    phase_number: Mapped[Optional[int]] = mapped_column(Integer)
    status: Mapped[str] = mapped_column(String(20), default=ACTIVE_CLASS_STATUS, nullable=False)
    room_id: Mapped[Optional[int]] = mapped_column(ForeignKey("room.id", ondelete="SET NULL"))
    start_date: Mapped[Optional[date]] = mapped_column(Date)
    end_date: Mapped[Optional[date]] = mapped_column(Date)
    end_date_note: Mapped[Optional[str]] = mapped_column(Text)
    max_students: Mapped[Optional[int]] = mapped_column(Integer)
    phase_count: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    sessions_per_phase: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    session_duration_minutes: Mapped[Optional[int]] = mapped_column(Integer)

    room: Mapped[Optional[Room]] = relationship(back_populates="classes")
    teachers: Mapped[List[Teacher]] = relationship(
        secondary=class_teacher, back_populates="classes", order_by="Teacher.id"
    )
    slots: Mapped[List["ClassScheduleSlot"]] = relationship(
        back_populates="school_class",
        cascade="all, delete-orphan",
        order_by="ClassScheduleSlot.weekday",
    )
    sessions: Mapped[List["ClassSession"]] = relationship(
        back_populates="school_class",
        cascade="all, delete-orphan",
        order_by=lambda: (ClassSession.phase_number, ClassSession.phase_session_number),
    )
    enrollments: Mapped[List["Enrollment"]] = relationship(
        back_populates="school_class",
        cascade="all, delete-orphan",
        order_by="Enrollment.id",
    )

    __table_args__ = (
        CheckConstraint("phase_count >= 1", name="chk_class_phase_count_positive"),
        CheckConstraint("sessions_per_phase >= 1", name="chk_class_sessions_per_phase_positive"),
        CheckConstraint(
            "session_duration_minutes IS NULL OR session_duration_minutes > 0",
            name="chk_class_session_duration_positive",
        ),
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"SchoolClass<{self.id} {self.name}>"

    @property
    def curriculum(self) -> Curriculum:
        duration = (
            timedelta(minutes=self.session_duration_minutes)
            if self.session_duration_minutes
            else None
        )
        return Curriculum(
            phase_count=self.phase_count,
            sessions_per_phase=self.sessions_per_phase,
            session_duration=duration,
        )

    @property
    def schedule_slots(self) -> tuple[ScheduleSlot, ...]:
        return tuple(slot.as_slot() for slot in self.slots)

    @property
    def teacher_ids(self) -> tuple[int, ...]:
        return tuple(teacher.id for teacher in self.teachers)

    @property
    def is_active(self) -> bool:
        return self.status == ACTIVE_CLASS_STATUS

    def timetable(self, holidays: frozenset[date] = frozenset()) -> ClassTimetable:
        return ClassTimetable(
            class_id=self.id,
            name=self.name,
            status=self.status,
            start_date=self.start_date,
            end_date=self.end_date,
            slots=self.schedule_slots,
            curriculum=self.curriculum,
            level_tag=self.level_tag,
            phase_number=self.phase_number,
            room_id=self.room_id,
            teacher_ids=self.teacher_ids,
            max_students=self.max_students,
            sessions=tuple(session.as_record() for session in self.sessions),
            enrollments=tuple(enrollment.as_record() for enrollment in self.enrollments),
            holidays=holidays,
        )


class ClassScheduleSlot(db.Model):
    __tablename__ = "class_schedule_slot"

    id: Mapped[int] = mapped_column(primary_key=True)
    class_id: Mapped[int] = mapped_column(
        ForeignKey("school_class.id", ondelete="CASCADE"), nullable=False
    )
    weekday: Mapped[int] = mapped_column(Integer, nullable=False)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)

    school_class: Mapped[SchoolClass] = relationship(back_populates="slots")

    __table_args__ = (
        CheckConstraint("weekday BETWEEN 0 AND 6", name="chk_slot_weekday"),
        CheckConstraint("end_time > start_time", name="chk_slot_time_order"),
        UniqueConstraint("class_id", "weekday", name="uq_slot_class_weekday"),
    )

    def as_slot(self) -> ScheduleSlot:
        return ScheduleSlot(Weekday(self.weekday), self.start_time, self.end_time)

    def __repr__(self) -> str:  # pragma: no cover
        return f"ClassScheduleSlot<{Weekday(self.weekday).label} {self.start_time}-{self.end_time}>"


class ClassSession(db.Model, TimeStampedModel):
    __tablename__ = "class_session"

    id: Mapped[int] = mapped_column(primary_key=True)
    class_id: Mapped[int] = mapped_column(
        ForeignKey("school_class.id", ondelete="CASCADE"), nullable=False, index=True
    )
    phase_number: Mapped[int] = mapped_column(Integer, nullable=False)
    phase_session_number: Mapped[int] = mapped_column(Integer, nullable=False)
    scheduled_date: Mapped[date] = mapped_column(Date, nullable=False)
    scheduled_start_time: Mapped[time] = mapped_column(Time, nullable=False)
    scheduled_end_time: Mapped[time] = mapped_column(Time, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default=SessionStatus.SCHEDULED.value, nullable=False)
    assigned_teacher_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("teacher.id", ondelete="SET NULL")
    )
    substitute_teacher_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("teacher.id", ondelete="SET NULL")
    )
    actual_date: Mapped[Optional[date]] = mapped_column(Date)
    suspension_id: Mapped[Optional[int]] = mapped_column(ForeignKey("suspension.id"))
    makeup_for_session_id: Mapped[Optional[int]] = mapped_column(Integer)
    notes: Mapped[Optional[str]] = mapped_column(Text)

    school_class: Mapped[SchoolClass] = relationship(back_populates="sessions")

    __table_args__ = (
        CheckConstraint("scheduled_end_time > scheduled_start_time", name="chk_session_time_order"),
        CheckConstraint(
            "status IN ('Scheduled','Completed','Cancelled','Rescheduled')",
            name="chk_session_status_valid",
        ),
        UniqueConstraint(
            "class_id",
            "phase_number",
            "phase_session_number",
            name="uq_session_identity",
        ),
    )

    def as_record(self) -> SessionRecord:
        return SessionRecord(
            id=self.id,
            phase_number=self.phase_number,
            phase_session_number=self.phase_session_number,
            scheduled_date=self.scheduled_date,
            start_time=self.scheduled_start_time,
            end_time=self.scheduled_end_time,
            status=SessionStatus(self.status),
            assigned_teacher_id=self.assigned_teacher_id,
            substitute_teacher_id=self.substitute_teacher_id,
            actual_date=self.actual_date,
            makeup_for_session_id=self.makeup_for_session_id,
            notes=self.notes,
        )

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return (
            f"ClassSession<{self.class_id} P{self.phase_number}S{self.phase_session_number}"
            f" {self.scheduled_date} {self.status}>"
        )


class Enrollment(db.Model):
    id: Mapped[int] = mapped_column(primary_key=True)
    class_id: Mapped[int] = mapped_column(
        ForeignKey("school_class.id", ondelete="CASCADE"), nullable=False, index=True
    )
    student_id: Mapped[int] = mapped_column(Integer, nullable=False)
    phase_number: Mapped[Optional[int]] = mapped_column(Integer)
    enrolled_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    school_class: Mapped[SchoolClass] = relationship(back_populates="enrollments")

    def as_record(self) -> EnrollmentRecord:
        return EnrollmentRecord(
            student_id=self.student_id,
            phase_number=self.phase_number,
            enrolled_at=self.enrolled_at,
        )


class Holiday(db.Model):
    id: Mapped[int] = mapped_column(primary_key=True)
    day: Mapped[date] = mapped_column("date", Date, nullable=False, unique=True)
    name: Mapped[Optional[str]] = mapped_column(String(255))

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"Holiday<{self.day} {self.name}>"


class Suspension(db.Model, TimeStampedModel):
    id: Mapped[int] = mapped_column(primary_key=True)
    # Kept as a plain column: the record outlives merged or deleted classes.
    class_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    reason: Mapped[str] = mapped_column(String(255), nullable=False)
    makeup_strategy: Mapped[str] = mapped_column(String(20), nullable=False)
    affected_session_ids: Mapped[str] = mapped_column(Text, default="[]", nullable=False)
    created_makeup_session_ids: Mapped[str] = mapped_column(Text, default="[]", nullable=False)

    __table_args__ = (
        CheckConstraint(
            "makeup_strategy IN ('AddToLastPhase','Manual')",
            name="chk_suspension_strategy_valid",
        ),
    )

    @property
    def affected_ids(self) -> list[int]:
        return list(json.loads(self.affected_session_ids or "[]"))

    @property
    def makeup_ids(self) -> list[int]:
        return list(json.loads(self.created_makeup_session_ids or "[]"))

    def __repr__(self) -> str:  # pragma: no cover
        return f"Suspension<{self.id} class={self.class_id} {self.reason}>"


class MergeHistory(db.Model, TimeStampedModel):
    __tablename__ = "merge_history"

    id: Mapped[int] = mapped_column(primary_key=True)
    merged_class_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    original_class_ids: Mapped[str] = mapped_column(Text, default="[]", nullable=False)
    snapshot: Mapped[str] = mapped_column(Text, default="[]", nullable=False)
    is_undone: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    undone_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    @property
    def original_classes(self) -> list[dict[str, object]]:
        return list(json.loads(self.snapshot or "[]"))

    @property
    def original_ids(self) -> list[int]:
        return list(json.loads(self.original_class_ids or "[]"))

    def __repr__(self) -> str:  # pragma: no cover
        return f"MergeHistory<{self.id} merged={self.merged_class_id} undone={self.is_undone}>"
