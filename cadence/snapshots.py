"""JSON snapshots of whole classes, used to make merges reversible.

A snapshot keeps every persisted column of a class and of the rows it owns
(slots, sessions, enrollments) together with the primary keys, so a
restored class is indistinguishable from the one that was removed.
"""
from __future__ import annotations

from datetime import date, datetime, time
from typing import Any, Mapping, Optional

from sqlalchemy.orm import Session

from .domain import ScheduleSlot, Weekday
from .errors import ValidationError
from .models import ClassScheduleSlot, ClassSession, Enrollment, SchoolClass, Teacher


def _date(value: Optional[str]) -> Optional[date]:
    return date.fromisoformat(value) if value else None


def _datetime(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _time(value: str) -> time:
    return time.fromisoformat(value)


def _iso(value: Optional[date | datetime | time]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def serialize_class(school_class: SchoolClass) -> dict[str, Any]:
    return {
        "id": school_class.id,
        "name": school_class.name,
        "level_tag": school_class.level_tag,
        "phase_number": school_class.phase_number,
        "status": school_class.status,
        "room_id": school_class.room_id,
        "start_date": _iso(school_class.start_date),
        "end_date": _iso(school_class.end_date),
        "end_date_note": school_class.end_date_note,
        "max_students": school_class.max_students,
        "phase_count": school_class.phase_count,
        "sessions_per_phase": school_class.sessions_per_phase,
        "session_duration_minutes": school_class.session_duration_minutes,
        "created_at": _iso(school_class.created_at),
        "updated_at": _iso(school_class.updated_at),
        "teacher_ids": list(school_class.teacher_ids),
        "slots": [
            {
                "id": slot.id,
                "weekday": slot.weekday,
                "start_time": _iso(slot.start_time),
                "end_time": _iso(slot.end_time),
            }
            for slot in school_class.slots
        ],
        "sessions": [
            {
                "id": session.id,
                "phase_number": session.phase_number,
                "phase_session_number": session.phase_session_number,
                "scheduled_date": _iso(session.scheduled_date),
                "scheduled_start_time": _iso(session.scheduled_start_time),
                "scheduled_end_time": _iso(session.scheduled_end_time),
                "status": session.status,
                "assigned_teacher_id": session.assigned_teacher_id,
                "substitute_teacher_id": session.substitute_teacher_id,
                "actual_date": _iso(session.actual_date),
                "suspension_id": session.suspension_id,
                "makeup_for_session_id": session.makeup_for_session_id,
                "notes": session.notes,
                "created_at": _iso(session.created_at),
                "updated_at": _iso(session.updated_at),
            }
            for session in school_class.sessions
        ],
        "enrollments": [
            {
                "id": enrollment.id,
                "student_id": enrollment.student_id,
                "phase_number": enrollment.phase_number,
                "enrolled_at": _iso(enrollment.enrolled_at),
            }
            for enrollment in school_class.enrollments
        ],
    }


def snapshot_slots(payload: Mapping[str, Any]) -> tuple[ScheduleSlot, ...]:
    return tuple(
        ScheduleSlot(Weekday(item["weekday"]), _time(item["start_time"]), _time(item["end_time"]))
        for item in payload.get("slots", [])
    )


def restore_class(payload: Mapping[str, Any], session: Session) -> SchoolClass:
    """Rebuild a class (and everything it owns) from ``serialize_class`` output."""

    teachers = []
    for teacher_id in payload.get("teacher_ids", []):
        teacher = session.get(Teacher, teacher_id)
        if teacher is None:
            raise ValidationError(
                f"Teacher {teacher_id} no longer exists; cannot restore class {payload['id']}",
                field="teacher_ids",
            )
        teachers.append(teacher)

    school_class = SchoolClass(
        id=payload["id"],
        name=payload["name"],
        level_tag=payload.get("level_tag"),
        phase_number=payload.get("phase_number"),
        status=payload["status"],
        room_id=payload.get("room_id"),
        start_date=_date(payload.get("start_date")),
        end_date=_date(payload.get("end_date")),
        end_date_note=payload.get("end_date_note"),
        max_students=payload.get("max_students"),
        phase_count=payload["phase_count"],
        sessions_per_phase=payload["sessions_per_phase"],
        session_duration_minutes=payload.get("session_duration_minutes"),
        created_at=_datetime(payload.get("created_at")),
        updated_at=_datetime(payload.get("updated_at")),
    )
    school_class.teachers = teachers
    school_class.slots = [
        ClassScheduleSlot(
            id=item["id"],
            weekday=item["weekday"],
            start_time=_time(item["start_time"]),
            end_time=_time(item["end_time"]),
        )
        for item in payload.get("slots", [])
    ]
    school_class.sessions = [
        ClassSession(
            id=item["id"],
            phase_number=item["phase_number"],
            phase_session_number=item["phase_session_number"],
            scheduled_date=_date(item["scheduled_date"]),
            scheduled_start_time=_time(item["scheduled_start_time"]),
            scheduled_end_time=_time(item["scheduled_end_time"]),
            status=item["status"],
            assigned_teacher_id=item.get("assigned_teacher_id"),
            substitute_teacher_id=item.get("substitute_teacher_id"),
            actual_date=_date(item.get("actual_date")),
            suspension_id=item.get("suspension_id"),
            makeup_for_session_id=item.get("makeup_for_session_id"),
            notes=item.get("notes"),
            created_at=_datetime(item.get("created_at")),
            updated_at=_datetime(item.get("updated_at")),
        )
        for item in payload.get("sessions", [])
    ]
    school_class.enrollments = [
        Enrollment(
            id=item["id"],
            student_id=item["student_id"],
            phase_number=item.get("phase_number"),
            enrolled_at=_datetime(item["enrolled_at"]),
        )
        for item in payload.get("enrollments", [])
    ]
    session.add(school_class)
    return school_class
