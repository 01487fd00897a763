"""Class timetable, session generation and conflict-check endpoints."""
from __future__ import annotations

from datetime import date
from typing import Any

from flask import current_app, request
from flask_restx import Namespace, Resource, fields
from sqlalchemy import select

from ..errors import ValidationError
from ..extensions import db
from ..merging import eligible_merge_targets
from ..models import SchoolClass
from ..phases import check_phase_spans, phase_spans_for, resolve_active_phase
from ..recurrence import compute_end_date
from ..store import ScheduleStore
from ..utils import format_time
from .common import id_list, optional_date, parse_slots, require_date, slot_model


ns = Namespace("classes", description="Class schedules and sessions")

slot_input = slot_model(ns)

conflict_check_model = ns.model(
    "ConflictCheck",
    {
        "slots": fields.List(fields.Nested(slot_input), required=True),
        "room_id": fields.Integer,
        "teacher_ids": fields.List(fields.Integer),
    },
)

end_date_model = ns.model(
    "EndDateOverride",
    {
        "end_date": fields.String(required=True, example="2025-06-30"),
        "note": fields.String(required=True),
    },
)


def serialize_timetable(school_class: SchoolClass, store: ScheduleStore, today: date) -> dict[str, Any]:
    timetable = store.load_timetable(school_class.id)
    spans = phase_spans_for(
        timetable.curriculum,
        timetable.start_date,
        timetable.weekdays,
        timetable.sessions,
        timetable.holidays,
    )
    checked = check_phase_spans(spans)
    projected = None
    projection_error = None
    if timetable.start_date is not None:
        result = compute_end_date(
            timetable.start_date,
            timetable.weekdays,
            timetable.curriculum.total_sessions,
            timetable.holidays,
        )
        if result.is_ok:
            projected = result.value.isoformat()
        else:
            projection_error = result.error.message

    return {
        "id": school_class.id,
        "name": school_class.name,
        "level_tag": school_class.level_tag,
        "phase_number": school_class.phase_number,
        "status": school_class.status,
        "room_id": school_class.room_id,
        "teacher_ids": list(school_class.teacher_ids),
        "start_date": school_class.start_date.isoformat() if school_class.start_date else None,
        "end_date": school_class.end_date.isoformat() if school_class.end_date else None,
        "end_date_note": school_class.end_date_note,
        "projected_end_date": projected,
        "projection_error": projection_error,
        "active_phase": resolve_active_phase(today, spans) if checked.is_ok else None,
        "phase_error": None if checked.is_ok else checked.error.message,
        "phases": [
            {
                "phase_number": span.phase_number,
                "first_session_date": span.first_session_date.isoformat() if span.first_session_date else None,
                "last_session_date": span.last_session_date.isoformat() if span.last_session_date else None,
            }
            for span in spans
        ],
        "slots": [slot.as_dict() for slot in timetable.slots],
        "sessions": [session.as_dict() for session in timetable.sessions],
    }


@ns.route("/<int:class_id>")
class ClassTimetableResource(Resource):
    @ns.param("today", "Reference date for the active phase (defaults to today)")
    def get(self, class_id: int) -> dict[str, Any]:
        store = ScheduleStore()
        school_class = store.get_class(class_id)
        today = optional_date(request.args.get("today"), "today") or date.today()
        return serialize_timetable(school_class, store, today)


@ns.route("/<int:class_id>/sessions")
class ClassSessionsResource(Resource):
    def post(self, class_id: int) -> tuple[dict[str, Any], int]:
        store = ScheduleStore()
        rows = store.generate_sessions(class_id)
        current_app.logger.info("Sessions regenerated for class %s via API", class_id)
        school_class = store.get_class(class_id)
        return {
            "created": len(rows),
            "end_date": school_class.end_date.isoformat() if school_class.end_date else None,
            "sessions": [
                {
                    "id": row.id,
                    "phase_number": row.phase_number,
                    "phase_session_number": row.phase_session_number,
                    "scheduled_date": row.scheduled_date.isoformat(),
                    "start_time": format_time(row.scheduled_start_time),
                    "end_time": format_time(row.scheduled_end_time),
                }
                for row in rows
            ],
        }, 201


@ns.route("/<int:class_id>/end-date")
class ClassEndDateResource(Resource):
    def get(self, class_id: int) -> dict[str, Any]:
        """End date from the live sessions, or projected from the schedule."""
        store = ScheduleStore()
        timetable = store.load_timetable(class_id)
        if timetable.start_date is None:
            raise ValidationError("The class has no start date", field="start_date")
        end_date = compute_end_date(
            timetable.start_date,
            timetable.weekdays,
            timetable.curriculum.total_sessions,
            timetable.holidays,
            actual_sessions=timetable.sessions,
        ).unwrap()
        return {
            "id": class_id,
            "end_date": end_date.isoformat(),
            "stored_end_date": timetable.end_date.isoformat() if timetable.end_date else None,
        }

    @ns.expect(end_date_model, validate=True)
    def put(self, class_id: int) -> dict[str, Any]:
        payload = request.json or {}
        store = ScheduleStore()
        school_class = store.override_end_date(
            class_id, require_date(payload.get("end_date"), "end_date"), payload.get("note", "")
        )
        return {
            "id": school_class.id,
            "end_date": school_class.end_date.isoformat(),
            "end_date_note": school_class.end_date_note,
        }


@ns.route("/<int:class_id>/conflicts")
class ClassConflictResource(Resource):
    @ns.expect(conflict_check_model, validate=True)
    def post(self, class_id: int) -> dict[str, Any]:
        """Check a candidate weekly schedule against every other active class."""
        payload = request.json or {}
        store = ScheduleStore()
        school_class = store.get_class(class_id)
        room_id = payload.get("room_id", school_class.room_id)
        teacher_ids = (
            id_list(payload["teacher_ids"], "teacher_ids")
            if "teacher_ids" in payload
            else school_class.teacher_ids
        )
        conflicts = store.detect_conflicts(
            parse_slots(payload.get("slots")),
            room_id,
            teacher_ids,
            exclude_class_ids={class_id},
            candidate_class_id=class_id,
        )
        return {"conflicts": [conflict.as_dict() for conflict in conflicts]}


@ns.route("/<int:class_id>/merge-targets")
class MergeTargetsResource(Resource):
    def get(self, class_id: int) -> list[dict[str, Any]]:
        store = ScheduleStore()
        source = store.get_class(class_id).timetable()
        candidates = db.session.scalars(
            select(SchoolClass).where(SchoolClass.id != class_id).order_by(SchoolClass.name)
        )
        targets = eligible_merge_targets(source, (candidate.timetable() for candidate in candidates))
        return [
            {
                "id": target.class_id,
                "name": target.name,
                "level_tag": target.level_tag,
                "phase_number": target.phase_number,
                "enrolled": len(target.enrollments),
            }
            for target in targets
        ]
