"""Suspension endpoints."""
from __future__ import annotations

from typing import Any

from flask import request
from flask_restx import Namespace, Resource, fields

from ..errors import ValidationError
from ..models import Suspension
from ..store import ScheduleStore
from ..suspension import SuspensionWorkflow, sessions_in_period
from .common import id_list, require_date, require_time


ns = Namespace("suspensions", description="Session suspensions and makeups")

period_model = ns.model(
    "SuspensionPeriod",
    {
        "start_date": fields.String(required=True, example="2025-07-21"),
        "end_date": fields.String(required=True, example="2025-07-23"),
    },
)

makeup_model = ns.model(
    "ManualMakeup",
    {
        "session_id": fields.Integer(required=True),
        "date": fields.String(required=True, example="2025-07-26"),
        "start_time": fields.String(required=True, example="09:00"),
    },
)

suspension_model = ns.model(
    "SuspensionRequest",
    {
        "class_id": fields.Integer(required=True),
        "reason": fields.String(required=True, example="Typhoon"),
        "session_ids": fields.List(fields.Integer),
        "period": fields.Nested(period_model),
        "strategy": fields.String(required=True, enum=["AddToLastPhase", "Manual"]),
        "makeups": fields.List(fields.Nested(makeup_model)),
        "preview": fields.Boolean(default=False),
    },
)


def serialize_suspension(suspension: Suspension) -> dict[str, Any]:
    return {
        "id": suspension.id,
        "class_id": suspension.class_id,
        "reason": suspension.reason,
        "strategy": suspension.makeup_strategy,
        "affected_session_ids": suspension.affected_ids,
        "makeup_session_ids": suspension.makeup_ids,
        "created_at": suspension.created_at.isoformat() if suspension.created_at else None,
    }


@ns.route("")
class SuspensionList(Resource):
    @ns.expect(suspension_model, validate=True)
    def post(self) -> tuple[dict[str, Any], int]:
        payload = request.json or {}
        store = ScheduleStore()
        timetable = store.load_timetable(payload["class_id"])
        workflow = SuspensionWorkflow(timetable, payload.get("reason", ""))

        if payload.get("session_ids"):
            session_ids = id_list(payload["session_ids"], "session_ids")
        elif payload.get("period"):
            period = payload["period"]
            start = require_date(period.get("start_date"), "start_date")
            end = require_date(period.get("end_date"), "end_date")
            session_ids = [session.id for session in sessions_in_period(timetable.sessions, start, end)]
            if not session_ids:
                raise ValidationError("No scheduled session falls in that period", field="period")
        else:
            raise ValidationError("Provide session_ids or a period", field="session_ids")

        workflow.select_sessions(session_ids).unwrap()
        workflow.choose_strategy(payload["strategy"]).unwrap()
        for makeup in payload.get("makeups") or []:
            workflow.schedule_makeup(
                int(makeup["session_id"]),
                require_date(makeup.get("date"), "date"),
                require_time(makeup.get("start_time"), "start_time"),
            ).unwrap()

        if payload.get("preview"):
            return workflow.preview().unwrap().as_dict(), 200
        committed = workflow.commit(store).unwrap()
        return committed.as_dict(), 201


@ns.route("/<int:suspension_id>")
class SuspensionResource(Resource):
    def get(self, suspension_id: int) -> dict[str, Any]:
        return serialize_suspension(ScheduleStore().get_suspension(suspension_id))
