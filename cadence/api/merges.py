"""Merge and undo endpoints."""
from __future__ import annotations

from typing import Any

from flask import current_app, request
from flask_restx import Namespace, Resource, fields

from ..merging import MergeWorkflow, undo_merge
from ..models import MergeHistory
from ..store import ScheduleStore
from .common import id_list, parse_slots, slot_model


ns = Namespace("merges", description="Class merges and their undo")

slot_input = slot_model(ns)

merge_model = ns.model(
    "MergeRequest",
    {
        "source_class_id": fields.Integer(required=True),
        "target_class_ids": fields.List(fields.Integer, required=True),
        "slots": fields.List(
            fields.Nested(slot_input),
            description="Manual schedule; the source class's schedule is reused when omitted",
        ),
        "room_id": fields.Integer,
        "name": fields.String,
        "teacher_ids": fields.List(fields.Integer),
    },
)


def serialize_history(history: MergeHistory) -> dict[str, Any]:
    return {
        "id": history.id,
        "merged_class_id": history.merged_class_id,
        "original_class_ids": history.original_ids,
        "original_classes": [
            {
                "id": payload["id"],
                "name": payload["name"],
                "room_id": payload.get("room_id"),
                "teacher_ids": payload.get("teacher_ids", []),
                "enrollments": len(payload.get("enrollments", [])),
            }
            for payload in history.original_classes
        ],
        "is_undone": history.is_undone,
        "undone_at": history.undone_at.isoformat() if history.undone_at else None,
        "created_at": history.created_at.isoformat() if history.created_at else None,
    }


@ns.route("")
class MergeList(Resource):
    @ns.expect(merge_model, validate=True)
    def post(self) -> tuple[dict[str, Any], int]:
        payload = request.json or {}
        store = ScheduleStore()
        source = store.load_timetable(payload["source_class_id"])
        targets = [
            store.load_timetable(class_id)
            for class_id in id_list(payload.get("target_class_ids"), "target_class_ids")
        ]

        workflow = MergeWorkflow(source, max_name_length=current_app.config["MERGED_NAME_MAX_LENGTH"])
        workflow.select_targets(targets).unwrap()
        if payload.get("slots"):
            workflow.use_manual_schedule(parse_slots(payload["slots"]), payload.get("room_id")).unwrap()
        else:
            workflow.use_source_schedule(payload.get("room_id")).unwrap()
        teacher_ids = (
            id_list(payload["teacher_ids"], "teacher_ids") if payload.get("teacher_ids") else None
        )
        workflow.set_metadata(name=payload.get("name"), teacher_ids=teacher_ids)
        workflow.review(store).unwrap()
        committed = workflow.commit(store).unwrap()
        return committed.as_dict(), 201


@ns.route("/<int:merge_history_id>")
class MergeHistoryResource(Resource):
    def get(self, merge_history_id: int) -> dict[str, Any]:
        return serialize_history(ScheduleStore().get_merge_history(merge_history_id))


@ns.route("/<int:merge_history_id>/undo")
class MergeUndoResource(Resource):
    def post(self, merge_history_id: int) -> dict[str, Any]:
        restored = undo_merge(ScheduleStore(), merge_history_id).unwrap()
        return {"merge_history_id": merge_history_id, "restored_class_ids": restored}
