"""Request payload helpers shared by the API namespaces."""
from __future__ import annotations

from datetime import date, time
from typing import Any, Iterable, Optional

from flask_restx import Namespace, fields

from ..domain import ScheduleSlot, Weekday
from ..errors import ValidationError
from ..utils import parse_date, parse_time


def slot_model(ns: Namespace):
    return ns.model(
        "ScheduleSlot",
        {
            "weekday": fields.String(required=True, description="Sunday..Saturday or 0..6"),
            "start_time": fields.String(required=True, example="09:00"),
            "end_time": fields.String(required=True, example="10:30"),
        },
    )


def require_date(value: Any, field: str) -> date:
    parsed = parse_date(value)
    if parsed is None:
        raise ValidationError(f"{field} must be a YYYY-MM-DD date", field=field)
    return parsed


def require_time(value: Any, field: str) -> time:
    parsed = parse_time(value)
    if parsed is None:
        raise ValidationError(f"{field} must be a HH:MM time", field=field)
    return parsed


def optional_date(value: Any, field: str) -> Optional[date]:
    if value in (None, ""):
        return None
    return require_date(value, field)


def parse_slots(items: Optional[Iterable[dict[str, Any]]]) -> list[ScheduleSlot]:
    slots: list[ScheduleSlot] = []
    for item in items or []:
        try:
            weekday = Weekday.parse(item.get("weekday"))
        except ValueError as exc:
            raise ValidationError(str(exc), field="slots") from exc
        slots.append(
            ScheduleSlot(
                weekday,
                require_time(item.get("start_time"), "start_time"),
                require_time(item.get("end_time"), "end_time"),
            )
        )
    return slots


def id_list(values: Optional[Iterable[Any]], field: str) -> list[int]:
    try:
        return [int(value) for value in values or []]
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{field} must be a list of ids", field=field) from exc
