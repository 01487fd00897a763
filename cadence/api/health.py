"""Service health: database reachability and the holiday calendar cache."""
from __future__ import annotations

from flask import current_app
from flask_restx import Namespace, Resource
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..store import CALENDAR_EXTENSION


ns = Namespace("health", description="Service health status")


def database_status() -> str:
    try:
        db.session.execute(text("SELECT 1"))
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Health check could not reach the database")
        return "error"
    return "ok"


@ns.route("")
class HealthResource(Resource):
    def get(self) -> dict[str, object]:
        database = database_status()
        calendar = current_app.extensions.get(CALENDAR_EXTENSION)
        healthy = database == "ok" and calendar is not None
        return {
            "status": "ok" if healthy else "degraded",
            "database": database,
            "holiday_calendar": "ok" if calendar is not None else "missing",
            "cached_holiday_windows": calendar.cached_windows if calendar is not None else 0,
        }
