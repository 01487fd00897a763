"""REST API definition using Flask-RESTX."""
from __future__ import annotations

from flask import Blueprint, Flask, current_app
from flask_restx import Api

from ..errors import (
    ConflictError,
    IndeterminateComputation,
    ScheduleError,
    TransactionFailure,
    ValidationError,
)
from .classes import ns as classes_ns
from .health import ns as health_ns
from .merges import ns as merges_ns
from .suspensions import ns as suspensions_ns


STATUS_CODES = (
    (ConflictError, 409),
    (ValidationError, 400),
    (IndeterminateComputation, 422),
    (TransactionFailure, 500),
)


def status_for(error: ScheduleError) -> int:
    for error_type, code in STATUS_CODES:
        if isinstance(error, error_type):
            return code
    return 500


def handle_schedule_error(error: ScheduleError) -> tuple[dict[str, object], int]:
    code = status_for(error)
    current_app.logger.info("Request refused (%s): %s", code, error)
    return error.as_dict(), code


def register_namespaces(api: Api) -> None:
    """Register all API namespaces."""
    api.add_namespace(health_ns, path="/health")
    api.add_namespace(classes_ns, path="/classes")
    api.add_namespace(suspensions_ns, path="/suspensions")
    api.add_namespace(merges_ns, path="/merges")


def init_api(app: Flask, url_prefix: str = "") -> Api:
    blueprint = Blueprint("api", __name__, url_prefix=f"{url_prefix}/api")
    api = Api(blueprint, version="0.1.0", title="Cadence API", doc="/docs")
    api.errorhandler(ScheduleError)(handle_schedule_error)
    register_namespaces(api)
    app.register_blueprint(blueprint)
    return api
