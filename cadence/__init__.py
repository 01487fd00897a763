import logging

import click
from flask import Flask
from flask.cli import with_appcontext

from .config import Config, _normalise_prefix
from .errors import ScheduleError
from .extensions import db, migrate
from .holidays import HolidayCalendar
from .store import CALENDAR_EXTENSION, ScheduleStore, load_holidays


def create_app(config_class: type[Config] = Config) -> Flask:
    app = Flask(__name__, static_folder=None)
    app.config.from_object(config_class)

    url_prefix = _normalise_prefix(app.config.get("URL_PREFIX", ""))
    app.config["URL_PREFIX"] = url_prefix

    log_level = app.config.get("LOG_LEVEL", "INFO")
    app.logger.setLevel(log_level)
    logging.getLogger("cadence").setLevel(log_level)

    db.init_app(app)
    migrate.init_app(app, db)

    app.extensions[CALENDAR_EXTENSION] = HolidayCalendar(
        load_holidays, lookahead_years=app.config.get("HOLIDAY_LOOKAHEAD_YEARS", 2)
    )

    from . import models  # noqa: F401  # Ensure models registered for migrations

    with app.app_context():
        db.create_all()

    from .api import init_api

    init_api(app, url_prefix)

    @app.cli.command("seed")
    @with_appcontext
    def seed() -> None:
        """Seed sample teachers, rooms and classes for development."""
        from .seed import seed_data

        created = seed_data()
        click.echo(f"Database seeded with {created} class(es).")

    @app.cli.command("generate-sessions")
    @click.argument("class_id", type=int)
    @with_appcontext
    def generate_sessions(class_id: int) -> None:
        """(Re)generate every session of a class."""
        try:
            rows = ScheduleStore().generate_sessions(class_id)
        except ScheduleError as exc:
            raise click.ClickException(exc.message) from exc
        click.echo(f"{len(rows)} session(s) generated for class {class_id}.")

    @app.cli.command("add-holiday")
    @click.argument("day", type=click.DateTime(formats=["%Y-%m-%d"]))
    @click.argument("name", required=False)
    @with_appcontext
    def add_holiday(day, name) -> None:
        """Register a holiday; sessions generated afterwards skip it."""
        holiday = ScheduleStore().add_holiday(day.date(), name)
        app.logger.info("Holiday %s registered", holiday.day)
        click.echo(f"Holiday {holiday.day.isoformat()} registered.")

    return app


__all__ = ["create_app", "db"]
