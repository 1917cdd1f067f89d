# sitewatch/__init__.py
"""
App factory.

    flask --app sitewatch scans process     one pass from cron / a container job
    flask --app sitewatch run               dev server, background passes every 60s

Configuration comes from the environment (see sitewatch.config), with any
mapping passed to create_app() taking precedence. Tests use that to point
at in-memory SQLite and to switch the background scheduler off.

Production (SITEWATCH_ENV=production):
    - SQLALCHEMY_DATABASE_URI is required (no SQLite fallback)
    - INFO logging instead of DEBUG
"""

from __future__ import annotations

import logging
import os
from typing import Any, Mapping, Optional

from flask import Flask, jsonify

from .cli import init_cli
from .config import ScanSettings
from .extensions import init_extensions
from . import models  # noqa: F401  (registers tables with SQLAlchemy)
from .scheduler import init_scheduler

DEV_DATABASE_URI = "sqlite:///sitewatch.db"


def create_app(config: Optional[Mapping[str, Any]] = None) -> Flask:
    app = Flask(__name__)
    overrides = dict(config or {})

    settings = ScanSettings.from_env(overrides)

    # ── Logging ──────────────────────────────────────────────────────
    if settings.is_production:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s %(levelname)-7s [%(name)s] %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        app.logger.setLevel(logging.INFO)
    else:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(levelname)-7s [%(name)s] %(message)s",
            datefmt="%H:%M:%S",
        )
        app.logger.setLevel(logging.DEBUG)

    # Quieten noisy libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    # ─────────────────────────────────────────────────────────────────

    # ── Database ─────────────────────────────────────────────────────
    database_uri = overrides.get("SQLALCHEMY_DATABASE_URI") or os.getenv("SQLALCHEMY_DATABASE_URI")
    if not database_uri:
        if settings.is_production:
            raise RuntimeError(
                "SQLALCHEMY_DATABASE_URI environment variable is not set. "
                "Set it to a database connection string, e.g.: "
                "postgresql://sitewatch:PASSWORD@db:5432/sitewatch"
            )
        database_uri = DEV_DATABASE_URI
    app.config["SQLALCHEMY_DATABASE_URI"] = database_uri
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False

    app.config.update({key: value for key, value in overrides.items() if key.isupper()})
    app.config["SCAN_SETTINGS"] = settings

    # ── Extensions & commands ────────────────────────────────────────
    init_extensions(app)
    init_cli(app)

    @app.get("/health")
    def health():
        return jsonify(status="up and running"), 200

    # ── Background Scheduler ─────────────────────────────────────────
    # With several worker processes, set SCHEDULER_ENABLED=true on exactly
    # one of them so each pass runs once.
    if settings.scheduler_enabled and not app.config.get("TESTING"):
        init_scheduler(app)
    else:
        logging.getLogger(__name__).info("Background scan scheduler disabled")
    # ─────────────────────────────────────────────────────────────────

    return app
