# sitewatch/extensions.py
from __future__ import annotations

from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import event

db = SQLAlchemy()


def enable_sqlite_foreign_keys(dbapi_connection, _connection_record):
    # scan_result rows go with their scan (ON DELETE CASCADE)
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def init_extensions(app):
    db.init_app(app)

    if app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite"):
        with app.app_context():
            event.listen(db.engine, "connect", enable_sqlite_foreign_keys)
