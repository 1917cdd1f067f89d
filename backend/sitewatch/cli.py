# sitewatch/cli.py
"""
Flask CLI commands.

    flask --app sitewatch scans process            run one pass now (exit 1 if it could not run)
    flask --app sitewatch scans due                list scans a pass would pick up right now
    flask --app sitewatch scans check-cron EXPR    validate a cron expression, show next fire times
    flask --app sitewatch init-db                  create the tables
"""

from __future__ import annotations

import click
from flask import current_app
from flask.cli import AppGroup, with_appcontext

from sitewatch.extensions import db
from sitewatch.runner import build_runner
from sitewatch.scanner.base import now_utc
from sitewatch.schedule import InvalidCronExpression, next_fire_time

scans_cli = AppGroup("scans", help="Scheduled scan processing.")


@scans_cli.command("process")
def process_command():
    """Process all scheduled scans that are due to run."""
    click.echo("Processing scheduled scans...")
    ran = build_runner(current_app).process_due_scans()
    if not ran:
        click.echo("Scan pass could not run, see the log for details.", err=True)
        raise SystemExit(1)
    click.echo("Scan pass finished.")


@scans_cli.command("due")
def due_command():
    """List the scans that are due now, without running them."""
    jobs = build_runner(current_app).select_due()
    if not jobs:
        click.echo("No scans are due.")
        return
    for job in jobs:
        click.echo(
            f"{job.id}\t{job.name}\t{job.schedule.type.value}\t"
            f"{job.status.value}\t{len(job.targets)} target(s)"
        )


@scans_cli.command("check-cron")
@click.argument("expression")
@click.option("--count", "-n", default=5, show_default=True, help="How many fire times to show.")
def check_cron_command(expression: str, count: int):
    """Validate a five-field cron expression."""
    when = now_utc()
    try:
        for _ in range(max(count, 1)):
            when = next_fire_time(expression, when)
            click.echo(when.strftime("%Y-%m-%d %H:%M %Z"))
    except InvalidCronExpression as e:
        click.echo(f"Invalid cron expression: {e}", err=True)
        raise SystemExit(1)


@click.command("init-db")
@with_appcontext
def init_db_command():
    """Create all tables."""
    db.create_all()
    click.echo("Database tables created.")


def init_cli(app) -> None:
    app.cli.add_command(scans_cli)
    app.cli.add_command(init_db_command)
