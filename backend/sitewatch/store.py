# sitewatch/store.py
"""
Job source and result sink.

The runner only talks to storage through ScanStore:

    list_due_one_shot(now)   pending immediate/once scans with scheduled_at <= now
    list_recurring()         recurring scans that have a cron expression
    save_job(job)            write back status, timestamps, summary, grade
    create_result(...)       persist one check record for one target

SQLAlchemyScanStore implements it over the Scan / ScanResult models.
Columns hold naive UTC; everything handed to or taken from the engine is
timezone-aware UTC.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, List, Optional, Protocol

from sitewatch.extensions import db
from sitewatch.models import Scan, ScanResult
from sitewatch.scanner.base import CheckRecord, Target
from sitewatch.schedule import ScanJob, ScanSchedule, ScanStatus, ScheduleType

logger = logging.getLogger(__name__)


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def to_aware_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class ScanStore(Protocol):
    def list_due_one_shot(self, now: datetime) -> List[ScanJob]:
        ...

    def list_recurring(self) -> List[ScanJob]:
        ...

    def save_job(self, job: ScanJob) -> None:
        ...

    def create_result(self, scan_id: Any, target: Target, record: CheckRecord, scanned_at: datetime) -> None:
        ...


# ---------------------------------------------------------------------------
# Row ↔ job mapping
# ---------------------------------------------------------------------------

def job_from_row(row: Scan) -> ScanJob:
    schedule = ScanSchedule(
        type=ScheduleType(row.schedule_type),
        scheduled_at=to_aware_utc(row.scheduled_at),
        cron_expression=row.cron_expression,
        last_run=to_aware_utc(row.last_run_at),
    )
    return ScanJob(
        id=row.id,
        name=row.name,
        schedule=schedule,
        status=ScanStatus(row.status),
        urls=list(row.urls or []),
        ip_addresses=list(row.ip_addresses or []),
        created_at=to_aware_utc(row.created_at),
        started_at=to_aware_utc(row.started_at),
        completed_at=to_aware_utc(row.completed_at),
        summary=row.summary,
        risk_grade=row.risk_grade,
        send_notification=bool(row.send_notification),
        notification_email=row.notification_email,
    )


class SQLAlchemyScanStore:
    """ScanStore backed by the Flask-SQLAlchemy session. Needs an app context."""

    def __init__(self, session=None):
        self.session = session or db.session

    def list_due_one_shot(self, now: datetime) -> List[ScanJob]:
        rows = (
            Scan.query
            .filter(
                Scan.schedule_type.in_([ScheduleType.IMMEDIATE.value, ScheduleType.ONCE.value]),
                Scan.status == ScanStatus.PENDING.value,
                Scan.scheduled_at.isnot(None),
                Scan.scheduled_at <= to_naive_utc(now),
            )
            .order_by(Scan.scheduled_at, Scan.id)
            .all()
        )
        return [job_from_row(r) for r in rows]

    def list_recurring(self) -> List[ScanJob]:
        rows = (
            Scan.query
            .filter(
                Scan.schedule_type == ScheduleType.RECURRING.value,
                Scan.cron_expression.isnot(None),
            )
            .order_by(Scan.id)
            .all()
        )
        return [job_from_row(r) for r in rows]

    def get_job(self, scan_id: Any) -> Optional[ScanJob]:
        row = self.session.get(Scan, scan_id)
        return job_from_row(row) if row else None

    def save_job(self, job: ScanJob) -> None:
        row = self.session.get(Scan, job.id)
        if row is None:
            raise LookupError(f"Scan {job.id} not found")

        row.status = job.status.value
        row.started_at = to_naive_utc(job.started_at)
        row.completed_at = to_naive_utc(job.completed_at)
        row.last_run_at = to_naive_utc(job.schedule.last_run)
        row.summary = job.summary
        row.risk_grade = job.risk_grade
        self._commit()

    def create_result(self, scan_id: Any, target: Target, record: CheckRecord, scanned_at: datetime) -> None:
        self.session.add(ScanResult(
            scan_id=scan_id,
            target=target.value,
            target_type=target.kind.value,
            check_type=record.check_type.value,
            check_name=record.check_name,
            passed=record.passed,
            severity=record.severity,
            risk_level=record.risk_level,
            message=record.message,
            description=record.description,
            check_data=record.to_dict(),
            recommendations=list(record.recommendations) or None,
            vulnerabilities=[dict(v) for v in record.vulnerabilities] or None,
            scanned_at=to_naive_utc(scanned_at),
        ))
        self._commit()

    def _commit(self) -> None:
        try:
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
