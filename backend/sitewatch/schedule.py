# sitewatch/schedule.py
"""
Scan schedules, job state and the due-scan decision.

Schedule types (stored value in scan.schedule_type):

    immediate   run as soon as the worker sees it (scheduled_at is set to
                creation time by whoever creates the scan)
    once        run once at scheduled_at
    recurring   run whenever the cron expression fires

A one-shot scan (immediate / once) is due when it is still pending and its
scheduled_at has passed. A recurring scan is due when the first cron fire
time strictly after its last run (or its creation, if it never ran) is at
or before now. However many fire times were missed, that is one run.

Job status machine:

    pending ──► running ──► completed
                   │
                   └──────► failed

    completed / failed ──► running      recurring jobs only, when the
    running ──► running                 schedule fires again. A recurring
                                        job left running by a dead pass
                                        restarts on its next fire time.

Anything else raises InvalidTransition.

A broken schedule (bad cron, missing scheduled_at) is never due. It is
logged and skipped; is_due() does not raise.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional

from croniter import croniter

from sitewatch.scanner.base import Target, TargetKind, now_utc

logger = logging.getLogger(__name__)

CRON_FIELD_COUNT = 5


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class InvalidTransition(Exception):
    """A job status change the state machine does not allow."""

    def __init__(self, job_id: Any, current: "ScanStatus", requested: "ScanStatus"):
        super().__init__(f"Scan {job_id}: cannot move from {current.value} to {requested.value}")
        self.job_id = job_id
        self.current = current
        self.requested = requested


class InvalidCronExpression(ValueError):
    """Not a usable five-field cron expression."""


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class ScheduleType(str, Enum):
    IMMEDIATE = "immediate"
    ONCE = "once"
    RECURRING = "recurring"


class ScanStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ScanStatus.COMPLETED, ScanStatus.FAILED)


# Allowed moves for every job; recurring jobs additionally may re-enter running
TRANSITIONS: Dict[ScanStatus, frozenset] = {
    ScanStatus.PENDING: frozenset({ScanStatus.RUNNING}),
    ScanStatus.RUNNING: frozenset({ScanStatus.COMPLETED, ScanStatus.FAILED}),
    ScanStatus.COMPLETED: frozenset(),
    ScanStatus.FAILED: frozenset(),
}


# ---------------------------------------------------------------------------
# Cron helpers
# ---------------------------------------------------------------------------

def validate_cron(expression: Optional[str]) -> str:
    """
    Return the normalized expression, or raise InvalidCronExpression.

    Five fields: minute hour day-of-month month day-of-week. Each field may
    be *, a value, a list, a range or a step.
    """
    if not expression or not expression.strip():
        raise InvalidCronExpression("Cron expression is empty")

    fields = expression.split()
    if len(fields) != CRON_FIELD_COUNT:
        raise InvalidCronExpression(
            f"Cron expression '{expression}' has {len(fields)} fields, expected {CRON_FIELD_COUNT}"
        )

    normalized = " ".join(fields)
    if not croniter.is_valid(normalized):
        raise InvalidCronExpression(f"Cron expression '{expression}' is not valid")
    return normalized


def next_fire_time(expression: str, after: datetime) -> datetime:
    """First fire time strictly after `after`."""
    normalized = validate_cron(expression)
    return croniter(normalized, after).get_next(datetime)


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ScanSchedule:
    type: ScheduleType
    scheduled_at: Optional[datetime] = None
    cron_expression: Optional[str] = None
    last_run: Optional[datetime] = None

    @property
    def is_recurring(self) -> bool:
        return self.type == ScheduleType.RECURRING

    def with_last_run(self, when: datetime) -> "ScanSchedule":
        return replace(self, last_run=when)


def _clean_entries(values: Optional[Iterable[Any]]) -> List[str]:
    cleaned = []
    for v in values or []:
        text = str(v).strip() if v is not None else ""
        if text in ("", "0"):
            continue
        cleaned.append(text)
    return cleaned


def build_targets(urls: Optional[Iterable[Any]], ip_addresses: Optional[Iterable[Any]]) -> List[Target]:
    """URLs first, then IPs, each in stored order, blanks and "0" dropped."""
    return (
        [Target(u, TargetKind.URL) for u in _clean_entries(urls)]
        + [Target(ip, TargetKind.IP) for ip in _clean_entries(ip_addresses)]
    )


@dataclass
class ScanJob:
    """One scan as the engine sees it."""
    id: Any
    name: str
    schedule: ScanSchedule
    status: ScanStatus = ScanStatus.PENDING
    urls: List[str] = field(default_factory=list)
    ip_addresses: List[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=now_utc)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    summary: Optional[Dict[str, Any]] = None
    risk_grade: Optional[str] = None
    send_notification: bool = False
    notification_email: Optional[str] = None

    @property
    def targets(self) -> List[Target]:
        return build_targets(self.urls, self.ip_addresses)

    @property
    def wants_notification(self) -> bool:
        return bool(self.send_notification and self.notification_email)

    def can_transition_to(self, new_status: ScanStatus) -> bool:
        if new_status in TRANSITIONS[self.status]:
            return True
        # Recurring jobs start a new run from any state
        return self.schedule.is_recurring and new_status == ScanStatus.RUNNING

    def transition_to(self, new_status: ScanStatus, at: Optional[datetime] = None) -> None:
        """
        Move to `new_status`, stamping the matching timestamp.
        Entering a terminal state also records the run on the schedule.
        """
        if not self.can_transition_to(new_status):
            raise InvalidTransition(self.id, self.status, new_status)

        at = at or now_utc()
        if new_status == ScanStatus.RUNNING:
            self.started_at = at
            self.completed_at = None
        elif new_status.is_terminal:
            self.completed_at = at
            self.schedule = self.schedule.with_last_run(at)
        self.status = new_status


# ---------------------------------------------------------------------------
# Due check
# ---------------------------------------------------------------------------

def is_due(
    schedule: ScanSchedule,
    now: datetime,
    *,
    status: ScanStatus,
    created_at: datetime,
    job_id: Any = None,
) -> bool:
    """Should this scan run in the pass happening at `now`?"""
    if schedule.type in (ScheduleType.IMMEDIATE, ScheduleType.ONCE):
        if schedule.scheduled_at is None:
            logger.warning(f"Scan {job_id}: {schedule.type.value} schedule has no scheduled_at, skipping")
            return False
        return status == ScanStatus.PENDING and schedule.scheduled_at <= now

    if schedule.type == ScheduleType.RECURRING:
        reference = schedule.last_run or created_at
        try:
            fire_at = next_fire_time(schedule.cron_expression, reference)
        except InvalidCronExpression as e:
            logger.error(f"Invalid cron expression for scan {job_id}: {schedule.cron_expression!r} ({e})")
            return False
        return fire_at <= now

    logger.warning(f"Scan {job_id}: unknown schedule type {schedule.type!r}, skipping")
    return False


class ScheduleEvaluator:
    """Picks the due jobs out of a candidate list."""

    def __init__(self, clock: Callable[[], datetime] = now_utc):
        self.clock = clock

    def job_is_due(self, job: ScanJob, now: Optional[datetime] = None) -> bool:
        return is_due(
            job.schedule,
            now or self.clock(),
            status=job.status,
            created_at=job.created_at,
            job_id=job.id,
        )

    def due_jobs(self, jobs: Iterable[ScanJob], now: Optional[datetime] = None) -> List[ScanJob]:
        """Due jobs in candidate order, each at most once."""
        now = now or self.clock()
        seen = set()
        due = []
        for job in jobs:
            if job.id in seen:
                continue
            if self.job_is_due(job, now):
                seen.add(job.id)
                due.append(job)
        return due
