"""Shared test fixtures."""

from __future__ import annotations

import copy
import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest
import requests
from requests.structures import CaseInsensitiveDict

from sitewatch.scanner.base import CheckRecord, CheckType, Target, TargetResult
from sitewatch.schedule import ScanJob, ScanSchedule, ScanStatus, ScheduleType

NOW = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# HTTP fakes
# ---------------------------------------------------------------------------

class FakeResponse:
    def __init__(self, status_code: int = 200, headers: Optional[Dict[str, str]] = None, text: str = ""):
        self.status_code = status_code
        self.headers = CaseInsensitiveDict(headers or {})
        self.text = text

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error")


class FakeSession:
    """
    Stand-in for requests.Session. Each verb maps to a FakeResponse or an
    exception instance to raise; `routes` overrides per URL.
    """

    def __init__(self, get=None, options=None, post=None, routes: Optional[Dict[str, Any]] = None):
        self.responses = {"GET": get, "OPTIONS": options, "POST": post}
        self.routes = routes or {}
        self.calls: List[Dict[str, Any]] = []
        self.closed = False

    def _dispatch(self, method: str, url: str, **kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        outcome = self.routes.get((method, url), self.responses.get(method))
        if isinstance(outcome, Exception):
            raise outcome
        if outcome is None:
            raise requests.ConnectionError(f"No route for {method} {url}")
        return outcome

    def get(self, url, **kwargs):
        return self._dispatch("GET", url, **kwargs)

    def options(self, url, **kwargs):
        return self._dispatch("OPTIONS", url, **kwargs)

    def post(self, url, **kwargs):
        return self._dispatch("POST", url, **kwargs)

    def close(self):
        self.closed = True


# ---------------------------------------------------------------------------
# Runner fakes
# ---------------------------------------------------------------------------

class FakeStore:
    """In-memory ScanStore that keeps every saved job state and result."""

    def __init__(self, jobs: Optional[List[ScanJob]] = None):
        self.jobs: Dict[Any, ScanJob] = {j.id: j for j in jobs or []}
        self.saved: List[ScanJob] = []
        self.results: List[Dict[str, Any]] = []

    def list_due_one_shot(self, now):
        return [
            j for j in self.jobs.values()
            if j.schedule.type in (ScheduleType.IMMEDIATE, ScheduleType.ONCE)
            and j.status == ScanStatus.PENDING
            and j.schedule.scheduled_at is not None
            and j.schedule.scheduled_at <= now
        ]

    def list_recurring(self):
        return [
            j for j in self.jobs.values()
            if j.schedule.type == ScheduleType.RECURRING and j.schedule.cron_expression
        ]

    def save_job(self, job):
        self.saved.append(copy.deepcopy(job))
        self.jobs[job.id] = job

    def create_result(self, scan_id, target, record, scanned_at):
        self.results.append({"scan_id": scan_id, "target": target, "record": record, "scanned_at": scanned_at})

    def statuses(self, scan_id) -> List[str]:
        return [j.status.value for j in self.saved if j.id == scan_id]

    def results_for(self, target_value: str) -> List[CheckRecord]:
        return [r["record"] for r in self.results if r["target"].value == target_value]


class FakeScanner:
    """
    Scanner stand-in. `plan` maps target value → list of CheckRecords, or an
    exception instance to raise. `blockers` maps target value → Event the
    scan waits on before answering.
    """

    def __init__(self, plan: Dict[str, Any], blockers: Optional[Dict[str, threading.Event]] = None):
        self.plan = plan
        self.blockers = blockers or {}
        self.scanned: List[str] = []

    def scan(self, target: Target) -> TargetResult:
        self.scanned.append(target.value)
        blocker = self.blockers.get(target.value)
        if blocker is not None:
            blocker.wait(timeout=5)
        outcome = self.plan.get(target.value, [])
        if isinstance(outcome, Exception):
            raise outcome
        return TargetResult(target=target.value, kind=target.kind, timestamp=NOW, checks=list(outcome))


class RecordingNotifier:
    def __init__(self, error: Optional[Exception] = None):
        self.notices = []
        self.error = error

    def notify(self, notice):
        if self.error is not None:
            raise self.error
        self.notices.append(notice)


def passing_header(name: str = "X-Frame-Options") -> CheckRecord:
    return CheckRecord(
        check_type=CheckType.SECURITY_HEADER,
        check_name=name,
        passed=True,
        data={"value": "SAMEORIGIN", "expected": "SAMEORIGIN"},
    )


def make_job(
    job_id: Any = 1,
    schedule_type: ScheduleType = ScheduleType.ONCE,
    status: ScanStatus = ScanStatus.PENDING,
    urls=None,
    ips=None,
    scheduled_at: Optional[datetime] = None,
    cron: Optional[str] = None,
    last_run: Optional[datetime] = None,
    created_at: Optional[datetime] = None,
    email: Optional[str] = None,
) -> ScanJob:
    return ScanJob(
        id=job_id,
        name=f"scan-{job_id}",
        schedule=ScanSchedule(
            type=schedule_type,
            scheduled_at=scheduled_at if scheduled_at is not None else NOW - timedelta(minutes=5),
            cron_expression=cron,
            last_run=last_run,
        ),
        status=status,
        urls=list(urls or []),
        ip_addresses=list(ips or []),
        created_at=created_at or NOW - timedelta(days=7),
        send_notification=email is not None,
        notification_email=email,
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def app():
    from sitewatch import create_app
    from sitewatch.extensions import db

    app = create_app({
        "SQLALCHEMY_DATABASE_URI": "sqlite://",
        "SCHEDULER_ENABLED": "false",
        "TESTING": True,
    })
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()
