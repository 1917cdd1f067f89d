"""Tests for schedules, the job status machine and the due check."""

import logging
from datetime import datetime, timedelta, timezone

import pytest

from sitewatch.scanner.base import TargetKind
from sitewatch.schedule import (
    InvalidCronExpression,
    InvalidTransition,
    ScanSchedule,
    ScanStatus,
    ScheduleEvaluator,
    ScheduleType,
    build_targets,
    is_due,
    next_fire_time,
    validate_cron,
)

from conftest import NOW, make_job


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Cron helpers
# ---------------------------------------------------------------------------

class TestCron:

    def test_next_fire_time_is_strictly_after(self):
        assert next_fire_time("0 * * * *", utc(2025, 6, 15, 10, 0)) == utc(2025, 6, 15, 11, 0)

    def test_next_fire_time_daily(self):
        assert next_fire_time("30 9 * * *", utc(2025, 6, 15, 9, 31)) == utc(2025, 6, 16, 9, 30)

    def test_validate_normalizes_whitespace(self):
        assert validate_cron("  */5   *  * * * ") == "*/5 * * * *"

    @pytest.mark.parametrize("expression", [
        None,
        "",
        "   ",
        "* * * *",
        "0 0 * * * *",
        "61 * * * *",
        "* 25 * * *",
        "every day",
    ])
    def test_invalid_expressions(self, expression):
        with pytest.raises(InvalidCronExpression):
            validate_cron(expression)

    def test_invalid_cron_is_a_value_error(self):
        with pytest.raises(ValueError):
            next_fire_time("61 * * * *", NOW)


# ---------------------------------------------------------------------------
# Targets
# ---------------------------------------------------------------------------

def test_build_targets_urls_first_blanks_dropped():
    targets = build_targets(["https://a.test", "", "0", " "], ["10.0.0.1", None, "10.0.0.2"])
    assert [(t.value, t.kind) for t in targets] == [
        ("https://a.test", TargetKind.URL),
        ("10.0.0.1", TargetKind.IP),
        ("10.0.0.2", TargetKind.IP),
    ]


def test_build_targets_empty():
    assert build_targets(None, []) == []


def test_target_host():
    url, ip = build_targets(["https://www.example.test:8443/login"], ["192.0.2.1"])
    assert url.host == "www.example.test"
    assert ip.host == "192.0.2.1"


# ---------------------------------------------------------------------------
# Status machine
# ---------------------------------------------------------------------------

class TestTransitions:

    def test_happy_path(self):
        job = make_job()
        job.transition_to(ScanStatus.RUNNING, NOW)
        assert job.started_at == NOW
        assert job.completed_at is None

        done = NOW + timedelta(minutes=3)
        job.transition_to(ScanStatus.COMPLETED, done)
        assert job.status == ScanStatus.COMPLETED
        assert job.completed_at == done
        assert job.schedule.last_run == done

    def test_failure_records_last_run(self):
        job = make_job()
        job.transition_to(ScanStatus.RUNNING, NOW)
        job.transition_to(ScanStatus.FAILED, NOW)
        assert job.schedule.last_run == NOW

    def test_pending_cannot_complete(self):
        job = make_job()
        with pytest.raises(InvalidTransition) as exc:
            job.transition_to(ScanStatus.COMPLETED, NOW)
        assert exc.value.current == ScanStatus.PENDING
        assert exc.value.requested == ScanStatus.COMPLETED
        assert job.status == ScanStatus.PENDING

    def test_one_shot_cannot_rerun(self):
        job = make_job(status=ScanStatus.COMPLETED)
        with pytest.raises(InvalidTransition):
            job.transition_to(ScanStatus.RUNNING, NOW)

    def test_recurring_can_rerun(self):
        job = make_job(schedule_type=ScheduleType.RECURRING, status=ScanStatus.FAILED, cron="0 * * * *")
        job.completed_at = NOW - timedelta(hours=1)
        job.transition_to(ScanStatus.RUNNING, NOW)
        assert job.status == ScanStatus.RUNNING
        assert job.completed_at is None

    def test_stuck_recurring_run_can_restart(self):
        job = make_job(schedule_type=ScheduleType.RECURRING, status=ScanStatus.RUNNING, cron="0 * * * *")
        job.transition_to(ScanStatus.RUNNING, NOW)
        assert job.status == ScanStatus.RUNNING
        assert job.started_at == NOW

    def test_one_shot_running_cannot_restart(self):
        job = make_job(status=ScanStatus.RUNNING)
        with pytest.raises(InvalidTransition):
            job.transition_to(ScanStatus.RUNNING, NOW)

    def test_running_cannot_go_back_to_pending(self):
        job = make_job(status=ScanStatus.RUNNING)
        with pytest.raises(InvalidTransition):
            job.transition_to(ScanStatus.PENDING, NOW)


def test_wants_notification_needs_an_address():
    assert make_job(email="ops@example.test").wants_notification is True
    job = make_job()
    job.send_notification = True
    assert job.wants_notification is False


# ---------------------------------------------------------------------------
# Due check
# ---------------------------------------------------------------------------

class TestOneShotDue:

    def test_due_when_time_has_passed(self):
        schedule = ScanSchedule(ScheduleType.ONCE, scheduled_at=NOW - timedelta(seconds=1))
        assert is_due(schedule, NOW, status=ScanStatus.PENDING, created_at=NOW) is True

    def test_due_exactly_at_scheduled_time(self):
        schedule = ScanSchedule(ScheduleType.IMMEDIATE, scheduled_at=NOW)
        assert is_due(schedule, NOW, status=ScanStatus.PENDING, created_at=NOW) is True

    def test_not_due_in_future(self):
        schedule = ScanSchedule(ScheduleType.ONCE, scheduled_at=NOW + timedelta(minutes=1))
        assert is_due(schedule, NOW, status=ScanStatus.PENDING, created_at=NOW) is False

    @pytest.mark.parametrize("status", [ScanStatus.RUNNING, ScanStatus.COMPLETED, ScanStatus.FAILED])
    def test_only_pending_is_due(self, status):
        schedule = ScanSchedule(ScheduleType.ONCE, scheduled_at=NOW - timedelta(hours=1))
        assert is_due(schedule, NOW, status=status, created_at=NOW) is False

    def test_missing_scheduled_at(self, caplog):
        schedule = ScanSchedule(ScheduleType.ONCE)
        with caplog.at_level(logging.WARNING, logger="sitewatch.schedule"):
            assert is_due(schedule, NOW, status=ScanStatus.PENDING, created_at=NOW, job_id=9) is False
        assert "no scheduled_at" in caplog.text


class TestRecurringDue:

    def test_daily_due_at_fire_time(self):
        schedule = ScanSchedule(
            ScheduleType.RECURRING,
            cron_expression="30 9 * * *",
            last_run=utc(2025, 6, 14, 9, 30),
        )
        kwargs = dict(status=ScanStatus.COMPLETED, created_at=utc(2025, 1, 1))
        assert is_due(schedule, utc(2025, 6, 15, 9, 30), **kwargs) is True
        assert is_due(schedule, utc(2025, 6, 15, 9, 29), **kwargs) is False

    def test_never_run_uses_created_at(self):
        schedule = ScanSchedule(ScheduleType.RECURRING, cron_expression="0 * * * *")
        created = utc(2025, 6, 15, 11, 10)
        assert is_due(schedule, utc(2025, 6, 15, 11, 59), status=ScanStatus.PENDING, created_at=created) is False
        assert is_due(schedule, utc(2025, 6, 15, 12, 0), status=ScanStatus.PENDING, created_at=created) is True

    def test_job_left_running_is_due_again(self):
        schedule = ScanSchedule(ScheduleType.RECURRING, cron_expression="0 * * * *", last_run=NOW - timedelta(days=3))
        assert is_due(schedule, NOW, status=ScanStatus.RUNNING, created_at=NOW - timedelta(days=7)) is True

    def test_not_due_right_after_a_run(self):
        schedule = ScanSchedule(ScheduleType.RECURRING, cron_expression="*/5 * * * *", last_run=NOW)
        assert is_due(schedule, NOW, status=ScanStatus.COMPLETED, created_at=NOW - timedelta(days=1)) is False

    def test_invalid_cron_is_logged_and_skipped(self, caplog):
        schedule = ScanSchedule(ScheduleType.RECURRING, cron_expression="61 * * * *")
        with caplog.at_level(logging.ERROR, logger="sitewatch.schedule"):
            assert is_due(schedule, NOW, status=ScanStatus.COMPLETED, created_at=NOW - timedelta(days=1), job_id=5) is False
        assert "Invalid cron expression for scan 5" in caplog.text


class TestEvaluator:

    def test_missed_occurrences_collapse_into_one_run(self):
        job = make_job(
            schedule_type=ScheduleType.RECURRING,
            status=ScanStatus.COMPLETED,
            cron="0 * * * *",
            last_run=NOW - timedelta(days=3),
        )
        evaluator = ScheduleEvaluator(clock=lambda: NOW)
        assert evaluator.due_jobs([job, job]) == [job]

    def test_due_jobs_is_idempotent(self):
        due = make_job(1)
        later = make_job(2, scheduled_at=NOW + timedelta(hours=1))
        broken = make_job(3, schedule_type=ScheduleType.RECURRING, cron="bogus")
        evaluator = ScheduleEvaluator(clock=lambda: NOW)

        first = evaluator.due_jobs([due, later, broken])
        second = evaluator.due_jobs([due, later, broken])
        assert [j.id for j in first] == [j.id for j in second] == [1]

    def test_explicit_now_wins_over_clock(self):
        job = make_job(scheduled_at=NOW + timedelta(hours=1))
        evaluator = ScheduleEvaluator(clock=lambda: NOW)
        assert evaluator.job_is_due(job) is False
        assert evaluator.job_is_due(job, NOW + timedelta(hours=2)) is True
