# sitewatch/runner.py
"""
Scan runner: the "process due scans now" pipeline.

One pass:
    1. Ask the store for candidates (pending one-shot scans that are past
       their time, plus every recurring scan) and keep the due ones.
    2. For each due job, in order:
         → running, started_at written first (one-shot jobs from pending,
           recurring jobs from any state)
         scan every target on a thread pool, persisting each target's
           check records as its result comes in
         fold the records into a summary and grade
         running → completed, persist, notify
       Any unexpected error in step 2, saving the completed state included,
       fails the job instead:
         running → failed, summary = {error, failed_at}, persist, notify

Error containment:
    probe error          → probe_error record (inside the Scanner)
    target error         → one target_error record for that target.
                           ProbeError, OSError or requests.RequestException
                           escaping Scanner.scan
    job deadline         → one scan_timeout record per unfinished target;
                           their late results are thrown away
    anything else        → the job fails
    notification error   → logged, job outcome unchanged

process_due_scans() never raises. It returns False only when the pass
could not even start (e.g. the store is unreachable).
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from datetime import datetime
from typing import Callable, Dict, Iterator, List, Optional, Tuple

import requests

from sitewatch.notifications import (
    CompletionNotice,
    FailureNotice,
    LogNotifier,
    Notifier,
    notifier_from_settings,
    send_notice,
)
from sitewatch.scanner.base import (
    CheckRecord,
    CheckType,
    ProbeError,
    Target,
    TargetResult,
    failing_record,
    now_utc,
)
from sitewatch.scanner.scanner import Scanner
from sitewatch.schedule import ScanJob, ScanStatus, ScheduleEvaluator
from sitewatch.store import SQLAlchemyScanStore, ScanStore
from sitewatch.utils.scoring import SummaryAccumulator, failure_summary, risk_grade

logger = logging.getLogger(__name__)

TARGET_ERRORS = (ProbeError, OSError, requests.RequestException)

DEFAULT_MAX_WORKERS = 4
DEFAULT_JOB_TIMEOUT = 900


class ScanRunner:
    """Selects due scans and drives each one through its lifecycle."""

    def __init__(
        self,
        store: ScanStore,
        scanner,
        notifier: Optional[Notifier] = None,
        max_workers: int = DEFAULT_MAX_WORKERS,
        job_timeout: float = DEFAULT_JOB_TIMEOUT,
        clock: Callable[[], datetime] = now_utc,
    ):
        self.store = store
        self.scanner = scanner
        self.notifier = notifier or LogNotifier()
        self.max_workers = max(1, max_workers)
        self.job_timeout = job_timeout
        self.clock = clock
        self.evaluator = ScheduleEvaluator(clock=clock)

    @classmethod
    def from_settings(cls, store: ScanStore, settings) -> "ScanRunner":
        return cls(
            store=store,
            scanner=Scanner.from_settings(settings),
            notifier=notifier_from_settings(settings),
            max_workers=settings.max_workers,
            job_timeout=settings.job_timeout,
        )

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def process_due_scans(self, now: Optional[datetime] = None) -> bool:
        logger.info("Starting scheduled scan pass")
        try:
            jobs = self.select_due(now)
        except Exception:
            logger.exception("Could not load scheduled scans, pass aborted")
            return False

        logger.info(f"Found {len(jobs)} scan(s) to process")

        for job in jobs:
            try:
                self.run_job(job)
            except Exception:
                logger.exception(f"Scan {job.id} could not be processed")

        logger.info("Completed scheduled scan pass")
        return True

    def select_due(self, now: Optional[datetime] = None) -> List[ScanJob]:
        now = now or self.clock()
        candidates = self.store.list_due_one_shot(now) + self.store.list_recurring()
        return self.evaluator.due_jobs(candidates, now)

    # ------------------------------------------------------------------
    # One job
    # ------------------------------------------------------------------

    def run_job(self, job: ScanJob) -> ScanJob:
        logger.info(f"Processing scan {job.id}: {job.name}")

        previous_grade = job.risk_grade
        job.transition_to(ScanStatus.RUNNING, self.clock())
        self.store.save_job(job)

        results = self._scan_targets(job)
        try:
            acc = SummaryAccumulator()
            for target, result in results:
                for record in result.checks:
                    self.store.create_result(job.id, target, record, result.timestamp)
                acc.add_target(result.checks)

            finished = self.clock()
            summary = acc.finish(finished)
            grade = risk_grade(summary)

            job.summary = summary.to_dict()
            job.risk_grade = grade
            job.transition_to(ScanStatus.COMPLETED, finished)
            self.store.save_job(job)
        except Exception as e:
            logger.exception(f"Failed to process scan {job.id}")
            if job.status == ScanStatus.COMPLETED:
                # Completion was never persisted; the stored row is still running
                job.status = ScanStatus.RUNNING
            job.risk_grade = previous_grade
            self._fail(job, str(e) or type(e).__name__)
            return job
        finally:
            results.close()

        logger.info(f"Completed scan {job.id} with risk grade {grade}")

        if job.wants_notification:
            send_notice(self.notifier, CompletionNotice(
                scan_id=job.id,
                email=job.notification_email,
                summary=job.summary,
                risk_grade=grade,
                scan_name=job.name,
            ))
        return job

    def _fail(self, job: ScanJob, error: str) -> None:
        failed_at = self.clock()
        job.summary = failure_summary(error, failed_at)
        job.transition_to(ScanStatus.FAILED, failed_at)
        self.store.save_job(job)

        if job.wants_notification:
            send_notice(self.notifier, FailureNotice(
                scan_id=job.id,
                email=job.notification_email,
                error=error,
                scan_name=job.name,
            ))

    # ------------------------------------------------------------------
    # Targets
    # ------------------------------------------------------------------

    def _scan_targets(self, job: ScanJob) -> Iterator[Tuple[Target, TargetResult]]:
        """
        Yield (target, result) as targets finish. Runs on the caller's
        thread; only the scanning itself happens on the pool.
        """
        targets = job.targets
        if not targets:
            return

        executor = ThreadPoolExecutor(
            max_workers=min(self.max_workers, len(targets)),
            thread_name_prefix=f"scan-{job.id}",
        )
        pending: Dict[Future, Target] = {executor.submit(self._scan_target, t): t for t in targets}
        deadline = time.monotonic() + self.job_timeout

        try:
            while pending:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                done, _ = wait(pending, timeout=remaining, return_when=FIRST_COMPLETED)
                for future in done:
                    target = pending.pop(future)
                    yield target, future.result()

            if pending:
                logger.warning(
                    f"Scan {job.id}: deadline of {self.job_timeout}s reached, "
                    f"abandoning {len(pending)} target(s)"
                )
                timed_out_at = self.clock()
                for target in list(pending.values()):
                    yield target, TargetResult(
                        target=target.value,
                        kind=target.kind,
                        timestamp=timed_out_at,
                        checks=[failing_record(
                            CheckType.SCAN_TIMEOUT,
                            f"Scan did not finish within {self.job_timeout:g} seconds",
                        )],
                    )
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

    def _scan_target(self, target: Target) -> TargetResult:
        logger.info(f"Scanning {target.kind.value.upper()}: {target.value}")
        try:
            return self.scanner.scan(target)
        except TARGET_ERRORS as e:
            logger.warning(f"Target {target.value} could not be scanned: {e}")
            return TargetResult(
                target=target.value,
                kind=target.kind,
                timestamp=now_utc(),
                checks=[target_error_record(e)],
            )


def target_error_record(error: Exception) -> CheckRecord:
    return failing_record(
        CheckType.TARGET_ERROR,
        f"{type(error).__name__}: {error}",
        error_type=type(error).__name__,
    )


def build_runner(app) -> ScanRunner:
    """Runner wired to the app's database and settings. Call inside an app context."""
    return ScanRunner.from_settings(SQLAlchemyScanStore(), app.config["SCAN_SETTINGS"])
