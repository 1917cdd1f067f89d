# File: sitewatch/utils/scoring.py
# =============================================================================
# Scan Summary & Risk Grade
# =============================================================================
# Single source of truth for turning a job's check records into the stored
# summary and its letter grade. Used by the runner and the CLI.
#
# Risk bucket of a check: its severity, else its risk level, else "medium".
#   high | critical → high risk
#   medium          → medium risk
#   low             → low risk
#   anything else   → no bucket (e.g. a closed port has risk level "none")
#
# Buckets are counted for every check, passed or not.
#
# Grade (first match wins):
#   no checks                                      F
#   high risk > 0  or failure rate > 0.5           F
#   failure rate > 0.3  or medium risk > 5         D
#   failure rate > 0.2  or medium risk > 3         C
#   failure rate > 0.1  or medium risk > 1         B
#   otherwise                                      A
#
# For grading, every attached vulnerability adds one more high-risk point
# on top of the check's own bucket.
# =============================================================================

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, Optional

from sitewatch.scanner.base import CheckRecord, now_utc

HIGH_BUCKET = frozenset({"high", "critical"})


@dataclass
class ScanSummary:
    total_targets: int = 0
    total_checks: int = 0
    passed_checks: int = 0
    failed_checks: int = 0
    vulnerabilities_found: int = 0
    high_risk_issues: int = 0
    medium_risk_issues: int = 0
    low_risk_issues: int = 0
    scanned_at: Optional[str] = None

    @property
    def failure_rate(self) -> float:
        if not self.total_checks:
            return 0.0
        return self.failed_checks / self.total_checks

    @property
    def graded_high_risk(self) -> int:
        """High-risk count used for grading: high checks plus every vulnerability."""
        return self.high_risk_issues + self.vulnerabilities_found

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class SummaryAccumulator:
    """
    Folds check records into a ScanSummary one at a time.

    One accumulator per job, fed only from the runner thread as target
    results come in.
    """

    def __init__(self):
        self.summary = ScanSummary()

    def add_target(self, checks: Iterable[CheckRecord]) -> None:
        self.summary.total_targets += 1
        for check in checks:
            self.add_check(check)

    def add_check(self, check: CheckRecord) -> None:
        s = self.summary
        s.total_checks += 1
        if check.passed:
            s.passed_checks += 1
        else:
            s.failed_checks += 1

        s.vulnerabilities_found += len(check.vulnerabilities)

        bucket = check.effective_severity
        if bucket in HIGH_BUCKET:
            s.high_risk_issues += 1
        elif bucket == "medium":
            s.medium_risk_issues += 1
        elif bucket == "low":
            s.low_risk_issues += 1

    def finish(self, scanned_at: Optional[datetime] = None) -> ScanSummary:
        self.summary.scanned_at = (scanned_at or now_utc()).isoformat()
        return self.summary


def compute_summary(
    targets: Iterable[Iterable[CheckRecord]],
    scanned_at: Optional[datetime] = None,
) -> ScanSummary:
    """Summary of a whole job, given the check list of each target."""
    acc = SummaryAccumulator()
    for checks in targets:
        acc.add_target(checks)
    return acc.finish(scanned_at)


def risk_grade(summary: ScanSummary) -> str:
    """Letter grade A–F for a completed scan."""
    if summary.total_checks == 0:
        return "F"

    rate = summary.failure_rate
    medium = summary.medium_risk_issues

    if summary.graded_high_risk > 0 or rate > 0.5:
        return "F"
    if rate > 0.3 or medium > 5:
        return "D"
    if rate > 0.2 or medium > 3:
        return "C"
    if rate > 0.1 or medium > 1:
        return "B"
    return "A"


def failure_summary(error: str, failed_at: Optional[datetime] = None) -> Dict[str, Any]:
    """Summary stored on a job that failed."""
    return {
        "error": error,
        "failed_at": (failed_at or now_utc()).isoformat(),
    }
