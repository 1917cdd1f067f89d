# sitewatch/scanner/base.py
"""
Base classes for the sitewatch assessment pipeline.

Architecture:
    Target flows through:  Scanner → Probes → CheckRecords

BaseProbe:    Performs one independent network check against a target
              (headers, TLS, CORS, ports, services) and turns what it saw
              into CheckRecords. A probe never raises to its caller:
              run() converts any failure into an error ProbeOutcome.

CheckRecord:  The normalized outcome of one probe check. A common envelope
              (type, pass/fail, severity, message, recommendations,
              vulnerabilities) plus a probe-specific `data` payload.

This separation means:
  - A timeout in the CORS probe cannot abort the header probe
  - The runner only ever sees CheckRecords, never raw sockets or responses
  - Each probe can be exercised in isolation with a fake session/socket
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlparse

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def now_utc() -> datetime:
    """Timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


class ProbeError(Exception):
    """A network/protocol failure while probing a target."""


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class TargetKind(str, Enum):
    URL = "url"
    IP = "ip"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class CheckType(str, Enum):
    """Variant tag of a CheckRecord. Stored verbatim in scan_result.check_type."""
    SECURITY_HEADER = "security_header"
    HTTP_CONNECTION = "http_connection"
    ADDITIONAL_HEADER = "additional_header"
    ADDITIONAL_HEADERS = "additional_headers"      # fetch failed, no headers to inspect
    SSL = "ssl"
    SSL_CERTIFICATE = "ssl_certificate"
    CORS_POLICY = "cors_policy"
    CORS_CHECK = "cors_check"                      # preflight request failed
    PORT_SCAN = "port_scan"
    SERVICE_DETECTION = "service_detection"
    PROBE_ERROR = "probe_error"
    TARGET_ERROR = "target_error"
    SCAN_TIMEOUT = "scan_timeout"


# ---------------------------------------------------------------------------
# Data structures: these flow from probes to the runner
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Target:
    """A URL or IP address under assessment."""
    value: str
    kind: TargetKind

    @property
    def host(self) -> str:
        """Hostname part of a URL target, or the IP itself."""
        if self.kind == TargetKind.URL:
            return urlparse(self.value).hostname or self.value
        return self.value


@dataclass(frozen=True)
class CheckRecord:
    """
    Outcome of one probe check against one target.

    Fields:
        check_type:      Variant tag (see CheckType).
        passed:          Did the target pass this check?
        check_name:      Which specific check, e.g. "X-Frame-Options", "SSH".
        severity:        low / medium / high / critical, when the check carries one.
        risk_level:      none / low / medium / high, used by port checks instead
                         of severity.
        message:         Short human-readable outcome or error text.
        description:     What the check is about.
        recommendations: Remediation hints, in display order.
        vulnerabilities: Serialized VulnerabilityMatch dicts.
        data:            Probe-specific evidence (header value, port, banner, ...).
    """
    check_type: CheckType
    passed: bool
    check_name: Optional[str] = None
    severity: Optional[str] = None
    risk_level: Optional[str] = None
    message: Optional[str] = None
    description: Optional[str] = None
    recommendations: Tuple[str, ...] = ()
    vulnerabilities: Tuple[Dict[str, Any], ...] = ()
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def effective_severity(self) -> str:
        """Severity used for risk counting: severity, else risk level, else medium."""
        return self.severity or self.risk_level or Severity.MEDIUM.value

    def to_dict(self) -> Dict[str, Any]:
        """Nested JSON-ready form, stored as scan_result.check_data."""
        return {
            "type": self.check_type.value,
            "name": self.check_name,
            "passed": self.passed,
            "severity": self.severity,
            "risk_level": self.risk_level,
            "message": self.message,
            "description": self.description,
            "recommendations": list(self.recommendations),
            "vulnerabilities": [dict(v) for v in self.vulnerabilities],
            **self.data,
        }


def failing_record(check_type: CheckType, message: str, **data: Any) -> CheckRecord:
    """Shorthand for a failed check that only carries an error message."""
    return CheckRecord(check_type=check_type, passed=False, message=message, data=dict(data))


@dataclass
class TargetResult:
    """Everything the scanner learned about one target."""
    target: str
    kind: TargetKind
    timestamp: datetime
    checks: List[CheckRecord] = field(default_factory=list)


class OutcomeStatus(str, Enum):
    OK = "ok"
    SKIPPED = "skipped"
    ERROR = "error"


@dataclass
class ProbeOutcome:
    """
    Result of running one probe.

    ok       → records holds the checks the probe produced
    skipped  → the probe did not apply (e.g. TLS handshake refused); no records
    error    → the probe blew up; error holds "<ExceptionType>: <message>"
    """
    probe_name: str
    status: OutcomeStatus = OutcomeStatus.OK
    records: List[CheckRecord] = field(default_factory=list)
    error: Optional[str] = None
    duration_seconds: float = 0.0

    @classmethod
    def skipped(cls, probe_name: str, reason: str = "") -> "ProbeOutcome":
        return cls(probe_name=probe_name, status=OutcomeStatus.SKIPPED, error=reason or None)


# ---------------------------------------------------------------------------
# Abstract base class
# ---------------------------------------------------------------------------

class BaseProbe(ABC):
    """
    Abstract base for probes.

    To create a new probe:
        1. Subclass BaseProbe
        2. Set the `name` property (e.g., "cors", "ports")
        3. Implement `execute(target) -> ProbeOutcome`
        4. Override `supported_kinds` if the probe is not URL-only

    The base class handles automatically:
        - Timing (duration_seconds is set automatically)
        - Error catching (exceptions become an error ProbeOutcome)
        - Target kind validation (skips unsupported kinds)
    """

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @property
    def supported_kinds(self) -> Tuple[TargetKind, ...]:
        return (TargetKind.URL,)

    def run(self, target: Target) -> ProbeOutcome:
        """
        Execute the probe with timing and error handling.

        DO NOT OVERRIDE THIS METHOD. Override `execute()` instead.
        """
        if target.kind not in self.supported_kinds:
            return ProbeOutcome.skipped(
                self.name, f"Probe '{self.name}' does not support {target.kind.value} targets"
            )

        start = time.monotonic()
        try:
            outcome = self.execute(target)
            outcome.probe_name = self.name
        except Exception as e:
            logger.exception(f"Probe '{self.name}' failed for {target.value}")
            outcome = ProbeOutcome(
                probe_name=self.name,
                status=OutcomeStatus.ERROR,
                error=f"{type(e).__name__}: {e}",
            )
        outcome.duration_seconds = round(time.monotonic() - start, 2)
        return outcome

    @abstractmethod
    def execute(self, target: Target) -> ProbeOutcome:
        """Perform the check. May raise; run() contains it."""
        ...
