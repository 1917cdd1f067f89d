# sitewatch/scanner/probes/headers.py
"""
HTTP response header probes.

Both probes read the shared HttpSnapshot of the target page; neither makes
a network call of its own.

SecurityHeadersProbe    → security_header records (or one http_connection
                          record when the fetch failed)
AdditionalHeadersProbe  → additional_header records (or one
                          additional_headers record when the fetch failed)

Header names are matched case-insensitively. Values are compared exactly:
"sameorigin" does not satisfy X-Frame-Options=SAMEORIGIN. A header with no
expected value passes if it is present at all.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from sitewatch.scanner.base import (
    BaseProbe,
    CheckRecord,
    CheckType,
    ProbeOutcome,
    Target,
    failing_record,
)
from sitewatch.scanner.probes.http_fetch import HttpSnapshot

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Header tables
# ---------------------------------------------------------------------------

# header → expected value (None = presence only)
SECURITY_HEADERS: Dict[str, Optional[str]] = {
    "X-Frame-Options": "SAMEORIGIN",
    "X-Content-Type-Options": "nosniff",
    "X-XSS-Protection": "1; mode=block",
    "Strict-Transport-Security": None,
    "Content-Security-Policy": None,
    "Referrer-Policy": None,
}

ADDITIONAL_HEADERS: Dict[str, Optional[str]] = {
    "X-Permitted-Cross-Domain-Policies": "none",
    "X-Download-Options": "noopen",
    "Permissions-Policy": None,
    "Cross-Origin-Embedder-Policy": "require-corp",
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Resource-Policy": "same-origin",
}

ADDITIONAL_HEADER_SEVERITY: Dict[str, str] = {
    "X-Permitted-Cross-Domain-Policies": "high",
    "Cross-Origin-Embedder-Policy": "high",
    "Cross-Origin-Opener-Policy": "high",
    "Cross-Origin-Resource-Policy": "high",
    "Permissions-Policy": "medium",
    "X-Download-Options": "low",
}

MISSING_HEADER_ADVICE: Dict[str, str] = {
    "X-Permitted-Cross-Domain-Policies": "Add header to prevent Flash/PDF cross-domain access",
    "Cross-Origin-Embedder-Policy": "Add COEP header for additional security isolation",
    "Cross-Origin-Opener-Policy": "Add COOP header to protect against cross-origin attacks",
    "Cross-Origin-Resource-Policy": "Add CORP header to control resource sharing",
    "Permissions-Policy": "Add Permissions-Policy to control browser features",
    "X-Download-Options": "Add header to prevent IE from executing downloads",
}


def header_passes(value: Optional[str], expected: Optional[str]) -> bool:
    return value is not None and (expected is None or value == expected)


def additional_header_severity(header: str) -> str:
    return ADDITIONAL_HEADER_SEVERITY.get(header, "medium")


def additional_header_recommendations(header: str, value: Optional[str]) -> List[str]:
    if value is None:
        return [MISSING_HEADER_ADVICE.get(header, "Consider adding this security header")]
    return ["Header is properly configured"]


# ---------------------------------------------------------------------------
# Probes
# ---------------------------------------------------------------------------

class SecurityHeadersProbe(BaseProbe):
    """Checks the core browser security headers on the fetched page."""

    def __init__(self, snapshot: HttpSnapshot):
        self.snapshot = snapshot

    @property
    def name(self) -> str:
        return "security_headers"

    def execute(self, target: Target) -> ProbeOutcome:
        snap = self.snapshot
        if not snap.ok:
            return ProbeOutcome(
                probe_name=self.name,
                records=[failing_record(
                    CheckType.HTTP_CONNECTION,
                    snap.error or "Failed to connect to target",
                )],
            )

        records = []
        for header, expected in SECURITY_HEADERS.items():
            value = snap.header(header)
            records.append(CheckRecord(
                check_type=CheckType.SECURITY_HEADER,
                check_name=header,
                passed=header_passes(value, expected),
                data={"value": value, "expected": expected},
            ))

        missing = sum(1 for r in records if not r.passed)
        logger.debug(f"Security headers for {target.value}: {missing}/{len(records)} failing")
        return ProbeOutcome(probe_name=self.name, records=records)


class AdditionalHeadersProbe(BaseProbe):
    """Checks cross-origin isolation and legacy hardening headers."""

    def __init__(self, snapshot: HttpSnapshot):
        self.snapshot = snapshot

    @property
    def name(self) -> str:
        return "additional_headers"

    def execute(self, target: Target) -> ProbeOutcome:
        snap = self.snapshot
        if not snap.ok:
            return ProbeOutcome(
                probe_name=self.name,
                records=[failing_record(
                    CheckType.ADDITIONAL_HEADERS,
                    snap.error or "No HTTP response available",
                )],
            )

        records = []
        for header, expected in ADDITIONAL_HEADERS.items():
            value = snap.header(header)
            records.append(CheckRecord(
                check_type=CheckType.ADDITIONAL_HEADER,
                check_name=header,
                passed=header_passes(value, expected),
                severity=additional_header_severity(header),
                recommendations=tuple(additional_header_recommendations(header, value)),
                data={"value": value, "expected": expected},
            ))

        return ProbeOutcome(probe_name=self.name, records=records)
