# sitewatch/scanner/probes/cors.py
"""
CORS preflight probe.

Sends an OPTIONS request that looks like a browser preflight from a
foreign origin and reports on the five Access-Control-* response headers.
A header passes when it is present.

The dangerous combination is a wildcard Allow-Origin together with
Allow-Credentials: true. That is flagged with `security_risk` on the
Allow-Origin record.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import requests

from sitewatch.scanner.base import (
    BaseProbe,
    CheckRecord,
    CheckType,
    ProbeOutcome,
    Target,
    failing_record,
)
from sitewatch.scanner.probes.http_fetch import DEFAULT_HTTP_TIMEOUT

logger = logging.getLogger(__name__)

PREFLIGHT_HEADERS = {
    "Origin": "https://example.com",
    "Access-Control-Request-Method": "POST",
    "Access-Control-Request-Headers": "Content-Type",
}

CORS_HEADERS: Dict[str, Dict[str, str]] = {
    "Access-Control-Allow-Origin": {
        "severity": "high",
        "description": "Controls which origins can access the resource",
    },
    "Access-Control-Allow-Methods": {
        "severity": "medium",
        "description": "Specifies allowed HTTP methods",
    },
    "Access-Control-Allow-Headers": {
        "severity": "medium",
        "description": "Specifies allowed request headers",
    },
    "Access-Control-Allow-Credentials": {
        "severity": "high",
        "description": "Controls credential inclusion in requests",
    },
    "Access-Control-Max-Age": {
        "severity": "low",
        "description": "Cache duration for preflight requests",
    },
}


def cors_recommendations(header: str, value: Optional[str]) -> List[str]:
    if header == "Access-Control-Allow-Origin":
        if value == "*":
            return ["Avoid using wildcard (*) for production APIs", "Specify explicit origins when possible"]
        return ["Configuration appears secure"]
    if header == "Access-Control-Allow-Methods":
        if value is None:
            return ["Consider specifying allowed HTTP methods explicitly"]
        return ["Review if all listed methods are necessary"]
    if header == "Access-Control-Allow-Credentials":
        if value == "true":
            return ["Ensure Access-Control-Allow-Origin is not set to wildcard (*)"]
        return ["Credentials are disabled, which is secure for public APIs"]
    return ["Review CORS configuration for security implications"]


class CORSProbe(BaseProbe):
    """Preflight request and Access-Control-* header review."""

    def __init__(self, session: Any, timeout: float = DEFAULT_HTTP_TIMEOUT):
        self.session = session
        self.timeout = timeout

    @property
    def name(self) -> str:
        return "cors"

    def execute(self, target: Target) -> ProbeOutcome:
        try:
            response = self.session.options(
                target.value,
                headers=PREFLIGHT_HEADERS,
                timeout=self.timeout,
                allow_redirects=False,
            )
        except requests.RequestException as e:
            logger.debug(f"CORS preflight failed for {target.value}: {e}")
            return ProbeOutcome(
                probe_name=self.name,
                records=[failing_record(CheckType.CORS_CHECK, f"Failed to perform CORS check: {e}")],
            )

        headers = response.headers
        allows_credentials = headers.get("Access-Control-Allow-Credentials") == "true"

        records = []
        for header, meta in CORS_HEADERS.items():
            value = headers.get(header)
            wildcard = value == "*"
            records.append(CheckRecord(
                check_type=CheckType.CORS_POLICY,
                check_name=header,
                passed=value is not None,
                severity=meta["severity"],
                description=meta["description"],
                recommendations=tuple(cors_recommendations(header, value)),
                data={
                    "value": value,
                    "security_risk": header == "Access-Control-Allow-Origin" and wildcard and allows_credentials,
                },
            ))

        return ProbeOutcome(probe_name=self.name, records=records)
