# sitewatch/scanner/analyzers/__init__.py
"""
Static analyzers used by the probes.
They hold no network code; they only interpret what a probe observed.
"""
from sitewatch.scanner.analyzers.version_match import is_vulnerable
from sitewatch.scanner.analyzers.vuln_catalog import (
    SERVER_CATALOG,
    VULNERABILITY_CATALOG,
    VulnerabilityMatch,
    VulnerabilityRecord,
    find_server_vulnerabilities,
    find_vulnerabilities,
)

__all__ = [
    "SERVER_CATALOG",
    "VULNERABILITY_CATALOG",
    "VulnerabilityMatch",
    "VulnerabilityRecord",
    "find_server_vulnerabilities",
    "find_vulnerabilities",
    "is_vulnerable",
]
