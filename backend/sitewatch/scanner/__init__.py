# sitewatch/scanner/__init__.py
"""
sitewatch assessment engine.

Usage:
    from sitewatch.scanner import Scanner, Target, TargetKind

    scanner = Scanner()
    result = scanner.scan(Target("https://example.com", TargetKind.URL))

Architecture:
    Scanner
    ├── Probes (one network check each → CheckRecords)
    │   ├── SecurityHeadersProbe     core browser security headers
    │   ├── AdditionalHeadersProbe   cross-origin isolation headers
    │   ├── TLSProbe                 HTTPS scheme + certificate validity
    │   ├── CORSProbe                preflight response headers
    │   ├── PortScanProbe            TCP connect scan of well-known ports
    │   └── ServiceDetectionProbe    banners / Server header → versions
    │
    └── Analyzers (static knowledge used by probes)
        ├── version_match            version constraint evaluation
        └── vuln_catalog             known vulnerabilities per service
"""

from sitewatch.scanner.base import (
    CheckRecord,
    CheckType,
    ProbeError,
    Target,
    TargetKind,
    TargetResult,
)
from sitewatch.scanner.scanner import ProbeTimeouts, Scanner

__all__ = [
    "CheckRecord",
    "CheckType",
    "ProbeError",
    "ProbeTimeouts",
    "Scanner",
    "Target",
    "TargetKind",
    "TargetResult",
]
