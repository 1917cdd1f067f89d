# sitewatch/scanner/probes/__init__.py
"""
Network probes.

URL targets:  page fetch → security headers, additional headers; TLS; CORS
IP targets:   open ports; service detection
"""

from sitewatch.scanner.probes.cors import CORSProbe
from sitewatch.scanner.probes.headers import AdditionalHeadersProbe, SecurityHeadersProbe
from sitewatch.scanner.probes.http_fetch import HttpSnapshot, fetch_page, new_session
from sitewatch.scanner.probes.ports import PortScanProbe
from sitewatch.scanner.probes.services import ServiceDetectionProbe
from sitewatch.scanner.probes.tls import TLSProbe

__all__ = [
    "AdditionalHeadersProbe",
    "CORSProbe",
    "HttpSnapshot",
    "PortScanProbe",
    "SecurityHeadersProbe",
    "ServiceDetectionProbe",
    "TLSProbe",
    "fetch_page",
    "new_session",
]
