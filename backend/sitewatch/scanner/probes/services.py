# sitewatch/scanner/probes/services.py
"""
Service detection probe.

For a handful of well-known ports, connect and try to identify the software
behind it:

    banner services (SSH, FTP, SMTP, POP3, IMAP)
        read the greeting the server sends on connect (up to 1024 bytes)
        and pull a version token out of it with a per-service regex

    web services (HTTP on 80, HTTPS on 443)
        make a GET and read the Server / X-Powered-By headers

The detected version is matched against the vulnerability catalog and any
matches are attached to the record. A port that refuses the connection
produces no record at all.

A record passes when no vulnerability matched and detection did not error.
"""

from __future__ import annotations

import logging
import re
import socket
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Tuple

import requests

from sitewatch.scanner.analyzers.vuln_catalog import (
    find_server_vulnerabilities,
    find_vulnerabilities,
)
from sitewatch.scanner.base import (
    BaseProbe,
    CheckRecord,
    CheckType,
    ProbeOutcome,
    Target,
    TargetKind,
)

logger = logging.getLogger(__name__)

DEFAULT_SERVICE_TIMEOUT = 5
DEFAULT_BANNER_TIMEOUT = 3
BANNER_READ_BYTES = 1024


class ServicePort(NamedTuple):
    port: int
    service: str
    method: str          # "banner" or "http"


SERVICE_PORTS: Tuple[ServicePort, ...] = (
    ServicePort(22, "SSH", "banner"),
    ServicePort(21, "FTP", "banner"),
    ServicePort(25, "SMTP", "banner"),
    ServicePort(80, "HTTP", "http"),
    ServicePort(443, "HTTPS", "http"),
    ServicePort(110, "POP3", "banner"),
    ServicePort(143, "IMAP", "banner"),
)

# The SSH pattern captures the protocol version ("SSH-2.0-OpenSSH_8.2" → "2.0")
BANNER_VERSION_PATTERNS: Dict[str, re.Pattern] = {
    "SSH": re.compile(r"SSH-([0-9.]+)", re.IGNORECASE),
    "FTP": re.compile(r"FTP.*?([0-9.]+)", re.IGNORECASE),
    "SMTP": re.compile(r"SMTP.*?([0-9.]+)", re.IGNORECASE),
    "POP3": re.compile(r"POP3.*?([0-9.]+)", re.IGNORECASE),
    "IMAP": re.compile(r"IMAP.*?([0-9.]+)", re.IGNORECASE),
}

HTTP_VERSION_RE = re.compile(r"([a-zA-Z-]+)/([0-9.]+)")

SERVICE_ADVICE: Dict[str, List[str]] = {
    "SSH": [
        "Use key-based authentication only",
        "Disable root login",
        "Change default port if possible",
        "Keep SSH server updated",
    ],
    "FTP": [
        "Consider using SFTP instead",
        "Enable encryption if FTP is required",
        "Restrict access by IP if possible",
        "Use strong authentication",
    ],
    "SMTP": [
        "Require authentication",
        "Use TLS encryption",
        "Implement rate limiting",
        "Monitor for spam abuse",
    ],
}

DEFAULT_SERVICE_ADVICE = ["Keep service updated", "Apply security hardening", "Monitor access logs"]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def extract_banner_version(banner: str, service: str) -> Optional[str]:
    pattern = BANNER_VERSION_PATTERNS.get(service)
    if pattern is None:
        return None
    match = pattern.search(banner)
    return match.group(1) if match else None


def extract_http_version(server: str) -> Optional[str]:
    match = HTTP_VERSION_RE.search(server or "")
    return match.group(2) if match else None


def service_recommendations(service: str) -> List[str]:
    return list(SERVICE_ADVICE.get(service, DEFAULT_SERVICE_ADVICE))


def http_recommendations(server: str) -> List[str]:
    recs = [
        "Hide server version information",
        "Remove X-Powered-By headers",
        "Use security headers",
        "Keep web server updated",
    ]
    lowered = (server or "").lower()
    if "apache" in lowered:
        recs += ["Configure Apache security modules", "Disable unnecessary Apache modules"]
    elif "nginx" in lowered:
        recs += ["Configure Nginx security settings", "Use proper SSL/TLS configuration"]
    return recs


def open_connection(host: str, port: int, timeout: float) -> socket.socket:
    return socket.create_connection((host, port), timeout=timeout)


# ---------------------------------------------------------------------------
# Probe
# ---------------------------------------------------------------------------

class ServiceDetectionProbe(BaseProbe):
    """Banner grabbing and web server fingerprinting on SERVICE_PORTS."""

    def __init__(
        self,
        session: Any,
        connect_timeout: float = DEFAULT_SERVICE_TIMEOUT,
        banner_timeout: float = DEFAULT_BANNER_TIMEOUT,
        connect: Callable[[str, int, float], socket.socket] = open_connection,
    ):
        self.session = session
        self.connect_timeout = connect_timeout
        self.banner_timeout = banner_timeout
        self.connect = connect

    @property
    def name(self) -> str:
        return "services"

    @property
    def supported_kinds(self) -> Tuple[TargetKind, ...]:
        return (TargetKind.IP,)

    def execute(self, target: Target) -> ProbeOutcome:
        host = target.host
        records = []
        for svc in SERVICE_PORTS:
            record = self._detect(host, svc)
            if record is not None:
                records.append(record)
        logger.debug(f"Service detection on {host}: {len(records)} service(s) answered")
        return ProbeOutcome(probe_name=self.name, records=records)

    def _detect(self, host: str, svc: ServicePort) -> Optional[CheckRecord]:
        try:
            conn = self.connect(host, svc.port, self.connect_timeout)
        except OSError:
            return None

        info: Dict[str, Any] = {
            "port": svc.port,
            "service": svc.service,
            "status": "detected",
            "banner": None,
            "version": None,
        }
        vulnerabilities: List[Dict[str, Any]] = []
        recommendations: List[str] = []
        error: Optional[str] = None

        try:
            if svc.method == "banner":
                banner = self._read_banner(conn)
                if banner:
                    version = extract_banner_version(banner, svc.service)
                    info["banner"] = banner
                    info["version"] = version
                    vulnerabilities = [
                        m.to_dict()
                        for m in find_vulnerabilities(svc.service, version, {"port": svc.port, "host": host})
                    ]
                    recommendations = service_recommendations(svc.service)
            else:
                http_info, vulnerabilities, recommendations, error = self._detect_http(host, svc.port)
                info.update(http_info)
        except OSError as e:
            error = str(e)
        finally:
            conn.close()

        if error:
            info["error"] = error

        return CheckRecord(
            check_type=CheckType.SERVICE_DETECTION,
            check_name=svc.service,
            passed=not vulnerabilities and error is None,
            message=error,
            recommendations=tuple(recommendations),
            vulnerabilities=tuple(vulnerabilities),
            data=info,
        )

    def _read_banner(self, conn: socket.socket) -> Optional[str]:
        conn.settimeout(self.banner_timeout)
        try:
            raw = conn.recv(BANNER_READ_BYTES)
        except socket.timeout:
            return None
        text = raw.decode("utf-8", errors="replace").strip()
        return text or None

    def _detect_http(self, host: str, port: int):
        protocol = "https" if port == 443 else "http"
        try:
            response = self.session.get(
                f"{protocol}://{host}:{port}",
                timeout=self.connect_timeout,
                allow_redirects=False,
            )
        except requests.RequestException as e:
            return {}, [], [], f"HTTP detection failed: {e}"

        server = response.headers.get("Server", "Unknown")
        matches = find_server_vulnerabilities(server, {"port": port, "host": host})
        info = {
            "server": server,
            "powered_by": response.headers.get("X-Powered-By"),
            "version": extract_http_version(server),
            "status_code": response.status_code,
        }
        return info, [m.to_dict() for m in matches], http_recommendations(server), None
