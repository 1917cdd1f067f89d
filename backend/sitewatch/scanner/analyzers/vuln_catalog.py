# sitewatch/scanner/analyzers/vuln_catalog.py
"""
Static vulnerability catalog.

Maps a detected service (as named by the service detection probe) to the
known vulnerabilities that affect it, each with the version constraints
that decide whether an observed version is affected. The catalog is a
module-level constant built once at import time and never mutated, so it
is shared freely between probe threads.

Two tables:

    VULNERABILITY_CATALOG   keyed by service name: SSH, FTP, SMTP, HTTP, TELNET
    SERVER_CATALOG          keyed by web server product parsed from a Server
                            header: apache, nginx, microsoft-iis

Web servers are checked against both: the generic HTTP entries (for any
product in HTTP_SERVER_PRODUCTS) and then the product-specific entries.

Matching is delegated to version_match.is_vulnerable, so every entry's
`affected_versions` list is a conjunction of constraints.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

from sitewatch.scanner.analyzers.version_match import is_vulnerable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VulnerabilityRecord:
    id: str
    cve: str
    severity: str                          # low, medium, high, critical
    cvss_score: float
    description: str
    affected_versions: Tuple[str, ...]
    published: str
    references: Tuple[str, ...] = ()
    patch_available: bool = True
    recommended_action: str = ""


@dataclass(frozen=True)
class VulnerabilityMatch:
    """A catalog record bound to the service/version it was observed on."""
    record: VulnerabilityRecord
    service: str
    version: str
    context: Dict[str, Any] = field(default_factory=dict)   # port, host, server header

    def to_dict(self) -> Dict[str, Any]:
        r = self.record
        return {
            "id": r.id,
            "cve": r.cve,
            "severity": r.severity,
            "score": r.cvss_score,
            "description": r.description,
            "published": r.published,
            "references": list(r.references),
            "patch_available": r.patch_available,
            "recommended_action": r.recommended_action,
            "affected_versions": list(r.affected_versions),
            "service": self.service,
            "detected_version": self.version,
            **self.context,
        }


def _mitre(cve: str) -> str:
    return f"https://cve.mitre.org/cgi-bin/cvename.cgi?name={cve}"


# ---------------------------------------------------------------------------
# Service catalog
# ---------------------------------------------------------------------------

_SERVICE_ENTRIES: Dict[str, Tuple[VulnerabilityRecord, ...]] = {
    "SSH": (
        VulnerabilityRecord(
            id="SSH-1.x-PROTOCOL",
            cve="CVE-1999-1010",
            severity="high",
            cvss_score=7.5,
            description="SSH protocol version 1.x contains fundamental security flaws",
            affected_versions=("<2.0",),
            published="1999-01-01",
            references=(_mitre("CVE-1999-1010"),),
            recommended_action="Upgrade to SSH protocol version 2.0 or higher",
        ),
        VulnerabilityRecord(
            id="OPENSSH-USER-ENUM",
            cve="CVE-2018-15473",
            severity="medium",
            cvss_score=5.3,
            description="OpenSSH user enumeration vulnerability",
            affected_versions=(">=2.3", "<=7.7"),
            published="2018-08-15",
            references=(_mitre("CVE-2018-15473"),),
            recommended_action="Update to OpenSSH 7.8 or later",
        ),
        VulnerabilityRecord(
            id="OPENSSH-GSSAPI",
            cve="CVE-2021-41617",
            severity="high",
            cvss_score=7.0,
            description="OpenSSH privilege escalation via supplemental groups",
            affected_versions=(">=6.2", "<=8.7"),
            published="2021-09-26",
            references=(_mitre("CVE-2021-41617"),),
            recommended_action="Update to OpenSSH 8.8 or later",
        ),
    ),
    "FTP": (
        VulnerabilityRecord(
            id="FTP-PLAINTEXT",
            cve="N/A",
            severity="high",
            cvss_score=7.5,
            description="FTP transmits credentials and data in plaintext",
            affected_versions=("*",),
            published="1971-01-01",
            references=("https://tools.ietf.org/rfc/rfc959.txt",),
            patch_available=False,
            recommended_action="Use SFTP or FTPS instead of FTP",
        ),
        VulnerabilityRecord(
            id="VSFTPD-BACKDOOR",
            cve="CVE-2011-2523",
            severity="critical",
            cvss_score=10.0,
            description="vsftpd 2.3.4 backdoor command execution",
            affected_versions=("=2.3.4",),
            published="2011-07-07",
            references=(_mitre("CVE-2011-2523"),),
            recommended_action="Immediately update vsftpd to version 2.3.5 or later",
        ),
    ),
    "SMTP": (
        VulnerabilityRecord(
            id="SMTP-STARTTLS",
            cve="CVE-2011-0411",
            severity="medium",
            cvss_score=4.3,
            description="SMTP STARTTLS plaintext injection vulnerability",
            affected_versions=("*",),
            published="2011-03-16",
            references=(_mitre("CVE-2011-0411"),),
            recommended_action="Enforce TLS and disable plaintext fallback",
        ),
    ),
    "HTTP": (
        VulnerabilityRecord(
            id="APACHE-LOG4J",
            cve="CVE-2021-44228",
            severity="critical",
            cvss_score=10.0,
            description="Apache Log4j2 remote code execution vulnerability",
            affected_versions=(">=2.0-beta9", "<=2.14.1"),
            published="2021-12-09",
            references=(_mitre("CVE-2021-44228"),),
            recommended_action="Update Log4j to version 2.15.0 or later",
        ),
        VulnerabilityRecord(
            id="APACHE-HTTPOXY",
            cve="CVE-2016-5387",
            severity="high",
            cvss_score=8.1,
            description="Apache HTTP Proxy header vulnerability (HTTPoxy)",
            affected_versions=(">=2.0", "<=2.4.23"),
            published="2016-07-18",
            references=(_mitre("CVE-2016-5387"),),
            recommended_action="Update Apache to 2.4.24 or later",
        ),
    ),
    "TELNET": (
        VulnerabilityRecord(
            id="TELNET-PLAINTEXT",
            cve="N/A",
            severity="critical",
            cvss_score=9.8,
            description="Telnet transmits all data including passwords in plaintext",
            affected_versions=("*",),
            published="1969-01-01",
            references=("https://tools.ietf.org/rfc/rfc854.txt",),
            patch_available=False,
            recommended_action="Disable Telnet and use SSH instead",
        ),
    ),
}

# ---------------------------------------------------------------------------
# Web server product catalog
# ---------------------------------------------------------------------------

_SERVER_ENTRIES: Dict[str, Tuple[VulnerabilityRecord, ...]] = {
    "apache": (
        VulnerabilityRecord(
            id="APACHE-PATH-TRAVERSAL",
            cve="CVE-2021-41773",
            severity="critical",
            cvss_score=7.5,
            description="Apache HTTP Server path traversal vulnerability",
            affected_versions=(">=2.4.49", "<2.4.50"),
            published="2021-10-05",
            references=(_mitre("CVE-2021-41773"),),
            recommended_action="Update to Apache 2.4.50 or later",
        ),
        VulnerabilityRecord(
            id="APACHE-OLD-VERSION",
            cve="Multiple CVEs",
            severity="high",
            cvss_score=7.0,
            description="Apache version contains multiple known vulnerabilities",
            affected_versions=("<2.4.0",),
            published="2012-02-21",
            references=("https://httpd.apache.org/security/vulnerabilities_24.html",),
            recommended_action="Update to Apache 2.4.x or later",
        ),
    ),
    "nginx": (
        VulnerabilityRecord(
            id="NGINX-DNS-RESOLVER",
            cve="CVE-2021-23017",
            severity="high",
            cvss_score=7.7,
            description="Nginx DNS resolver off-by-one heap write vulnerability",
            affected_versions=("<1.20.1",),
            published="2021-05-25",
            references=(_mitre("CVE-2021-23017"),),
            recommended_action="Update to Nginx 1.20.1 or later",
        ),
    ),
    "microsoft-iis": (
        VulnerabilityRecord(
            id="IIS-OLD-VERSION",
            cve="Multiple CVEs",
            severity="high",
            cvss_score=7.5,
            description="IIS version contains known security vulnerabilities",
            affected_versions=("<10",),
            published="2015-07-29",
            references=("https://www.microsoft.com/security/",),
            recommended_action="Update to IIS 10 or later",
        ),
    ),
}

VULNERABILITY_CATALOG: Mapping[str, Tuple[VulnerabilityRecord, ...]] = MappingProxyType(_SERVICE_ENTRIES)
SERVER_CATALOG: Mapping[str, Tuple[VulnerabilityRecord, ...]] = MappingProxyType(_SERVER_ENTRIES)

# Server header products that also get the generic HTTP entries
HTTP_SERVER_PRODUCTS = frozenset({"apache", "nginx", "microsoft-iis", "lighttpd"})

# "Apache/2.4.49 (Unix)" → ("Apache", "2.4.49")
SERVER_HEADER_RE = re.compile(r"([a-zA-Z-]+)/([0-9.]+[a-zA-Z0-9\-.]*)")


def _is_blank_version(version: Optional[str]) -> bool:
    return version is None or version.strip() in ("", "0")


def find_vulnerabilities(
    service: str,
    version: Optional[str],
    context: Optional[Dict[str, Any]] = None,
) -> List[VulnerabilityMatch]:
    """
    Look up every catalog entry for `service` affecting `version`.

    No version means nothing to match: even wildcard entries need a
    detected version, because without one we cannot tell the service
    actually answered as that product.
    """
    if _is_blank_version(version):
        return []

    entries = VULNERABILITY_CATALOG.get(service.upper(), ())
    return [
        VulnerabilityMatch(record=entry, service=service, version=version, context=dict(context or {}))
        for entry in entries
        if is_vulnerable(version, entry.affected_versions)
    ]


def parse_server_header(server: Optional[str]) -> Optional[Tuple[str, str]]:
    """Split a Server header into (lowercased product, version), or None."""
    if not server:
        return None
    match = SERVER_HEADER_RE.search(server)
    if not match:
        return None
    return match.group(1).lower(), match.group(2)


def find_server_vulnerabilities(
    server: Optional[str],
    context: Optional[Dict[str, Any]] = None,
) -> List[VulnerabilityMatch]:
    """Vulnerabilities for a web server identified by its Server header."""
    parsed = parse_server_header(server)
    if parsed is None:
        return []

    product, version = parsed
    matches: List[VulnerabilityMatch] = []
    ctx = {"server": server, **(context or {})}

    if product in HTTP_SERVER_PRODUCTS:
        matches.extend(find_vulnerabilities("HTTP", version, ctx))

    for entry in SERVER_CATALOG.get(product, ()):
        if is_vulnerable(version, entry.affected_versions):
            matches.append(VulnerabilityMatch(record=entry, service=product, version=version, context=ctx))

    if matches:
        logger.debug(f"{len(matches)} vulnerability match(es) for server '{server}'")
    return matches
