# sitewatch/scanner/probes/ports.py
"""
Open-port probe.

TCP connect scan of a fixed list of well-known ports. Every port gets a
`port_scan` record, open or closed, in the order of COMMON_PORTS.

Risk classification of an open port:

    high    services that should never face the internet, or that send
            credentials in the clear (FTP, Telnet, databases, caches, RDP)
    medium  services that are fine when hardened (SSH, SMTP, POP3, IMAP)
    low     expected public services (HTTP, HTTPS, DNS, IMAPS, POP3S)

Unknown ports default to medium. A closed port has risk "none".
An open port passes only when its risk is low.

Connects run concurrently on a small thread pool; each one carries its own
timeout, so the whole probe takes roughly one timeout in the worst case.
"""

from __future__ import annotations

import logging
import socket
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, List, Optional, Tuple

from sitewatch.scanner.base import (
    BaseProbe,
    CheckRecord,
    CheckType,
    ProbeOutcome,
    Target,
    TargetKind,
)

logger = logging.getLogger(__name__)

DEFAULT_PORT_TIMEOUT = 3
MAX_CONNECT_WORKERS = 8


# ---------------------------------------------------------------------------
# Port tables
# ---------------------------------------------------------------------------

COMMON_PORTS: Dict[int, str] = {
    21: "FTP",
    22: "SSH",
    23: "Telnet",
    25: "SMTP",
    53: "DNS",
    80: "HTTP",
    110: "POP3",
    143: "IMAP",
    443: "HTTPS",
    993: "IMAPS",
    995: "POP3S",
    1433: "MSSQL",
    3306: "MySQL",
    3389: "RDP",
    5432: "PostgreSQL",
    6379: "Redis",
    27017: "MongoDB",
}

HIGH_RISK_PORTS = frozenset({21, 23, 1433, 3306, 3389, 5432, 6379, 27017})
MEDIUM_RISK_PORTS = frozenset({22, 25, 110, 143})
LOW_RISK_PORTS = frozenset({80, 443, 53, 993, 995})

PORT_ADVICE: Dict[int, List[str]] = {
    21: ["FTP is insecure", "Use SFTP (port 22) instead", "Consider disabling if not needed"],
    22: ["Ensure SSH uses key-based authentication", "Disable password authentication",
         "Use non-standard port if possible"],
    23: ["Telnet is extremely insecure", "Disable immediately", "Use SSH instead"],
    25: ["Ensure SMTP requires authentication", "Use TLS encryption", "Monitor for spam relay"],
    80: ["Consider redirecting to HTTPS", "Disable if only HTTPS is needed"],
    443: ["Ensure valid SSL certificate", "Use strong cipher suites", "Enable HSTS"],
    1433: ["SQL Server should not be internet-facing", "Use firewall restrictions", "Enable encryption"],
    3306: ["MySQL should not be internet-facing", "Use firewall restrictions", "Disable if not needed"],
    3389: ["RDP is high-risk when exposed", "Use VPN access instead", "Enable NLA and strong passwords"],
    5432: ["PostgreSQL should not be internet-facing", "Use firewall restrictions",
           "Require SSL connections"],
    6379: ["Redis should not be internet-facing", "Enable authentication", "Use firewall restrictions"],
    27017: ["MongoDB should not be internet-facing", "Enable authentication", "Use firewall restrictions"],
}

DEFAULT_PORT_ADVICE = ["Review if this service needs to be publicly accessible", "Apply security hardening"]


def assess_port_risk(port: int) -> str:
    if port in HIGH_RISK_PORTS:
        return "high"
    if port in MEDIUM_RISK_PORTS:
        return "medium"
    if port in LOW_RISK_PORTS:
        return "low"
    return "medium"


def port_recommendations(port: int, is_open: bool) -> List[str]:
    if not is_open:
        return ["Port is properly closed"]
    return list(PORT_ADVICE.get(port, DEFAULT_PORT_ADVICE))


def tcp_connect(host: str, port: int, timeout: float) -> Optional[float]:
    """
    Try a TCP connect. Returns the connect time in milliseconds, or None
    when the port is closed, filtered or unreachable.
    """
    start = time.monotonic()
    try:
        with socket.create_connection((host, port), timeout=timeout):
            pass
    except OSError:
        return None
    return round((time.monotonic() - start) * 1000, 2)


# ---------------------------------------------------------------------------
# Probe
# ---------------------------------------------------------------------------

Connector = Callable[[str, int, float], Optional[float]]


class PortScanProbe(BaseProbe):
    """TCP connect scan of COMMON_PORTS."""

    def __init__(
        self,
        timeout: float = DEFAULT_PORT_TIMEOUT,
        connect: Connector = tcp_connect,
        ports: Optional[Dict[int, str]] = None,
    ):
        self.timeout = timeout
        self.connect = connect
        self.ports = ports or COMMON_PORTS

    @property
    def name(self) -> str:
        return "ports"

    @property
    def supported_kinds(self) -> Tuple[TargetKind, ...]:
        return (TargetKind.IP,)

    def execute(self, target: Target) -> ProbeOutcome:
        host = target.host
        port_list = list(self.ports.items())

        with ThreadPoolExecutor(max_workers=min(len(port_list), MAX_CONNECT_WORKERS)) as executor:
            timings = list(executor.map(lambda item: self.connect(host, item[0], self.timeout), port_list))

        records = []
        open_ports = []
        for (port, service), elapsed_ms in zip(port_list, timings):
            is_open = elapsed_ms is not None
            risk = assess_port_risk(port) if is_open else "none"
            if is_open:
                open_ports.append(port)

            records.append(CheckRecord(
                check_type=CheckType.PORT_SCAN,
                check_name=f"{port}/{service}",
                passed=not is_open or risk == "low",
                risk_level=risk,
                recommendations=tuple(port_recommendations(port, is_open)),
                data={
                    "port": port,
                    "service": service,
                    "status": "open" if is_open else "closed",
                    "response_time_ms": elapsed_ms,
                },
            ))

        logger.debug(f"Port scan of {host}: open={open_ports}")
        return ProbeOutcome(probe_name=self.name, records=records)
