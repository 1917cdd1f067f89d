# sitewatch/scanner/probes/tls.py
"""
TLS probe.

Two independent checks:

    1. Scheme. A URL that does not start with https:// gets a failing
       `ssl` record named "HTTPS" straight away.
    2. Certificate. A TLS handshake to host:443 with verification turned
       off. On success the peer certificate is parsed with `cryptography`
       and reported as a `ssl_certificate` record, passed iff it has not
       expired yet.

A failed handshake is not a failure of the target. Plenty of plain-HTTP
sites have nothing listening on 443, so the certificate check is simply
skipped and only the scheme check (if any) is reported.

The certificate is fetched without verification on purpose: an expired
or self-signed certificate is exactly what we want to report on, and a
verifying handshake would refuse to show it to us.
"""

from __future__ import annotations

import logging
import socket
import ssl
from datetime import datetime
from typing import Any, Dict, Optional

from cryptography import x509

from sitewatch.scanner.base import (
    BaseProbe,
    CheckRecord,
    CheckType,
    ProbeOutcome,
    Target,
    now_utc,
)

logger = logging.getLogger(__name__)

TLS_PORT = 443
DEFAULT_TLS_TIMEOUT = 30


def fetch_peer_certificate(host: str, port: int = TLS_PORT, timeout: float = DEFAULT_TLS_TIMEOUT) -> bytes:
    """
    Handshake with host:port and return the peer certificate in DER form.
    Raises OSError (ssl.SSLError included) when the handshake fails.
    """
    context = ssl.create_default_context()
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE

    with socket.create_connection((host, port), timeout=timeout) as sock:
        with context.wrap_socket(sock, server_hostname=host) as ssock:
            der = ssock.getpeercert(binary_form=True)
    if not der:
        raise ssl.SSLError(f"No peer certificate presented by {host}:{port}")
    return der


def describe_certificate(der: bytes, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Pull the validity window and identity out of a DER certificate."""
    now = now or now_utc()
    cert = x509.load_der_x509_certificate(der)

    not_before = cert.not_valid_before_utc
    not_after = cert.not_valid_after_utc

    return {
        "valid_from": not_before.strftime("%Y-%m-%d"),
        "valid_to": not_after.strftime("%Y-%m-%d"),
        "issuer": cert.issuer.rfc4514_string(),
        "subject": cert.subject.rfc4514_string(),
        "serial_number": format(cert.serial_number, "X"),
        "days_until_expiry": (not_after - now).days,
        "is_expired": not_after <= now,
    }


class TLSProbe(BaseProbe):
    """HTTPS scheme check plus certificate validity on port 443."""

    def __init__(self, timeout: float = DEFAULT_TLS_TIMEOUT, fetch_certificate=fetch_peer_certificate):
        self.timeout = timeout
        self.fetch_certificate = fetch_certificate

    @property
    def name(self) -> str:
        return "tls"

    def execute(self, target: Target) -> ProbeOutcome:
        records = []

        if not target.value.lower().startswith("https://"):
            records.append(CheckRecord(
                check_type=CheckType.SSL,
                check_name="HTTPS",
                passed=False,
                message="Site is not using HTTPS",
            ))

        host = target.host
        try:
            der = self.fetch_certificate(host, TLS_PORT, self.timeout)
        except OSError as e:
            logger.debug(f"TLS handshake to {host}:{TLS_PORT} failed, skipping certificate check: {e}")
            der = None

        if der is not None:
            info = describe_certificate(der)
            records.append(CheckRecord(
                check_type=CheckType.SSL_CERTIFICATE,
                check_name="Certificate Validity",
                passed=not info["is_expired"],
                message=f"Certificate expired on {info['valid_to']}" if info["is_expired"] else None,
                data=info,
            ))

        if not records:
            return ProbeOutcome.skipped(self.name, f"No TLS service on {host}:{TLS_PORT}")
        return ProbeOutcome(probe_name=self.name, records=records)
