# sitewatch/scanner/scanner.py
"""
Per-target scan orchestration.

Scanner.scan(target) runs every probe group that applies to the target
and returns a TargetResult with all check records.

URL target, in output order:
    1. security headers      (reads the shared page fetch)
    2. TLS                   (own handshake)
    3. additional headers    (reads the shared page fetch)
    4. CORS                  (own preflight request)

IP target, in output order:
    1. open ports
    2. service detection

Groups run concurrently on a per-target thread pool. Records are emitted in
the fixed order above no matter which group finishes first, so two scans of
an unchanged target produce identical record lists.

A probe that errors contributes one failing `probe_error` record carrying
the error text. Sibling probes are unaffected. A skipped probe contributes
nothing.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence

from sitewatch.scanner.base import (
    CheckRecord,
    CheckType,
    OutcomeStatus,
    ProbeOutcome,
    Target,
    TargetKind,
    TargetResult,
    now_utc,
)
from sitewatch.scanner.probes.cors import CORSProbe
from sitewatch.scanner.probes.headers import AdditionalHeadersProbe, SecurityHeadersProbe
from sitewatch.scanner.probes.http_fetch import fetch_page, new_session
from sitewatch.scanner.probes.ports import PortScanProbe, tcp_connect
from sitewatch.scanner.probes.services import ServiceDetectionProbe, open_connection
from sitewatch.scanner.probes.tls import TLSProbe, fetch_peer_certificate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProbeTimeouts:
    """Seconds allowed for each kind of network call."""
    http: float = 30
    tls: float = 30
    port: float = 3
    service: float = 5
    banner: float = 3


class Scanner:
    """
    Runs the probe battery against one target at a time.

    The network entry points (HTTP session, TLS handshake, TCP connects) are
    injectable so tests can drive every probe without touching the network.
    """

    def __init__(
        self,
        timeouts: Optional[ProbeTimeouts] = None,
        session_factory: Callable[[], Any] = new_session,
        fetch_certificate=fetch_peer_certificate,
        port_connect=tcp_connect,
        service_connect=open_connection,
    ):
        self.timeouts = timeouts or ProbeTimeouts()
        self.session_factory = session_factory
        self.fetch_certificate = fetch_certificate
        self.port_connect = port_connect
        self.service_connect = service_connect

    @classmethod
    def from_settings(cls, settings) -> "Scanner":
        return cls(timeouts=ProbeTimeouts(
            http=settings.http_timeout,
            tls=settings.tls_timeout,
            port=settings.port_timeout,
            service=settings.service_timeout,
            banner=settings.banner_timeout,
        ))

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def scan(self, target: Target) -> TargetResult:
        started = now_utc()
        session = self.session_factory()
        try:
            if target.kind == TargetKind.URL:
                outcomes = self._scan_url(target, session)
            else:
                outcomes = self._scan_ip(target, session)
        finally:
            close = getattr(session, "close", None)
            if close is not None:
                close()

        checks: List[CheckRecord] = []
        for outcome in outcomes:
            checks.extend(outcome_records(outcome))

        failed = sum(1 for c in checks if not c.passed)
        logger.info(f"Scanned {target.kind.value} {target.value}: {len(checks)} checks, {failed} failed")
        return TargetResult(target=target.value, kind=target.kind, timestamp=started, checks=checks)

    # ------------------------------------------------------------------
    # Probe groups
    # ------------------------------------------------------------------

    def _scan_url(self, target: Target, session: Any) -> List[ProbeOutcome]:
        t = self.timeouts

        def page_group() -> List[ProbeOutcome]:
            snapshot = fetch_page(session, target.value, timeout=t.http)
            return [
                SecurityHeadersProbe(snapshot).run(target),
                AdditionalHeadersProbe(snapshot).run(target),
            ]

        tls = TLSProbe(timeout=t.tls, fetch_certificate=self.fetch_certificate)
        cors = CORSProbe(session, timeout=t.http)

        page, tls_out, cors_out = self._run_groups([
            (page_group, ("security_headers", "additional_headers")),
            (lambda: [tls.run(target)], (tls.name,)),
            (lambda: [cors.run(target)], (cors.name,)),
        ])
        return [page[0], *tls_out, page[1], *cors_out]

    def _scan_ip(self, target: Target, session: Any) -> List[ProbeOutcome]:
        t = self.timeouts
        ports = PortScanProbe(timeout=t.port, connect=self.port_connect)
        services = ServiceDetectionProbe(
            session,
            connect_timeout=t.service,
            banner_timeout=t.banner,
            connect=self.service_connect,
        )

        port_out, service_out = self._run_groups([
            (lambda: [ports.run(target)], (ports.name,)),
            (lambda: [services.run(target)], (services.name,)),
        ])
        return [*port_out, *service_out]

    def _run_groups(self, groups: Sequence) -> List[List[ProbeOutcome]]:
        """
        Run each (callable, probe_names) group on the pool and return their
        outcome lists in submission order.
        """
        with ThreadPoolExecutor(max_workers=len(groups)) as executor:
            futures = [executor.submit(fn) for fn, _names in groups]
            results = []
            for future, (_fn, names) in zip(futures, groups):
                try:
                    results.append(future.result())
                except Exception as e:
                    # Group-level failure outside BaseProbe.run (e.g. the shared fetch)
                    logger.exception(f"Probe group {names} failed")
                    error = f"{type(e).__name__}: {e}"
                    results.append([
                        ProbeOutcome(probe_name=name, status=OutcomeStatus.ERROR, error=error)
                        for name in names
                    ])
        return results


def outcome_records(outcome: ProbeOutcome) -> List[CheckRecord]:
    """Check records contributed by one probe outcome."""
    if outcome.status == OutcomeStatus.ERROR:
        return [CheckRecord(
            check_type=CheckType.PROBE_ERROR,
            check_name=outcome.probe_name,
            passed=False,
            message=outcome.error or f"Probe '{outcome.probe_name}' failed",
        )]
    if outcome.status == OutcomeStatus.SKIPPED:
        logger.debug(f"Probe '{outcome.probe_name}' skipped: {outcome.error}")
        return []
    return list(outcome.records)
