"""Tests for per-target scan orchestration."""

import requests

from sitewatch.scanner import ProbeTimeouts, Scanner, Target, TargetKind
from sitewatch.scanner.base import CheckType

from conftest import FakeResponse, FakeSession


def no_tls(host, port, timeout):
    raise ConnectionRefusedError(111, "Connection refused")


def closed(host, port, timeout):
    return None


def refused(host, port, timeout):
    raise ConnectionRefusedError(111, "Connection refused")


def make_scanner(session, fetch_certificate=no_tls):
    return Scanner(
        timeouts=ProbeTimeouts(http=1, tls=1, port=0.1, service=0.1, banner=0.1),
        session_factory=lambda: session,
        fetch_certificate=fetch_certificate,
        port_connect=closed,
        service_connect=refused,
    )


def types(result):
    return [c.check_type for c in result.checks]


class TestUrlScan:

    def test_record_order(self):
        session = FakeSession(
            get=FakeResponse(headers={"X-Frame-Options": "SAMEORIGIN"}),
            options=FakeResponse(headers={"Access-Control-Allow-Origin": "*"}),
        )
        result = make_scanner(session).scan(Target("http://example.test", TargetKind.URL))

        assert result.target == "http://example.test"
        assert result.kind == TargetKind.URL
        assert types(result) == (
            [CheckType.SECURITY_HEADER] * 6
            + [CheckType.SSL]
            + [CheckType.ADDITIONAL_HEADER] * 6
            + [CheckType.CORS_POLICY] * 5
        )
        assert session.closed

    def test_page_is_fetched_once(self):
        session = FakeSession(get=FakeResponse(), options=FakeResponse())
        make_scanner(session).scan(Target("https://example.test", TargetKind.URL))
        assert [c["method"] for c in session.calls].count("GET") == 1

    def test_unreachable_site(self):
        session = FakeSession(
            get=requests.ConnectionError("refused"),
            options=requests.ConnectionError("refused"),
        )
        result = make_scanner(session).scan(Target("http://down.test", TargetKind.URL))
        assert types(result) == [
            CheckType.HTTP_CONNECTION,
            CheckType.SSL,
            CheckType.ADDITIONAL_HEADERS,
            CheckType.CORS_CHECK,
        ]
        assert not any(c.passed for c in result.checks)

    def test_probe_error_is_contained(self):
        def broken(host, port, timeout):
            raise ValueError("bad handshake state")

        session = FakeSession(get=FakeResponse(), options=FakeResponse())
        result = make_scanner(session, fetch_certificate=broken).scan(
            Target("https://example.test", TargetKind.URL)
        )
        errors = [c for c in result.checks if c.check_type == CheckType.PROBE_ERROR]
        assert len(errors) == 1
        assert errors[0].check_name == "tls"
        assert errors[0].message == "ValueError: bad handshake state"
        assert types(result).index(CheckType.PROBE_ERROR) == 6
        assert types(result).count(CheckType.CORS_POLICY) == 5

    def test_shared_fetch_failure_errors_both_header_probes(self):
        session = FakeSession(get=RuntimeError("decoder exploded"), options=FakeResponse())
        result = make_scanner(session).scan(Target("https://example.test", TargetKind.URL))
        errors = [c for c in result.checks if c.check_type == CheckType.PROBE_ERROR]
        assert [e.check_name for e in errors] == ["security_headers", "additional_headers"]
        assert types(result)[-1] == CheckType.CORS_POLICY

    def test_skipped_tls_contributes_nothing(self):
        session = FakeSession(get=FakeResponse(), options=FakeResponse())
        result = make_scanner(session).scan(Target("https://example.test", TargetKind.URL))
        assert CheckType.SSL not in types(result)
        assert CheckType.SSL_CERTIFICATE not in types(result)
        assert len(result.checks) == 17


class TestIpScan:

    def test_ports_then_services(self):
        result = make_scanner(FakeSession()).scan(Target("192.0.2.1", TargetKind.IP))
        assert types(result) == [CheckType.PORT_SCAN] * 17
        assert all(c.data["status"] == "closed" for c in result.checks)

    def test_repeat_scans_are_identical(self):
        scanner = make_scanner(FakeSession())
        target = Target("192.0.2.1", TargetKind.IP)
        assert scanner.scan(target).checks == scanner.scan(target).checks


def test_from_settings():
    from sitewatch.config import ScanSettings

    scanner = Scanner.from_settings(ScanSettings(http_timeout=11, port_timeout=0.5))
    assert scanner.timeouts.http == 11
    assert scanner.timeouts.port == 0.5
    assert scanner.timeouts.tls == 30
