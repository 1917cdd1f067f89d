# sitewatch/config.py
"""
Runtime settings, read from the environment once by the app factory.

    SITEWATCH_ENV          development | production          (development)
    SCHEDULER_ENABLED      start the background pass job      (true)
    SCAN_CHECK_INTERVAL    seconds between passes             (60)
    SCAN_JOB_TIMEOUT       deadline for one job, seconds      (900)
    SCAN_MAX_WORKERS       targets scanned in parallel        (4)
    HTTP_TIMEOUT           page GET / CORS preflight          (30)
    TLS_TIMEOUT            TLS handshake                      (30)
    PORT_TIMEOUT           port connect                       (3)
    SERVICE_TIMEOUT        service connect / service GET      (5)
    BANNER_TIMEOUT         banner read                        (3)
    NOTIFY_WEBHOOK_URL     deliver notices by webhook         (unset → log)

Values passed to create_app(config) win over the environment.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Mapping, Optional

_TRUE = {"1", "true", "yes", "on"}


def _get(overrides: Mapping[str, Any], key: str, default: Any) -> Any:
    if key in overrides:
        return overrides[key]
    return os.getenv(key, default)


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUE


def _as_number(key: str, value: Any, cast=int, minimum: float = 0):
    try:
        number = cast(value)
    except (TypeError, ValueError):
        raise RuntimeError(f"{key} must be a number, got {value!r}")
    if number < minimum:
        raise RuntimeError(f"{key} must be at least {minimum}, got {number}")
    return number


@dataclass(frozen=True)
class ScanSettings:
    env: str = "development"
    scheduler_enabled: bool = True
    check_interval: int = 60
    job_timeout: float = 900
    max_workers: int = 4
    http_timeout: float = 30
    tls_timeout: float = 30
    port_timeout: float = 3
    service_timeout: float = 5
    banner_timeout: float = 3
    notify_webhook_url: Optional[str] = None

    @property
    def is_production(self) -> bool:
        return self.env == "production"

    @classmethod
    def from_env(cls, overrides: Optional[Mapping[str, Any]] = None) -> "ScanSettings":
        o = overrides or {}
        return cls(
            env=str(_get(o, "SITEWATCH_ENV", "development")).strip().lower(),
            scheduler_enabled=_as_bool(_get(o, "SCHEDULER_ENABLED", "true")),
            check_interval=_as_number("SCAN_CHECK_INTERVAL", _get(o, "SCAN_CHECK_INTERVAL", 60), int, 1),
            job_timeout=_as_number("SCAN_JOB_TIMEOUT", _get(o, "SCAN_JOB_TIMEOUT", 900), float, 1),
            max_workers=_as_number("SCAN_MAX_WORKERS", _get(o, "SCAN_MAX_WORKERS", 4), int, 1),
            http_timeout=_as_number("HTTP_TIMEOUT", _get(o, "HTTP_TIMEOUT", 30), float, 1),
            tls_timeout=_as_number("TLS_TIMEOUT", _get(o, "TLS_TIMEOUT", 30), float, 1),
            port_timeout=_as_number("PORT_TIMEOUT", _get(o, "PORT_TIMEOUT", 3), float, 0.1),
            service_timeout=_as_number("SERVICE_TIMEOUT", _get(o, "SERVICE_TIMEOUT", 5), float, 0.1),
            banner_timeout=_as_number("BANNER_TIMEOUT", _get(o, "BANNER_TIMEOUT", 3), float, 0.1),
            notify_webhook_url=_get(o, "NOTIFY_WEBHOOK_URL", None) or None,
        )
