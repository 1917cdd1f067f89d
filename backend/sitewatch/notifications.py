# sitewatch/notifications.py
"""
Scan notifications.

The runner decides WHETHER to notify (the job asked for it and has an
email address) and WHAT to say. Delivery belongs to a Notifier:

    LogNotifier       writes the notice to the log (default)
    WebhookNotifier   POSTs the notice as JSON to NOTIFY_WEBHOOK_URL

A failed delivery never affects the job. send_notice() logs it and returns
False.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional, Protocol, Union

import requests

logger = logging.getLogger(__name__)

WEBHOOK_TIMEOUT = 10


@dataclass(frozen=True)
class CompletionNotice:
    scan_id: Any
    email: str
    summary: Dict[str, Any]
    risk_grade: str
    scan_name: Optional[str] = None
    kind: str = "scan.completed"


@dataclass(frozen=True)
class FailureNotice:
    scan_id: Any
    email: str
    error: str
    scan_name: Optional[str] = None
    kind: str = "scan.failed"


Notice = Union[CompletionNotice, FailureNotice]


class Notifier(Protocol):
    def notify(self, notice: Notice) -> None:
        ...


class LogNotifier:
    """Records notices in the application log."""

    def notify(self, notice: Notice) -> None:
        if isinstance(notice, CompletionNotice):
            logger.info(
                f"Scan completion notice for scan {notice.scan_id} to {notice.email}: "
                f"grade {notice.risk_grade}, "
                f"{notice.summary.get('failed_checks', 0)}/{notice.summary.get('total_checks', 0)} checks failed"
            )
        else:
            logger.info(f"Scan failure notice for scan {notice.scan_id} to {notice.email}: {notice.error}")


class WebhookNotifier:
    """POSTs each notice as JSON. Non-2xx responses count as delivery failures."""

    def __init__(self, url: str, session: Any = None, timeout: float = WEBHOOK_TIMEOUT):
        self.url = url
        self.session = session or requests.Session()
        self.timeout = timeout

    def notify(self, notice: Notice) -> None:
        payload = asdict(notice)
        payload["scan_id"] = str(notice.scan_id)
        response = self.session.post(self.url, json=payload, timeout=self.timeout)
        response.raise_for_status()
        logger.debug(f"Webhook accepted {notice.kind} for scan {notice.scan_id}")


def send_notice(notifier: Notifier, notice: Notice) -> bool:
    """Deliver a notice. Any delivery error is logged and swallowed."""
    try:
        notifier.notify(notice)
        return True
    except Exception as e:
        logger.error(f"Failed to send {notice.kind} notification for scan {notice.scan_id}: {e}")
        return False


def notifier_from_settings(settings) -> Notifier:
    if settings.notify_webhook_url:
        return WebhookNotifier(settings.notify_webhook_url)
    return LogNotifier()
