# sitewatch/scanner/probes/http_fetch.py
"""
Single page fetch shared by the header probes.

A URL target is fetched exactly once. The security-header and
additional-header probes both read from the same HttpSnapshot, so a slow
or unreachable site costs one timeout, not two.

Fetch errors are captured in the snapshot (snapshot.error) and never
raised. Callers check `snapshot.ok` before reading headers.

Certificates are NOT verified here. We want to see the headers of a site
with a broken certificate; the TLS probe reports on the certificate itself.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

import requests
import urllib3
from requests.structures import CaseInsensitiveDict

logger = logging.getLogger(__name__)

urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

USER_AGENT = "sitewatch/1.0 (+security assessment)"
DEFAULT_HTTP_TIMEOUT = 30


def new_session() -> requests.Session:
    """Session used by all HTTP-speaking probes."""
    session = requests.Session()
    session.verify = False
    session.headers.update({"User-Agent": USER_AGENT})
    return session


@dataclass
class HttpSnapshot:
    """What one GET of the target returned."""
    url: str
    status_code: Optional[int] = None
    headers: CaseInsensitiveDict = field(default_factory=CaseInsensitiveDict)
    body: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def header(self, name: str) -> Optional[str]:
        """First value of a response header, matched case-insensitively."""
        return self.headers.get(name)


def fetch_page(session: Any, url: str, timeout: float = DEFAULT_HTTP_TIMEOUT) -> HttpSnapshot:
    """
    GET `url` once. Any HTTP status counts as a response; only transport
    failures (DNS, refused, timeout, TLS) populate `error`.
    """
    try:
        response = session.get(url, timeout=timeout, allow_redirects=True)
    except requests.RequestException as e:
        logger.debug(f"Fetch failed for {url}: {e}")
        return HttpSnapshot(url=url, error=str(e) or type(e).__name__)

    logger.debug(f"Fetched {url}: HTTP {response.status_code}")
    return HttpSnapshot(
        url=url,
        status_code=response.status_code,
        headers=CaseInsensitiveDict(response.headers),
        body=response.text,
    )
