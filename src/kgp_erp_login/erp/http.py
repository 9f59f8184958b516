from __future__ import annotations

import logging
from typing import Optional

import requests
from requests.cookies import RequestsCookieJar


logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "Mozilla/5.0 (X11; Linux x86_64; rv:141.0) Gecko/20100101 Firefox/141.0"


class ErpCookieJar(RequestsCookieJar):
    """
    Cookie jar shared by the HTTP session and the session-restore path.

    Reads/inserts are already serialized by `http.cookiejar`'s internal lock; `reseed()` takes the
    same lock so a concurrent request never sees the jar half-cleared.
    """

    def reseed(self, name: str, value: str, *, domain: str, path: str = "/") -> None:
        with self._cookies_lock:
            self.clear()
            self.set(name, value, domain=domain, path=path)
        logger.debug("Cookie jar reseeded with %s for domain=%s", name, domain)

    def snapshot(self) -> dict[str, str]:
        """Copy of name -> value taken under the jar lock."""
        with self._cookies_lock:
            return {c.name: c.value for c in list(iter(self))}


def create_http_session(user_agent: Optional[str] = None) -> requests.Session:
    """Create the requests session used for every ERP call."""
    session = requests.Session()
    session.cookies = ErpCookieJar()

    # Headers matching a normal browser; the portal rejects obvious scripts.
    session.headers.update(
        {
            "User-Agent": user_agent or DEFAULT_USER_AGENT,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.5",
        }
    )
    return session
