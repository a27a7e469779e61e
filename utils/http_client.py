"""
Async HTTP client used by the review sources.

Wraps a requests.Session and runs each call on a worker thread, so a
slow provider never blocks the event loop that other syncs share.
"""
from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional

import requests

from config.settings import settings
from utils.logger import get_logger

logger = get_logger(__name__)

BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
        "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Accept-Encoding": "gzip, deflate, br",
    "Connection": "keep-alive",
    "Upgrade-Insecure-Requests": "1",
    "Referer": "https://www.google.com/",
}


class HTTPStatusError(Exception):
    """Non-2xx response from an upstream API."""

    def __init__(self, status_code: int, url: str, body: str = ""):
        self.status_code = status_code
        self.url = url
        self.body = body
        super().__init__(f"HTTP {status_code} from {url}: {body[:200]}")


class AsyncHTTPClient:
    """
    Thin async facade over requests.

    Transport failures surface as requests.RequestException,
    non-2xx responses as HTTPStatusError.
    """

    def __init__(self, timeout: float | None = None, session: requests.Session | None = None):
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECONDS
        self.session = session or requests.Session()

    def _send(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        kwargs.setdefault("timeout", self.timeout)
        response = self.session.request(method, url, **kwargs)
        if not response.ok:
            raise HTTPStatusError(response.status_code, url, response.text or "")
        return response

    async def get_json(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        response = await asyncio.to_thread(self._send, "GET", url, headers=headers, params=params)
        return response.json()

    async def post_json(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        json_body: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
        auth: Optional[tuple] = None,
    ) -> Any:
        response = await asyncio.to_thread(
            self._send, "POST", url, headers=headers, json=json_body, data=data, auth=auth
        )
        return response.json()

    async def get_text(self, url: str, headers: Optional[Dict[str, str]] = None) -> str:
        response = await asyncio.to_thread(
            self._send, "GET", url, headers=headers, allow_redirects=True
        )
        return response.text

    def close(self) -> None:
        self.session.close()
