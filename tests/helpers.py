"""Test doubles for the browser and the token endpoint."""

from __future__ import annotations

import contextlib
import threading

from urllib.error import HTTPError
from urllib.parse import parse_qs, urlparse
from urllib.request import urlopen

import httpx

from tests.constants import BROWSER_TIMEOUT, TOKEN_RESPONSE


class TokenEndpoint:
    """Scripted token endpoint behind an ``httpx.MockTransport``."""

    def __init__(self, status: int = 200, body: bytes = TOKEN_RESPONSE) -> None:
        self.status = status
        self.body = body
        self.requests: list[httpx.Request] = []
        self.error: Exception | None = None

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self._handle)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return httpx.Response(
            self.status,
            content=self.body,
            headers={"Content-Type": "application/json"},
        )

    @property
    def last_form(self) -> dict[str, str]:
        """Form fields of the most recent request."""
        form = parse_qs(self.requests[-1].content.decode("ascii"), keep_blank_values=True)
        return {k: v[0] for k, v in form.items()}


class FakeBrowser:
    """Launcher that follows the redirect URI with a scripted query string.

    ``query=None`` opens the page but never redirects; an empty string
    redirects with no query at all.
    """

    def __init__(self, query: str | None) -> None:
        self.query = query
        self.urls: list[str] = []
        self.threads: list[threading.Thread] = []

    def __call__(self, url: str) -> bool:
        self.urls.append(url)
        if self.query is None:
            return True
        redirect_uri = parse_qs(urlparse(url).query)["redirect_uri"][0]
        target = f"{redirect_uri}?{self.query}" if self.query else redirect_uri

        def follow() -> None:
            with contextlib.suppress(Exception):
                urlopen(target, timeout=BROWSER_TIMEOUT).read()  # noqa: S310

        thread = threading.Thread(target=follow, daemon=True)
        thread.start()
        self.threads.append(thread)
        return True

    @property
    def last_params(self) -> dict[str, str]:
        """Query parameters of the last authorization URL."""
        return {k: v[0] for k, v in parse_qs(urlparse(self.urls[-1]).query).items()}

    def join(self) -> None:
        for thread in self.threads:
            thread.join(timeout=BROWSER_TIMEOUT)


def read_page(url: str) -> tuple[int, str]:
    """GET a URL and return ``(status, body)``, including HTTP error responses."""
    try:
        with urlopen(url, timeout=BROWSER_TIMEOUT) as resp:  # noqa: S310
            return resp.status, resp.read().decode("utf-8")
    except HTTPError as exc:
        return exc.code, exc.read().decode("utf-8", "replace")
