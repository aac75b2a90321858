"""Loopback HTTP listener for OAuth2 redirect capture.

Binds the pre-registered redirect port on the loopback interface,
answers the single redirect request with a confirmation page and
extracts the authorization code (or provider error) from its query
string. The listener shuts itself down after the first callback.

Uses only stdlib (http.server, threading, urllib.parse), no
additional dependencies.
"""

# pylint: disable=C0103,W0212

from __future__ import annotations

import html
import logging
import threading

from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any
from urllib.parse import parse_qs, urlparse

from ..exceptions import CallbackServerError
from .types import CallbackResult


logger = logging.getLogger("nativeauth.auth")

DEFAULT_REDIRECT_PORT = 6502
DEFAULT_REDIRECT_HOST = "localhost"
LOOPBACK_ADDRESS = "127.0.0.1"

_PAGE = """<!DOCTYPE html>
<html lang="en">
<head><meta charset="utf-8"><title>{title}</title>
<style>
  body {{ font: 16px system-ui, sans-serif; margin: 15vh auto; max-width: 32rem;
         text-align: center; color: #222; }}
  h1 {{ font-size: 1.25rem; }}
  .error {{ color: #b00020; }}
</style></head>
<body>
  <h1{css_class}>{heading}</h1>
  {detail}
  <p>You may close this window or tab.</p>
</body></html>"""


def _render_page(error: str | None = None) -> str:
    """Confirmation page, or the failure page when the provider sent an error."""
    if error is None:
        return _PAGE.format(
            title="Application Authorized",
            css_class="",
            heading="Application has been authorized.",
            detail="",
        )
    return _PAGE.format(
        title="Authorization Failed",
        css_class=' class="error"',
        heading="Authorization failed.",
        detail=f"<p>{html.escape(error, quote=True)}</p>",
    )


def _first(params: dict[str, list[str]], name: str) -> str | None:
    values = params.get(name)
    return values[0] if values else None


class LoopbackCallbackServer:
    """One-shot loopback HTTP server for capturing the OAuth2 redirect.

    Parameters
    ----------
    port : int
        Port to bind (default ``6502``; ``0`` picks a free port, useful in tests).
    redirect_host : str
        Host name used in the redirect URI (default ``"localhost"``).
        The socket is always bound to ``127.0.0.1``.
    callback_path : str
        Path the provider redirects to (default ``"/"``).
    """

    def __init__(
        self,
        port: int = DEFAULT_REDIRECT_PORT,
        redirect_host: str = DEFAULT_REDIRECT_HOST,
        callback_path: str = "/",
    ) -> None:
        """Initialize the callback server."""
        self._port = port
        self._redirect_host = redirect_host
        self._callback_path = callback_path
        self._server: ThreadingHTTPServer | None = None
        self._thread: threading.Thread | None = None
        self._result: CallbackResult | None = None
        self._result_lock = threading.Lock()
        self._result_event = threading.Event()
        self._actual_port: int = port

    @property
    def redirect_uri(self) -> str:
        """Get the redirect URI served by this listener.

        Returns
        -------
        str
            The full redirect URI (e.g. ``http://localhost:6502/``).
        """
        return f"http://{self._redirect_host}:{self._actual_port}{self._callback_path}"

    @property
    def port(self) -> int:
        """Port the listener is bound to (the configured port until started)."""
        return self._actual_port

    @property
    def received(self) -> bool:
        """Whether the redirect request has arrived."""
        return self._result_event.is_set()

    @property
    def result(self) -> CallbackResult | None:
        """The captured callback, or None before it arrives."""
        return self._result

    def start(self) -> str:
        """Bind the port and serve on a daemon thread.

        Returns
        -------
        str
            The redirect URI to send to the OAuth2 provider.

        Raises
        ------
        CallbackServerError
            If the port cannot be bound (in use, or outside 0-65535).
        """
        server_ref = self

        class _CallbackHandler(BaseHTTPRequestHandler):
            """HTTP request handler for the OAuth2 redirect."""

            # Drop idle browser pre-connects instead of holding a thread
            timeout = 10

            def do_GET(self) -> None:
                """Handle GET requests."""
                parsed = urlparse(self.path)
                if parsed.path != server_ref._callback_path:
                    self.send_error(404)
                    return

                params = parse_qs(parsed.query, keep_blank_values=True)
                result = CallbackResult(
                    code=_first(params, "code"),
                    error=_first(params, "error"),
                    error_description=_first(params, "error_description"),
                    path=parsed.path,
                )

                # Only capture the first callback
                with server_ref._result_lock:
                    first = not server_ref._result_event.is_set()
                    if first:
                        server_ref._result = result

                shown = result.error_description or result.error if first else None
                self._send_page(_render_page(shown))

                if first:
                    server_ref._result_event.set()
                    # shutdown() blocks until serve_forever returns; never call it inline
                    threading.Thread(target=self.server.shutdown, daemon=True).start()

            def _send_page(self, page: str) -> None:
                """Send an HTML response with security headers."""
                encoded = page.encode("utf-8")
                self.send_response(200)
                self.send_header("Content-Type", "text/html; charset=utf-8")
                self.send_header("Content-Length", str(len(encoded)))
                self.send_header("Cache-Control", "no-store")
                self.send_header(
                    "Content-Security-Policy",
                    "default-src 'none'; style-src 'unsafe-inline'",
                )
                self.send_header("X-Content-Type-Options", "nosniff")
                self.send_header("Connection", "close")
                self.end_headers()
                self.wfile.write(encoded)
                self.wfile.flush()

            def log_message(self, *args: Any) -> None:
                """Redirect HTTP server logging to the nativeauth logger."""
                if args:
                    logger.debug("Loopback listener: %s", args[0] % args[1:])

        try:
            self._server = ThreadingHTTPServer((LOOPBACK_ADDRESS, self._port), _CallbackHandler)
        except (OSError, OverflowError) as exc:
            reason = getattr(exc, "strerror", None) or exc
            msg = f"Unable to listen on {LOOPBACK_ADDRESS}:{self._port}: {reason}"
            raise CallbackServerError(msg, port=self._port) from exc
        self._actual_port = self._server.server_address[1]

        self._thread = threading.Thread(
            target=self._server.serve_forever,
            name="nativeauth-callback",
            daemon=True,
        )
        self._thread.start()

        logger.debug("OAuth callback server started on %s", self.redirect_uri)
        return self.redirect_uri

    def wait_for_callback(self, timeout: float | None = 120.0) -> CallbackResult | None:
        """Block until the callback is received or timeout expires.

        Parameters
        ----------
        timeout : float or None
            Maximum seconds to wait (default 120; None waits forever).

        Returns
        -------
        CallbackResult or None
            The captured callback, or ``None`` if the timeout expired.
        """
        if self._result_event.wait(timeout=timeout):
            return self._result
        return None

    def stop(self) -> None:
        """Shut the server down and release the port. Safe to call repeatedly."""
        server = self._server
        self._server = None
        if server is not None:
            server.shutdown()
            server.server_close()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5)
        self._thread = None
        if server is not None:
            logger.debug("OAuth callback server on port %s stopped", self._actual_port)

    def __enter__(self) -> LoopbackCallbackServer:
        """Start the server on entering the context."""
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        """Stop the server on leaving the context."""
        self.stop()
