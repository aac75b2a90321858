"""Authorization code flow for native applications.

``AuthorizationSession`` owns one client registration and the token set
of its latest exchange. ``authorize()`` runs the interactive flow:
bind the loopback redirect listener, open the provider's consent page in
the user's browser, wait for the single redirect, then trade the code
for tokens. ``refresh()`` trades a refresh token without any user
interaction.
"""

# pylint: disable=logging-too-many-args,too-many-instance-attributes

from __future__ import annotations

import dataclasses
import logging
import secrets
import threading
import time
import webbrowser

from typing import TYPE_CHECKING, Any
from urllib.parse import quote, urlencode

from ..exceptions import (
    AuthenticationError,
    AuthFlowCancelled,
    AuthFlowTimeout,
    AuthorizationDenied,
    BrowserLaunchError,
    ConfigurationError,
    MalformedCallbackError,
)
from .callback_server import (
    DEFAULT_REDIRECT_HOST,
    DEFAULT_REDIRECT_PORT,
    LoopbackCallbackServer,
)
from .exchange import TokenExchangeClient, authorization_code_fields, refresh_token_fields
from .providers import FACEBOOK, GOOGLE, MICROSOFT, get_provider, microsoft_endpoint
from .types import AuthFlowState, ClientCredentials, ProviderEndpoint, TokenSet


if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence

    import httpx

    from .types import CallbackResult


logger = logging.getLogger("nativeauth.auth")

_POLL_INTERVAL = 0.1


def _join_scope(scope: str | Sequence[str] | None) -> str | None:
    """Normalize a scope argument to a space-separated string, or None if empty."""
    if scope is None:
        return None
    if isinstance(scope, str):
        return scope or None
    joined = " ".join(s for s in scope if s)
    return joined or None


def _open_in_browser(url: str) -> bool:
    return webbrowser.open(url)


class AuthorizationSession:
    """OAuth2 authorization code grant against one identity provider.

    Parameters
    ----------
    endpoint : ProviderEndpoint
        The provider's authorization and token endpoints.
    client_id : str
        The OAuth2 client ID.
    client_secret : str
        The OAuth2 client secret (empty string for public clients).
    login_hint : str, optional
        Account hint forwarded as ``login_hint``.
    redirect_port : int
        Loopback port registered with the provider (default ``6502``).
    redirect_host : str
        Host name in the redirect URI (default ``"localhost"``).
    auth_timeout : float or None
        Seconds to wait for the browser redirect (default ``120``).
        ``None`` waits indefinitely.
    exchange_timeout : float
        Token endpoint request timeout in seconds (default ``30``).
    launcher : callable, optional
        ``launcher(url)`` opens the authorization URL; returning ``False``
        or raising counts as a launch failure. Defaults to ``webbrowser.open``.
    extra_params : Mapping[str, str], optional
        Additional authorization query parameters (e.g. ``prompt``).
    transport : httpx.BaseTransport, optional
        Custom transport for the token endpoint client.
    """

    def __init__(
        self,
        endpoint: ProviderEndpoint,
        client_id: str,
        client_secret: str = "",
        *,
        login_hint: str | None = None,
        redirect_port: int = DEFAULT_REDIRECT_PORT,
        redirect_host: str = DEFAULT_REDIRECT_HOST,
        auth_timeout: float | None = 120.0,
        exchange_timeout: float = 30.0,
        launcher: Callable[[str], Any] | None = None,
        extra_params: Mapping[str, str] | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the session."""
        self.endpoint = endpoint
        self._credentials = ClientCredentials(client_id=client_id, client_secret=client_secret)
        self.login_hint = login_hint
        self.redirect_port = redirect_port
        self.redirect_host = redirect_host
        self.auth_timeout = auth_timeout
        self.extra_params: dict[str, str] = dict(extra_params or {})
        self._launcher = launcher or _open_in_browser
        self._exchange_client = TokenExchangeClient(
            endpoint.token_endpoint,
            timeout=exchange_timeout,
            transport=transport,
        )

        self._tokens = TokenSet()
        self._flow_state = AuthFlowState.IDLE
        self._flow_id: str | None = None
        self._last_exception: AuthenticationError | None = None
        self._cancellation_event = threading.Event()
        self._callback_server: LoopbackCallbackServer | None = None

    # ── Provider presets ────────────────────────────────────────────

    @classmethod
    def microsoft(cls, client_id: str, client_secret: str = "", **kwargs: Any) -> AuthorizationSession:
        """Create a session for the Microsoft identity platform (``common`` tenant)."""
        return cls(MICROSOFT, client_id, client_secret, **kwargs)

    @classmethod
    def google(cls, client_id: str, client_secret: str = "", **kwargs: Any) -> AuthorizationSession:
        """Create a session for Google."""
        return cls(GOOGLE, client_id, client_secret, **kwargs)

    @classmethod
    def facebook(cls, client_id: str, client_secret: str = "", **kwargs: Any) -> AuthorizationSession:
        """Create a session for Facebook Login."""
        return cls(FACEBOOK, client_id, client_secret, **kwargs)

    # ── Read-only state ─────────────────────────────────────────────

    @property
    def client_id(self) -> str:
        """The OAuth2 client ID."""
        return self._credentials.client_id

    @property
    def tokens(self) -> TokenSet:
        """A copy of the token set from the latest ``authorize``/``refresh`` call."""
        return dataclasses.replace(self._tokens)

    @property
    def access_token(self) -> str | None:
        """Access token from the latest exchange."""
        return self._tokens.access_token

    @property
    def id_token(self) -> str | None:
        """ID token from the latest exchange."""
        return self._tokens.id_token

    @property
    def refresh_token(self) -> str | None:
        """Refresh token from the latest exchange."""
        return self._tokens.refresh_token

    @property
    def expires_in(self) -> int:
        """Access token lifetime in seconds, ``0`` if unknown."""
        return self._tokens.expires_in

    @property
    def token_type(self) -> str | None:
        """Token type from the latest exchange."""
        return self._tokens.token_type

    @property
    def error(self) -> str | None:
        """Failure message of the latest call, or None after a success."""
        return self._tokens.error

    @property
    def last_exception(self) -> AuthenticationError | None:
        """The typed exception behind ``error``, or None after a success."""
        return self._last_exception

    @property
    def flow_state(self) -> AuthFlowState:
        """Current state of the flow."""
        return self._flow_state

    @property
    def redirect_uri(self) -> str:
        """Redirect URI sent to the provider."""
        if self._callback_server is not None:
            return self._callback_server.redirect_uri
        return f"http://{self.redirect_host}:{self.redirect_port}/"

    # ── Flow ────────────────────────────────────────────────────────

    def authorization_url(
        self,
        scope: str | Sequence[str] | None = None,
        redirect_uri: str | None = None,
    ) -> str:
        """Build the authorization request URL.

        Parameters
        ----------
        scope : str or sequence of str, optional
            Requested scopes; omitted from the URL when empty.
        redirect_uri : str, optional
            Overrides ``self.redirect_uri``.

        Returns
        -------
        str
            The URL to open in the browser, every value percent-encoded.
        """
        params: dict[str, str] = {
            "response_type": "code",
            "client_id": self.client_id,
            "redirect_uri": redirect_uri or self.redirect_uri,
            "response_mode": "query",
        }
        scope_str = _join_scope(scope)
        if scope_str:
            params["scope"] = scope_str
        if self.login_hint:
            params["login_hint"] = self.login_hint
        params.update(self.extra_params)

        base = self.endpoint.authorization_endpoint
        separator = "&" if "?" in base else "?"
        return f"{base}{separator}{urlencode(params, quote_via=quote)}"

    def authorize(self, scope: str | Sequence[str] | None = None) -> bool:
        """Run the interactive authorization code flow.

        Blocks until the browser redirect arrives, the timeout expires,
        or ``cancel()`` is called. The listener is released on every path.

        Parameters
        ----------
        scope : str or sequence of str, optional
            Requested scopes (a sequence is joined with spaces).

        Returns
        -------
        bool
            True when tokens were obtained; otherwise False with ``error``
            describing the failure.
        """
        scope_str = _join_scope(scope)
        self._begin()
        self._cancellation_event.clear()

        try:
            callback, redirect_uri = self._capture_callback(scope_str)

            if callback.error is not None:
                raise AuthorizationDenied(  # noqa: TRY301
                    callback.error,
                    callback.error_description,
                    provider=self.endpoint.host,
                    flow_id=self._flow_id,
                )
            if not callback.code:
                msg = "Malformed authorization response."
                raise MalformedCallbackError(  # noqa: TRY301
                    msg, provider=self.endpoint.host, flow_id=self._flow_id
                )

            fields = authorization_code_fields(
                callback.code, self._credentials, redirect_uri, scope_str
            )
            self._tokens = self._exchange_client.exchange(fields)
        except AuthenticationError as exc:
            return self._fail(exc)

        return self._succeed()

    def refresh(self, refresh_token: str) -> bool:
        """Exchange a refresh token for a new token set.

        The given refresh token is kept unless the provider rotates it.

        Returns
        -------
        bool
            True on success; otherwise False with ``error`` set.
        """
        self._begin(refresh_token=refresh_token)
        try:
            self._tokens = self._exchange_client.exchange(
                refresh_token_fields(refresh_token, self._credentials),
                refresh_token=refresh_token,
            )
        except AuthenticationError as exc:
            return self._fail(exc)
        return self._succeed()

    def cancel(self) -> None:
        """Abort a blocked ``authorize()`` call from another thread."""
        self._cancellation_event.set()

    def close(self) -> None:
        """Release the token endpoint HTTP client."""
        self._exchange_client.close()

    def __enter__(self) -> AuthorizationSession:
        """Enter the context manager."""
        return self

    def __exit__(self, *exc_info: object) -> None:
        """Close the session on exit."""
        self.close()

    # ── Internals ───────────────────────────────────────────────────

    def _begin(self, refresh_token: str | None = None) -> None:
        """Replace the token set wholesale before a new exchange."""
        self._tokens = TokenSet(refresh_token=refresh_token)
        self._last_exception = None
        self._flow_id = secrets.token_urlsafe(16)
        self._flow_state = AuthFlowState.IDLE

    def _capture_callback(self, scope: str | None) -> tuple[CallbackResult, str]:
        """Run listener, browser and wait; the listener is stopped before returning."""
        server = LoopbackCallbackServer(port=self.redirect_port, redirect_host=self.redirect_host)
        redirect_uri = server.start()
        self._callback_server = server
        try:
            self._flow_state = AuthFlowState.LISTENER_STARTED
            logger.info("Auth flow %s: callback server at %s", self._flow_id, redirect_uri)

            url = self.authorization_url(scope, redirect_uri=redirect_uri)
            self._launch(url)
            self._flow_state = AuthFlowState.BROWSER_LAUNCHED
            logger.debug("Auth flow %s: %s", self._flow_id, self._flow_state.value)

            self._flow_state = AuthFlowState.AWAITING_CALLBACK
            logger.debug("Auth flow %s: %s", self._flow_id, self._flow_state.value)
            callback = self._wait_for_callback(server)
            self._flow_state = AuthFlowState.CALLBACK_RECEIVED
        finally:
            server.stop()
            self._callback_server = None
        return callback, redirect_uri

    def _launch(self, url: str) -> None:
        logger.info("Open this URL to authorize: %s", url)
        try:
            launched = self._launcher(url)
        except Exception as exc:
            msg = f"Unable to open the authorization URL in a browser: {exc}"
            raise BrowserLaunchError(msg, provider=self.endpoint.host, flow_id=self._flow_id) from exc
        if launched is False:
            msg = "No browser available to open the authorization URL"
            raise BrowserLaunchError(msg, provider=self.endpoint.host, flow_id=self._flow_id)

    def _wait_for_callback(self, server: LoopbackCallbackServer) -> CallbackResult:
        """Wait for the redirect, polling for cancellation and the deadline."""
        deadline = None if self.auth_timeout is None else time.monotonic() + self.auth_timeout
        while True:
            if self._cancellation_event.is_set():
                msg = "Authorization was cancelled"
                raise AuthFlowCancelled(msg, provider=self.endpoint.host, flow_id=self._flow_id)

            wait = _POLL_INTERVAL
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    msg = f"Timed out waiting for browser callback after {self.auth_timeout:g}s"
                    raise AuthFlowTimeout(
                        msg,
                        timeout=self.auth_timeout,  # type: ignore[arg-type]
                        provider=self.endpoint.host,
                        flow_id=self._flow_id,
                    )
                wait = min(wait, remaining)

            result = server.wait_for_callback(timeout=wait)
            if result is not None:
                return result

    def _succeed(self) -> bool:
        self._flow_state = AuthFlowState.EXCHANGE_SUCCEEDED
        logger.info("Auth flow %s completed successfully", self._flow_id)
        return True

    def _fail(self, exc: AuthenticationError) -> bool:
        if isinstance(exc, AuthFlowTimeout):
            self._flow_state = AuthFlowState.TIMED_OUT
        elif isinstance(exc, AuthFlowCancelled):
            self._flow_state = AuthFlowState.CANCELLED
        else:
            self._flow_state = AuthFlowState.EXCHANGE_FAILED
        self._last_exception = exc
        self._tokens = TokenSet.failed(exc.message)
        logger.warning("Auth flow %s failed: %s", self._flow_id, exc.message)
        return False


def create_microsoft_oauth(client_id: str, client_secret: str = "", **kwargs: Any) -> AuthorizationSession:
    """Create a Microsoft session; see ``AuthorizationSession.microsoft``."""
    return AuthorizationSession.microsoft(client_id, client_secret, **kwargs)


def create_google_oauth(client_id: str, client_secret: str = "", **kwargs: Any) -> AuthorizationSession:
    """Create a Google session; see ``AuthorizationSession.google``."""
    return AuthorizationSession.google(client_id, client_secret, **kwargs)


def create_facebook_oauth(client_id: str, client_secret: str = "", **kwargs: Any) -> AuthorizationSession:
    """Create a Facebook session; see ``AuthorizationSession.facebook``."""
    return AuthorizationSession.facebook(client_id, client_secret, **kwargs)


def create_session_from_settings(settings: Any = None, **kwargs: Any) -> AuthorizationSession:
    """Create an AuthorizationSession from OAuth2Settings.

    Parameters
    ----------
    settings : NativeAuthSettings or OAuth2Settings, optional
        The configuration to use; defaults to ``get_settings()``.
    **kwargs : Any
        Extra ``AuthorizationSession`` arguments (``launcher``, ``transport``, ...).

    Returns
    -------
    AuthorizationSession
        A configured session.

    Raises
    ------
    ConfigurationError
        If the client ID is missing, the provider type is unknown, or a
        custom provider lacks its endpoint URLs.
    """
    if settings is None:
        from ..config import get_settings

        settings = get_settings()
    oauth2 = getattr(settings, "oauth2", settings)

    provider_type = getattr(oauth2, "provider", "custom")
    client_id = getattr(oauth2, "client_id", "")
    if not client_id:
        msg = "OAuth2 client_id is not configured"
        raise ConfigurationError(msg, provider=provider_type)

    endpoint: ProviderEndpoint
    if provider_type == "microsoft":
        endpoint = microsoft_endpoint(getattr(oauth2, "tenant_id", "common"))
    elif provider_type == "custom":
        authorize_url = getattr(oauth2, "authorize_url", "")
        token_url = getattr(oauth2, "token_url", "")
        if not authorize_url or not token_url:
            msg = "Custom provider requires authorize_url and token_url"
            raise ConfigurationError(msg, provider="custom")
        endpoint = ProviderEndpoint(authorization_endpoint=authorize_url, token_endpoint=token_url)
    else:
        try:
            endpoint = get_provider(provider_type)
        except KeyError:
            msg = f"Unknown OAuth2 provider type: {provider_type}"
            raise ConfigurationError(msg, provider=provider_type) from None

    options: dict[str, Any] = {
        "login_hint": getattr(oauth2, "login_hint", "") or None,
        "redirect_port": getattr(oauth2, "redirect_port", DEFAULT_REDIRECT_PORT),
        "redirect_host": getattr(oauth2, "redirect_host", DEFAULT_REDIRECT_HOST),
        "auth_timeout": getattr(oauth2, "auth_timeout_seconds", 120.0),
        "exchange_timeout": getattr(oauth2, "exchange_timeout_seconds", 30.0),
    }
    options.update(kwargs)
    return AuthorizationSession(
        endpoint,
        client_id,
        getattr(oauth2, "client_secret", ""),
        **options,
    )
