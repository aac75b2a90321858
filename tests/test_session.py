"""Integration tests for AuthorizationSession.

The browser is simulated by a launcher that follows the redirect URI on
a background thread; the token endpoint is an ``httpx.MockTransport``.
"""

# pylint: disable=redefined-outer-name

from __future__ import annotations

import logging
import socket
import threading

from typing import TYPE_CHECKING, Any
from urllib.parse import urlparse

import pytest

from nativeauth.auth.session import AuthorizationSession
from nativeauth.auth.types import AuthFlowState, ProviderEndpoint, TokenSet
from nativeauth.exceptions import (
    AuthFlowCancelled,
    AuthFlowTimeout,
    AuthorizationDenied,
    BrowserLaunchError,
    CallbackServerError,
    MalformedCallbackError,
    TokenExchangeError,
)
from tests.constants import AUTHORIZE_URL, CLIENT_ID, CLIENT_SECRET, TOKEN_URL


if TYPE_CHECKING:
    from collections.abc import Callable

    from tests.helpers import FakeBrowser, TokenEndpoint


ENDPOINT = ProviderEndpoint(authorization_endpoint=AUTHORIZE_URL, token_endpoint=TOKEN_URL)


@pytest.fixture
def make_session(token_endpoint: TokenEndpoint) -> Callable[..., AuthorizationSession]:
    """Build sessions on an ephemeral loopback port with the mock token endpoint."""

    def factory(launcher: Any = None, **kwargs: Any) -> AuthorizationSession:
        options: dict[str, Any] = {
            "redirect_port": 0,
            "redirect_host": "127.0.0.1",
            "auth_timeout": 5.0,
            "transport": token_endpoint.transport,
        }
        options.update(kwargs)
        return AuthorizationSession(
            ENDPOINT, CLIENT_ID, CLIENT_SECRET, launcher=launcher, **options
        )

    return factory


def _port_is_free(port: int) -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind(("127.0.0.1", port))
            sock.listen(1)
        except OSError:
            return False
    return True


class TestAuthorizationUrl:
    """Tests for authorization request URL construction."""

    def test_required_parameters(self) -> None:
        """The URL carries the code-flow parameters in order."""
        session = AuthorizationSession(ENDPOINT, CLIENT_ID)

        url = session.authorization_url()

        assert url == (
            f"{AUTHORIZE_URL}?response_type=code&client_id={CLIENT_ID}"
            "&redirect_uri=http%3A%2F%2Flocalhost%3A6502%2F&response_mode=query"
        )

    def test_scope_is_percent_encoded(self) -> None:
        """Spaces in the scope are encoded as %20."""
        session = AuthorizationSession(ENDPOINT, CLIENT_ID)

        url = session.authorization_url("openid email offline_access")

        assert "&scope=openid%20email%20offline_access" in url
        assert "+" not in url

    def test_scope_list_is_joined(self) -> None:
        """A list of scopes is joined with spaces."""
        session = AuthorizationSession(ENDPOINT, CLIENT_ID)

        url = session.authorization_url(["openid", "https://graph.microsoft.com/User.Read"])

        assert "&scope=openid%20https%3A%2F%2Fgraph.microsoft.com%2FUser.Read" in url

    @pytest.mark.parametrize("scope", [None, "", []])
    def test_empty_scope_is_omitted(self, scope: Any) -> None:
        """No scope parameter is sent when the scope is empty."""
        session = AuthorizationSession(ENDPOINT, CLIENT_ID)
        assert "scope=" not in session.authorization_url(scope)

    def test_login_hint(self) -> None:
        """login_hint is sent only when configured, and may be changed later."""
        session = AuthorizationSession(ENDPOINT, CLIENT_ID)
        assert "login_hint" not in session.authorization_url()

        session.login_hint = "user+test@example.com"

        assert session.authorization_url().endswith("&login_hint=user%2Btest%40example.com")

    def test_client_id_is_percent_encoded(self) -> None:
        """Reserved characters in the client ID are escaped."""
        session = AuthorizationSession(ENDPOINT, "id&evil=1")
        assert "client_id=id%26evil%3D1" in session.authorization_url()

    def test_extra_params(self) -> None:
        """Extra parameters are appended after the standard ones."""
        session = AuthorizationSession(ENDPOINT, CLIENT_ID, extra_params={"prompt": "select_account"})
        assert session.authorization_url().endswith("&prompt=select_account")

    def test_endpoint_with_query(self) -> None:
        """An endpoint that already has a query string is extended with '&'."""
        endpoint = ProviderEndpoint(
            authorization_endpoint="https://idp.example.com/authorize?p=B2C_1_signin",
            token_endpoint=TOKEN_URL,
        )
        session = AuthorizationSession(endpoint, CLIENT_ID)
        assert session.authorization_url().startswith(
            "https://idp.example.com/authorize?p=B2C_1_signin&response_type=code"
        )

    def test_redirect_uri_reflects_configuration(self) -> None:
        """The redirect URI is built from the configured host and port."""
        session = AuthorizationSession(ENDPOINT, CLIENT_ID, redirect_port=8400, redirect_host="127.0.0.1")
        assert session.redirect_uri == "http://127.0.0.1:8400/"


class TestAuthorize:
    """Tests for the interactive authorization code flow."""

    def test_success(
        self,
        make_session: Callable[..., AuthorizationSession],
        browser: Callable[[str | None], FakeBrowser],
        token_endpoint: TokenEndpoint,
    ) -> None:
        """A code on the redirect is exchanged for tokens."""
        fake = browser("code=ABC123")
        session = make_session(fake)

        assert session.authorize("openid offline_access") is True

        assert session.access_token == "eyJ0eXAiOiJKV1QiLCJhbGciOiJSUzI1NiJ9.at"
        assert session.id_token == "eyJ0eXAiOiJKV1QifQ.id"
        assert session.refresh_token == "0.AAAA-refresh-1"
        assert session.expires_in == 3599
        assert session.token_type == "Bearer"
        assert session.error is None
        assert session.last_exception is None
        assert session.flow_state == AuthFlowState.EXCHANGE_SUCCEEDED

        form = token_endpoint.last_form
        assert form["code"] == "ABC123"
        assert form["grant_type"] == "authorization_code"
        assert form["client_id"] == CLIENT_ID
        assert form["client_secret"] == CLIENT_SECRET
        assert form["scope"] == "openid offline_access"
        assert form["redirect_uri"] == fake.last_params["redirect_uri"]

    def test_flow_states_are_logged(
        self,
        make_session: Callable[..., AuthorizationSession],
        browser: Callable[[str | None], FakeBrowser],
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """Each step between launch and callback is visible in the debug log."""
        session = make_session(browser("code=ABC123"))

        with caplog.at_level(logging.DEBUG, logger="nativeauth"):
            assert session.authorize("openid") is True

        launched = caplog.text.index(AuthFlowState.BROWSER_LAUNCHED.value)
        awaiting = caplog.text.index(AuthFlowState.AWAITING_CALLBACK.value)
        assert launched < awaiting

    def test_launcher_receives_authorization_url(
        self,
        make_session: Callable[..., AuthorizationSession],
        browser: Callable[[str | None], FakeBrowser],
    ) -> None:
        """The launcher is handed the provider URL with the live redirect URI."""
        fake = browser("code=ABC123")
        session = make_session(fake, login_hint="alice@example.com")

        session.authorize(["openid", "email"])

        assert len(fake.urls) == 1
        assert urlparse(fake.urls[0]).hostname == "idp.example.com"
        params = fake.last_params
        assert params["response_type"] == "code"
        assert params["response_mode"] == "query"
        assert params["scope"] == "openid email"
        assert params["login_hint"] == "alice@example.com"
        assert params["redirect_uri"].startswith("http://127.0.0.1:")

    def test_provider_error(
        self,
        make_session: Callable[..., AuthorizationSession],
        browser: Callable[[str | None], FakeBrowser],
        token_endpoint: TokenEndpoint,
    ) -> None:
        """An error on the redirect fails the call without an exchange."""
        session = make_session(browser("error=access_denied&error_description=User+declined"))

        assert session.authorize("openid") is False

        assert session.error == "access_denied"
        assert isinstance(session.last_exception, AuthorizationDenied)
        assert session.last_exception.description == "User declined"
        assert session.access_token is None
        assert session.flow_state == AuthFlowState.EXCHANGE_FAILED
        assert token_endpoint.requests == []

    @pytest.mark.parametrize("query", ["", "state=xyz", "code="])
    def test_malformed_callback(
        self,
        make_session: Callable[..., AuthorizationSession],
        browser: Callable[[str | None], FakeBrowser],
        token_endpoint: TokenEndpoint,
        query: str,
    ) -> None:
        """A redirect without a code fails with a generic message."""
        session = make_session(browser(query))

        assert session.authorize() is False

        assert session.error == "Malformed authorization response."
        assert isinstance(session.last_exception, MalformedCallbackError)
        assert token_endpoint.requests == []

    def test_exchange_failure(
        self,
        make_session: Callable[..., AuthorizationSession],
        browser: Callable[[str | None], FakeBrowser],
        token_endpoint: TokenEndpoint,
    ) -> None:
        """A rejected exchange reports the status and body."""
        token_endpoint.status = 400
        token_endpoint.body = b'{"error":"invalid_grant"}'
        session = make_session(browser("code=ABC123"))

        assert session.authorize() is False

        assert session.error is not None
        assert "400" in session.error
        assert '{"error":"invalid_grant"}' in session.error
        assert isinstance(session.last_exception, TokenExchangeError)
        assert session.tokens == TokenSet(error=session.error)
        assert session.flow_state == AuthFlowState.EXCHANGE_FAILED

    def test_timeout(
        self,
        make_session: Callable[..., AuthorizationSession],
        browser: Callable[[str | None], FakeBrowser],
    ) -> None:
        """The wait gives up after auth_timeout."""
        session = make_session(browser(None), auth_timeout=0.3)

        assert session.authorize() is False

        assert session.error == "Timed out waiting for browser callback after 0.3s"
        assert isinstance(session.last_exception, AuthFlowTimeout)
        assert session.last_exception.timeout == 0.3
        assert session.flow_state == AuthFlowState.TIMED_OUT

    def test_cancel(
        self,
        make_session: Callable[..., AuthorizationSession],
        browser: Callable[[str | None], FakeBrowser],
    ) -> None:
        """cancel() from another thread ends the wait."""
        session = make_session(browser(None), auth_timeout=None)
        timer = threading.Timer(0.2, session.cancel)
        timer.start()
        try:
            assert session.authorize() is False
        finally:
            timer.cancel()

        assert isinstance(session.last_exception, AuthFlowCancelled)
        assert session.flow_state == AuthFlowState.CANCELLED

    def test_port_in_use(
        self,
        make_session: Callable[..., AuthorizationSession],
        browser: Callable[[str | None], FakeBrowser],
    ) -> None:
        """A bind failure is reported and the browser is never opened."""
        fake = browser("code=ABC123")
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as blocker:
            blocker.bind(("127.0.0.1", 0))
            blocker.listen(1)
            session = make_session(fake, redirect_port=blocker.getsockname()[1])

            assert session.authorize() is False

        assert isinstance(session.last_exception, CallbackServerError)
        assert session.error is not None
        assert "Unable to listen" in session.error
        assert fake.urls == []

    def test_port_out_of_range(
        self,
        make_session: Callable[..., AuthorizationSession],
        browser: Callable[[str | None], FakeBrowser],
    ) -> None:
        """An unbindable port number is reported like any other bind failure."""
        fake = browser("code=ABC123")
        session = make_session(fake, redirect_port=70000)

        assert session.authorize("openid") is False

        assert isinstance(session.last_exception, CallbackServerError)
        assert session.error is not None
        assert "Unable to listen" in session.error
        assert fake.urls == []

    @pytest.mark.parametrize("result", [False, "raise"])
    def test_browser_launch_failure(
        self,
        make_session: Callable[..., AuthorizationSession],
        free_port: int,
        result: Any,
    ) -> None:
        """A failed launch is reported and the listener is released."""

        def launcher(url: str) -> bool:
            if result == "raise":
                msg = "no display"
                raise RuntimeError(msg)
            return result

        session = make_session(launcher, redirect_port=free_port)

        assert session.authorize() is False

        assert isinstance(session.last_exception, BrowserLaunchError)
        assert _port_is_free(free_port)

    @pytest.mark.parametrize(
        "query",
        ["code=ABC123", "error=access_denied", ""],
    )
    def test_listener_released_on_every_path(
        self,
        make_session: Callable[..., AuthorizationSession],
        browser: Callable[[str | None], FakeBrowser],
        free_port: int,
        query: str,
    ) -> None:
        """The fixed port can be reused by the next call whatever the outcome."""
        session = make_session(browser(query), redirect_port=free_port)

        session.authorize()
        assert _port_is_free(free_port)
        session.authorize()

        assert not isinstance(session.last_exception, CallbackServerError)

    def test_timeout_releases_listener(
        self,
        make_session: Callable[..., AuthorizationSession],
        browser: Callable[[str | None], FakeBrowser],
        free_port: int,
    ) -> None:
        """The listener is stopped when the wait times out."""
        session = make_session(browser(None), redirect_port=free_port, auth_timeout=0.2)

        session.authorize()

        assert _port_is_free(free_port)

    def test_sequential_calls_do_not_mix_tokens(
        self,
        make_session: Callable[..., AuthorizationSession],
        browser: Callable[[str | None], FakeBrowser],
        token_endpoint: TokenEndpoint,
    ) -> None:
        """A second authorize() never exposes fields from the first."""
        session = make_session(browser("code=ABC123"))
        assert session.authorize() is True
        first = session.tokens

        token_endpoint.body = b'{"access_token":"second","token_type":"Bearer"}'
        assert session.authorize() is True

        assert session.tokens == TokenSet(access_token="second", token_type="Bearer")
        assert first.refresh_token == "0.AAAA-refresh-1"

    def test_failure_clears_previous_tokens(
        self,
        make_session: Callable[..., AuthorizationSession],
        browser: Callable[[str | None], FakeBrowser],
        token_endpoint: TokenEndpoint,
    ) -> None:
        """A failed call leaves only the error behind."""
        session = make_session(browser("code=ABC123"))
        assert session.authorize() is True

        token_endpoint.status = 500
        token_endpoint.body = b"upstream error"
        assert session.authorize() is False

        assert session.access_token is None
        assert session.id_token is None
        assert session.refresh_token is None
        assert session.expires_in == 0
        assert session.token_type is None
        assert session.error == "Error converting OAuth Token: HTTP 500: upstream error"

    def test_tokens_returns_a_copy(
        self,
        make_session: Callable[..., AuthorizationSession],
        browser: Callable[[str | None], FakeBrowser],
    ) -> None:
        """Mutating the returned TokenSet does not affect the session."""
        session = make_session(browser("code=ABC123"))
        session.authorize()

        tokens = session.tokens
        tokens.access_token = "tampered"

        assert session.access_token != "tampered"


class TestRefresh:
    """Tests for the refresh token grant."""

    def test_rotation(self, make_session: Callable[..., AuthorizationSession], token_endpoint: TokenEndpoint) -> None:
        """A new refresh_token in the response replaces the old one."""
        token_endpoint.body = b'{"access_token":"at2","refresh_token":"rtok2","expires_in":"3600"}'
        session = make_session()

        assert session.refresh("rtok") is True

        assert session.refresh_token == "rtok2"
        assert session.access_token == "at2"
        assert session.expires_in == 3600
        assert token_endpoint.last_form == {
            "refresh_token": "rtok",
            "client_id": CLIENT_ID,
            "client_secret": CLIENT_SECRET,
            "grant_type": "refresh_token",
        }

    def test_refresh_token_kept_when_not_rotated(
        self, make_session: Callable[..., AuthorizationSession], token_endpoint: TokenEndpoint
    ) -> None:
        """Without a new refresh_token the supplied one is kept."""
        token_endpoint.body = b'{"access_token":"at2"}'
        session = make_session()

        assert session.refresh("rtok") is True

        assert session.refresh_token == "rtok"

    def test_refresh_after_authorize(
        self,
        make_session: Callable[..., AuthorizationSession],
        browser: Callable[[str | None], FakeBrowser],
        token_endpoint: TokenEndpoint,
    ) -> None:
        """Fields absent from the refresh response are cleared, not carried over."""
        session = make_session(browser("code=ABC123"))
        assert session.authorize() is True
        assert session.id_token is not None

        token_endpoint.body = b'{"access_token":"at2","refresh_token":"rtok2"}'
        assert session.refresh(session.refresh_token or "") is True

        assert session.access_token == "at2"
        assert session.refresh_token == "rtok2"
        assert session.id_token is None
        assert session.expires_in == 0

    def test_refresh_failure(
        self, make_session: Callable[..., AuthorizationSession], token_endpoint: TokenEndpoint
    ) -> None:
        """A rejected refresh clears every token and sets the error."""
        token_endpoint.status = 400
        token_endpoint.body = b'{"error":"invalid_grant"}'
        session = make_session()

        assert session.refresh("rtok") is False

        assert session.refresh_token is None
        assert session.access_token is None
        assert session.error == 'Error converting OAuth Token: HTTP 400: {"error":"invalid_grant"}'

    def test_deeply_nested_response_is_a_failure(
        self, make_session: Callable[..., AuthorizationSession], token_endpoint: TokenEndpoint
    ) -> None:
        """A pathologically nested body is reported, not raised."""
        token_endpoint.body = b'{"access_token":"x","extra":' + b'{"a":' * 2000 + b"1" + b"}" * 2001
        session = make_session()

        assert session.refresh("rtok") is False

        assert isinstance(session.last_exception, TokenExchangeError)
        assert session.access_token is None
        assert session.error is not None
        assert "nested too deeply" in session.error

    def test_refresh_never_opens_browser(
        self,
        make_session: Callable[..., AuthorizationSession],
        browser: Callable[[str | None], FakeBrowser],
    ) -> None:
        """The refresh path is non-interactive."""
        fake = browser("code=ABC123")
        session = make_session(fake)

        session.refresh("rtok")

        assert fake.urls == []


class TestSessionLifecycle:
    """Tests for session resource handling."""

    def test_context_manager_closes_http_client(self, make_session: Callable[..., AuthorizationSession]) -> None:
        """Leaving the context closes the token endpoint client."""
        with make_session() as session:
            session.refresh("rtok")
            client = session._exchange_client._http_client
            assert client is not None

        assert client.is_closed

    def test_initial_state(self) -> None:
        """A new session has an empty token set."""
        session = AuthorizationSession(ENDPOINT, CLIENT_ID)
        assert session.tokens == TokenSet()
        assert session.flow_state == AuthFlowState.IDLE
        assert session.error is None
