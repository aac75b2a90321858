"""Type definitions for the authorization code flow.

Shared types used by the session, the token exchange client and the
loopback callback server.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from urllib.parse import urlparse


@dataclass(frozen=True)
class ProviderEndpoint:
    """Authorization and token endpoints of an identity provider.

    Attributes
    ----------
    authorization_endpoint : str
        URL the user's browser is sent to for consent.
    token_endpoint : str
        URL the authorization code or refresh token is posted to.
    """

    authorization_endpoint: str
    token_endpoint: str

    @property
    def host(self) -> str:
        """Host name of the authorization endpoint."""
        return urlparse(self.authorization_endpoint).hostname or ""


@dataclass(frozen=True)
class ClientCredentials:
    """OAuth2 client registration.

    Attributes
    ----------
    client_id : str
        The client (application) ID issued by the provider.
    client_secret : str
        The client secret; empty for public clients.
    """

    client_id: str
    client_secret: str = ""

    def __repr__(self) -> str:
        """Hide the secret from reprs and tracebacks."""
        secret = "'********'" if self.client_secret else "''"
        return f"ClientCredentials(client_id={self.client_id!r}, client_secret={secret})"


@dataclass
class TokenSet:
    """Result of one token exchange attempt.

    A fresh instance is produced by every ``authorize``/``refresh`` call,
    so fields never mix values from two exchanges.

    Attributes
    ----------
    access_token : str or None
        The access token for API requests.
    id_token : str or None
        Optional OIDC ID token (JWT).
    refresh_token : str or None
        Refresh token, rotated by the provider or carried over from a refresh call.
    expires_in : int
        Token lifetime in seconds, ``0`` when absent or unparseable.
    token_type : str or None
        Token type, typically "Bearer".
    error : str or None
        Failure message; set only when the exchange failed.
    """

    access_token: str | None = None
    id_token: str | None = None
    refresh_token: str | None = None
    expires_in: int = 0
    token_type: str | None = None
    error: str | None = None

    @classmethod
    def failed(cls, error: str) -> TokenSet:
        """Create a cleared token set carrying only an error message."""
        return cls(error=error)


@dataclass(frozen=True)
class CallbackResult:
    """Query parameters captured from the single redirect request.

    Attributes
    ----------
    code : str or None
        The authorization code.
    error : str or None
        The provider's ``error`` parameter.
    error_description : str or None
        The provider's ``error_description`` parameter.
    path : str
        Request path the browser was redirected to.
    """

    code: str | None = None
    error: str | None = None
    error_description: str | None = None
    path: str = "/"


class AuthFlowState(str, Enum):
    """State of an authorization code flow."""

    IDLE = "idle"
    LISTENER_STARTED = "listener_started"
    BROWSER_LAUNCHED = "browser_launched"
    AWAITING_CALLBACK = "awaiting_callback"
    CALLBACK_RECEIVED = "callback_received"
    EXCHANGE_SUCCEEDED = "exchange_succeeded"
    EXCHANGE_FAILED = "exchange_failed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"
