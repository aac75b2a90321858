"""nativeauth exception hierarchy.

All nativeauth-specific exceptions inherit from NativeAuthException, enabling
catch-all handling while supporting specific error types.
"""

from __future__ import annotations

from typing import Any


class NativeAuthException(Exception):
    """Base exception for all nativeauth errors."""

    def __init__(self, message: str, **context: Any) -> None:
        """Initialize nativeauth exception.

        Parameters
        ----------
        message : str
            Human-readable error message.
        **context : Any
            Additional context (provider, flow_id, status, etc.).
        """
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        """Format exception with context."""
        if self.context:
            ctx = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({ctx})"
        return self.message


class ConfigurationError(NativeAuthException):
    """Configuration is incomplete or invalid.

    Raised when settings cannot be turned into a working session,
    e.g. an unknown provider or a custom provider without endpoints.
    """


class TokenStreamError(NativeAuthException, ValueError):
    """A token response could not be scanned.

    Raised by the token field reader for truncated or corrupt JSON,
    so that a damaged response is never mistaken for a clean end of object.
    """

    def __init__(self, message: str, position: int | None = None, **context: Any) -> None:
        """Initialize token stream error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        position : int, optional
            Character offset in the decoded stream where scanning failed.
        **context : Any
            Additional context.
        """
        super().__init__(message, position=position, **context)
        self.position = position


class AuthenticationError(NativeAuthException):
    """Base exception for all authentication failures.

    Raised when an authentication operation fails, including the
    loopback listener, the browser hand-off and the token exchange.
    """

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        flow_id: str | None = None,
        **context: Any,
    ) -> None:
        """Initialize authentication error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        provider : str, optional
            Host name of the identity provider (e.g. "accounts.google.com").
        flow_id : str, optional
            The unique identifier of the auth flow that failed.
        **context : Any
            Additional context.
        """
        super().__init__(message, provider=provider, flow_id=flow_id, **context)
        self.provider = provider
        self.flow_id = flow_id


class CallbackServerError(AuthenticationError):
    """The loopback callback listener could not be started.

    Raised when the redirect port cannot be bound, typically
    because another process is already listening on it.
    """


class BrowserLaunchError(AuthenticationError):
    """The authorization URL could not be handed to a browser."""


class AuthorizationDenied(AuthenticationError):
    """The identity provider reported an error on the redirect.

    The message is the raw ``error`` query parameter (for example
    ``access_denied``) so callers can match on it directly.
    """

    def __init__(
        self,
        error: str,
        description: str | None = None,
        provider: str | None = None,
        flow_id: str | None = None,
        **context: Any,
    ) -> None:
        """Initialize authorization denied error.

        Parameters
        ----------
        error : str
            The ``error`` parameter sent by the provider.
        description : str, optional
            The ``error_description`` parameter, if any.
        provider : str, optional
            Host name of the identity provider.
        flow_id : str, optional
            The unique identifier of the auth flow.
        **context : Any
            Additional context.
        """
        super().__init__(error, provider=provider, flow_id=flow_id, **context)
        self.error = error
        self.description = description


class MalformedCallbackError(AuthenticationError):
    """The redirect arrived without an authorization code."""


class AuthFlowCancelled(AuthenticationError):
    """``cancel()`` was called while waiting for the redirect."""


class AuthFlowTimeout(AuthenticationError):
    """No redirect arrived before the wait expired.

    ``timeout`` is the configured wait in seconds. The listener is
    stopped before the session reports the failure.
    """

    def __init__(
        self,
        message: str,
        timeout: float,
        provider: str | None = None,
        flow_id: str | None = None,
        **context: Any,
    ) -> None:
        """Initialize timeout error with the expired wait in seconds."""
        super().__init__(message, provider=provider, flow_id=flow_id, timeout=timeout, **context)
        self.timeout = timeout


class TokenError(AuthenticationError):
    """Base exception for token-related failures."""


class TokenExchangeError(TokenError):
    """The token endpoint rejected the request or could not be reached.

    ``status`` and ``body`` are set when the endpoint answered with a
    non-2xx response; both are ``None`` for transport failures.
    """

    def __init__(
        self,
        message: str,
        status: int | None = None,
        body: str | None = None,
        provider: str | None = None,
        **context: Any,
    ) -> None:
        """Initialize token exchange error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        status : int, optional
            HTTP status code returned by the token endpoint.
        body : str, optional
            Verbatim response body returned by the token endpoint.
        provider : str, optional
            Host name of the identity provider.
        **context : Any
            Additional context.
        """
        super().__init__(message, provider=provider, status=status, **context)
        self.status = status
        self.body = body
