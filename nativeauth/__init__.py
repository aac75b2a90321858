"""nativeauth - OAuth2 sign-in for native applications.

Runs the authorization code grant the way desktop and command-line
programs need it: a loopback listener on a pre-registered port catches
the browser redirect, and the authorization code is exchanged for
access, ID and refresh tokens. Presets cover Microsoft, Google and
Facebook; any other provider works through ``ProviderEndpoint``.
"""

from .auth import (
    FACEBOOK,
    GOOGLE,
    MICROSOFT,
    AuthFlowState,
    AuthorizationSession,
    ProviderEndpoint,
    TokenFieldReader,
    TokenSet,
    create_facebook_oauth,
    create_google_oauth,
    create_microsoft_oauth,
    create_session_from_settings,
)
from .config import LogSettings, NativeAuthSettings, OAuth2Settings, get_settings
from .exceptions import (
    AuthenticationError,
    AuthFlowCancelled,
    AuthFlowTimeout,
    AuthorizationDenied,
    BrowserLaunchError,
    CallbackServerError,
    ConfigurationError,
    MalformedCallbackError,
    NativeAuthException,
    TokenError,
    TokenExchangeError,
    TokenStreamError,
)
from .log import enable_debug, get_logger, set_level


__version__ = "0.1.0"

__all__ = [
    "FACEBOOK",
    "GOOGLE",
    "MICROSOFT",
    "AuthFlowCancelled",
    "AuthFlowState",
    "AuthFlowTimeout",
    "AuthenticationError",
    "AuthorizationDenied",
    "AuthorizationSession",
    "BrowserLaunchError",
    "CallbackServerError",
    "ConfigurationError",
    "LogSettings",
    "MalformedCallbackError",
    "NativeAuthException",
    "NativeAuthSettings",
    "OAuth2Settings",
    "ProviderEndpoint",
    "TokenError",
    "TokenExchangeError",
    "TokenFieldReader",
    "TokenSet",
    "TokenStreamError",
    "__version__",
    "create_facebook_oauth",
    "create_google_oauth",
    "create_microsoft_oauth",
    "create_session_from_settings",
    "enable_debug",
    "get_logger",
    "get_settings",
    "set_level",
]
