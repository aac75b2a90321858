"""OAuth2 authorization code flow for native applications.

Provides provider presets, the loopback redirect listener, the token
endpoint client and the session that ties them together.
"""

from __future__ import annotations

from .callback_server import DEFAULT_REDIRECT_PORT, LoopbackCallbackServer
from .exchange import TokenExchangeClient, authorization_code_fields, refresh_token_fields
from .providers import (
    FACEBOOK,
    GOOGLE,
    MICROSOFT,
    PROVIDERS,
    get_provider,
    microsoft_endpoint,
)
from .session import (
    AuthorizationSession,
    create_facebook_oauth,
    create_google_oauth,
    create_microsoft_oauth,
    create_session_from_settings,
)
from .token_reader import TokenFieldReader
from .types import AuthFlowState, CallbackResult, ClientCredentials, ProviderEndpoint, TokenSet


__all__ = [
    "DEFAULT_REDIRECT_PORT",
    "FACEBOOK",
    "GOOGLE",
    "MICROSOFT",
    "PROVIDERS",
    "AuthFlowState",
    "AuthorizationSession",
    "CallbackResult",
    "ClientCredentials",
    "LoopbackCallbackServer",
    "ProviderEndpoint",
    "TokenExchangeClient",
    "TokenFieldReader",
    "TokenSet",
    "authorization_code_fields",
    "create_facebook_oauth",
    "create_google_oauth",
    "create_microsoft_oauth",
    "create_session_from_settings",
    "get_provider",
    "microsoft_endpoint",
    "refresh_token_fields",
]
