"""Preset identity provider endpoints.

Each preset binds the authorization and token endpoints of one
provider. The redirect URI (``http://localhost:6502/`` by default)
must be registered in the provider's application console:

- Microsoft: Azure portal, "Mobile and desktop applications" platform.
- Google: Cloud console, OAuth client of type "Desktop app".
- Facebook: developers.facebook.com/apps, "Facebook Login" valid OAuth redirect URIs.

Any other OAuth2 provider works through an explicit ``ProviderEndpoint``.
"""

from __future__ import annotations

from .types import ProviderEndpoint


MICROSOFT = ProviderEndpoint(
    authorization_endpoint="https://login.microsoftonline.com/common/oauth2/v2.0/authorize",
    token_endpoint="https://login.microsoftonline.com/common/oauth2/v2.0/token",  # noqa: S106
)

GOOGLE = ProviderEndpoint(
    authorization_endpoint="https://accounts.google.com/o/oauth2/v2/auth",
    token_endpoint="https://oauth2.googleapis.com/token",  # noqa: S106
)

FACEBOOK = ProviderEndpoint(
    authorization_endpoint="https://www.facebook.com/v10.0/dialog/oauth",
    token_endpoint="https://graph.facebook.com/oauth/access_token",  # noqa: S106
)

PROVIDERS: dict[str, ProviderEndpoint] = {
    "microsoft": MICROSOFT,
    "google": GOOGLE,
    "facebook": FACEBOOK,
}


def microsoft_endpoint(tenant_id: str = "common") -> ProviderEndpoint:
    """Build Microsoft identity platform v2.0 endpoints for a tenant.

    Parameters
    ----------
    tenant_id : str
        Azure AD tenant ID, or one of ``common``, ``organizations``, ``consumers``.

    Returns
    -------
    ProviderEndpoint
        The tenant's authorize and token endpoints.
    """
    base = f"https://login.microsoftonline.com/{tenant_id}/oauth2/v2.0"
    return ProviderEndpoint(
        authorization_endpoint=f"{base}/authorize",
        token_endpoint=f"{base}/token",
    )


def get_provider(name: str) -> ProviderEndpoint:
    """Look up a preset provider by name (case-insensitive).

    Raises
    ------
    KeyError
        If no preset exists for ``name``.
    """
    try:
        return PROVIDERS[name.lower()]
    except KeyError:
        known = ", ".join(sorted(PROVIDERS))
        msg = f"Unknown OAuth2 provider {name!r} (known: {known})"
        raise KeyError(msg) from None
