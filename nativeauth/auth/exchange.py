"""Token endpoint client.

Posts a form-encoded grant to the provider's token endpoint and
streams a successful response through ``TokenFieldReader``. Both the
authorization-code grant and the refresh-token grant go through
``TokenExchangeClient.exchange``.
"""

# pylint: disable=logging-too-many-args

from __future__ import annotations

import logging

from typing import TYPE_CHECKING
from urllib.parse import urlparse

import httpx

from ..exceptions import TokenExchangeError, TokenStreamError
from ..log import redact_sensitive_data
from .token_reader import TokenFieldReader
from .types import TokenSet


if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from .types import ClientCredentials


logger = logging.getLogger("nativeauth.auth")

_ERROR_PREFIX = "Error converting OAuth Token"


def authorization_code_fields(
    code: str,
    credentials: ClientCredentials,
    redirect_uri: str,
    scope: str | None = None,
) -> dict[str, str]:
    """Build the form fields of an ``authorization_code`` grant.

    Parameters
    ----------
    code : str
        The authorization code from the redirect.
    credentials : ClientCredentials
        The client registration; the secret is omitted when empty.
    redirect_uri : str
        The redirect URI used in the authorization request.
    scope : str, optional
        Space-separated scopes; omitted when empty.

    Returns
    -------
    dict[str, str]
        Unencoded form fields, ready for ``TokenExchangeClient.exchange``.
    """
    fields = {"code": code, "client_id": credentials.client_id}
    if credentials.client_secret:
        fields["client_secret"] = credentials.client_secret
    if scope:
        fields["scope"] = scope
    fields["redirect_uri"] = redirect_uri
    fields["grant_type"] = "authorization_code"
    return fields


def refresh_token_fields(refresh_token: str, credentials: ClientCredentials) -> dict[str, str]:
    """Build the form fields of a ``refresh_token`` grant."""
    fields = {"refresh_token": refresh_token, "client_id": credentials.client_id}
    if credentials.client_secret:
        fields["client_secret"] = credentials.client_secret
    fields["grant_type"] = "refresh_token"
    return fields


def _parse_expires_in(value: str) -> int:
    try:
        return int(value)
    except ValueError:
        logger.debug("Ignoring non-integer expires_in %r", value)
        return 0


class TokenExchangeClient:
    """Synchronous client for one provider's token endpoint.

    Parameters
    ----------
    token_endpoint : str
        The provider's token URL.
    timeout : float
        Request timeout in seconds (default 30).
    transport : httpx.BaseTransport, optional
        Custom transport, e.g. ``httpx.MockTransport`` in tests.
    """

    def __init__(
        self,
        token_endpoint: str,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the exchange client."""
        self.token_endpoint = token_endpoint
        self.timeout = timeout
        self._transport = transport
        self._http_client: httpx.Client | None = None

    @property
    def provider(self) -> str:
        """Host name of the token endpoint, used as error context."""
        return urlparse(self.token_endpoint).hostname or self.token_endpoint

    def _get_client(self) -> httpx.Client:
        """Get or create the shared HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.Client(timeout=self.timeout, transport=self._transport)
        return self._http_client

    def close(self) -> None:
        """Close the shared HTTP client."""
        if self._http_client is not None and not self._http_client.is_closed:
            self._http_client.close()
        self._http_client = None

    def exchange(self, fields: Mapping[str, str], refresh_token: str | None = None) -> TokenSet:
        """POST a grant to the token endpoint and read the resulting tokens.

        Parameters
        ----------
        fields : Mapping[str, str]
            Unencoded form fields; httpx form-encodes each one.
        refresh_token : str, optional
            Refresh token to carry over when the response does not rotate it.

        Returns
        -------
        TokenSet
            A new token set built from the response.

        Raises
        ------
        TokenExchangeError
            On a non-2xx response (with ``status`` and verbatim ``body``),
            a transport failure, or a 2xx body that is not a JSON object.
            No retry is attempted.
        """
        logger.debug(
            "Token exchange POST %s fields=%s",
            self.token_endpoint,
            redact_sensitive_data(dict(fields)),
        )
        client = self._get_client()
        try:
            with client.stream(
                "POST",
                self.token_endpoint,
                data=dict(fields),
                headers={"Accept": "application/json"},
            ) as resp:
                if not resp.is_success:
                    resp.read()
                    body = resp.text
                    logger.info(
                        "Token endpoint %s answered HTTP %s", self.token_endpoint, resp.status_code
                    )
                    msg = f"{_ERROR_PREFIX}: HTTP {resp.status_code}: {body}"
                    raise TokenExchangeError(
                        msg, status=resp.status_code, body=body, provider=self.provider
                    )
                tokens = self._read_tokens(resp.iter_bytes(), refresh_token)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.info("Token exchange with %s failed: %s", self.token_endpoint, exc)
            msg = f"{_ERROR_PREFIX}: {exc.__class__.__name__}: {exc}"
            raise TokenExchangeError(msg, provider=self.provider) from exc
        except TokenStreamError as exc:
            msg = f"{_ERROR_PREFIX}: malformed token response: {exc.message}"
            raise TokenExchangeError(msg, provider=self.provider) from exc

        logger.debug(
            "Token exchange succeeded: token_type=%s expires_in=%s id_token=%s refresh_token=%s",
            tokens.token_type,
            tokens.expires_in,
            tokens.id_token is not None,
            tokens.refresh_token is not None,
        )
        return tokens

    @staticmethod
    def _read_tokens(chunks: Iterable[bytes], refresh_token: str | None) -> TokenSet:
        """Populate a token set field by field; unknown names are skipped."""
        tokens = TokenSet(refresh_token=refresh_token)
        for name, value in TokenFieldReader(chunks):
            if name == "access_token":
                tokens.access_token = value
            elif name == "id_token":
                tokens.id_token = value
            elif name == "refresh_token":
                tokens.refresh_token = value
            elif name == "expires_in":
                tokens.expires_in = _parse_expires_in(value)
            elif name == "token_type":
                tokens.token_type = value
        return tokens
