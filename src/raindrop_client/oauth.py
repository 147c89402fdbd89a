"""
OAuth2 authorization-code flow for Raindrop.io.

1. ``authorization_url()`` -> the user authorizes in a browser.
2. Raindrop redirects to ``redirect_uri`` with ``code`` or ``error``;
   ``handle_authorization_redirect()`` turns that into a code and a page.
3. ``exchange_code()`` trades the code for an ``AccessToken``.
4. ``refresh()`` trades the refresh token for a new one.

The manager keeps no tokens; the caller stores them.
"""
import html
import logging
from typing import Mapping, Optional

import httpx

from .config import ClientConfig
from .errors import AuthorizationCodeError, TokenExchangeError
from .models import AccessToken, AuthorizationRedirect
from .transport import build_request, fetch, join_url, new_http_client

logger = logging.getLogger(__name__)

ENDPOINT_AUTHORIZE = "/oauth/authorize"
ENDPOINT_ACCESS_TOKEN = "/oauth/access_token"


def extract_authorization_code(params: Mapping[str, str], status_code: Optional[int] = None) -> str:
    """
    Pull the authorization code out of the redirect's query parameters.

    Raises AuthorizationCodeError with the ``error`` parameter when the user
    denied access, or with the redirect's status code when neither parameter
    is present.
    """
    code = params.get("code") or ""
    auth_error = params.get("error") or ""
    if not code and auth_error:
        raise AuthorizationCodeError(auth_error, status_code)
    if not code:
        raise AuthorizationCodeError(str(status_code), status_code)
    return code


def handle_authorization_redirect(
    params: Mapping[str, str], status_code: Optional[int] = None
) -> AuthorizationRedirect:
    """Redirect handler: returns the code (or error) and the HTML page for the browser."""
    try:
        code = extract_authorization_code(params, status_code)
    except AuthorizationCodeError as e:
        logger.error("%s", e)
        return AuthorizationRedirect(
            error=e.reason,
            html=f"<h1>Authorization failed</h1><p>{html.escape(e.reason)}</p>",
        )
    return AuthorizationRedirect(
        code=code,
        html=f"<h1>You've been authorized</h1><p>{html.escape(code)}</p>",
    )


class TokenManager:
    def __init__(self, config: ClientConfig, client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self._owns_client = client is None
        self.client = client or new_http_client(config.timeout)

    async def close(self):
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.close()

    def authorization_url(self) -> str:
        """URL the user opens to authorize the app. No network call."""
        url = httpx.URL(
            join_url(self.config.auth_host, ENDPOINT_AUTHORIZE),
            params={"client_id": self.config.client_id, "redirect_uri": self.config.redirect_uri},
        )
        return str(url)

    async def exchange_code(self, code: str, timeout: Optional[float] = None) -> AccessToken:
        """Exchange an authorization code for an access token."""
        body = {
            "code": code,
            "client_id": self.config.client_id,
            "client_secret": self.config.client_secret,
            "redirect_uri": self.config.redirect_uri,
            "grant_type": self.config.authorization_grant_type,
        }
        return await self._token_request(body, timeout)

    async def refresh(self, refresh_token: str, timeout: Optional[float] = None) -> AccessToken:
        """Get a new access token from a refresh token."""
        if self.config.refresh_grant_type == self.config.authorization_grant_type:
            logger.warning(
                "Refreshing with grant_type=%r, the same value as the code exchange",
                self.config.refresh_grant_type,
            )
        body = {
            "client_id": self.config.client_id,
            "client_secret": self.config.client_secret,
            "grant_type": self.config.refresh_grant_type,
            "refresh_token": refresh_token,
        }
        return await self._token_request(body, timeout)

    async def _token_request(self, body: dict, timeout: Optional[float]) -> AccessToken:
        request = build_request(
            self.client,
            "POST",
            join_url(self.config.auth_host, ENDPOINT_ACCESS_TOKEN),
            body=body,
            timeout=timeout,
        )
        token = await fetch(self.client, request, AccessToken)
        if not token.ok:
            # e.g. {"result": false, "status": 400, "errorMessage": "Incorrect redirect_uri"}
            message = token.errorMessage or token.error or "no access_token in response"
            raise TokenExchangeError(
                f"Token request rejected: {message}", status_code=token.status, error=token.error
            )
        return token
