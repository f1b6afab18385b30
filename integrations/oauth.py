"""Linear OAuth 2.0 authorization-code grant."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from urllib.parse import urlencode

import httpx
from django.conf import settings

logger = logging.getLogger("integrations.oauth")


class OAuthError(Exception):
    """Raised when the provider rejects the code exchange or is unreachable."""

    def __init__(self, status_code: int | None, detail: str = "") -> None:
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"OAuth token exchange failed ({status_code}): {detail[:200]}")


@dataclass(frozen=True, slots=True)
class TokenGrant:
    access_token: str
    token_type: str = "Bearer"
    expires_in: int | None = None
    scope: str | None = None


def is_configured() -> bool:
    """Return True when both client credentials are present."""
    return bool(settings.LINEAR_CLIENT_ID and settings.LINEAR_CLIENT_SECRET)


def authorization_url(redirect_uri: str, state: str) -> str:
    """Build the provider URL the browser is sent to for consent."""
    params = {
        "client_id": settings.LINEAR_CLIENT_ID,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "scope": settings.LINEAR_OAUTH_SCOPE,
        "state": state,
    }
    return f"{settings.LINEAR_AUTHORIZE_URL}?{urlencode(params)}"


def exchange_code(code: str, redirect_uri: str) -> TokenGrant:
    """Exchange an authorization code for an access token.

    Args:
        code: The ``code`` query parameter the provider redirected back with.
        redirect_uri: The same redirect URI used to obtain the code.

    Returns:
        The granted token.

    Raises:
        OAuthError: If the provider is unreachable, answers with a non-2xx
            status, or the body carries no ``access_token``.
    """
    form = {
        "grant_type": "authorization_code",
        "code": code,
        "redirect_uri": redirect_uri,
        "client_id": settings.LINEAR_CLIENT_ID,
        "client_secret": settings.LINEAR_CLIENT_SECRET,
    }
    try:
        response = httpx.post(
            settings.LINEAR_TOKEN_URL,
            data=form,
            headers={"Accept": "application/json"},
            timeout=10,
        )
    except httpx.HTTPError as exc:
        logger.error("Could not reach OAuth token endpoint: %s", exc)
        raise OAuthError(None, str(exc)) from exc

    if not 200 <= response.status_code < 300:
        logger.error(
            "OAuth token endpoint returned %s: %s", response.status_code, response.text[:200]
        )
        raise OAuthError(response.status_code, response.text)

    try:
        data = response.json()
    except ValueError as exc:
        raise OAuthError(response.status_code, "token response is not JSON") from exc

    access_token = data.get("access_token") if isinstance(data, dict) else None
    if not access_token:
        logger.error("OAuth token response carried no access_token")
        raise OAuthError(response.status_code, "missing access_token")

    expires_in = data.get("expires_in")
    if expires_in is not None:
        try:
            expires_in = int(expires_in)
        except (TypeError, ValueError) as exc:
            logger.error("OAuth token response carried an invalid expires_in")
            raise OAuthError(response.status_code, "invalid expires_in") from exc

    return TokenGrant(
        access_token=access_token,
        token_type=data.get("token_type") or "Bearer",
        expires_in=expires_in or None,
        scope=data.get("scope") if isinstance(data.get("scope"), str) else None,
    )
