"""Session-backed credential store and per-request session context."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from urllib.parse import urlsplit

from django.conf import settings
from django.utils.dateparse import parse_datetime
from django.utils.http import url_has_allowed_host_and_scheme

from integrations.linear_records import Viewer
from integrations.oauth import TokenGrant

logger = logging.getLogger("timeline.session")

CREDENTIAL_SESSION_KEY = "linear.credential"
VIEWER_SESSION_KEY = "linear.viewer"


@dataclass(frozen=True, slots=True)
class Credential:
    """A provider access token held in the server-side session."""

    bearer_token: str = field(repr=False)
    issued_at: datetime
    expires_at: datetime | None = None

    @classmethod
    def from_grant(cls, grant: TokenGrant, now: datetime | None = None) -> Credential:
        issued_at = now or datetime.now(timezone.utc)
        expires_at = issued_at + timedelta(seconds=grant.expires_in) if grant.expires_in else None
        return cls(bearer_token=grant.access_token, issued_at=issued_at, expires_at=expires_at)

    @classmethod
    def from_session(cls, data) -> Credential | None:
        if not isinstance(data, dict) or not data.get("bearer_token"):
            return None
        issued_at = parse_datetime(data.get("issued_at") or "")
        if issued_at is None:
            return None
        expires_at = parse_datetime(data["expires_at"]) if data.get("expires_at") else None
        return cls(bearer_token=data["bearer_token"], issued_at=issued_at, expires_at=expires_at)

    def to_session(self) -> dict:
        return {
            "bearer_token": self.bearer_token,
            "issued_at": self.issued_at.isoformat(),
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
        }

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        return (now or datetime.now(timezone.utc)) >= self.expires_at


def _viewer_from_session(data) -> Viewer | None:
    if not isinstance(data, dict) or not data.get("id"):
        return None
    return Viewer(
        id=data["id"],
        name=data.get("name") or "",
        email=data.get("email"),
        avatar_url=data.get("avatar_url"),
    )


def _viewer_to_session(viewer: Viewer) -> dict:
    return {
        "id": viewer.id,
        "name": viewer.name,
        "email": viewer.email,
        "avatar_url": viewer.avatar_url,
    }


@dataclass(frozen=True, slots=True)
class SessionContext:
    """What a single request knows about its session.

    Resolved once per request by the access gate and handed to views, which
    pass ``bearer_token`` on to outbound calls.
    """

    session_token: str | None = field(default=None, repr=False)
    credential: Credential | None = None
    viewer: Viewer | None = None

    @property
    def has_session(self) -> bool:
        return self.session_token is not None

    @property
    def authenticated(self) -> bool:
        return self.credential is not None

    @property
    def bearer_token(self) -> str | None:
        return self.credential.bearer_token if self.credential else None


ANONYMOUS = SessionContext()


def resolve_session(request, now: datetime | None = None) -> SessionContext:
    """Read the session behind the request cookie.

    An expired credential is dropped from the session here, leaving the
    session itself in place; the request then carries no token.
    """
    session = request.session
    data = dict(session.items())
    if not data:
        return ANONYMOUS

    credential = Credential.from_session(data.get(CREDENTIAL_SESSION_KEY))
    if credential is not None and credential.is_expired(now):
        logger.info("Discarding expired Linear credential issued at %s", credential.issued_at)
        session.pop(CREDENTIAL_SESSION_KEY, None)
        credential = None

    return SessionContext(
        session_token=session.session_key,
        credential=credential,
        viewer=_viewer_from_session(data.get(VIEWER_SESSION_KEY)),
    )


def store_login(request, grant: TokenGrant, viewer: Viewer, now: datetime | None = None) -> SessionContext:
    """Persist a fresh credential under a new session key."""
    session = request.session
    session.cycle_key()
    credential = Credential.from_grant(grant, now)
    session[CREDENTIAL_SESSION_KEY] = credential.to_session()
    session[VIEWER_SESSION_KEY] = _viewer_to_session(viewer)
    logger.info("Signed in Linear user %s", viewer.id)
    return SessionContext(session_token=session.session_key, credential=credential, viewer=viewer)


def sign_out(request) -> None:
    """Destroy the session and the credential it holds."""
    request.session.flush()


def base_url(request) -> str:
    return (settings.APP_BASE_URL or request.build_absolute_uri("/")).rstrip("/")


def safe_redirect_url(url: str | None, base: str) -> str:
    """Return where to send the browser after sign-in or sign-out.

    Root-relative paths are resolved against *base*; absolute URLs are kept
    only when they share *base*'s origin. Anything else yields *base*.
    """
    if not url:
        return base
    origin = urlsplit(base)
    # Host names compare case-insensitively; the path is not used for the check.
    if not url_has_allowed_host_and_scheme(
        url.lower(),
        allowed_hosts={origin.netloc.lower()},
        require_https=origin.scheme.lower() == "https",
    ):
        return base
    if url.startswith("/"):
        return f"{base}{url}"
    if urlsplit(url).scheme.lower() == origin.scheme.lower():
        return url
    return base
