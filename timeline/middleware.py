"""Access gate: redirect requests without a session to the login entry point."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from urllib.parse import urlencode

from django.conf import settings
from django.http import HttpResponseRedirect

from timeline.session import resolve_session

logger = logging.getLogger("timeline.middleware")

ALWAYS_EXEMPT_PATHS = ("/favicon.ico",)


def _matches(path: str, route: str) -> bool:
    return path == route or path.startswith(route + "/")


def is_public_path(path: str, public_paths: Iterable[str]) -> bool:
    """True when *path* is one of *public_paths* or lies beneath one."""
    return any(_matches(path, route) for route in public_paths)


def gate_decision(
    path: str,
    has_session: bool,
    public_paths: Iterable[str],
    login_url: str,
    exempt_prefixes: Iterable[str] = (),
) -> str | None:
    """Decide what to do with a request.

    Returns:
        ``None`` to let the request through, otherwise the URL to redirect
        to: the login entry point with the original path as ``callbackUrl``.
    """
    if has_session or is_public_path(path, public_paths):
        return None
    if any(path.startswith(prefix) for prefix in exempt_prefixes):
        return None
    return f"{login_url}?{urlencode({'callbackUrl': path})}"


def _static_prefix() -> str:
    return "/" + settings.STATIC_URL.lstrip("/")


class AccessGateMiddleware:
    """Attach ``request.session_context`` and enforce the gate.

    Must run after ``SessionMiddleware``.
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        context = resolve_session(request)
        request.session_context = context

        location = gate_decision(
            request.path,
            context.has_session,
            public_paths=settings.ACCESS_GATE_PUBLIC_PATHS,
            login_url=settings.LOGIN_ENTRY_POINT,
            exempt_prefixes=(_static_prefix(), *ALWAYS_EXEMPT_PATHS),
        )
        if location is not None:
            logger.debug("No session for %s, redirecting to login", request.path)
            return HttpResponseRedirect(location)

        return self.get_response(request)
