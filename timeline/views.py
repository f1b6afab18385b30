"""View functions for sign-in, session state, and the Linear timeline API."""

import hmac
import logging
import secrets
from urllib.parse import urlencode

from django.conf import settings
from django.core import signing
from django.http import HttpResponseRedirect, JsonResponse
from django.urls import reverse
from django.utils import timezone
from django.views.decorators.http import require_GET, require_http_methods
from rest_framework.decorators import api_view
from rest_framework.response import Response

from integrations import oauth
from integrations.linear import (
    LinearAPIError,
    Unauthenticated,
    fetch_issues,
    fetch_users,
    fetch_viewer,
    fetch_workspace,
)
from integrations.linear_records import IssueSerializer, UserSerializer, ViewerSerializer
from integrations.oauth import OAuthError
from timeline.serializers import timeline_payload
from timeline.session import (
    base_url,
    resolve_session,
    safe_redirect_url,
    sign_out,
    store_login,
)

logger = logging.getLogger("timeline.views")

OAUTH_STATE_COOKIE = "linear_oauth_state"
OAUTH_STATE_SALT = "timeline.oauth.state"
NOT_AUTHENTICATED = {"error": "Not authenticated"}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _session_context(request):
    """Return the context the access gate resolved, resolving it if absent."""
    context = getattr(request, "session_context", None)
    return context if context is not None else resolve_session(request)


def _redirect_uri(request) -> str:
    return settings.LINEAR_REDIRECT_URI or request.build_absolute_uri(reverse("timeline:oauth_callback"))


def _abort_login(base: str, error: str) -> HttpResponseRedirect:
    response = HttpResponseRedirect(f"{base}/?{urlencode({'error': error})}")
    response.delete_cookie(OAUTH_STATE_COOKIE)
    return response


def _load_oauth_state(request) -> dict | None:
    raw = request.COOKIES.get(OAUTH_STATE_COOKIE, "")
    try:
        saved = signing.loads(raw, salt=OAUTH_STATE_SALT, max_age=settings.OAUTH_STATE_MAX_AGE)
    except signing.BadSignature:
        return None
    return saved if isinstance(saved, dict) else None


def _upstream_failure(what: str, exc: LinearAPIError) -> Response:
    logger.error("Error fetching %s from Linear: %s", what, exc)
    return Response(
        {"error": f"Failed to fetch {what} from Linear API", "details": str(exc)},
        status=500,
    )


# ---------------------------------------------------------------------------
# Core views
# ---------------------------------------------------------------------------

def health_check(request):
    """Return a simple health-check response."""
    return JsonResponse({"status": "ok"})


@require_GET
def index(request):
    """Entry point for the front end: session flag plus any sign-in error."""
    context = _session_context(request)
    return JsonResponse({
        "authenticated": context.authenticated,
        "signinUrl": settings.LOGIN_ENTRY_POINT,
        "error": request.GET.get("error"),
    })


# ---------------------------------------------------------------------------
# OAuth
# ---------------------------------------------------------------------------

@require_GET
def signin(request):
    """Start the Linear authorization-code flow."""
    context = _session_context(request)
    base = base_url(request)
    callback = safe_redirect_url(request.GET.get("callbackUrl"), base)

    if context.authenticated:
        return HttpResponseRedirect(callback)

    if not oauth.is_configured():
        logger.error("LINEAR_CLIENT_ID / LINEAR_CLIENT_SECRET are not configured")
        return JsonResponse({"error": "OAuth client is not configured"}, status=500)

    state = secrets.token_urlsafe(32)
    response = HttpResponseRedirect(oauth.authorization_url(_redirect_uri(request), state))
    response.set_cookie(
        OAUTH_STATE_COOKIE,
        signing.dumps({"state": state, "callback": callback}, salt=OAUTH_STATE_SALT),
        max_age=settings.OAUTH_STATE_MAX_AGE,
        httponly=True,
        samesite="Lax",
        secure=request.is_secure(),
    )
    return response


@require_GET
def oauth_callback(request):
    """Finish the authorization-code flow and establish the session."""
    base = base_url(request)

    provider_error = request.GET.get("error")
    if provider_error:
        logger.warning("Linear authorization was not granted: %s", provider_error)
        return _abort_login(base, provider_error)

    saved = _load_oauth_state(request)
    state = request.GET.get("state", "")
    if saved is None or not hmac.compare_digest(str(saved.get("state", "")).encode(), state.encode()):
        logger.warning("Rejected OAuth callback with missing or mismatched state")
        return JsonResponse({"error": "Invalid OAuth state"}, status=400)

    code = request.GET.get("code")
    if not code:
        return JsonResponse({"error": "Missing authorization code"}, status=400)

    try:
        grant = oauth.exchange_code(code, _redirect_uri(request))
        viewer = fetch_viewer(grant.access_token)
    except (OAuthError, LinearAPIError) as e:
        logger.error("Linear sign-in failed: %s", e)
        return _abort_login(base, "Callback")

    store_login(request, grant, viewer)

    response = HttpResponseRedirect(safe_redirect_url(saved.get("callback"), base))
    response.delete_cookie(OAUTH_STATE_COOKIE)
    return response


@require_http_methods(["GET", "POST"])
def signout(request):
    """Destroy the session and return to the application."""
    target = request.POST.get("callbackUrl") or request.GET.get("callbackUrl")
    sign_out(request)
    return HttpResponseRedirect(safe_redirect_url(target, base_url(request)))


@require_GET
def session_state(request):
    """Describe the current session without revealing the token."""
    context = _session_context(request)
    credential = context.credential
    return JsonResponse({
        "authenticated": context.authenticated,
        "user": ViewerSerializer(context.viewer).data if context.viewer else None,
        "expires": credential.expires_at.isoformat() if credential and credential.expires_at else None,
    })


# ---------------------------------------------------------------------------
# Linear API
# ---------------------------------------------------------------------------

@api_view(["GET"])
def issues(request):
    """Return the issues due within the lookback window."""
    context = _session_context(request)
    if not context.authenticated:
        logger.info("No access token for issues request")
        return Response(NOT_AUTHENTICATED, status=401)

    try:
        records = fetch_issues(context.bearer_token)
    except Unauthenticated:
        return Response(NOT_AUTHENTICATED, status=401)
    except LinearAPIError as e:
        return _upstream_failure("issues", e)

    return Response({"issues": IssueSerializer(records, many=True).data})


@api_view(["GET"])
def users(request):
    """Return every user of the Linear workspace."""
    context = _session_context(request)
    if not context.authenticated:
        logger.info("No access token for users request")
        return Response(NOT_AUTHENTICATED, status=401)

    try:
        records = fetch_users(context.bearer_token)
    except Unauthenticated:
        return Response(NOT_AUTHENTICATED, status=401)
    except LinearAPIError as e:
        return _upstream_failure("users", e)

    return Response({"users": UserSerializer(records, many=True).data})


@api_view(["GET"])
def timeline(request):
    """Return timeline groups, rows and window, optionally for one assignee.

    ``seq`` is echoed back untouched so the front end can ignore responses
    to superseded filter changes.
    """
    context = _session_context(request)
    if not context.authenticated:
        logger.info("No access token for timeline request")
        return Response(NOT_AUTHENTICATED, status=401)

    try:
        issue_records, user_records = fetch_workspace(context.bearer_token)
    except Unauthenticated:
        return Response(NOT_AUTHENTICATED, status=401)
    except LinearAPIError as e:
        return _upstream_failure("timeline", e)

    payload = timeline_payload(
        issue_records,
        user_records,
        request.query_params.get("assignee") or None,
        now=timezone.now(),
        tz=timezone.get_current_timezone(),
    )
    payload["seq"] = request.query_params.get("seq")
    return Response(payload)
