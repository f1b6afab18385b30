"""Linear GraphQL API client for the viewer, issues, and users."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

import httpx
from django.conf import settings

from integrations.linear_records import (
    Issue,
    IssueSerializer,
    User,
    UserSerializer,
    Viewer,
    ViewerSerializer,
)

logger = logging.getLogger("integrations.linear")

LOG_BODY_LIMIT = 200

VIEWER_QUERY = "query { viewer { id name email avatarUrl } }"

_ISSUE_FIELDS = """
      id
      title
      identifier
      description
      priority
      state { id name color }
      assignee { id name displayName avatarUrl }
      startedAt
      dueDate
      completedAt
      createdAt
      updatedAt
      url
"""

_USER_FIELDS = """
      id
      name
      displayName
      avatarUrl
"""

ISSUES_QUERY = f"""
query Issues($first: Int!, $dueAfter: TimelessDateOrDuration!) {{
  issues(first: $first, filter: {{ dueDate: {{ gte: $dueAfter }} }}) {{
    nodes {{{_ISSUE_FIELDS}    }}
  }}
}}
"""

USERS_QUERY = f"""
query Users($userFirst: Int!) {{
  users(first: $userFirst) {{
    nodes {{{_USER_FIELDS}    }}
  }}
}}
"""

WORKSPACE_QUERY = f"""
query Workspace($first: Int!, $dueAfter: TimelessDateOrDuration!, $userFirst: Int!) {{
  issues(first: $first, filter: {{ dueDate: {{ gte: $dueAfter }} }}) {{
    nodes {{{_ISSUE_FIELDS}    }}
  }}
  users(first: $userFirst) {{
    nodes {{{_USER_FIELDS}    }}
  }}
}}
"""


class LinearAPIError(Exception):
    """Base class for failures talking to the Linear API."""


class Unauthenticated(LinearAPIError):
    """Raised when a call is attempted without a bearer token."""

    def __init__(self, detail: str = "Not authenticated") -> None:
        self.detail = detail
        super().__init__(detail)


class UpstreamError(LinearAPIError):
    """Raised on a non-2xx response or a GraphQL ``errors`` payload."""

    def __init__(self, status_code: int | None, body: str = "") -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"Linear API error {status_code}: {_truncate(body)}")


class MalformedResponse(LinearAPIError):
    """Raised when a response does not have the expected shape."""

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"Malformed Linear API response: {_truncate(detail)}")


def _truncate(text: str) -> str:
    text = text or ""
    if len(text) <= LOG_BODY_LIMIT:
        return text
    return text[:LOG_BODY_LIMIT] + "..."


def _linear_headers(token: str) -> dict[str, str]:
    return {
        "Authorization": f"Bearer {token}",
        "Content-Type": "application/json",
    }


def execute(token: str | None, query: str, variables: dict | None = None) -> dict:
    """Run one GraphQL operation and return its ``data`` object.

    Args:
        token: The user's Linear access token.
        query: The GraphQL document.
        variables: Optional GraphQL variables.

    Returns:
        The ``data`` member of the response payload.

    Raises:
        Unauthenticated: If no token is supplied.
        UpstreamError: On a transport failure, a non-2xx status, or a
            payload carrying GraphQL ``errors``.
        MalformedResponse: If the body is not JSON or has no ``data``.
    """
    if not token:
        raise Unauthenticated()

    url = settings.LINEAR_API_URL
    payload: dict = {"query": query}
    if variables:
        payload["variables"] = variables

    try:
        response = httpx.post(url, json=payload, headers=_linear_headers(token), timeout=10)
    except httpx.HTTPError as exc:
        logger.error("Could not reach Linear API at %s: %s", url, exc)
        raise UpstreamError(None, str(exc)) from exc

    if not 200 <= response.status_code < 300:
        logger.error(
            "Linear API %s returned %s: %s", url, response.status_code, _truncate(response.text)
        )
        raise UpstreamError(response.status_code, response.text)

    try:
        body = response.json()
    except ValueError as exc:
        logger.error("Linear API %s returned non-JSON body: %s", url, _truncate(response.text))
        raise MalformedResponse(response.text) from exc

    if not isinstance(body, dict):
        raise MalformedResponse(response.text)

    if body.get("errors"):
        logger.error("Linear API %s returned GraphQL errors: %s", url, _truncate(response.text))
        raise UpstreamError(response.status_code, response.text)

    data = body.get("data")
    if not isinstance(data, dict):
        logger.error("Linear API %s response has no data: %s", url, _truncate(response.text))
        raise MalformedResponse(response.text)

    return data


def _nodes(data: dict, connection: str) -> list:
    container = data.get(connection)
    nodes = container.get("nodes") if isinstance(container, dict) else None
    if not isinstance(nodes, list):
        raise MalformedResponse(f"missing {connection}.nodes")
    return nodes


def _parse_many(serializer_class, nodes: list, label: str) -> list:
    serializer = serializer_class(data=nodes, many=True)
    if not serializer.is_valid():
        logger.error("Rejected malformed %s payload: %s", label, serializer.errors)
        raise MalformedResponse(f"invalid {label}: {serializer.errors}")
    return serializer.save()


def _due_after(now: datetime | None) -> str:
    now = now or datetime.now(timezone.utc)
    return (now - timedelta(days=settings.LINEAR_ISSUE_LOOKBACK_DAYS)).date().isoformat()


def _issue_variables(now: datetime | None) -> dict:
    return {"first": settings.LINEAR_ISSUE_PAGE_SIZE, "dueAfter": _due_after(now)}


def _user_variables() -> dict:
    return {"userFirst": settings.LINEAR_USER_PAGE_SIZE}


def parse_issues(nodes: list) -> list[Issue]:
    """Validate raw issue nodes, preserving their order."""
    return _parse_many(IssueSerializer, nodes, "issues")


def parse_users(nodes: list) -> list[User]:
    """Validate raw user nodes, preserving their order."""
    return _parse_many(UserSerializer, nodes, "users")


def fetch_viewer(token: str | None) -> Viewer:
    """Fetch the profile of the user owning *token*.

    Raises:
        MalformedResponse: If the payload has no ``data.viewer``.
    """
    data = execute(token, VIEWER_QUERY)
    viewer = data.get("viewer")
    if not isinstance(viewer, dict):
        logger.error("Linear viewer query returned no viewer")
        raise MalformedResponse("missing data.viewer")

    serializer = ViewerSerializer(data=viewer)
    if not serializer.is_valid():
        raise MalformedResponse(f"invalid viewer: {serializer.errors}")
    return serializer.save()


def fetch_issues(token: str | None, now: datetime | None = None) -> list[Issue]:
    """Fetch issues due within the lookback window (first page only)."""
    data = execute(token, ISSUES_QUERY, _issue_variables(now))
    issues = parse_issues(_nodes(data, "issues"))
    logger.info("Received %d issues from Linear API", len(issues))
    return issues


def fetch_users(token: str | None) -> list[User]:
    """Fetch every user of the workspace."""
    data = execute(token, USERS_QUERY, _user_variables())
    users = parse_users(_nodes(data, "users"))
    logger.info("Received %d users from Linear API", len(users))
    return users


def fetch_workspace(token: str | None, now: datetime | None = None) -> tuple[list[Issue], list[User]]:
    """Fetch issues and users in a single batched query."""
    data = execute(token, WORKSPACE_QUERY, {**_issue_variables(now), **_user_variables()})
    issues = parse_issues(_nodes(data, "issues"))
    users = parse_users(_nodes(data, "users"))
    logger.info("Received %d issues and %d users from Linear API", len(issues), len(users))
    return issues, users
