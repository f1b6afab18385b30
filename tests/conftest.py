"""Shared fixtures: fake Linear responses and signed-in sessions."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import httpx
import pytest

from timeline.session import CREDENTIAL_SESSION_KEY, VIEWER_SESSION_KEY

ISSUE_NODE = {
    "id": "I1",
    "title": "Ship timeline",
    "identifier": "ENG-1",
    "description": None,
    "priority": 2,
    "state": {"id": "s1", "name": "In Progress", "color": None},
    "assignee": {"id": "U1", "name": "alice", "displayName": "Alice", "avatarUrl": None},
    "startedAt": "2024-01-02T09:00:00.000Z",
    "dueDate": "2024-01-10",
    "completedAt": None,
    "createdAt": "2024-01-01T00:00:00.000Z",
    "updatedAt": "2024-01-03T00:00:00.000Z",
    "url": "https://linear.app/acme/issue/ENG-1",
}

USER_NODES = [
    {"id": "U1", "name": "alice", "displayName": "Alice", "avatarUrl": None},
    {"id": "U2", "name": "bob", "displayName": None, "avatarUrl": "https://example.com/bob.png"},
]


class FakeLinear:
    """Records outbound ``httpx.post`` calls and replays queued responses."""

    def __init__(self):
        self.calls: list[dict] = []
        self.responses: list = []

    def queue(self, status_code=200, json=None, text=None):
        if text is not None:
            self.responses.append(httpx.Response(status_code, text=text))
        else:
            self.responses.append(httpx.Response(status_code, json=json))

    def queue_error(self, exc: Exception):
        self.responses.append(exc)

    def post(self, url, **kwargs):
        self.calls.append({"url": url, **kwargs})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def fake_linear(monkeypatch):
    fake = FakeLinear()
    monkeypatch.setattr(httpx, "post", fake.post)
    return fake


def _sign_in(client, expires_at=None, with_token=True):
    session = client.session
    if with_token:
        session[CREDENTIAL_SESSION_KEY] = {
            "bearer_token": "lin_oauth_secret",
            "issued_at": datetime.now(timezone.utc).isoformat(),
            "expires_at": expires_at.isoformat() if expires_at else None,
        }
    session[VIEWER_SESSION_KEY] = {"id": "U1", "name": "Alice", "email": "alice@example.com"}
    session.save()
    return session


@pytest.fixture
def signed_in_client(client):
    _sign_in(client)
    return client


@pytest.fixture
def tokenless_client(client):
    """A client with a live session that holds no access token."""
    _sign_in(client, with_token=False)
    return client


@pytest.fixture
def expired_client(client):
    _sign_in(client, expires_at=datetime.now(timezone.utc) - timedelta(minutes=1))
    return client
