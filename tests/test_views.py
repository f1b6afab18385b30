from urllib.parse import parse_qs, urlsplit

from django.core import signing

from timeline.session import CREDENTIAL_SESSION_KEY, VIEWER_SESSION_KEY
from timeline.views import OAUTH_STATE_COOKIE, OAUTH_STATE_SALT

from .conftest import ISSUE_NODE, USER_NODES

VIEWER_RESPONSE = {"data": {"viewer": {"id": "U1", "name": "Alice", "email": "alice@example.com", "avatarUrl": None}}}


def _start_signin(client, callback="/api/timeline"):
    response = client.get("/api/auth/signin", {"callbackUrl": callback})
    location = urlsplit(response["Location"])
    return response, location, parse_qs(location.query)


# ---------------------------------------------------------------------------
# Sign-in flow
# ---------------------------------------------------------------------------

def test_signin_redirects_to_provider_with_state(client, settings):
    response, location, query = _start_signin(client)

    assert response.status_code == 302
    assert f"{location.scheme}://{location.netloc}{location.path}" == settings.LINEAR_AUTHORIZE_URL
    assert query["client_id"] == ["test-client-id"]
    assert query["response_type"] == ["code"]
    assert query["scope"] == ["read"]
    assert query["redirect_uri"] == ["http://testserver/api/auth/callback/linear"]

    saved = signing.loads(response.cookies[OAUTH_STATE_COOKIE].value, salt=OAUTH_STATE_SALT)
    assert saved["state"] == query["state"][0]
    assert saved["callback"] == "http://testserver/api/timeline"


def test_signin_without_client_configuration(client, settings):
    settings.LINEAR_CLIENT_SECRET = ""

    response = client.get("/api/auth/signin")

    assert response.status_code == 500
    assert response.json() == {"error": "OAuth client is not configured"}


def test_signin_when_already_signed_in_skips_provider(signed_in_client):
    response = signed_in_client.get("/api/auth/signin", {"callbackUrl": "/api/users"})

    assert response.status_code == 302
    assert response["Location"] == "http://testserver/api/users"


def test_callback_establishes_session(client, fake_linear):
    _, _, query = _start_signin(client)
    fake_linear.queue(json={"access_token": "lin_oauth_new", "token_type": "Bearer", "expires_in": 86400})
    fake_linear.queue(json=VIEWER_RESPONSE)

    response = client.get("/api/auth/callback/linear", {"code": "abc", "state": query["state"][0]})

    assert response.status_code == 302
    assert response["Location"] == "http://testserver/api/timeline"

    token_call, viewer_call = fake_linear.calls
    assert token_call["data"]["grant_type"] == "authorization_code"
    assert token_call["data"]["code"] == "abc"
    assert token_call["data"]["client_secret"] == "test-client-secret"
    assert viewer_call["headers"]["Authorization"] == "Bearer lin_oauth_new"

    session = client.session
    assert session[CREDENTIAL_SESSION_KEY]["bearer_token"] == "lin_oauth_new"
    assert session[VIEWER_SESSION_KEY]["id"] == "U1"


def test_callback_rejects_mismatched_state(client, fake_linear):
    _start_signin(client)

    response = client.get("/api/auth/callback/linear", {"code": "abc", "state": "forged"})

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid OAuth state"}
    assert fake_linear.calls == []


def test_callback_without_state_cookie(client, fake_linear):
    response = client.get("/api/auth/callback/linear", {"code": "abc", "state": "anything"})

    assert response.status_code == 400
    assert fake_linear.calls == []


def test_callback_provider_error(client):
    response = client.get("/api/auth/callback/linear", {"error": "access_denied"})

    assert response.status_code == 302
    assert response["Location"] == "http://testserver/?error=access_denied"


def test_callback_aborts_when_token_exchange_fails(client, fake_linear):
    _, _, query = _start_signin(client)
    fake_linear.queue(status_code=400, json={"error": "invalid_grant"})

    response = client.get("/api/auth/callback/linear", {"code": "abc", "state": query["state"][0]})

    assert response["Location"] == "http://testserver/?error=Callback"
    assert CREDENTIAL_SESSION_KEY not in client.session


def test_callback_aborts_when_viewer_missing(client, fake_linear):
    _, _, query = _start_signin(client)
    fake_linear.queue(json={"access_token": "lin_oauth_new"})
    fake_linear.queue(json={"data": {}})

    response = client.get("/api/auth/callback/linear", {"code": "abc", "state": query["state"][0]})

    assert response["Location"] == "http://testserver/?error=Callback"
    assert CREDENTIAL_SESSION_KEY not in client.session


def test_callback_aborts_on_invalid_token_expiry(client, fake_linear):
    _, _, query = _start_signin(client)
    fake_linear.queue(json={"access_token": "lin_oauth_new", "expires_in": "soon"})

    response = client.get("/api/auth/callback/linear", {"code": "abc", "state": query["state"][0]})

    assert response.status_code == 302
    assert response["Location"] == "http://testserver/?error=Callback"
    assert CREDENTIAL_SESSION_KEY not in client.session
    assert len(fake_linear.calls) == 1


def test_callback_ignores_offsite_callback(client, fake_linear):
    _, _, query = _start_signin(client, callback="https://evil.example.com/")
    fake_linear.queue(json={"access_token": "lin_oauth_new"})
    fake_linear.queue(json=VIEWER_RESPONSE)

    response = client.get("/api/auth/callback/linear", {"code": "abc", "state": query["state"][0]})

    assert response["Location"] == "http://testserver"


def test_signout_destroys_session(signed_in_client):
    response = signed_in_client.post("/api/auth/signout")

    assert response.status_code == 302
    assert response["Location"] == "http://testserver"
    assert signed_in_client.get("/api/auth/session").json()["authenticated"] is False


def test_session_state_never_exposes_token(signed_in_client):
    response = signed_in_client.get("/api/auth/session")

    body = response.json()
    assert body["authenticated"] is True
    assert body["user"]["id"] == "U1"
    assert "lin_oauth_secret" not in response.content.decode()


def test_health_check_is_public(client):
    assert client.get("/api/health").json() == {"status": "ok"}


# ---------------------------------------------------------------------------
# Linear API
# ---------------------------------------------------------------------------

def test_issues_without_token_returns_401(tokenless_client, fake_linear):
    response = tokenless_client.get("/api/issues")

    assert response.status_code == 401
    assert response.json() == {"error": "Not authenticated"}
    assert fake_linear.calls == []


def test_users_without_token_returns_401(tokenless_client):
    response = tokenless_client.get("/api/users")

    assert response.status_code == 401
    assert response.json() == {"error": "Not authenticated"}


def test_expired_credential_is_treated_as_missing(expired_client, fake_linear):
    response = expired_client.get("/api/issues")

    assert response.status_code == 401
    assert CREDENTIAL_SESSION_KEY not in expired_client.session
    assert fake_linear.calls == []


def test_issues_returns_normalized_records(signed_in_client, fake_linear):
    node = {**ISSUE_NODE, "state": None}
    fake_linear.queue(json={"data": {"issues": {"nodes": [node]}}})

    response = signed_in_client.get("/api/issues")

    assert response.status_code == 200
    [issue] = response.json()["issues"]
    assert issue["id"] == "I1"
    assert issue["state"] == {"id": "unknown", "name": "Unknown", "color": None}
    assert issue["assignee"]["displayName"] == "Alice"
    assert issue["dueDate"] == "2024-01-10"
    assert issue["createdAt"] == "2024-01-01T00:00:00Z"
    assert fake_linear.calls[0]["headers"]["Authorization"] == "Bearer lin_oauth_secret"


def test_users_returns_normalized_records(signed_in_client, fake_linear):
    fake_linear.queue(json={"data": {"users": {"nodes": USER_NODES}}})

    response = signed_in_client.get("/api/users")

    assert response.status_code == 200
    assert [u["displayName"] for u in response.json()["users"]] == ["Alice", "bob"]


def test_upstream_failure_returns_500(signed_in_client, fake_linear):
    fake_linear.queue(status_code=502, text="bad gateway")

    response = signed_in_client.get("/api/issues")

    assert response.status_code == 500
    body = response.json()
    assert body["error"] == "Failed to fetch issues from Linear API"
    assert "502" in body["details"]
    assert "lin_oauth_secret" not in body["details"]


def test_malformed_upstream_payload_returns_500(signed_in_client, fake_linear):
    fake_linear.queue(json={"data": {"users": None}})

    response = signed_in_client.get("/api/users")

    assert response.status_code == 500
    assert response.json()["error"] == "Failed to fetch users from Linear API"


def test_timeline_projects_workspace(signed_in_client, fake_linear):
    unassigned = {**ISSUE_NODE, "id": "I2", "identifier": "ENG-2", "assignee": None}
    fake_linear.queue(json={
        "data": {
            "issues": {"nodes": [ISSUE_NODE, unassigned]},
            "users": {"nodes": USER_NODES},
        }
    })

    response = signed_in_client.get("/api/timeline", {"seq": "7"})

    assert response.status_code == 200
    body = response.json()
    assert [g["id"] for g in body["groups"]] == ["unassigned", "U1", "U2"]
    assert [(r["id"], r["groupId"]) for r in body["rows"]] == [("I1", "U1"), ("I2", "unassigned")]
    row = body["rows"][0]
    assert row["title"] == "ENG-1: Ship timeline"
    assert row["color"] == "#f39c12"
    # startedAt 2024-01-02T09:00Z minus the two-day display shift.
    assert row["startTime"] == 1704013200000
    assert row["endTime"] > row["startTime"]
    assert set(body["window"]) == {"start", "end", "today"}
    assert body["seq"] == "7"
    assert len(fake_linear.calls) == 1


def test_timeline_filters_by_assignee(signed_in_client, fake_linear):
    unassigned = {**ISSUE_NODE, "id": "I2", "identifier": "ENG-2", "assignee": None}
    fake_linear.queue(json={
        "data": {
            "issues": {"nodes": [ISSUE_NODE, unassigned]},
            "users": {"nodes": USER_NODES},
        }
    })

    body = signed_in_client.get("/api/timeline", {"assignee": "U1"}).json()

    assert [r["id"] for r in body["rows"]] == ["I1"]
    assert body["selectedUserId"] == "U1"
    assert body["groups"][0]["id"] == "unassigned"
