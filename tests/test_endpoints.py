"""Tests for the /auth routes."""
import dataclasses

import httpx
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from authenticator import Authenticator
from conftest import TOKEN_ENDPOINT, MockProvider, cookie_header, parse_set_cookie
from oauth.endpoints import init_auth_routes, router
from oauth.errors import AuthorizationError
from oauth.oauth2 import OAuth2Strategy


def verify(params):
    return {"id": "user-1", "access_token": params.tokens.access_token}


def make_client(strategy=None) -> TestClient:
    authenticator = Authenticator()
    if strategy is not None:
        authenticator.use(strategy)

    app = FastAPI()
    init_auth_routes(app, authenticator)
    return TestClient(app)


@pytest.fixture
def client(options, provider):
    return make_client(OAuth2Strategy(options, verify, http_client=provider.client()))


def start(client: TestClient):
    """Run the start phase; return (state, state cookie name, cookie value)."""
    response = client.get("/auth/oauth2", follow_redirects=False)
    assert response.status_code == 302

    location = httpx.URL(response.headers["location"])
    name, morsel = parse_set_cookie(response.headers["set-cookie"])
    return location.params["state"], name, morsel.value


def test_start_redirects_with_state_cookie(client):
    response = client.get("/auth/oauth2", follow_redirects=False)

    assert response.status_code == 302
    assert response.headers["location"].startswith("https://example.app/authorize?")
    name, morsel = parse_set_cookie(response.headers["set-cookie"])
    assert name.startswith("oauth2:")
    assert morsel["httponly"]


def test_callback_returns_session_and_expires_cookie(client, provider):
    state, name, value = start(client)

    response = client.get(
        f"/auth/oauth2/callback?state={state}&code=xyz",
        headers={"cookie": cookie_header({name: value})},
    )

    assert response.status_code == 200
    assert response.json() == {
        "provider": "oauth2",
        "session": {"id": "user-1", "access_token": "mocked"},
    }
    assert response.headers["cache-control"].startswith("no-store")

    deleted, morsel = parse_set_cookie(response.headers["set-cookie"])
    assert deleted == name
    assert morsel["max-age"] == "0"
    assert len(provider.calls_to(TOKEN_ENDPOINT)) == 1


def test_unknown_provider(client):
    response = client.get("/auth/nope")

    assert response.status_code == 404
    assert response.json()["error_description"] == "Strategy nope not found."


def test_missing_state_cookie(client, provider):
    response = client.get("/auth/oauth2/callback?state=abc&code=xyz")

    assert response.status_code == 400
    assert response.json() == {
        "error": "invalid_request",
        "error_description": "Missing state on cookie.",
    }
    assert provider.calls_to(TOKEN_ENDPOINT) == []


def test_state_mismatch(client):
    response = client.get(
        "/auth/oauth2/callback?state=forged&code=xyz",
        headers={"cookie": "oauth2=state=abc&abc=v1"},
    )

    assert response.status_code == 400
    assert response.json()["error_description"] == "State in URL doesn't match state in cookie."


def test_provider_error(client):
    response = client.get(
        "/auth/oauth2/callback?state=abc&error=access_denied&error_description=User+declined",
        headers={"cookie": "oauth2=state=abc&abc=v1"},
    )

    assert response.status_code == 401
    assert response.json() == {"error": "access_denied", "error_description": "User declined"}


def test_token_endpoint_failure(options):
    provider = MockProvider().on("POST", TOKEN_ENDPOINT, status_code=500, text="oops")
    client = make_client(OAuth2Strategy(options, verify, http_client=provider.client()))

    response = client.get(
        "/auth/oauth2/callback?state=abc&code=xyz",
        headers={"cookie": "oauth2=state=abc&abc=v1"},
    )

    assert response.status_code == 502
    assert response.json()["error"] == "bad_gateway"


def test_provider_unreachable(options):
    def fail(request):
        raise httpx.ConnectError("connection refused", request=request)

    http_client = httpx.AsyncClient(transport=httpx.MockTransport(fail))
    client = make_client(OAuth2Strategy(options, verify, http_client=http_client))

    response = client.get(
        "/auth/oauth2/callback?state=abc&code=xyz",
        headers={"cookie": "oauth2=state=abc&abc=v1"},
    )

    assert response.status_code == 502


def test_rejected_by_application(options, provider):
    def reject(params):
        raise AuthorizationError("Account disabled")

    client = make_client(OAuth2Strategy(options, reject, http_client=provider.client()))

    response = client.get(
        "/auth/oauth2/callback?state=abc&code=xyz",
        headers={"cookie": "oauth2=state=abc&abc=v1"},
    )

    assert response.status_code == 401
    assert response.json() == {"error": "access_denied", "error_description": "Account disabled"}


def test_not_configured():
    app = FastAPI()
    app.include_router(router)

    response = TestClient(app).get("/auth/oauth2")

    assert response.status_code == 500


def test_expired_cookie_keeps_configured_path_and_domain(options, provider):
    options = dataclasses.replace(
        options, cookie={"name": "oauth2", "path": "/auth", "domain": "example.com"}
    )
    client = make_client(OAuth2Strategy(options, verify, http_client=provider.client()))
    state, name, value = start(client)

    response = client.get(
        f"/auth/oauth2/callback?state={state}&code=xyz",
        headers={"cookie": cookie_header({name: value})},
    )

    assert response.status_code == 200
    deleted, morsel = parse_set_cookie(response.headers["set-cookie"])
    assert deleted == name
    assert morsel["max-age"] == "0"
    assert morsel["path"] == "/auth"
    assert morsel["domain"] == "example.com"


def test_each_app_uses_its_own_authenticator(options, provider):
    first = make_client(OAuth2Strategy(options, verify, http_client=provider.client(), name="first"))
    second = make_client(OAuth2Strategy(options, verify, http_client=provider.client(), name="second"))

    assert first.get("/auth/first", follow_redirects=False).status_code == 302
    assert first.get("/auth/second").status_code == 404
    assert second.get("/auth/second", follow_redirects=False).status_code == 302
