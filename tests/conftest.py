import sys
from http.cookies import SimpleCookie
from pathlib import Path
from urllib.parse import parse_qsl, urlsplit

import httpx
import pytest
from starlette.requests import Request

# Put the project root on PYTHONPATH when running tests from a checkout
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.append(str(PROJECT_ROOT))

from oauth.oauth2 import OAuth2StrategyOptions  # noqa: E402

AUTHORIZATION_ENDPOINT = "https://example.app/authorize"
TOKEN_ENDPOINT = "https://example.app/token"
REVOCATION_ENDPOINT = "https://example.app/revoke"
REDIRECT_URI = "https://example.com/callback"


def make_request(url: str, cookie: str = None) -> Request:
    """Build a starlette Request for a GET to `url` with an optional Cookie header."""
    parsed = httpx.URL(url)
    headers = [(b"host", parsed.host.encode())]
    if cookie:
        headers.append((b"cookie", cookie.encode("latin-1")))
    scope = {
        "type": "http",
        "method": "GET",
        "scheme": parsed.scheme,
        "server": (parsed.host, parsed.port or (443 if parsed.scheme == "https" else 80)),
        "path": parsed.path,
        "root_path": "",
        "query_string": parsed.query,
        "headers": headers,
    }
    return Request(scope)


def cookie_header(cookies: dict) -> str:
    return "; ".join(f"{name}={value}" for name, value in cookies.items())


def parse_set_cookie(header: str):
    """Return (name, morsel) for a single Set-Cookie header."""
    jar = SimpleCookie()
    jar.load(header)
    name = next(iter(jar))
    return name, jar[name]


def redirect_cookies(response) -> dict:
    """All cookies set by a response, as name -> value."""
    cookies = {}
    for header in response.headers.getlist("set-cookie"):
        name, morsel = parse_set_cookie(header)
        cookies[name] = morsel.value
    return cookies


def form(request: httpx.Request) -> dict:
    return dict(parse_qsl(request.content.decode()))


def query_params(location: str) -> dict:
    """Query of a redirect target; repeated keys map to a list."""
    params = {}
    for key, value in parse_qsl(urlsplit(location).query, keep_blank_values=True):
        if key in params:
            existing = params[key]
            params[key] = (existing if isinstance(existing, list) else [existing]) + [value]
        else:
            params[key] = value
    return params


class MockProvider:
    """In-process identity provider answering through httpx.MockTransport."""

    def __init__(self):
        self.routes = {}
        self.calls = []

    def on(self, method: str, url: str, status_code: int = 200, json=None, text: str = None, handler=None):
        self.routes[(method, url)] = (status_code, json, text, handler)
        return self

    def calls_to(self, url: str) -> list:
        return [request for request in self.calls if self._key(request)[1] == url]

    @staticmethod
    def _key(request: httpx.Request):
        url = request.url
        return request.method, f"{url.scheme}://{url.host}{url.path}"

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        route = self.routes.get(self._key(request))
        if route is None:
            return httpx.Response(404, json={"error": "not_found"})
        status_code, json, text, handler = route
        if handler is not None:
            return handler(request)
        if text is not None:
            return httpx.Response(status_code, text=text)
        return httpx.Response(status_code, json=json)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handle))


@pytest.fixture
def provider():
    return MockProvider().on(
        "POST",
        TOKEN_ENDPOINT,
        json={
            "access_token": "mocked",
            "expires_in": 3600,
            "refresh_token": "mocked",
            "scope": "user:email user:profile",
            "token_type": "Bearer",
        },
    )


@pytest.fixture
def options():
    return OAuth2StrategyOptions(
        client_id="MY_CLIENT_ID",
        client_secret="MY_CLIENT_SECRET",
        authorization_endpoint=AUTHORIZATION_ENDPOINT,
        token_endpoint=TOKEN_ENDPOINT,
        redirect_uri=REDIRECT_URI,
        scopes=["user:email", "user:profile"],
    )
