"""OAuth 2.0 client primitive (RFC 6749 + PKCE, RFC 7636).

Builds authorization URLs and talks to the provider's token, revocation and
userinfo endpoints. The strategies hold one OAuth2Client each.
"""

import base64
import hashlib
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

import httpx

from oauth.errors import ConfigurationError, OAuth2RequestError, UnexpectedResponseError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0

PKCE_S256 = "S256"
PKCE_PLAIN = "plain"


# ============== PKCE helpers ==============

def generate_state() -> str:
    """Generate a random state token for CSRF protection."""
    return secrets.token_urlsafe(32)


def generate_code_verifier() -> str:
    """Generate a PKCE code verifier (43 url-safe characters)."""
    return secrets.token_urlsafe(32)


def create_code_challenge(code_verifier: str, method: str = PKCE_S256) -> str:
    """Derive the code challenge sent to the authorization endpoint."""
    if method == PKCE_S256:
        digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
        return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")
    if method == PKCE_PLAIN:
        return code_verifier
    raise ConfigurationError(f"Unsupported code challenge method: {method}")


# ============== Tokens ==============

class OAuth2Tokens:
    """A token endpoint response.

    `data` is the decoded JSON body as returned by the provider; the
    properties read the standard fields out of it.
    """

    def __init__(self, data: dict, received_at: Optional[datetime] = None):
        self.data = data
        self.received_at = received_at or datetime.now(timezone.utc)

    @property
    def access_token(self) -> str:
        return self.data["access_token"]

    @property
    def token_type(self) -> Optional[str]:
        return self.data.get("token_type")

    @property
    def refresh_token(self) -> Optional[str]:
        return self.data.get("refresh_token")

    @property
    def id_token(self) -> Optional[str]:
        return self.data.get("id_token")

    @property
    def expires_in(self) -> Optional[int]:
        value = self.data.get("expires_in")
        if value is None:
            return None
        try:
            return int(value)
        except (TypeError, ValueError):
            return None

    @property
    def access_token_expires_at(self) -> Optional[datetime]:
        if self.expires_in is None:
            return None
        return self.received_at + timedelta(seconds=self.expires_in)

    @property
    def scopes(self) -> list[str]:
        scope = self.data.get("scope")
        if isinstance(scope, list):
            return [str(s) for s in scope]
        if not scope:
            return []
        return str(scope).split()

    def __eq__(self, other) -> bool:
        if isinstance(other, OAuth2Tokens):
            return self.data == other.data
        if isinstance(other, dict):
            return self.data == other
        return NotImplemented

    def __repr__(self) -> str:
        # Never print token values
        return f"OAuth2Tokens(fields={sorted(self.data)})"


# ============== Client ==============

class OAuth2Client:
    """Confidential or public OAuth 2.0 client."""

    def __init__(
        self,
        client_id: str,
        client_secret: Optional[str],
        redirect_uri: Optional[str],
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.http_client = http_client
        self.timeout = timeout

    def create_authorization_url_with_pkce(
        self,
        endpoint: str,
        state: str,
        method: str,
        code_verifier: str,
        scopes: list[str],
        scope_separator: str = " ",
    ) -> httpx.URL:
        """Build the authorization URL for the code flow with PKCE."""
        url = httpx.URL(endpoint)
        params = list(url.params.multi_items())
        params.append(("response_type", "code"))
        params.append(("client_id", self.client_id))
        if self.redirect_uri:
            params.append(("redirect_uri", self.redirect_uri))
        params.append(("state", state))
        params.append(("code_challenge_method", method))
        params.append(("code_challenge", create_code_challenge(code_verifier, method)))
        if scopes:
            params.append(("scope", scope_separator.join(scopes)))
        return url.copy_with(params=params)

    async def validate_authorization_code(
        self,
        endpoint: str,
        code: str,
        code_verifier: Optional[str],
    ) -> OAuth2Tokens:
        """Exchange an authorization code for tokens."""
        body = {"grant_type": "authorization_code", "code": code}
        if self.redirect_uri:
            body["redirect_uri"] = self.redirect_uri
        if code_verifier:
            body["code_verifier"] = code_verifier

        logger.debug(f"[TOKEN] Exchanging authorization code at {endpoint}")
        data = await self._token_request(endpoint, body)
        return OAuth2Tokens(data)

    async def refresh_access_token(
        self,
        endpoint: str,
        refresh_token: str,
        scopes: Optional[list[str]] = None,
        scope_separator: str = " ",
    ) -> OAuth2Tokens:
        """Use a refresh token to get a new set of tokens."""
        body = {"grant_type": "refresh_token", "refresh_token": refresh_token}
        if scopes:
            body["scope"] = scope_separator.join(scopes)

        logger.debug(f"[TOKEN] Refreshing access token at {endpoint}")
        data = await self._token_request(endpoint, body)
        return OAuth2Tokens(data)

    async def revoke_token(self, endpoint: str, token: str) -> None:
        """Revoke an access or refresh token (RFC 7009)."""
        response = await self._post(endpoint, {"token": token})
        if not response.is_success:
            self._raise_for_error(response)
        logger.info("[TOKEN] Token revoked")

    async def fetch_json(self, url: str, access_token: str):
        """GET a JSON resource with the access token as Bearer credentials."""
        headers = {
            "Accept": "application/json",
            "Authorization": f"Bearer {access_token}",
        }
        response = await self._send("GET", url, headers=headers)
        if not response.is_success:
            self._raise_for_error(response)
        try:
            return response.json()
        except ValueError:
            raise UnexpectedResponseError(response.status_code, response.text)

    async def fetch_userinfo(self, url: str, access_token: str) -> dict:
        """GET a userinfo document, which must be a JSON object."""
        data = await self.fetch_json(url, access_token)
        if not isinstance(data, dict):
            raise UnexpectedResponseError(200, str(data))
        return data

    # ---------- internals ----------

    async def _token_request(self, endpoint: str, body: dict) -> dict:
        response = await self._post(endpoint, body)
        if not response.is_success:
            self._raise_for_error(response)

        data = self._json_object(response)
        if not isinstance(data.get("access_token"), str):
            raise UnexpectedResponseError(response.status_code, response.text)
        return data

    async def _post(self, endpoint: str, body: dict) -> httpx.Response:
        headers = {"Accept": "application/json"}
        auth = None
        if self.client_secret:
            auth = httpx.BasicAuth(self.client_id, self.client_secret)
        else:
            body = {**body, "client_id": self.client_id}
        return await self._send("POST", endpoint, headers=headers, data=body, auth=auth)

    async def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        if self.http_client is not None:
            return await self.http_client.request(method, url, **kwargs)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.request(method, url, **kwargs)

    @staticmethod
    def _json_object(response: httpx.Response) -> dict:
        try:
            data = response.json()
        except ValueError:
            raise UnexpectedResponseError(response.status_code, response.text)
        if not isinstance(data, dict):
            raise UnexpectedResponseError(response.status_code, response.text)
        return data

    @staticmethod
    def _raise_for_error(response: httpx.Response):
        try:
            data = response.json()
        except ValueError:
            data = None

        if isinstance(data, dict) and isinstance(data.get("error"), str):
            logger.warning(f"[TOKEN] Provider error: {data['error']} (HTTP {response.status_code})")
            raise OAuth2RequestError(
                data["error"],
                description=data.get("error_description"),
                uri=data.get("error_uri"),
            )

        logger.warning(f"[TOKEN] Unexpected provider response (HTTP {response.status_code})")
        raise UnexpectedResponseError(response.status_code, response.text)
