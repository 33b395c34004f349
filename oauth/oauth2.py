"""OAuth 2.0 authorization code flow with PKCE.

The strategy is a two-phase state machine driven entirely by the request URL:

- Start (no `state` query parameter): generate a state and a code verifier,
  store them in a fresh sibling cookie and redirect to the authorization
  endpoint.
- Callback (`state` present): find the flow in the cookies, check it, trade
  the code for tokens and hand them to the verify callback.

Nothing is kept in memory between requests, everything the callback needs
round-trips through the browser's cookies.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from typing import Any, Optional, Union

import httpx
from starlette.datastructures import MultiDict
from starlette.responses import RedirectResponse

from oauth.client import (
    DEFAULT_TIMEOUT,
    PKCE_PLAIN,
    PKCE_S256,
    OAuth2Client,
    OAuth2Tokens,
    generate_code_verifier,
    generate_state,
)
from oauth.errors import (
    ConfigurationError,
    DiscoveryError,
    MissingCodeError,
    MissingCodeVerifierError,
    MissingStateCookieError,
    OAuth2RequestError,
    StateMismatchError,
)
from oauth.state_store import DEFAULT_COOKIE_NAME, StateCookie, StateStore
from oauth.strategy import Authenticated, AuthResult, Redirect, Strategy, VerifyCallback

logger = logging.getLogger(__name__)

DISCOVERY_PATH = "/.well-known/openid-configuration"

# StateCookie attributes settable through the `cookie` option
COOKIE_ATTRIBUTES = {f.name for f in fields(StateCookie)} - {"name", "value"}
COOKIE_ATTRIBUTE_ALIASES = {
    "httpOnly": "httponly",
    "sameSite": "samesite",
    "maxAge": "max_age",
}
SAMESITE_VALUES = ("lax", "strict", "none")


@dataclass
class OAuth2StrategyOptions:
    """Static configuration of an OAuth2Strategy.

    `cookie` is either the base cookie name or a mapping with a `name` key
    plus StateCookie attributes (max_age, path, domain, secure, httponly,
    samesite). `cookie_secret` turns on signed state cookies.
    """
    client_id: str
    authorization_endpoint: str
    token_endpoint: str
    client_secret: Optional[str] = None
    redirect_uri: Optional[str] = None
    token_revocation_endpoint: Optional[str] = None
    scopes: list[str] = field(default_factory=list)
    code_challenge_method: str = PKCE_S256
    audience: Union[str, list[str], None] = None
    cookie: Union[str, Mapping, None] = None
    cookie_secret: Optional[str] = None


@dataclass(frozen=True)
class AuthenticateOptions:
    """Per-call overrides of the configured scopes and audience."""
    scopes: Optional[list[str]] = None
    audience: Union[str, list[str], None] = None


@dataclass(frozen=True)
class VerifyParams:
    """What the verify callback receives once the code has been exchanged."""
    request: Any
    tokens: OAuth2Tokens


def arrayify(value) -> list:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


class OAuth2Hooks:
    """Provider-specific extension points with no-op defaults.

    Provider adapters subclass this and pass an instance to OAuth2Strategy
    instead of subclassing the strategy itself.
    """

    name = "oauth2"
    scope_separator = " "

    def authorization_params(
        self,
        params: MultiDict,
        request,
        options: AuthenticateOptions,
    ) -> MultiDict:
        """Add or change query parameters sent to the authorization endpoint."""
        return params

    async def user_profile(self, tokens: OAuth2Tokens, client: OAuth2Client):
        """Load the user's profile from the provider."""
        return None


class OAuth2Strategy(Strategy):
    """Authenticate requests with the OAuth 2.0 authorization code flow.

    The verify callback receives VerifyParams(request, tokens) and returns
    the session data for the application.

    Example:
        strategy = OAuth2Strategy(
            OAuth2StrategyOptions(
                client_id="...",
                client_secret="...",
                authorization_endpoint="https://provider.com/oauth2/authorize",
                token_endpoint="https://provider.com/oauth2/token",
                redirect_uri="https://example.app/auth/oauth2/callback",
                scopes=["openid", "email"],
            ),
            verify=find_or_create_user,
        )
    """

    name = "oauth2"

    def __init__(
        self,
        options: Union[OAuth2StrategyOptions, Mapping],
        verify: VerifyCallback,
        hooks: Optional[OAuth2Hooks] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        name: Optional[str] = None,
    ):
        super().__init__(verify)
        if isinstance(options, Mapping):
            options = OAuth2StrategyOptions(**options)

        if options.code_challenge_method not in (PKCE_S256, PKCE_PLAIN):
            raise ConfigurationError(
                f"Unsupported code challenge method: {options.code_challenge_method}"
            )

        self.options = options
        self.hooks = hooks or OAuth2Hooks()
        self.name = name or self.hooks.name
        self.client = OAuth2Client(
            options.client_id,
            options.client_secret,
            options.redirect_uri,
            http_client=http_client,
        )
        self.cookie_name, self.cookie_attributes = self._cookie_settings(options.cookie)

    @staticmethod
    def _cookie_settings(cookie) -> tuple[str, dict]:
        """Split the cookie option into a base name and StateCookie attributes.

        Browser-style spellings (httpOnly, sameSite, maxAge) are accepted;
        anything else that isn't a cookie attribute is a ConfigurationError.
        """
        if cookie is None:
            return DEFAULT_COOKIE_NAME, {}
        if isinstance(cookie, str):
            return cookie, {}

        attributes = {}
        name = DEFAULT_COOKIE_NAME
        for key, value in dict(cookie).items():
            if key == "name":
                name = value or DEFAULT_COOKIE_NAME
                continue
            key = COOKIE_ATTRIBUTE_ALIASES.get(key, key)
            if key not in COOKIE_ATTRIBUTES:
                raise ConfigurationError(f"Unknown cookie option: {key}")
            attributes[key] = value

        samesite = attributes.get("samesite")
        if samesite is not None:
            if not isinstance(samesite, str) or samesite.lower() not in SAMESITE_VALUES:
                raise ConfigurationError(f"Invalid cookie samesite value: {samesite!r}")
            attributes["samesite"] = samesite.lower()

        return name, attributes

    async def authenticate(
        self,
        request,
        scopes: Optional[list[str]] = None,
        audience: Union[str, list[str], None] = None,
    ) -> AuthResult:
        """Start a new flow or finish the one the callback belongs to.

        Returns Redirect on the start phase and Authenticated on a successful
        callback. Callback failures are raised (see oauth.errors); errors
        from the verify callback propagate unchanged.
        """
        options = AuthenticateOptions(scopes=scopes, audience=audience)

        if "state" not in request.query_params:
            return self._start(request, options)
        return await self._callback(request)

    # ============== Start ==============

    def _start(self, request, options: AuthenticateOptions) -> Redirect:
        state = generate_state()
        code_verifier = generate_code_verifier()

        scopes = options.scopes if options.scopes is not None else self.options.scopes
        url = self.client.create_authorization_url_with_pkce(
            self.options.authorization_endpoint,
            state,
            self.options.code_challenge_method,
            code_verifier,
            scopes or [],
            scope_separator=self.hooks.scope_separator,
        )

        params = MultiDict(url.params.multi_items())
        audience = options.audience if options.audience is not None else self.options.audience
        for value in arrayify(audience):
            params.append("audience", value)
        params = self.authorization_params(params, request, options)
        url = url.copy_with(params=params.multi_items())

        store = StateStore.from_request(request, self.cookie_name, self.options.cookie_secret)
        flow = store.set(state, code_verifier)
        cookie = flow.to_cookie(
            self.cookie_name,
            self.options.cookie_secret,
            **self.cookie_attributes,
        )

        response = RedirectResponse(str(url), status_code=302)
        cookie.apply(response)

        logger.info(
            f"[OAUTH2] Redirecting to authorization endpoint "
            f"(strategy: {self.name}, flows in progress: {len(store.states)})"
        )
        return Redirect(response)

    # ============== Callback ==============

    async def _callback(self, request) -> Authenticated:
        query = request.query_params
        state = query.get("state")

        store = StateStore.from_request(request, self.cookie_name, self.options.cookie_secret)

        if not store.has():
            logger.warning(f"[OAUTH2] Callback without state cookie (strategy: {self.name})")
            raise MissingStateCookieError()

        if not store.has(state):
            logger.warning(f"[OAUTH2] State mismatch (strategy: {self.name})")
            raise StateMismatchError()

        error = query.get("error")
        if error:
            logger.info(f"[OAUTH2] Provider returned error: {error} (strategy: {self.name})")
            raise OAuth2RequestError(
                error,
                description=query.get("error_description"),
                uri=query.get("error_uri"),
                state=state,
            )

        code = query.get("code")
        if not code:
            raise MissingCodeError()

        code_verifier = store.get(state)
        if not code_verifier:
            raise MissingCodeVerifierError()

        tokens = await self.client.validate_authorization_code(
            self.options.token_endpoint,
            code,
            code_verifier,
        )
        logger.info(f"[OAUTH2] Authorization code exchanged (strategy: {self.name})")

        data = await self.run_verify(VerifyParams(request=request, tokens=tokens))

        consumed = store.cookie_name(state)
        state_cookie = None
        if consumed:
            state_cookie = StateCookie(name=consumed, value="", **self.cookie_attributes)
        return Authenticated(data, state_cookie=state_cookie)

    # ============== Hooks and extra operations ==============

    def authorization_params(
        self,
        params: MultiDict,
        request,
        options: AuthenticateOptions,
    ) -> MultiDict:
        """Return the final authorization query parameters.

        Delegates to the hooks; subclasses may also override this directly.
        """
        return self.hooks.authorization_params(params, request, options)

    async def user_profile(self, tokens: OAuth2Tokens):
        """Load the user's profile through the provider hooks."""
        return await self.hooks.user_profile(tokens, self.client)

    async def refresh_token(
        self,
        refresh_token: str,
        scopes: Optional[list[str]] = None,
    ) -> OAuth2Tokens:
        """Get new tokens with a refresh token grant."""
        return await self.client.refresh_access_token(
            self.options.token_endpoint,
            refresh_token,
            scopes if scopes is not None else self.options.scopes,
            scope_separator=self.hooks.scope_separator,
        )

    async def revoke_token(self, token: str) -> None:
        """Revoke a token at the provider's revocation endpoint."""
        if not self.options.token_revocation_endpoint:
            raise ConfigurationError("Token revocation endpoint is not set.")
        await self.client.revoke_token(self.options.token_revocation_endpoint, token)

    @classmethod
    async def discover(
        cls,
        issuer: str,
        options: Mapping,
        verify: VerifyCallback,
        http_client: Optional[httpx.AsyncClient] = None,
        **kwargs,
    ) -> "OAuth2Strategy":
        """Create a strategy from the issuer's OpenID discovery document.

        Endpoints and the PKCE method come from the document; anything set
        in `options` overrides them.
        """
        url = issuer.rstrip("/") + DISCOVERY_PATH
        logger.info(f"[DISCOVERY] Fetching {url}")

        headers = {"Accept": "application/json"}
        if http_client is not None:
            response = await http_client.get(url, headers=headers)
        else:
            async with httpx.AsyncClient(timeout=DEFAULT_TIMEOUT) as client:
                response = await client.get(url, headers=headers)

        if not response.is_success:
            raise DiscoveryError(
                f"Failed to fetch discovery document from {url} (HTTP {response.status_code})"
            )

        try:
            metadata = response.json()
        except ValueError:
            raise DiscoveryError(f"Discovery document at {url} is not valid JSON")
        if not isinstance(metadata, dict):
            raise DiscoveryError(f"Discovery document at {url} is not a JSON object")

        authorization_endpoint = metadata.get("authorization_endpoint")
        token_endpoint = metadata.get("token_endpoint")
        if not authorization_endpoint or not token_endpoint:
            raise DiscoveryError(f"Discovery document at {url} is missing endpoints")

        methods = metadata.get("code_challenge_methods_supported") or []
        if PKCE_S256 in methods:
            code_challenge_method = PKCE_S256
        elif PKCE_PLAIN in methods:
            code_challenge_method = PKCE_PLAIN
        else:
            code_challenge_method = PKCE_S256

        discovered = {
            "authorization_endpoint": authorization_endpoint,
            "token_endpoint": token_endpoint,
            "token_revocation_endpoint": metadata.get("revocation_endpoint"),
            "code_challenge_method": code_challenge_method,
        }
        overrides = {key: value for key, value in dict(options).items() if value is not None}

        return cls(
            OAuth2StrategyOptions(**{**discovered, **overrides}),
            verify,
            http_client=http_client,
            **kwargs,
        )
