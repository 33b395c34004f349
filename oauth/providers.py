"""Provider adapters for common identity providers.

Each adapter is an OAuth2Hooks subclass that adds the provider's extra
authorization parameters and maps its user JSON to an OAuth2Profile. The
factory functions return a ready-to-use OAuth2Strategy.
"""

from dataclasses import dataclass, field
from typing import Optional

from starlette.datastructures import MultiDict

from oauth.client import OAuth2Client, OAuth2Tokens
from oauth.oauth2 import AuthenticateOptions, OAuth2Hooks, OAuth2Strategy, OAuth2StrategyOptions


@dataclass
class OAuth2Profile:
    """Common shape of a user profile across providers."""
    provider: str
    id: Optional[str] = None
    display_name: Optional[str] = None
    emails: list[str] = field(default_factory=list)
    photos: list[str] = field(default_factory=list)
    raw: dict = field(default_factory=dict)


# ============== GitHub ==============

GITHUB_AUTHORIZATION_ENDPOINT = "https://github.com/login/oauth/authorize"
GITHUB_TOKEN_ENDPOINT = "https://github.com/login/oauth/access_token"
GITHUB_USER_URL = "https://api.github.com/user"
GITHUB_EMAILS_URL = "https://api.github.com/user/emails"


class GitHubHooks(OAuth2Hooks):
    name = "github"

    def __init__(self, allow_signup: bool = True):
        self.allow_signup = allow_signup

    def authorization_params(self, params: MultiDict, request, options: AuthenticateOptions) -> MultiDict:
        params["allow_signup"] = "true" if self.allow_signup else "false"
        return params

    async def user_profile(self, tokens: OAuth2Tokens, client: OAuth2Client) -> OAuth2Profile:
        user = await client.fetch_userinfo(GITHUB_USER_URL, tokens.access_token)

        emails = [user["email"]] if user.get("email") else []
        if not emails and "user:email" in tokens.scopes:
            # Private emails are only listed by the emails endpoint
            addresses = await client.fetch_json(GITHUB_EMAILS_URL, tokens.access_token)
            if isinstance(addresses, list):
                addresses.sort(key=lambda item: not item.get("primary"))
                emails = [item["email"] for item in addresses if item.get("email")]

        return OAuth2Profile(
            provider=self.name,
            id=str(user.get("id")) if user.get("id") is not None else None,
            display_name=user.get("name") or user.get("login"),
            emails=emails,
            photos=[user["avatar_url"]] if user.get("avatar_url") else [],
            raw=user,
        )


def github_strategy(
    client_id: str,
    client_secret: str,
    redirect_uri: str,
    verify,
    scopes: Optional[list[str]] = None,
    allow_signup: bool = True,
    **kwargs,
) -> OAuth2Strategy:
    """Create an OAuth2Strategy configured for GitHub."""
    options = OAuth2StrategyOptions(
        client_id=client_id,
        client_secret=client_secret,
        authorization_endpoint=GITHUB_AUTHORIZATION_ENDPOINT,
        token_endpoint=GITHUB_TOKEN_ENDPOINT,
        redirect_uri=redirect_uri,
        scopes=scopes if scopes is not None else ["user:email"],
        cookie=kwargs.pop("cookie", None),
        cookie_secret=kwargs.pop("cookie_secret", None),
    )
    return OAuth2Strategy(options, verify, hooks=GitHubHooks(allow_signup), **kwargs)


# ============== Google ==============

GOOGLE_AUTHORIZATION_ENDPOINT = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_ENDPOINT = "https://oauth2.googleapis.com/token"
GOOGLE_REVOCATION_ENDPOINT = "https://oauth2.googleapis.com/revoke"
GOOGLE_USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"


class GoogleHooks(OAuth2Hooks):
    name = "google"

    def __init__(
        self,
        access_type: str = "online",
        prompt: Optional[str] = None,
        include_granted_scopes: bool = False,
        hosted_domain: Optional[str] = None,
    ):
        self.access_type = access_type
        self.prompt = prompt
        self.include_granted_scopes = include_granted_scopes
        self.hosted_domain = hosted_domain

    def authorization_params(self, params: MultiDict, request, options: AuthenticateOptions) -> MultiDict:
        params["access_type"] = self.access_type
        params["include_granted_scopes"] = "true" if self.include_granted_scopes else "false"
        if self.prompt:
            params["prompt"] = self.prompt
        if self.hosted_domain:
            params["hd"] = self.hosted_domain
        return params

    async def user_profile(self, tokens: OAuth2Tokens, client: OAuth2Client) -> OAuth2Profile:
        user = await client.fetch_userinfo(GOOGLE_USERINFO_URL, tokens.access_token)
        return OAuth2Profile(
            provider=self.name,
            id=user.get("sub"),
            display_name=user.get("name"),
            emails=[user["email"]] if user.get("email") else [],
            photos=[user["picture"]] if user.get("picture") else [],
            raw=user,
        )


def google_strategy(
    client_id: str,
    client_secret: str,
    redirect_uri: str,
    verify,
    scopes: Optional[list[str]] = None,
    access_type: str = "online",
    prompt: Optional[str] = None,
    include_granted_scopes: bool = False,
    hosted_domain: Optional[str] = None,
    **kwargs,
) -> OAuth2Strategy:
    """Create an OAuth2Strategy configured for Google."""
    options = OAuth2StrategyOptions(
        client_id=client_id,
        client_secret=client_secret,
        authorization_endpoint=GOOGLE_AUTHORIZATION_ENDPOINT,
        token_endpoint=GOOGLE_TOKEN_ENDPOINT,
        token_revocation_endpoint=GOOGLE_REVOCATION_ENDPOINT,
        redirect_uri=redirect_uri,
        scopes=scopes if scopes is not None else ["openid", "profile", "email"],
        cookie=kwargs.pop("cookie", None),
        cookie_secret=kwargs.pop("cookie_secret", None),
    )
    hooks = GoogleHooks(access_type, prompt, include_granted_scopes, hosted_domain)
    return OAuth2Strategy(options, verify, hooks=hooks, **kwargs)
