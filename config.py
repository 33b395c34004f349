"""Config management for the OAuth2 strategy server."""
import json
import os
from pathlib import Path
from typing import Optional

from oauth.oauth2 import OAuth2StrategyOptions


CONFIG_DIR = Path.home() / ".oauth-strategies"
CONFIG_FILE = CONFIG_DIR / "config.json"

# Environment variable -> config key. Environment values override the file.
ENV_KEYS = {
    "OAUTH_PROVIDER": "provider",
    "OAUTH_STRATEGY_NAME": "strategy_name",
    "OAUTH_CLIENT_ID": "client_id",
    "OAUTH_CLIENT_SECRET": "client_secret",
    "OAUTH_ISSUER": "issuer",
    "OAUTH_AUTHORIZATION_ENDPOINT": "authorization_endpoint",
    "OAUTH_TOKEN_ENDPOINT": "token_endpoint",
    "OAUTH_REVOCATION_ENDPOINT": "token_revocation_endpoint",
    "OAUTH_REDIRECT_URI": "redirect_uri",
    "OAUTH_SCOPES": "scopes",
    "OAUTH_AUDIENCE": "audience",
    "OAUTH_CODE_CHALLENGE_METHOD": "code_challenge_method",
    "OAUTH_COOKIE_NAME": "cookie_name",
    "OAUTH_COOKIE_SECRET": "cookie_secret",
    "OAUTH_COOKIE_SECURE": "cookie_secure",
}


def _split(value) -> list[str]:
    """Accept a list or a comma/space separated string."""
    if not value:
        return []
    if isinstance(value, list):
        return [str(v) for v in value]
    return [part for part in str(value).replace(",", " ").split() if part]


class Config:
    """Configuration container."""

    def __init__(self, data: dict = None):
        self.data = data or {}

    @property
    def provider(self) -> str:
        return self.data.get("provider") or "oauth2"

    @property
    def strategy_name(self) -> str:
        return self.data.get("strategy_name") or self.provider

    @property
    def client_id(self) -> Optional[str]:
        return self.data.get("client_id")

    @property
    def client_secret(self) -> Optional[str]:
        return self.data.get("client_secret")

    @property
    def issuer(self) -> Optional[str]:
        return self.data.get("issuer")

    @property
    def authorization_endpoint(self) -> Optional[str]:
        return self.data.get("authorization_endpoint")

    @property
    def token_endpoint(self) -> Optional[str]:
        return self.data.get("token_endpoint")

    @property
    def token_revocation_endpoint(self) -> Optional[str]:
        return self.data.get("token_revocation_endpoint")

    @property
    def redirect_uri(self) -> Optional[str]:
        return self.data.get("redirect_uri")

    @property
    def scopes(self) -> list[str]:
        return _split(self.data.get("scopes"))

    @property
    def audience(self) -> Optional[list[str]]:
        return _split(self.data.get("audience")) or None

    @property
    def code_challenge_method(self) -> Optional[str]:
        return self.data.get("code_challenge_method")

    @property
    def cookie_name(self) -> str:
        return self.data.get("cookie_name") or "oauth2"

    @property
    def cookie_secret(self) -> Optional[str]:
        return self.data.get("cookie_secret")

    @property
    def cookie_secure(self) -> bool:
        value = self.data.get("cookie_secure", False)
        if isinstance(value, str):
            return value.lower() == "true"
        return bool(value)

    def is_valid(self) -> bool:
        """Check if config has required fields."""
        if not (self.client_id and self.redirect_uri):
            return False
        if self.provider in ("github", "google"):
            return bool(self.client_secret)
        return bool(self.issuer or (self.authorization_endpoint and self.token_endpoint))

    def cookie_options(self) -> dict:
        return {"name": self.cookie_name, "secure": self.cookie_secure}

    def to_strategy_options(self) -> dict:
        """Options for OAuth2Strategy / OAuth2Strategy.discover.

        Unset values are left out so discovered endpoints aren't overridden.
        """
        options = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "authorization_endpoint": self.authorization_endpoint,
            "token_endpoint": self.token_endpoint,
            "token_revocation_endpoint": self.token_revocation_endpoint,
            "redirect_uri": self.redirect_uri,
            "scopes": self.scopes or None,
            "audience": self.audience,
            "code_challenge_method": self.code_challenge_method,
            "cookie": self.cookie_options(),
            "cookie_secret": self.cookie_secret,
        }
        return {key: value for key, value in options.items() if value is not None}

    def build_options(self) -> OAuth2StrategyOptions:
        """Static strategy options, for providers configured without discovery."""
        return OAuth2StrategyOptions(**self.to_strategy_options())


def load_config(path: Optional[Path] = None, environ: Optional[dict] = None) -> Config:
    """Load config from file, then apply OAUTH_* environment overrides."""
    environ = os.environ if environ is None else environ
    config_file = Path(path) if path else Path(environ.get("OAUTH_CONFIG_FILE", CONFIG_FILE))

    data = {}
    if config_file.exists():
        try:
            with open(config_file, "r") as f:
                data = json.load(f)
        except (json.JSONDecodeError, IOError):
            data = {}

    for env_key, key in ENV_KEYS.items():
        value = environ.get(env_key)
        if value:
            data[key] = value

    return Config(data)
