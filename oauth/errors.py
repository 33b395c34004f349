"""Error types raised by the authentication strategies.

Every error derives from AuthError so applications can catch the whole
family at once, while the subclasses keep the categories apart:
- ConfigurationError: the strategy was set up without something it needs
- ProtocolError: the callback request doesn't belong to a flow we started
- ProviderError: the identity provider answered with an error
- AuthorizationError: raised by applications from their verify callback
"""

from typing import Optional


class AuthError(Exception):
    """Base class for every error raised by this package."""


class ConfigurationError(AuthError):
    """A required endpoint, secret or option is missing or invalid."""


class StrategyNotFoundError(ConfigurationError):
    """No strategy is registered under the requested name."""

    def __init__(self, name: str):
        super().__init__(f"Strategy {name} not found.")
        self.name = name


# ============== Protocol violations ==============

class ProtocolError(AuthError):
    """The callback request failed a CSRF or PKCE check.

    Retrying the same request fails the same way, so these are never retried.
    """


class MissingStateCookieError(ProtocolError):
    def __init__(self):
        super().__init__("Missing state on cookie.")


class StateMismatchError(ProtocolError):
    def __init__(self):
        super().__init__("State in URL doesn't match state in cookie.")


class MissingCodeError(ProtocolError):
    def __init__(self):
        super().__init__("Missing code in the URL.")


class MissingCodeVerifierError(ProtocolError):
    def __init__(self):
        super().__init__("Missing code verifier on cookie.")


# ============== Provider errors ==============

class ProviderError(AuthError):
    """The identity provider rejected a request or answered unexpectedly."""


class OAuth2RequestError(ProviderError):
    """An RFC 6749 error response, from the callback URL or the token endpoint."""

    def __init__(
        self,
        code: str,
        description: Optional[str] = None,
        uri: Optional[str] = None,
        state: Optional[str] = None,
    ):
        message = f"{code}: {description}" if description else code
        super().__init__(message)
        self.code = code
        self.description = description
        self.uri = uri
        self.state = state

    def to_dict(self) -> dict:
        """Error payload using the RFC 6749 field names."""
        data = {"error": self.code}
        if self.description:
            data["error_description"] = self.description
        if self.uri:
            data["error_uri"] = self.uri
        return data


class UnexpectedResponseError(ProviderError):
    """The provider answered with a status or body we can't interpret."""

    def __init__(self, status_code: int, body: str = ""):
        super().__init__(f"Unexpected response from provider (HTTP {status_code})")
        self.status_code = status_code
        self.body = body


class DiscoveryError(ProviderError):
    """The OpenID discovery document could not be fetched or parsed."""


# ============== Application errors ==============

class AuthorizationError(AuthError):
    """Raised by verify callbacks to reject an authenticated identity.

    Strategies let it propagate untouched.
    """

    def __init__(self, message: str = "Unauthorized", cause: Optional[Exception] = None):
        super().__init__(message)
        self.cause = cause
