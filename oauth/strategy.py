"""Base strategy and authentication results.

A strategy turns a request into either:
- Redirect: send the browser elsewhere first (e.g. to the identity provider)
- Authenticated: the flow finished, `data` is what the verify callback returned

Failures are raised as exceptions from oauth.errors.
"""

import inspect
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Union

from starlette.responses import RedirectResponse

from oauth.state_store import StateCookie


@dataclass(frozen=True)
class Redirect:
    """The strategy needs the browser to go somewhere else first."""
    response: RedirectResponse

    @property
    def location(self) -> str:
        return self.response.headers["location"]


@dataclass(frozen=True)
class Authenticated:
    """The flow completed.

    state_cookie is the state cookie the flow used, with the attributes it
    was set with, so the HTTP layer can expire it.
    """
    data: Any
    state_cookie: Optional[StateCookie] = None

    @property
    def consumed_cookie(self) -> Optional[str]:
        return self.state_cookie.name if self.state_cookie else None


AuthResult = Union[Redirect, Authenticated]

VerifyCallback = Callable[[Any], Union[Any, Awaitable[Any]]]


class Strategy(ABC):
    """Base class for authentication strategies.

    `verify` is supplied by the application. It receives strategy-specific
    params and returns the session data, or raises AuthorizationError.
    It may be a plain function or a coroutine function.
    """

    name: str = "strategy"

    def __init__(self, verify: VerifyCallback):
        self.verify = verify

    async def run_verify(self, params) -> Any:
        result = self.verify(params)
        if inspect.isawaitable(result):
            result = await result
        return result

    @abstractmethod
    async def authenticate(self, request, **options) -> AuthResult:
        """Run the strategy against a request."""
