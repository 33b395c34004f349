"""Cookie-backed storage for OAuth2 state and PKCE code verifiers.

When the user is sent to the authorization endpoint we have to remember the
state and the code verifier until the provider redirects back. There is no
server-side session, so both travel in a short-lived cookie.

A browser can run several flows at once (two tabs, a retry, a double
click). Each flow therefore gets its own cookie named `<base>:<random id>`,
and the callback reads every sibling cookie back into one store. Concurrent
flows never write to the same cookie, so nothing needs locking.

Cookie value format: `state=<S>&<S>=<V>`, the verifier keyed by its state.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Iterable, Optional, Union
from urllib.parse import parse_qsl, urlencode

from oauth.jwt_utils import sign_state_value, verify_state_value

logger = logging.getLogger(__name__)

DEFAULT_COOKIE_NAME = "oauth2"
COOKIE_MAX_AGE = 60 * 5  # 5 minutes

# Reserved key in the cookie value, every other key is a state
STATE_KEY = "state"


def serialize_flow(state: str, code_verifier: str) -> str:
    """Serialize one flow as `state=<S>&<S>=<V>`."""
    return urlencode([(STATE_KEY, state), (state, code_verifier)])


@dataclass(frozen=True)
class StateCookie:
    """A Set-Cookie ready to be written on a response."""
    name: str
    value: str
    max_age: int = COOKIE_MAX_AGE
    path: str = "/"
    domain: Optional[str] = None
    secure: bool = False
    httponly: bool = True
    samesite: str = "lax"

    def apply(self, response) -> None:
        """Write the cookie on a starlette/FastAPI response."""
        response.set_cookie(
            key=self.name,
            value=self.value,
            max_age=self.max_age,
            path=self.path,
            domain=self.domain,
            secure=self.secure,
            httponly=self.httponly,
            samesite=self.samesite,
        )

    def expire(self, response) -> None:
        """Delete the cookie; path and domain must match the ones it was set with."""
        response.delete_cookie(
            key=self.name,
            path=self.path,
            domain=self.domain,
            secure=self.secure,
            httponly=self.httponly,
            samesite=self.samesite,
        )


@dataclass(frozen=True)
class PendingFlow:
    """The flow a store will persist: one state and its code verifier."""
    state: str
    code_verifier: Optional[str] = None

    def __str__(self) -> str:
        if not self.state or not self.code_verifier:
            return ""
        return serialize_flow(self.state, self.code_verifier)

    def to_cookie(
        self,
        name: str = DEFAULT_COOKIE_NAME,
        secret: Optional[str] = None,
        **attributes,
    ) -> StateCookie:
        """Build the cookie for this flow.

        The cookie name gets a random suffix so concurrent flows end up in
        sibling cookies. Attributes default to HttpOnly, Path=/, SameSite=Lax
        and a 5 minute max-age; keyword arguments override them.
        """
        attributes.pop("name", None)
        max_age = attributes.get("max_age", COOKIE_MAX_AGE)
        value = str(self)
        if secret and value:
            value = sign_state_value(value, secret, expires_in=max_age)
        return StateCookie(name=f"{name}:{uuid.uuid4()}", value=value, **attributes)


class StateStore:
    """The outstanding flows known from one request's cookies.

    `states` answers "did we issue this state", `code_verifiers` supplies
    the verifier needed to finish it. `pending` is the flow recorded by the
    last set() call and is the only one serialized on output.
    """

    def __init__(self, params: Union[str, Iterable[tuple], None] = None):
        self.states: set[str] = set()
        self.code_verifiers: dict[str, str] = {}
        self.pending: Optional[PendingFlow] = None
        self._cookie_names: dict[str, str] = {}

        if isinstance(params, str):
            params = parse_qsl(params, keep_blank_values=True)
        for state, verifier in params or ():
            if state == STATE_KEY:
                continue
            self.states.add(state)
            self.code_verifiers[state] = verifier

    def set(self, state: str, code_verifier: Optional[str] = None) -> PendingFlow:
        """Record a new flow and make it the one to serialize."""
        self.pending = PendingFlow(state, code_verifier)
        self.states.add(state)
        if code_verifier:
            self.code_verifiers[state] = code_verifier
        return self.pending

    def has(self, state: Optional[str] = None) -> bool:
        """Check for a given state, or for any state when called without one."""
        if state is None:
            return len(self.states) > 0
        return state in self.states

    def get(self, state: str) -> Optional[str]:
        """Return the code verifier bound to a state, if known."""
        return self.code_verifiers.get(state)

    def cookie_name(self, state: str) -> Optional[str]:
        """Name of the request cookie that carried a state, if any."""
        return self._cookie_names.get(state)

    def to_string(self) -> str:
        """Serialize the pending flow, or return "" when there's nothing to persist."""
        if self.pending is None:
            return ""
        return str(self.pending)

    __str__ = to_string

    def to_cookie(
        self,
        name: str = DEFAULT_COOKIE_NAME,
        secret: Optional[str] = None,
        **attributes,
    ) -> StateCookie:
        """Build the cookie carrying the pending flow."""
        return (self.pending or PendingFlow("")).to_cookie(name, secret, **attributes)

    @classmethod
    def from_request(
        cls,
        request,
        name: str = DEFAULT_COOKIE_NAME,
        secret: Optional[str] = None,
    ) -> "StateStore":
        """Rebuild the store from every state cookie on a request.

        Cookies named exactly `name` or `name:<suffix>` are read and their
        flows merged. With a secret, values that fail verification are
        skipped as if the cookie wasn't there.
        """
        store = cls()
        prefix = f"{name}:"

        for cookie_name, value in request.cookies.items():
            if cookie_name != name and not cookie_name.startswith(prefix):
                continue
            if not value:
                continue

            if secret:
                value = verify_state_value(value, secret)
                if value is None:
                    logger.info(f"[STATE] Ignoring cookie with invalid signature: {cookie_name}")
                    continue

            for key, verifier in parse_qsl(value, keep_blank_values=True):
                if key == STATE_KEY:
                    continue
                store.states.add(key)
                store.code_verifiers[key] = verifier
                store._cookie_names[key] = cookie_name

        return store
