"""JWT utilities for signed state cookies.

Provides stateless signing and validation of state cookie values using PyJWT.
A signed value can't be forged or edited by the browser, and it carries its
own expiry so a replayed cookie is rejected after its max-age even if the
browser kept it.
"""

import logging
import time
from typing import Optional

import jwt

logger = logging.getLogger(__name__)

# JWT configuration
JWT_ALGORITHM = "HS256"
STATE_COOKIE_EXPIRE_SECONDS = 5 * 60  # 5 minutes, same as the cookie max-age
TOKEN_TYPE = "oauth2_state"


def sign_state_value(
    value: str,
    secret: str,
    expires_in: int = STATE_COOKIE_EXPIRE_SECONDS
) -> str:
    """Wrap a serialized state store in a signed JWT.

    Args:
        value: The URL-encoded state/verifier string
        secret: The signing secret
        expires_in: Lifetime in seconds (default 5 minutes)

    Returns:
        A signed JWT token string
    """
    now = int(time.time())

    payload = {
        "v": value,                # Serialized state store
        "iat": now,                # Issued at - standard claim
        "exp": now + expires_in,   # Expiration - standard claim
        "type": TOKEN_TYPE         # Token type
    }

    return jwt.encode(payload, secret, algorithm=JWT_ALGORITHM)


def verify_state_value(token: str, secret: str) -> Optional[str]:
    """Verify a signed state cookie value.

    Args:
        token: The JWT token string read from the cookie
        secret: The signing secret

    Returns:
        The wrapped state string if valid, None otherwise.
    """
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[JWT_ALGORITHM],
            options={"require": ["exp", "v"]}
        )
    except jwt.ExpiredSignatureError:
        logger.debug("[JWT] State cookie expired")
        return None
    except jwt.InvalidTokenError as e:
        logger.debug(f"[JWT] Invalid state cookie: {e}")
        return None

    if payload.get("type") != TOKEN_TYPE:
        logger.debug("[JWT] Token is not a state cookie")
        return None

    value = payload["v"]
    if not isinstance(value, str):
        return None
    return value
