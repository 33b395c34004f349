"""Authentication endpoints.

This module exposes the registered strategies over HTTP:
- Start a flow (/auth/{provider})
- Provider callback (/auth/{provider}/callback)

Both routes run the same strategy; the strategy itself decides from the
query string whether the request starts a flow or finishes one.
"""

import logging

import httpx
from fastapi import APIRouter, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from oauth.errors import (
    AuthorizationError,
    OAuth2RequestError,
    ProtocolError,
    ProviderError,
    StrategyNotFoundError,
)
from oauth.strategy import Authenticated, Redirect

logger = logging.getLogger(__name__)

# Router for authentication endpoints
router = APIRouter(tags=["auth"])


def init_auth_routes(app, authenticator):
    """Attach the application's Authenticator and mount the auth routes.

    Each app keeps its own Authenticator on app.state, so several apps can
    share the router.
    """
    app.state.authenticator = authenticator
    app.include_router(router)


def error_response(error: str, description: str, status_code: int) -> JSONResponse:
    return JSONResponse(
        {"error": error, "error_description": description},
        status_code=status_code,
        headers={"Cache-Control": "no-store"},
    )


def authenticated_response(result: Authenticated, provider: str) -> JSONResponse:
    """Return the session data and expire the consumed state cookie."""
    response = JSONResponse(
        {"provider": provider, "session": jsonable_encoder(result.data)},
        headers={
            "Cache-Control": "no-store, no-cache, must-revalidate",
            "Pragma": "no-cache",
            "Referrer-Policy": "no-referrer",
        },
    )
    if result.state_cookie:
        result.state_cookie.expire(response)
    return response


@router.get("/auth/{provider}")
@router.get("/auth/{provider}/callback")
async def authenticate(provider: str, request: Request):
    """Run the named strategy against the request."""
    authenticator = getattr(request.app.state, "authenticator", None)
    if authenticator is None:
        return error_response("server_error", "Authentication is not configured", 500)

    try:
        result = await authenticator.authenticate(provider, request)
    except StrategyNotFoundError as e:
        return error_response("not_found", str(e), 404)
    except ProtocolError as e:
        logger.warning(f"[AUTH] {provider}: {e}")
        return error_response("invalid_request", str(e), 400)
    except OAuth2RequestError as e:
        logger.info(f"[AUTH] {provider}: provider error {e.code}")
        return JSONResponse(e.to_dict(), status_code=401, headers={"Cache-Control": "no-store"})
    except ProviderError as e:
        logger.error(f"[AUTH] {provider}: {e}")
        return error_response("bad_gateway", str(e), 502)
    except httpx.HTTPError as e:
        logger.error(f"[AUTH] {provider}: could not reach provider: {e}")
        return error_response("bad_gateway", "Could not reach the identity provider", 502)
    except AuthorizationError as e:
        logger.info(f"[AUTH] {provider}: rejected by application: {e}")
        return error_response("access_denied", str(e), 401)

    if isinstance(result, Redirect):
        return result.response

    logger.info(f"[AUTH] {provider}: authenticated")
    return authenticated_response(result, provider)
