"""OAuth2 strategy server.

Wires a configured strategy into a FastAPI application:
- /auth/{provider} starts a login, /auth/{provider}/callback finishes it
- /health for liveness checks

The strategy comes from config.py (JSON file and OAUTH_* environment
variables). With OAUTH_ISSUER set, endpoints are discovered at startup.
"""
import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

import httpx
import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI

from authenticator import Authenticator
from config import Config, load_config
from logging_config import setup_logging
from oauth.endpoints import init_auth_routes
from oauth.oauth2 import OAuth2Strategy, VerifyParams
from oauth.providers import github_strategy, google_strategy

# Load environment: .env (local override)
_env_file = Path(".env")
if _env_file.exists():
    load_dotenv(_env_file)

logger = logging.getLogger(__name__)


async def build_strategy(
    config: Config,
    authenticator: Authenticator,
    http_client: Optional[httpx.AsyncClient] = None,
) -> OAuth2Strategy:
    """Create the strategy described by the config."""

    async def verify(params: VerifyParams) -> dict:
        strategy = authenticator.get(config.strategy_name)
        profile = await strategy.user_profile(params.tokens)
        return {
            "profile": profile,
            "scopes": params.tokens.scopes,
            "expires_at": params.tokens.access_token_expires_at,
        }

    common = {
        "cookie": config.cookie_options(),
        "cookie_secret": config.cookie_secret,
        "http_client": http_client,
        "name": config.strategy_name,
    }

    if config.provider == "github":
        return github_strategy(
            config.client_id,
            config.client_secret,
            config.redirect_uri,
            verify,
            scopes=config.scopes or None,
            **common,
        )
    if config.provider == "google":
        return google_strategy(
            config.client_id,
            config.client_secret,
            config.redirect_uri,
            verify,
            scopes=config.scopes or None,
            **common,
        )
    if config.issuer:
        return await OAuth2Strategy.discover(
            config.issuer,
            config.to_strategy_options(),
            verify,
            http_client=http_client,
            name=config.strategy_name,
        )
    return OAuth2Strategy(
        config.build_options(),
        verify,
        http_client=http_client,
        name=config.strategy_name,
    )


def create_app(
    config: Optional[Config] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> FastAPI:
    """Create the FastAPI application."""
    config = config or load_config()
    authenticator = Authenticator()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if config.is_valid():
            strategy = await build_strategy(config, authenticator, http_client)
            authenticator.use(strategy, config.strategy_name)
        else:
            logger.warning("[STARTUP] OAuth config incomplete, no strategy registered")
        yield

    app = FastAPI(
        title="OAuth2 Strategies",
        description="OAuth 2.0 authorization code flow with PKCE",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.config = config

    init_auth_routes(app, authenticator)

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "service": "oauth-strategies",
            "strategies": sorted(authenticator.strategies),
        }

    return app


setup_logging()
app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        log_level="info",
    )
