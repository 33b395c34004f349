"""Strategy registry.

Applications register strategies under names and dispatch requests to them:

    authenticator = Authenticator()
    authenticator.use(github_strategy(...)).use(google_strategy(...))
    result = await authenticator.authenticate("github", request)
"""

import logging
from typing import Optional

from oauth.errors import StrategyNotFoundError
from oauth.strategy import AuthResult, Strategy

logger = logging.getLogger(__name__)


class Authenticator:
    """Maps strategy names to strategy instances."""

    def __init__(self):
        self.strategies: dict[str, Strategy] = {}

    def use(self, strategy: Strategy, name: Optional[str] = None) -> "Authenticator":
        """Register a strategy, by default under its own name."""
        name = name or strategy.name
        self.strategies[name] = strategy
        logger.info(f"[AUTH] Strategy registered: {name}")
        return self

    def unuse(self, name: str) -> "Authenticator":
        """Remove a strategy. Unknown names are ignored."""
        self.strategies.pop(name, None)
        return self

    def get(self, name: str) -> Optional[Strategy]:
        return self.strategies.get(name)

    async def authenticate(self, name: str, request, **options) -> AuthResult:
        """Run the strategy registered under `name` against the request."""
        strategy = self.strategies.get(name)
        if strategy is None:
            raise StrategyNotFoundError(name)
        return await strategy.authenticate(request, **options)
