"""FastAPI dependencies."""

from typing import Annotated

from fastapi import Depends, Request

from app.core.exceptions import InfraError
from app.database import AsyncSessionLocal
from app.services.push_queue import RedisPushQueue
from app.services.token_registry import TokenRegistry


def get_token_registry(request: Request) -> TokenRegistry:
    """
    Token registry owned by the running application.

    Falls back to a registry over the default session factory when the
    lifespan has not built one.
    """
    registry = getattr(request.app.state, "token_registry", None)
    if registry is None:
        registry = TokenRegistry(AsyncSessionLocal)
    return registry


def get_push_queue(request: Request) -> RedisPushQueue:
    """
    Dispatch queue owned by the running application.

    Raises:
        InfraError: If the queue was not initialized at startup
    """
    queue = getattr(request.app.state, "push_queue", None)
    if queue is None:
        raise InfraError("Dispatch queue not initialized")
    return queue


# Type aliases for dependency injection
Registry = Annotated[TokenRegistry, Depends(get_token_registry)]
PushQueue = Annotated[RedisPushQueue, Depends(get_push_queue)]
