"""FastAPI dependencies shared by the routers."""

from fastapi import Request

from ..core.pipeline import WorldState
from ..core.ratelimit import RateLimiter


def get_world(request: Request) -> WorldState:
    """World state owned by the running application."""
    return request.app.state.world


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter
