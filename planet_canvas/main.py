"""FastAPI application entry point."""

import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api.stamp import router as stamp_router
from .api.tiles import router as tiles_router
from .config import LOG_LEVEL
from .core.errors import Busy, InvalidInput, RateLimited, StampError, StorageFailure
from .core.pipeline import WorldState
from .core.ratelimit import RateLimiter

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    InvalidInput: 400,
    RateLimited: 429,
    Busy: 503,
    StorageFailure: 502,
}


def configure_logging(level: str = LOG_LEVEL) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


async def stamp_error_handler(request: Request, exc: StampError):
    """Report pipeline errors as structured JSON with a retry hint."""
    status_code = ERROR_STATUS.get(type(exc), 500)
    headers = {}
    if isinstance(exc, RateLimited):
        headers["Retry-After"] = str(max(1, int(exc.retry_after + 0.999)))
    elif isinstance(exc, Busy):
        headers["Retry-After"] = "1"

    if status_code >= 500:
        logger.warning("%s on %s %s: %s", exc.code, request.method, request.url, exc.detail)
    return JSONResponse(status_code=status_code, content=exc.to_dict(), headers=headers)


# Request field names as reported in errors
FIELD_NAMES = {
    "lat": "latitude",
    "long": "longitude",
}


async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Report malformed requests as invalid_input naming the first bad field."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    loc = first.get("loc") or ("body",)
    field = FIELD_NAMES.get(str(loc[-1]), str(loc[-1]))
    error = InvalidInput(field, first.get("msg", "Invalid request"))
    return JSONResponse(status_code=400, content=error.to_dict())


async def global_exception_handler(request: Request, exc: Exception):
    """Log unhandled errors with stack traces and return a JSON 500."""
    logger.error(
        "Unhandled exception on %s %s: %s\n%s",
        request.method, request.url, exc, traceback.format_exc(),
    )
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "internal_error",
            "detail": "Internal server error",
            "retryable": False,
        },
    )


def create_app(world: WorldState = None, rate_limiter: RateLimiter = None) -> FastAPI:
    """
    Build the application around one world state.

    Args:
        world: World state to serve (built from STORAGE settings if omitted)
        rate_limiter: Per-user stamp limiter (RATE_LIMIT settings if omitted)
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await app.state.world.close()

    app = FastAPI(
        title="Planet Canvas",
        description="共享星球纹理 - 地理坐标瓦片寻址与盖章合成服务",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.state.world = world or WorldState.from_settings()
    app.state.rate_limiter = rate_limiter or RateLimiter()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(stamp_router)
    app.include_router(tiles_router)

    app.add_exception_handler(StampError, stamp_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        state = app.state.world
        return {
            "status": "healthy",
            "texture_version": state.texture_version,
            "busy": state.busy,
            "cache": state.cache.stats(),
        }

    return app


configure_logging()
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
