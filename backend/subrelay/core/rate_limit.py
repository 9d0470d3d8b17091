"""Per-client request limiting shared by every route."""

from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.requests import Request
from starlette.responses import JSONResponse
import structlog

from subrelay.core.config import Settings

logger = structlog.get_logger()


def build_limiter(settings: Settings) -> Limiter:
    """One limiter per app; RATE_LIMIT_MAX <= 0 turns it off."""
    # Keyed on the socket peer: X-Forwarded-For is client controlled
    return Limiter(
        key_func=get_remote_address,
        application_limits=[f"{settings.rate_limit_max} per {settings.rate_limit_window_seconds} seconds"],
        storage_uri=settings.rate_limit_storage_uri,
        enabled=settings.rate_limit_max > 0,
    )


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    logger.warning("rate_limit_exceeded", client=get_remote_address(request), limit=str(exc.detail))
    return JSONResponse(status_code=429, content={"error": "Too many requests, try again later."})
