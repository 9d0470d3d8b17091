import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
import structlog

from subrelay.core.config import Settings, get_settings
from subrelay.core.deps import Services, build_services
from subrelay.core.errors import SubRelayError
from subrelay.core.rate_limit import build_limiter, rate_limit_exceeded_handler
from subrelay.api.routes import anilist, health, subtitles, translate

# --- Logging setup ---
_settings = get_settings()
_log_level = logging.DEBUG if _settings.debug else logging.INFO
logging.basicConfig(level=_log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logging.getLogger("uvicorn").setLevel(_log_level)
logging.getLogger("fastapi").setLevel(_log_level)
# Suppress noisy httpcore/httpx debug logs (one line per chunk request otherwise)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)

structlog.configure(
    processors=[
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.dev.ConsoleRenderer(),
    ],
)
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    logger.info("server_starting", host=settings.host, port=settings.port, debug=settings.debug)

    owns_services = getattr(app.state, "services", None) is None
    if owns_services:
        app.state.services = build_services(settings)

    yield

    if owns_services:
        await app.state.services.aclose()
    logger.info("server_shutdown")


async def _subrelay_error_handler(request: Request, exc: SubRelayError):
    return JSONResponse(status_code=exc.http_status, content={"error": exc.message})


async def _http_error_handler(request: Request, exc: StarletteHTTPException):
    content = exc.detail if isinstance(exc.detail, dict) else {"error": exc.detail}
    return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))


async def _validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"error": "Invalid request", "details": jsonable_encoder(exc.errors())})


def create_app(settings: Optional[Settings] = None, services: Optional[Services] = None) -> FastAPI:
    """Build the app. Passing ``services`` skips building real clients in the lifespan."""
    settings = settings or (services.settings if services else get_settings())

    app = FastAPI(
        title="SubRelay API",
        description="Streaming WebVTT translation & subtitle cache backend",
        version="1.0.0",
        lifespan=lifespan,
        debug=settings.debug,
    )
    app.state.settings = settings
    if services is not None:
        app.state.services = services

    # Rate limit sits inside CORS so 429s still carry CORS headers
    app.state.limiter = build_limiter(settings)
    app.add_middleware(SlowAPIMiddleware)

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=False,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", "x-api-key"],
    )

    app.add_exception_handler(SubRelayError, _subrelay_error_handler)
    app.add_exception_handler(StarletteHTTPException, _http_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

    # Routes
    app.include_router(health.router)
    app.include_router(translate.router, prefix="/api")
    app.include_router(subtitles.router, prefix="/api")
    app.include_router(anilist.router, prefix="/api")

    return app


app = create_app()
