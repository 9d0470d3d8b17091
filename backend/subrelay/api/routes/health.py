from fastapi import APIRouter, Depends
import structlog

from subrelay.core.deps import Services, get_services

logger = structlog.get_logger()
router = APIRouter(tags=["Health"])

API_ROUTES = [
    "/api/translate",
    "/api/serve",
    "/api/download",
    "/api/anilist-to-hianimez",
]


@router.get("/")
def index():
    return {"ok": True, "routes": API_ROUTES}


@router.get("/health")
async def health_check(services: Services = Depends(get_services)):
    """System health check endpoint."""
    checks = {"status": "ok", "version": "1.0.0", "translator": services.pipeline is not None, "cache": {}}

    health = getattr(services.cache, "health", None)
    if health is not None:
        checks["cache"] = await health()
    else:
        checks["cache"] = {"cache": await services.cache.ping()}

    if not checks["translator"] or not any(checks["cache"].values()):
        checks["status"] = "degraded"

    return checks
