# trailtrace/api/v1/routes_health.py
from fastapi import APIRouter

from trailtrace.core.config import settings

router = APIRouter(
    prefix="/health",
    tags=["health"],
)


@router.get("/", summary="Health check")
async def health_check():
    """
    Liveness probe. Does not contact the routing oracle: the engine
    degrades to straight lines when the oracle is down.
    """
    return {
        "status": "ok",
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "routing_backend": settings.ROUTING_BACKEND,
    }
