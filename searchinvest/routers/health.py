"""健康检查路由"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from searchinvest import __version__
from searchinvest.routers.deps import get_container
from searchinvest.services.container import ServiceContainer

router = APIRouter(tags=["健康检查"])


@router.get("/health")
async def health(container: ServiceContainer = Depends(get_container)):
    """服务健康检查"""
    return {
        "success": True,
        "data": {
            "status": "healthy",
            "version": __version__,
            "timestamp": datetime.now(tz=timezone.utc).isoformat(),
            "service": "SearchInvest",
            "cache": container.cache.backend,
            "analysis_store": container.analysis_store.backend,
            "in_flight": len(container.coordinator.stats()),
        },
        "message": "服务运行正常",
    }


@router.get("/healthz")
async def healthz():
    """Kubernetes liveness probe"""
    return {"status": "ok"}


@router.get("/readyz")
async def readyz():
    """Kubernetes readiness probe"""
    return {"ready": True}
