"""
缓存管理路由
GET  /api/cache/stats       - 缓存与 in-flight 请求统计
POST /api/cache/invalidate  - 使指定缓存键失效
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from searchinvest.models.response import ApiResponse
from searchinvest.routers.deps import get_container
from searchinvest.services.container import ServiceContainer

router = APIRouter(prefix="/api/cache", tags=["缓存管理"])


class InvalidateRequest(BaseModel):
    key: str


@router.get("/stats", response_model=ApiResponse)
async def cache_stats(container: ServiceContainer = Depends(get_container)):
    """获取缓存统计信息"""
    stats = await container.cache.stats()
    return ApiResponse.ok(data={"cache": stats, "in_flight": container.coordinator.stats()})


@router.post("/invalidate", response_model=ApiResponse)
async def invalidate_cache(
    body: InvalidateRequest,
    container: ServiceContainer = Depends(get_container),
):
    """使单个缓存条目失效，如 company:AAPL / market:snapshot"""
    key = body.key.strip()
    await container.cache.invalidate(key)
    return ApiResponse.ok(data={"key": key}, message=f"缓存已失效: {key}")
