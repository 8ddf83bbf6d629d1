"""
分析路由
GET /api/analysis/{ticker}  - 技术 / 基本面分析
"""

from fastapi import APIRouter, Depends, Query

from searchinvest.models.response import ApiResponse
from searchinvest.routers.deps import get_container, respond
from searchinvest.services.container import ServiceContainer

router = APIRouter(prefix="/api/analysis", tags=["分析"])


@router.get("/{ticker}", response_model=ApiResponse)
async def analysis(
    ticker: str,
    force_refresh: bool = Query(default=False, description="跳过缓存与持久化记录，重新获取"),
    container: ServiceContainer = Depends(get_container),
):
    return await respond(container.analysis.get_analysis(ticker, force_refresh=force_refresh))
