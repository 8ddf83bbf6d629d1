"""
行情数据路由
GET /api/market-data              - 市场快照
GET /api/market-data/{ticker}     - 单只代码实时报价
"""

from fastapi import APIRouter, Depends, Query

from searchinvest.models.response import ApiResponse
from searchinvest.routers.deps import get_container, respond
from searchinvest.services.container import ServiceContainer

router = APIRouter(prefix="/api/market-data", tags=["行情数据"])


@router.get("", response_model=ApiResponse)
async def market_snapshot(
    force_refresh: bool = Query(default=False),
    container: ServiceContainer = Depends(get_container),
):
    """获取市场快照"""
    return await respond(
        container.market.get_snapshot(force_refresh=force_refresh),
        message="获取市场快照成功",
    )


@router.get("/{ticker}", response_model=ApiResponse)
async def market_quote(
    ticker: str,
    force_refresh: bool = Query(default=False),
    container: ServiceContainer = Depends(get_container),
):
    """获取单只代码实时报价"""
    return await respond(container.market.get_quote(ticker, force_refresh=force_refresh))
