"""
市场情绪路由
GET /api/sentiment          - 整体市场情绪，?ticker= 指定代码
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from searchinvest.models.response import ApiResponse
from searchinvest.routers.deps import get_container, respond
from searchinvest.services.container import ServiceContainer

router = APIRouter(prefix="/api/sentiment", tags=["市场情绪"])


@router.get("", response_model=ApiResponse)
async def market_sentiment(
    ticker: Optional[str] = Query(default=None, description="股票代码，为空表示整体市场"),
    force_refresh: bool = Query(default=False),
    container: ServiceContainer = Depends(get_container),
):
    return await respond(
        container.sentiment.get_market_sentiment(ticker, force_refresh=force_refresh)
    )
