"""
公司信息路由
GET /api/company/{ticker}   - 公司资料与基本面
"""

from fastapi import APIRouter, Depends, Query

from searchinvest.models.response import ApiResponse
from searchinvest.routers.deps import get_container, respond
from searchinvest.services.container import ServiceContainer

router = APIRouter(prefix="/api/company", tags=["公司信息"])


@router.get("/{ticker}", response_model=ApiResponse)
async def company_info(
    ticker: str,
    force_refresh: bool = Query(default=False),
    container: ServiceContainer = Depends(get_container),
):
    return await respond(container.company.get_company_info(ticker, force_refresh=force_refresh))
