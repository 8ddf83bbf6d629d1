"""
路由公共依赖
  - 从 app.state 取出服务容器
  - 将领域服务的结果 / 类型化失败映射为 HTTP 响应
"""

from typing import Awaitable

from fastapi import HTTPException, Request, status

from searchinvest.layers.upstream import FailureKind, UpstreamError
from searchinvest.models.response import ApiResponse
from searchinvest.services.base import DataResult, InvalidQueryError
from searchinvest.services.container import ServiceContainer

_STATUS_BY_KIND = {
    FailureKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    FailureKind.RATE_LIMITED: status.HTTP_429_TOO_MANY_REQUESTS,
    FailureKind.UNAUTHORIZED: status.HTTP_502_BAD_GATEWAY,
    FailureKind.TRANSIENT: status.HTTP_503_SERVICE_UNAVAILABLE,
    FailureKind.UNKNOWN: status.HTTP_502_BAD_GATEWAY,
}


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


async def respond(call: Awaitable[DataResult], message: str = "success") -> ApiResponse:
    """等待领域服务调用并封装响应；失败转换为对应状态码"""
    try:
        result = await call
    except InvalidQueryError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    except UpstreamError as exc:
        raise HTTPException(
            status_code=_STATUS_BY_KIND[exc.kind],
            detail={"kind": exc.kind.value, "message": exc.message},
        )
    if result.stale:
        message = "上游暂不可用，返回过期数据"
    return ApiResponse.ok(data=result.value, message=message, meta=result.meta())
