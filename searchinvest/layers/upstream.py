"""
上游客户端层
封装"按键拉取远端数据"的统一能力：超时、指数退避重试、错误归一化。

每个数据提供商一个子类（见 providers.py），只需实现 _fetch() 以及
提供商特有错误结构的识别（_check_payload）。对外只暴露 fetch()，
其返回值永远是 Success / Failure 之一，不抛异常。
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Union

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)


class FailureKind(str, Enum):
    NOT_FOUND = "NotFound"
    RATE_LIMITED = "RateLimited"
    UNAUTHORIZED = "Unauthorized"
    TRANSIENT = "Transient"
    UNKNOWN = "Unknown"


# 合并多个失败时取最严重者
_SEVERITY = {
    FailureKind.NOT_FOUND: 0,
    FailureKind.TRANSIENT: 1,
    FailureKind.UNKNOWN: 2,
    FailureKind.RATE_LIMITED: 3,
    FailureKind.UNAUTHORIZED: 4,
}


def most_severe(kinds) -> FailureKind:
    return max(kinds, key=lambda k: _SEVERITY[k])


@dataclass(frozen=True)
class Success:
    payload: Any

    ok = True


@dataclass(frozen=True)
class Failure:
    kind: FailureKind
    message: str

    ok = False


UpstreamResult = Union[Success, Failure]


class UpstreamError(Exception):
    """带类型的上游失败；领域服务在无旧值可降级时向调用方抛出"""

    def __init__(self, kind: FailureKind, message: str):
        super().__init__(f"{kind.value}: {message}")
        self.kind = kind
        self.message = message

    @classmethod
    def from_failure(cls, failure: Failure) -> "UpstreamError":
        return cls(failure.kind, failure.message)

    def to_failure(self) -> Failure:
        return Failure(self.kind, self.message)


def _is_transient(exc: BaseException) -> bool:
    return isinstance(exc, UpstreamError) and exc.kind is FailureKind.TRANSIENT


class UpstreamClient:
    """上游客户端基类"""

    provider = "base"

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 10.0,
        max_attempts: int = 3,
        backoff_base: float = 0.5,
        backoff_max: float = 8.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._api_key = api_key
        self._max_attempts = max(int(max_attempts), 1)
        self._backoff_base = backoff_base
        self._backoff_max = backoff_max
        self._http = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)

    async def fetch(self, query: Any = None) -> UpstreamResult:
        """执行一次完整的上游拉取（含重试），结果归一化为 Success / Failure"""
        try:
            payload = await self._fetch(query)
        except UpstreamError as exc:
            self._log_failure(query, exc)
            return exc.to_failure()
        except Exception as exc:
            # 载荷结构与预期不符等
            logger.error(f"{self.provider} 处理上游响应失败（query={query}）: {exc!r}", exc_info=True)
            return Failure(FailureKind.UNKNOWN, f"{self.provider} 响应处理失败: {type(exc).__name__}: {exc}")
        return Success(payload)

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _fetch(self, query: Any) -> Any:
        raise NotImplementedError

    # ── HTTP + 重试 ───────────────────────────────────────

    async def _get_json(self, path: str, params: Dict[str, Any]) -> Any:
        """GET 请求；仅 Transient 类失败会重试，其余立即失败"""
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_exponential(multiplier=self._backoff_base, max=self._backoff_max),
            retry=retry_if_exception(_is_transient),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                payload = await self._request_once(path, params)
        return payload

    async def _request_once(self, path: str, params: Dict[str, Any]) -> Any:
        try:
            response = await self._http.get(path, params=params)
        except httpx.TimeoutException as exc:
            raise UpstreamError(FailureKind.TRANSIENT, f"{self.provider} 请求超时: {exc!r}")
        except httpx.TransportError as exc:
            raise UpstreamError(FailureKind.TRANSIENT, f"{self.provider} 网络错误: {exc!r}")
        except httpx.HTTPError as exc:
            raise UpstreamError(FailureKind.UNKNOWN, f"{self.provider} HTTP 错误: {exc!r}")

        self._check_status(response)
        try:
            payload = response.json()
        except ValueError:
            raise UpstreamError(FailureKind.UNKNOWN, f"{self.provider} 返回了无法解析的响应体")
        self._check_payload(payload)
        return payload

    def _check_status(self, response: httpx.Response) -> None:
        status = response.status_code
        if status < 400:
            return
        detail = f"{self.provider} HTTP {status}"
        if status == 429:
            raise UpstreamError(FailureKind.RATE_LIMITED, detail)
        if status in (401, 403):
            raise UpstreamError(FailureKind.UNAUTHORIZED, detail)
        if status == 404:
            raise UpstreamError(FailureKind.NOT_FOUND, detail)
        if status >= 500:
            raise UpstreamError(FailureKind.TRANSIENT, detail)
        raise UpstreamError(FailureKind.UNKNOWN, detail)

    def _check_payload(self, payload: Any) -> None:
        """识别提供商在 200 响应体中携带的错误，子类覆盖"""

    def _log_failure(self, query: Any, exc: UpstreamError) -> None:
        if exc.kind is FailureKind.UNAUTHORIZED:
            logger.error(f"🚨 {self.provider} 凭据被拒绝，请检查 API Key 配置: {exc.message}")
        elif exc.kind is FailureKind.UNKNOWN:
            logger.error(f"{self.provider} 未知上游错误（query={query}）: {exc.message}")
        elif exc.kind is FailureKind.TRANSIENT:
            logger.warning(f"{self.provider} 重试 {self._max_attempts} 次后仍失败（query={query}）: {exc.message}")
        elif exc.kind is FailureKind.RATE_LIMITED:
            logger.warning(f"{self.provider} 触发限流（query={query}）: {exc.message}")
        else:
            logger.info(f"{self.provider} 未找到数据（query={query}）: {exc.message}")
