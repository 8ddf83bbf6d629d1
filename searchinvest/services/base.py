"""
领域服务公共组合逻辑
缓存键 → 缓存快路径 → 请求协调（single-flight）→ 上游 → 写缓存 → 返回；
上游失败时若存在旧值（即便已过期）则降级返回旧值并标记 stale，
仅在完全没有旧值时才向调用方抛出带类型的 UpstreamError。
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from searchinvest.layers.cache import CacheEntry, CacheStore
from searchinvest.layers.coordinator import RequestCoordinator
from searchinvest.layers.upstream import (
    Failure,
    Success,
    UpstreamClient,
    UpstreamError,
    UpstreamResult,
)

logger = logging.getLogger(__name__)

_TICKER_RE = re.compile(r"^[A-Z0-9][A-Z0-9.\-]{0,14}$")


class InvalidQueryError(ValueError):
    """查询参数不合法（如非法股票代码）"""


def normalize_ticker(raw: Optional[str]) -> str:
    """去除空白并转大写；构造缓存键之前必须调用"""
    ticker = (raw or "").strip().upper()
    if not _TICKER_RE.match(ticker):
        raise InvalidQueryError(f"非法股票代码: {raw!r}")
    return ticker


@dataclass(frozen=True)
class DataResult:
    """领域服务返回值：新鲜数据，或显式标记的过期数据"""

    value: Any
    stale: bool = False
    stored_at: Optional[float] = None
    source: str = "cache"

    def meta(self) -> dict:
        return {"stale": self.stale, "stored_at": self.stored_at, "source": self.source}


@dataclass(frozen=True)
class StoredSuccess(Success):
    """来自持久化记录的成功结果：携带记录生成时间与剩余有效期（秒）"""

    stored_at: float = 0.0
    remaining: float = 0.0


class DomainService:
    """各领域服务的基类"""

    domain = "base"

    def __init__(
        self,
        cache: CacheStore,
        coordinator: RequestCoordinator,
        client: UpstreamClient,
        ttl: float,
    ):
        self._cache = cache
        self._coordinator = coordinator
        self._client = client
        self._ttl = ttl

    async def _resolve(
        self,
        key: str,
        producer: Callable[[], Awaitable[UpstreamResult]],
        force_refresh: bool = False,
    ) -> DataResult:
        if not force_refresh:
            entry = await self._read_entry(key)
            if entry is not None and entry.is_fresh(self._cache.now()):
                logger.debug(f"[{self.domain}] 缓存命中: {key}")
                return DataResult(entry.value, stale=False, stored_at=entry.stored_at, source="cache")

        result = await self._coordinator.fetch_once(key, lambda: self._produce(key, producer))
        if isinstance(result, StoredSuccess):
            return DataResult(result.payload, stale=False, stored_at=result.stored_at, source="store")
        if isinstance(result, Success):
            return DataResult(result.payload, stale=False, stored_at=self._cache.now(), source="upstream")
        return await self._degrade(key, result)

    async def _produce(
        self, key: str, producer: Callable[[], Awaitable[UpstreamResult]]
    ) -> UpstreamResult:
        """在 in-flight 任务内执行：成功结果只写一次缓存，失败永不缓存"""
        result = await producer()
        if isinstance(result, Success):
            ttl = self._ttl
            if isinstance(result, StoredSuccess):
                # 缓存不能让记录活过它自己的有效期
                ttl = min(ttl, result.remaining)
            try:
                await self._cache.set(key, result.payload, ttl)
            except Exception as exc:
                logger.warning(f"[{self.domain}] 缓存写入失败（结果仍返回调用方）: {key}: {exc}")
        return result

    async def _degrade(self, key: str, failure: Failure) -> DataResult:
        entry = await self._read_entry(key)
        if entry is not None:
            logger.warning(f"⚠️ [{self.domain}] 上游失败（{failure.kind.value}），返回过期缓存: {key}")
            return DataResult(entry.value, stale=True, stored_at=entry.stored_at, source="stale")
        fallback = await self._fallback(key, failure)
        if fallback is not None:
            return fallback
        raise UpstreamError.from_failure(failure)

    async def _fallback(self, key: str, failure: Failure) -> Optional[DataResult]:
        """缓存中没有旧值时的额外降级来源，子类按需覆盖"""
        return None

    async def _read_entry(self, key: str) -> Optional[CacheEntry]:
        try:
            return await self._cache.get_entry(key)
        except Exception as exc:
            logger.warning(f"[{self.domain}] 缓存读取失败（按未命中处理）: {key}: {exc}")
            return None
