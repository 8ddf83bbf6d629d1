"""
分析服务
在缓存之外额外依赖持久化分析存储：

  1. 缓存未命中时，先读持久化记录，若在最大年龄之内则直接使用，避免重新计算
  2. 否则向上游获取新的分析结果，同时写回持久化存储与缓存
  3. 上游失败且缓存中没有旧值时，超出年龄的持久化记录仍可作为过期数据返回

持久化存储与缓存相互独立，可单独不可用：读写失败只记录日志，不影响主流程。
"""

import logging
import time
from typing import Callable, Optional

from searchinvest.layers.cache import CacheStore, make_key
from searchinvest.layers.coordinator import RequestCoordinator
from searchinvest.layers.providers import AnalysisClient
from searchinvest.layers.upstream import Failure, Success, UpstreamResult
from searchinvest.services.base import (
    DataResult,
    DomainService,
    StoredSuccess,
    normalize_ticker,
)
from searchinvest.services.store import AnalysisRecord, AnalysisStore

logger = logging.getLogger(__name__)

_NS = "analysis"


class AnalysisService(DomainService):
    """技术 / 基本面分析业务服务"""

    domain = _NS

    def __init__(
        self,
        cache: CacheStore,
        coordinator: RequestCoordinator,
        client: AnalysisClient,
        store: AnalysisStore,
        ttl: float,
        record_max_age: float,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(cache, coordinator, client, ttl)
        self._store = store
        self._record_max_age = record_max_age
        self._clock = clock

    async def get_analysis(self, ticker: str, force_refresh: bool = False) -> DataResult:
        symbol = normalize_ticker(ticker)
        key = make_key(_NS, symbol)
        return await self._resolve(
            key, lambda: self._compute(key, symbol, force_refresh), force_refresh=force_refresh
        )

    async def _compute(self, key: str, symbol: str, force_refresh: bool) -> UpstreamResult:
        if not force_refresh:
            record = await self._read_record(key)
            now = self._clock()
            if record is not None and record.is_fresh(now, self._record_max_age):
                logger.debug(f"使用持久化分析记录: {key}")
                return StoredSuccess(
                    record.payload,
                    stored_at=record.computed_at,
                    remaining=self._record_max_age - (now - record.computed_at),
                )

        result = await self._client.fetch(symbol)
        if isinstance(result, Success):
            await self._write_record(
                key, AnalysisRecord(key=key, payload=result.payload, computed_at=self._clock())
            )
        return result

    async def _fallback(self, key: str, failure: Failure) -> Optional[DataResult]:
        record = await self._read_record(key)
        if record is None:
            return None
        logger.warning(f"⚠️ 上游失败（{failure.kind.value}），返回过期的持久化分析记录: {key}")
        return DataResult(record.payload, stale=True, stored_at=record.computed_at, source="store")

    async def _read_record(self, key: str) -> Optional[AnalysisRecord]:
        try:
            return await self._store.read(key)
        except Exception as exc:
            logger.warning(f"持久化分析存储读取失败: {key}: {exc}")
            return None

    async def _write_record(self, key: str, record: AnalysisRecord) -> None:
        try:
            await self._store.write(key, record)
        except Exception as exc:
            logger.warning(f"持久化分析存储写入失败: {key}: {exc}")
