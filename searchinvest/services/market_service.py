"""
行情数据服务
市场快照（market:snapshot）与单只代码实时报价（market:quote:<TICKER>），TTL 为秒级
"""

import logging
from typing import List

from searchinvest.layers.cache import CacheStore, make_key
from searchinvest.layers.coordinator import RequestCoordinator
from searchinvest.layers.providers import MarketDataClient
from searchinvest.services.base import DataResult, DomainService, normalize_ticker

logger = logging.getLogger(__name__)

_NS = "market"


class MarketDataService(DomainService):
    """实时行情业务服务"""

    domain = _NS

    def __init__(
        self,
        cache: CacheStore,
        coordinator: RequestCoordinator,
        client: MarketDataClient,
        ttl: float,
        snapshot_symbols: List[str],
    ):
        super().__init__(cache, coordinator, client, ttl)
        self._symbols = tuple(normalize_ticker(s) for s in snapshot_symbols)

    async def get_snapshot(self, force_refresh: bool = False) -> DataResult:
        """获取主要指数 ETF 的市场快照"""
        key = make_key(_NS, "snapshot")
        return await self._resolve(
            key, lambda: self._client.fetch(self._symbols), force_refresh=force_refresh
        )

    async def get_quote(self, ticker: str, force_refresh: bool = False) -> DataResult:
        """获取单只代码的实时报价"""
        symbol = normalize_ticker(ticker)
        key = make_key(_NS, "quote", symbol)
        return await self._resolve(
            key, lambda: self._client.fetch(symbol), force_refresh=force_refresh
        )
