"""
市场情绪服务
整体市场新闻情绪（sentiment:market）或指定代码情绪（sentiment:<TICKER>），TTL 为分钟级
"""

from typing import Optional

from searchinvest.layers.cache import make_key
from searchinvest.services.base import DataResult, DomainService, normalize_ticker

_NS = "sentiment"


class SentimentService(DomainService):
    domain = _NS

    async def get_market_sentiment(
        self, ticker: Optional[str] = None, force_refresh: bool = False
    ) -> DataResult:
        """
        获取新闻情绪汇总

        Args:
            ticker: 为空时返回整体市场情绪
            force_refresh: 跳过缓存快路径（仍经过请求合并）
        """
        symbol = normalize_ticker(ticker) if ticker else None
        key = make_key(_NS, symbol or "market")
        return await self._resolve(
            key, lambda: self._client.fetch(symbol), force_refresh=force_refresh
        )
