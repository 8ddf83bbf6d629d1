"""
服务装配
显式构造缓存、请求协调器、上游客户端与各领域服务，并统一管理其生命周期。
所有共享状态都归属于一个 ServiceContainer 实例，测试可为每个用例构造独立实例。
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

import httpx

from searchinvest.config import SearchInvestSettings
from searchinvest.layers.cache import CacheStore, create_cache_store
from searchinvest.layers.coordinator import RequestCoordinator
from searchinvest.layers.providers import (
    AnalysisClient,
    CompanyClient,
    MarketDataClient,
    SentimentClient,
)
from searchinvest.layers.upstream import UpstreamClient
from searchinvest.services.analysis_service import AnalysisService
from searchinvest.services.company_service import CompanyService
from searchinvest.services.market_service import MarketDataService
from searchinvest.services.sentiment_service import SentimentService
from searchinvest.services.store import AnalysisStore, create_analysis_store

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    settings: SearchInvestSettings
    cache: CacheStore
    coordinator: RequestCoordinator
    analysis_store: AnalysisStore
    market: MarketDataService
    company: CompanyService
    analysis: AnalysisService
    sentiment: SentimentService
    clients: List[UpstreamClient] = field(default_factory=list)

    async def start(self) -> None:
        """连接外部后端；任何失败都直接抛出，服务不应在缺少依赖时启动"""
        await self.cache.connect()
        await self.analysis_store.connect()
        logger.info(f"缓存后端: {self.cache.backend} / 分析存储: {self.analysis_store.backend}")

    async def stop(self) -> None:
        """断开所有连接；失败仅记录日志"""
        for name, close in (
            ("缓存后端", self.cache.disconnect),
            ("分析存储", self.analysis_store.disconnect),
        ):
            try:
                await close()
            except Exception as exc:
                logger.warning(f"⚠️ 关闭{name}失败（已忽略）: {exc}")
        for client in self.clients:
            try:
                await client.aclose()
            except Exception as exc:
                logger.warning(f"⚠️ 关闭上游客户端 {client.provider} 失败（已忽略）: {exc}")


def build_container(
    settings: SearchInvestSettings,
    cache: Optional[CacheStore] = None,
    analysis_store: Optional[AnalysisStore] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ServiceContainer:
    """
    按配置构造全部组件

    Args:
        settings: 配置实例
        cache: 指定缓存实例（默认按配置创建）
        analysis_store: 指定持久化存储（默认按配置创建）
        transport: 注入 httpx 传输层，测试时用于模拟上游
    """
    cache = cache or create_cache_store(settings)
    analysis_store = analysis_store or create_analysis_store(settings)
    coordinator = RequestCoordinator(wait_timeout=settings.COORDINATOR_WAIT_TIMEOUT)

    market_client = MarketDataClient.from_settings(settings, transport=transport)
    company_client = CompanyClient.from_settings(settings, transport=transport)
    analysis_client = AnalysisClient.from_settings(settings, transport=transport)
    sentiment_client = SentimentClient.from_settings(settings, transport=transport)

    return ServiceContainer(
        settings=settings,
        cache=cache,
        coordinator=coordinator,
        analysis_store=analysis_store,
        market=MarketDataService(
            cache, coordinator, market_client,
            ttl=settings.MARKET_CACHE_TTL,
            snapshot_symbols=settings.MARKET_SNAPSHOT_SYMBOLS,
        ),
        company=CompanyService(cache, coordinator, company_client, ttl=settings.COMPANY_CACHE_TTL),
        analysis=AnalysisService(
            cache, coordinator, analysis_client, analysis_store,
            ttl=settings.ANALYSIS_CACHE_TTL,
            record_max_age=settings.ANALYSIS_RECORD_MAX_AGE,
        ),
        sentiment=SentimentService(
            cache, coordinator, sentiment_client, ttl=settings.SENTIMENT_CACHE_TTL
        ),
        clients=[market_client, company_client, analysis_client, sentiment_client],
    )
