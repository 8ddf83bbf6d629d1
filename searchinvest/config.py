"""
网关配置模块
支持从环境变量 / .env 读取配置，自动检测 Docker 容器环境并启用服务发现
"""

import os
from functools import lru_cache
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _is_docker() -> bool:
    """检测当前是否运行在 Docker 容器内"""
    return (
        os.path.exists("/.dockerenv")
        or os.environ.get("DOCKER_CONTAINER", "").lower() in ("1", "true", "yes")
    )


def _default_mongo_host() -> str:
    """Docker 环境使用服务名 'mongodb'，本地使用 'localhost'"""
    return "mongodb" if _is_docker() else "localhost"


def _default_redis_host() -> str:
    """Docker 环境使用服务名 'redis'，本地使用 'localhost'"""
    return "redis" if _is_docker() else "localhost"


class SearchInvestSettings(BaseSettings):
    """网关配置"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── 基础配置 ──────────────────────────────────────────
    HOST: str = Field(default="0.0.0.0")
    PORT: int = Field(default=3000)
    DEBUG: bool = Field(default=False)
    ALLOWED_ORIGINS: List[str] = Field(
        default_factory=lambda: ["*"]
    )

    # ── 数据提供商凭据（仅透传给上游客户端） ────────────────
    ALPHA_VANTAGE_API_KEY: str = Field(default="")
    FINNHUB_API_KEY: str = Field(default="")
    NEWS_API_KEY: str = Field(default="")

    ALPHA_VANTAGE_BASE_URL: str = Field(default="https://www.alphavantage.co")
    FINNHUB_BASE_URL: str = Field(default="https://finnhub.io/api/v1")
    NEWS_SENTIMENT_BASE_URL: str = Field(default="https://www.alphavantage.co")

    # 组成 market:snapshot 的指数 ETF
    MARKET_SNAPSHOT_SYMBOLS: List[str] = Field(
        default_factory=lambda: ["SPY", "QQQ", "DIA"]
    )

    # ── 各领域缓存 TTL（秒） ───────────────────────────────
    MARKET_CACHE_TTL: int = Field(default=60)            # 行情：秒级
    COMPANY_CACHE_TTL: int = Field(default=21600)        # 基本面：小时级
    SENTIMENT_CACHE_TTL: int = Field(default=900)        # 情绪：分钟级
    ANALYSIS_CACHE_TTL: int = Field(default=3600)
    ANALYSIS_RECORD_MAX_AGE: int = Field(default=86400)  # 持久化分析记录的新鲜度
    CACHE_STALE_RETENTION: int = Field(default=86400)    # 过期条目保留多久以供降级
    CACHE_MAX_ENTRIES: int = Field(default=10000)

    # ── 上游请求配置 ──────────────────────────────────────
    UPSTREAM_TIMEOUT: float = Field(default=10.0)
    UPSTREAM_MAX_ATTEMPTS: int = Field(default=3)
    UPSTREAM_BACKOFF_BASE: float = Field(default=0.5)
    UPSTREAM_BACKOFF_MAX: float = Field(default=8.0)
    COORDINATOR_WAIT_TIMEOUT: float = Field(default=30.0)

    # ── Redis 配置（外部缓存后端，可选） ────────────────────
    REDIS_HOST: str = Field(default_factory=_default_redis_host)
    REDIS_PORT: int = Field(default=6379)
    REDIS_PASSWORD: str = Field(default="")
    REDIS_DB: int = Field(default=0)
    REDIS_ENABLED: bool = Field(default=False)
    REDIS_MAX_CONNECTIONS: int = Field(default=20)
    REDIS_KEY_PREFIX: str = Field(default="searchinvest:")

    @property
    def REDIS_URL(self) -> str:
        if self.REDIS_PASSWORD:
            return f"redis://:{self.REDIS_PASSWORD}@{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    # ── MongoDB 配置（持久化分析存储） ──────────────────────
    MONGODB_HOST: str = Field(default_factory=_default_mongo_host)
    MONGODB_PORT: int = Field(default=27017)
    MONGODB_USERNAME: str = Field(default="")
    MONGODB_PASSWORD: str = Field(default="")
    MONGODB_DATABASE: str = Field(default="searchinvest")
    MONGODB_AUTH_SOURCE: str = Field(default="admin")
    MONGODB_ENABLED: bool = Field(default=True)
    MONGODB_ANALYSIS_COLLECTION: str = Field(default="analysis_records")
    MONGO_MAX_CONNECTIONS: int = Field(default=50)
    MONGO_MIN_CONNECTIONS: int = Field(default=5)
    MONGO_CONNECT_TIMEOUT_MS: int = Field(default=30000)
    MONGO_SOCKET_TIMEOUT_MS: int = Field(default=60000)
    MONGO_SERVER_SELECTION_TIMEOUT_MS: int = Field(default=5000)

    @property
    def MONGO_URI(self) -> str:
        if self.MONGODB_USERNAME and self.MONGODB_PASSWORD:
            return (
                f"mongodb://{self.MONGODB_USERNAME}:{self.MONGODB_PASSWORD}"
                f"@{self.MONGODB_HOST}:{self.MONGODB_PORT}"
                f"/{self.MONGODB_DATABASE}?authSource={self.MONGODB_AUTH_SOURCE}"
            )
        return f"mongodb://{self.MONGODB_HOST}:{self.MONGODB_PORT}/{self.MONGODB_DATABASE}"

    # ── 日志配置 ──────────────────────────────────────────
    LOG_LEVEL: str = Field(default="INFO")


@lru_cache
def get_settings() -> SearchInvestSettings:
    """获取全局配置（单例）"""
    return SearchInvestSettings()
