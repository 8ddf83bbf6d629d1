"""测试公共夹具：可控时钟、假上游客户端、测试配置"""

import asyncio
import os
import sys

import pytest

# 确保仓库根目录在 sys.path
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from searchinvest.config import SearchInvestSettings  # noqa: E402


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeClient:
    """记录调用次数的假上游客户端，可设置延迟"""

    provider = "fake"

    def __init__(self, result=None, delay: float = 0.0):
        self.result = result
        self.delay = delay
        self.calls = []

    async def fetch(self, query=None):
        self.calls.append(query)
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.result

    async def aclose(self):
        pass


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    return SearchInvestSettings(
        REDIS_ENABLED=False,
        MONGODB_ENABLED=False,
        ALPHA_VANTAGE_API_KEY="av-key",
        FINNHUB_API_KEY="fh-key",
        NEWS_API_KEY="news-key",
        ALPHA_VANTAGE_BASE_URL="https://av.test",
        FINNHUB_BASE_URL="https://finnhub.test/api/v1",
        NEWS_SENTIMENT_BASE_URL="https://news.test",
        UPSTREAM_BACKOFF_BASE=0,
        UPSTREAM_MAX_ATTEMPTS=3,
    )
