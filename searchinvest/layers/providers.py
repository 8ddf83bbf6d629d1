"""
各数据提供商的上游客户端
  Alpha Vantage  → 实时行情（GLOBAL_QUOTE）、技术/基本面分析（RSI / SMA / OVERVIEW）
  Finnhub        → 公司资料与基本面指标
  News Sentiment → 新闻情绪（Alpha Vantage NEWS_SENTIMENT 接口）

提供商返回的都是已解码的 JSON；这里负责识别各自的错误结构并映射为 FailureKind。
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Sequence, Union

from searchinvest.config import SearchInvestSettings
from searchinvest.layers.processing import ProcessingLayer
from searchinvest.layers.upstream import (
    FailureKind,
    UpstreamClient,
    UpstreamError,
    most_severe,
)

logger = logging.getLogger(__name__)


def _client_options(settings: SearchInvestSettings) -> Dict[str, Any]:
    return {
        "timeout": settings.UPSTREAM_TIMEOUT,
        "max_attempts": settings.UPSTREAM_MAX_ATTEMPTS,
        "backoff_base": settings.UPSTREAM_BACKOFF_BASE,
        "backoff_max": settings.UPSTREAM_BACKOFF_MAX,
    }


def _utcnow_iso() -> str:
    return datetime.now(tz=timezone.utc).isoformat()


# ── Alpha Vantage ─────────────────────────────────────────

class AlphaVantageClient(UpstreamClient):
    """Alpha Vantage 公共部分：所有错误都以 200 + 特定字段返回"""

    provider = "alpha-vantage"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._proc = ProcessingLayer()

    async def _call(self, function: str, **params: Any) -> Dict[str, Any]:
        params = {"function": function, "apikey": self._api_key, **params}
        return await self._get_json("/query", params)

    def _check_payload(self, payload: Any) -> None:
        if not isinstance(payload, dict):
            raise UpstreamError(FailureKind.UNKNOWN, f"{self.provider} 返回了非对象响应")
        if "Error Message" in payload:
            message = str(payload["Error Message"])
            if "apikey" in message.lower():
                raise UpstreamError(FailureKind.UNAUTHORIZED, message)
            raise UpstreamError(FailureKind.NOT_FOUND, message)
        if "Note" in payload:
            raise UpstreamError(FailureKind.RATE_LIMITED, str(payload["Note"]))
        if "Information" in payload:
            message = str(payload["Information"])
            lowered = message.lower()
            if "rate limit" in lowered or "call frequency" in lowered:
                raise UpstreamError(FailureKind.RATE_LIMITED, message)
            if "api key" in lowered or "apikey" in lowered:
                raise UpstreamError(FailureKind.UNAUTHORIZED, message)
            raise UpstreamError(FailureKind.UNKNOWN, message)


class MarketDataClient(AlphaVantageClient):
    """
    实时行情

    query 为单个代码时返回该代码报价；为代码序列时返回市场快照，
    任一代码失败则整个快照失败（取最严重的失败类型），避免缓存残缺快照。
    """

    provider = "alpha-vantage-market"

    @classmethod
    def from_settings(cls, settings: SearchInvestSettings, **kwargs) -> "MarketDataClient":
        return cls(
            settings.ALPHA_VANTAGE_BASE_URL,
            settings.ALPHA_VANTAGE_API_KEY,
            **_client_options(settings),
            **kwargs,
        )

    async def _fetch(self, query: Union[str, Sequence[str]]) -> Dict[str, Any]:
        if isinstance(query, str):
            return await self._quote(query)
        return await self._snapshot(list(query))

    async def _quote(self, symbol: str) -> Dict[str, Any]:
        payload = await self._call("GLOBAL_QUOTE", symbol=symbol)
        raw = payload.get("Global Quote") or {}
        if not raw:
            raise UpstreamError(FailureKind.NOT_FOUND, f"未找到代码 {symbol} 的报价")
        return self._proc.normalize_quote(raw)

    async def _snapshot(self, symbols: Sequence[str]) -> Dict[str, Any]:
        results = await asyncio.gather(
            *(self._quote(s) for s in symbols), return_exceptions=True
        )
        errors = [r for r in results if isinstance(r, BaseException)]
        for err in errors:
            if not isinstance(err, UpstreamError):
                raise err
        if errors:
            kind = most_severe(e.kind for e in errors)
            detail = "; ".join(e.message for e in errors)
            raise UpstreamError(kind, f"市场快照不完整: {detail}")
        return {"quotes": results, "as_of": _utcnow_iso()}


class AnalysisClient(AlphaVantageClient):
    """提供商侧已计算好的技术指标（RSI14 / SMA50 / SMA200）与基本面比率"""

    provider = "alpha-vantage-analysis"

    _FUNDAMENTAL_FIELDS = {
        "PERatio": "pe_ratio",
        "PEGRatio": "peg_ratio",
        "PriceToBookRatio": "price_to_book",
        "EPS": "eps",
        "ProfitMargin": "profit_margin",
        "ReturnOnEquityTTM": "return_on_equity",
        "DividendYield": "dividend_yield",
        "Beta": "beta",
        "AnalystTargetPrice": "analyst_target_price",
        "52WeekHigh": "week52_high",
        "52WeekLow": "week52_low",
    }

    @classmethod
    def from_settings(cls, settings: SearchInvestSettings, **kwargs) -> "AnalysisClient":
        return cls(
            settings.ALPHA_VANTAGE_BASE_URL,
            settings.ALPHA_VANTAGE_API_KEY,
            **_client_options(settings),
            **kwargs,
        )

    async def _fetch(self, ticker: str) -> Dict[str, Any]:
        # 顺序请求，免费档每分钟调用次数有限
        overview = await self._call("OVERVIEW", symbol=ticker)
        if not overview:
            raise UpstreamError(FailureKind.NOT_FOUND, f"未找到代码 {ticker} 的基本面数据")
        rsi = await self._indicator("RSI", ticker, 14)
        sma50 = await self._indicator("SMA", ticker, 50)
        sma200 = await self._indicator("SMA", ticker, 200)

        fundamental = {
            target: overview.get(source) for source, target in self._FUNDAMENTAL_FIELDS.items()
        }
        return {
            "symbol": ticker,
            "name": overview.get("Name"),
            "sector": overview.get("Sector"),
            "fundamental": fundamental,
            "technical": {
                "rsi14": self._proc.latest_value(rsi),
                "sma50": self._proc.latest_value(sma50),
                "sma200": self._proc.latest_value(sma200),
                "rsi14_series": rsi,
            },
            "computed_at": _utcnow_iso(),
        }

    async def _indicator(self, function: str, ticker: str, period: int):
        payload = await self._call(
            function,
            symbol=ticker,
            interval="daily",
            time_period=period,
            series_type="close",
        )
        return self._proc.normalize_series(payload.get(f"Technical Analysis: {function}", {}), function)


class SentimentClient(AlphaVantageClient):
    """新闻情绪；query 为 None 时取整体市场主题，否则取指定代码"""

    provider = "news-sentiment"

    def __init__(self, *args, topics: str = "financial_markets", limit: int = 50, **kwargs):
        super().__init__(*args, **kwargs)
        self._topics = topics
        self._limit = limit

    @classmethod
    def from_settings(cls, settings: SearchInvestSettings, **kwargs) -> "SentimentClient":
        return cls(
            settings.NEWS_SENTIMENT_BASE_URL,
            settings.NEWS_API_KEY,
            **_client_options(settings),
            **kwargs,
        )

    async def _fetch(self, ticker: Optional[str]) -> Dict[str, Any]:
        if ticker:
            payload = await self._call("NEWS_SENTIMENT", tickers=ticker, limit=self._limit)
        else:
            payload = await self._call("NEWS_SENTIMENT", topics=self._topics, limit=self._limit)
        summary = self._proc.summarize_news_feed(payload.get("feed", []), ticker=ticker)
        if ticker and summary["article_count"] == 0:
            raise UpstreamError(FailureKind.NOT_FOUND, f"没有与 {ticker} 相关的新闻")
        summary["scope"] = ticker or self._topics
        summary["as_of"] = _utcnow_iso()
        return summary


# ── Finnhub ───────────────────────────────────────────────

class CompanyClient(UpstreamClient):
    """Finnhub 公司资料（profile2）+ 基本面指标（metric）"""

    provider = "finnhub"

    _METRIC_FIELDS = (
        "52WeekHigh",
        "52WeekLow",
        "beta",
        "peBasicExclExtraTTM",
        "epsTTM",
        "dividendYieldIndicatedAnnual",
        "revenueGrowthTTMYoy",
        "netProfitMarginTTM",
    )

    @classmethod
    def from_settings(cls, settings: SearchInvestSettings, **kwargs) -> "CompanyClient":
        return cls(
            settings.FINNHUB_BASE_URL,
            settings.FINNHUB_API_KEY,
            **_client_options(settings),
            **kwargs,
        )

    def _check_payload(self, payload: Any) -> None:
        if isinstance(payload, dict) and payload.get("error"):
            message = str(payload["error"])
            lowered = message.lower()
            if "api key" in lowered or "access" in lowered:
                raise UpstreamError(FailureKind.UNAUTHORIZED, message)
            if "limit" in lowered:
                raise UpstreamError(FailureKind.RATE_LIMITED, message)
            raise UpstreamError(FailureKind.UNKNOWN, message)

    async def _fetch(self, ticker: str) -> Dict[str, Any]:
        profile = await self._get_json("/stock/profile2", {"symbol": ticker, "token": self._api_key})
        if not profile:
            raise UpstreamError(FailureKind.NOT_FOUND, f"未找到代码 {ticker} 的公司资料")
        metric = await self._get_json(
            "/stock/metric", {"symbol": ticker, "metric": "all", "token": self._api_key}
        )
        metrics = (metric or {}).get("metric") or {}
        return {
            "symbol": profile.get("ticker") or ticker,
            "name": profile.get("name"),
            "exchange": profile.get("exchange"),
            "industry": profile.get("finnhubIndustry"),
            "country": profile.get("country"),
            "currency": profile.get("currency"),
            "market_capitalization": profile.get("marketCapitalization"),
            "shares_outstanding": profile.get("shareOutstanding"),
            "ipo": profile.get("ipo"),
            "weburl": profile.get("weburl"),
            "logo": profile.get("logo"),
            "metrics": {k: metrics.get(k) for k in self._METRIC_FIELDS},
        }
