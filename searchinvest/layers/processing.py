"""
数据处理层
将各提供商已解码的原始载荷清洗、格式化为统一结构。
不做任何指标计算，只做字段映射、类型转换、排序与汇总。
"""

import logging
from typing import Any, Dict, List, Optional

import pandas as pd

logger = logging.getLogger(__name__)

# Alpha Vantage GLOBAL_QUOTE 字段映射
_QUOTE_FIELDS = {
    "01. symbol": "symbol",
    "02. open": "open",
    "03. high": "high",
    "04. low": "low",
    "05. price": "price",
    "06. volume": "volume",
    "07. latest trading day": "latest_trading_day",
    "08. previous close": "previous_close",
    "09. change": "change",
    "10. change percent": "change_percent",
}

_NUMERIC_QUOTE_FIELDS = ("open", "high", "low", "price", "volume", "previous_close", "change")


def _to_float(value: Any) -> Optional[float]:
    try:
        return float(str(value).strip().rstrip("%"))
    except (TypeError, ValueError):
        return None


class ProcessingLayer:
    """数据处理层：清洗 + 格式化"""

    def normalize_quote(self, raw: Dict[str, Any]) -> Dict[str, Any]:
        """GLOBAL_QUOTE → {symbol, price, change, change_percent, ...}"""
        quote = {target: raw.get(source) for source, target in _QUOTE_FIELDS.items()}
        for field in _NUMERIC_QUOTE_FIELDS:
            quote[field] = _to_float(quote[field])
        quote["change_percent"] = _to_float(quote["change_percent"])
        return quote

    def normalize_series(
        self, raw: Dict[str, Dict[str, Any]], field: str, limit: int = 30
    ) -> List[Dict[str, Any]]:
        """
        将 {日期: {字段: 值}} 形式的时间序列转为按日期升序的记录列表，
        只保留最近 limit 条。
        """
        if not raw:
            return []
        df = pd.DataFrame.from_dict(raw, orient="index")
        if field not in df.columns:
            return []
        df = df[[field]].rename(columns={field: "value"})
        df["value"] = pd.to_numeric(df["value"], errors="coerce")
        df = df.dropna(subset=["value"])
        df.index = pd.to_datetime(df.index, errors="coerce")
        df = df[df.index.notna()].sort_index()
        df = df.tail(limit).copy()
        df["date"] = df.index.strftime("%Y-%m-%d")
        return df[["date", "value"]].to_dict(orient="records")

    def latest_value(self, series: List[Dict[str, Any]]) -> Optional[float]:
        if not series:
            return None
        return round(float(series[-1]["value"]), 4)

    def summarize_news_feed(
        self, feed: List[Dict[str, Any]], ticker: Optional[str] = None, top: int = 10
    ) -> Dict[str, Any]:
        """
        汇总新闻情绪载荷

        提供商已为每篇文章给出情绪分与标签；这里仅做均值与标签计数。
        指定 ticker 时使用文章内该 ticker 的情绪分。
        """
        rows = []
        for item in feed or []:
            score = _to_float(item.get("overall_sentiment_score"))
            label = item.get("overall_sentiment_label")
            if ticker:
                match = next(
                    (t for t in item.get("ticker_sentiment", []) if t.get("ticker") == ticker),
                    None,
                )
                if match is None:
                    continue
                score = _to_float(match.get("ticker_sentiment_score"))
                label = match.get("ticker_sentiment_label")
            rows.append({
                "title": item.get("title"),
                "url": item.get("url"),
                "source": item.get("source"),
                "time_published": item.get("time_published"),
                "score": score,
                "label": label,
            })

        if not rows:
            return {"article_count": 0, "average_score": None, "labels": {}, "articles": []}

        df = pd.DataFrame(rows)
        scores = df["score"].dropna()
        latest = df.sort_values("time_published", ascending=False, na_position="last").head(top)
        latest = latest.astype(object).where(latest.notna(), None)
        return {
            "article_count": int(len(df)),
            "average_score": round(float(scores.mean()), 4) if not scores.empty else None,
            "labels": {str(k): int(v) for k, v in df["label"].value_counts().items()},
            "articles": latest.to_dict(orient="records"),
        }
