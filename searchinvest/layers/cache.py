"""
缓存层
带 TTL 的通用键值缓存，对所存内容一无所知。

- get()        只返回未过期的值（惰性过期，读取时判断，不修改存储）
- get_entry()  返回条目本身（含已过期条目），供领域服务降级时读取旧值
- set()        无条件覆盖，stored_at 取当前时间
- invalidate() 删除条目，不存在时无操作

过期条目在 ttl 之后仍保留 stale_retention 秒，超出后才真正淘汰。
后端：进程内存（默认）或 Redis。
"""

import hashlib
import json
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Optional

from redis.asyncio import Redis

from searchinvest.config import SearchInvestSettings
from searchinvest.db import close_redis, open_redis

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


def make_key(namespace: str, *parts: str) -> str:
    """生成规范化缓存键，如 company:AAPL / market:snapshot"""
    raw = ":".join([namespace] + [str(p) for p in parts])
    if len(raw) > 200:
        raw = namespace + ":" + hashlib.md5(raw.encode()).hexdigest()
    return raw


@dataclass(frozen=True)
class CacheEntry:
    key: str
    value: Any
    stored_at: float
    ttl: float

    @property
    def expires_at(self) -> float:
        return self.stored_at + self.ttl

    def is_fresh(self, now: float) -> bool:
        return now < self.expires_at

    def to_dict(self) -> dict:
        return {"key": self.key, "value": self.value, "stored_at": self.stored_at, "ttl": self.ttl}

    @classmethod
    def from_dict(cls, doc: dict) -> "CacheEntry":
        return cls(
            key=doc["key"],
            value=doc.get("value"),
            stored_at=float(doc["stored_at"]),
            ttl=float(doc["ttl"]),
        )


class CacheStore:
    """缓存存储基类，子类实现具体后端"""

    backend = "base"

    def __init__(self, stale_retention: float = 86400, clock: Clock = time.time):
        self._stale_retention = max(float(stale_retention), 0.0)
        self._clock = clock

    def now(self) -> float:
        return self._clock()

    async def connect(self) -> None:
        """获取外部后端连接，失败直接抛出"""

    async def disconnect(self) -> None:
        """释放外部后端连接，失败只记录日志"""

    async def get(self, key: str) -> Optional[Any]:
        entry = await self.get_entry(key)
        if entry is None or not entry.is_fresh(self.now()):
            return None
        return entry.value

    async def get_entry(self, key: str) -> Optional[CacheEntry]:
        raise NotImplementedError

    async def set(self, key: str, value: Any, ttl: float) -> None:
        raise NotImplementedError

    async def invalidate(self, key: str) -> None:
        raise NotImplementedError

    async def stats(self) -> dict:
        raise NotImplementedError

    def _retained(self, entry: CacheEntry, now: float) -> bool:
        return now < entry.expires_at + self._stale_retention


class MemoryCacheStore(CacheStore):
    """进程内缓存；写入时若超出容量则清理"""

    backend = "memory"

    def __init__(
        self,
        stale_retention: float = 86400,
        max_entries: int = 10000,
        clock: Clock = time.time,
    ):
        super().__init__(stale_retention=stale_retention, clock=clock)
        self._max_entries = max(int(max_entries), 1)
        # 按写入顺序排列，队首即最早写入
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        # 最早可能出现彻底过期条目的时间，此前无需扫描
        self._next_purge = float("inf")

    async def get_entry(self, key: str) -> Optional[CacheEntry]:
        entry = self._entries.get(key)
        if entry is None or not self._retained(entry, self.now()):
            return None
        return entry

    async def set(self, key: str, value: Any, ttl: float) -> None:
        entry = CacheEntry(key=key, value=value, stored_at=self.now(), ttl=float(ttl))
        self._entries[key] = entry
        self._entries.move_to_end(key)
        self._next_purge = min(self._next_purge, entry.expires_at + self._stale_retention)
        logger.debug(f"缓存写入（内存）: {key} ttl={ttl}s")
        if len(self._entries) > self._max_entries:
            self._sweep()

    async def invalidate(self, key: str) -> None:
        if self._entries.pop(key, None) is not None:
            logger.debug(f"缓存失效（内存）: {key}")

    async def stats(self) -> dict:
        now = self.now()
        fresh = sum(1 for e in self._entries.values() if e.is_fresh(now))
        return {
            "backend": self.backend,
            "entries": len(self._entries),
            "fresh": fresh,
            "expired": len(self._entries) - fresh,
            "max_entries": self._max_entries,
            "status": "healthy",
        }

    def _sweep(self) -> None:
        """先清除超出保留期的条目，仍超出容量时从队首淘汰最早写入的条目"""
        now = self.now()
        if now >= self._next_purge:
            for key in [k for k, e in self._entries.items() if not self._retained(e, now)]:
                del self._entries[key]
            self._next_purge = min(
                (e.expires_at + self._stale_retention for e in self._entries.values()),
                default=float("inf"),
            )
        while len(self._entries) > self._max_entries:
            self._entries.popitem(last=False)
        logger.debug(f"缓存清理完成，剩余 {len(self._entries)} 条")


class RedisCacheStore(CacheStore):
    """Redis 缓存后端；Redis 过期时间 = ttl + stale_retention，新鲜度在读取时判断"""

    backend = "redis"

    def __init__(
        self,
        settings: SearchInvestSettings,
        client: Optional[Redis] = None,
        clock: Clock = time.time,
    ):
        super().__init__(stale_retention=settings.CACHE_STALE_RETENTION, clock=clock)
        self._settings = settings
        self._prefix = settings.REDIS_KEY_PREFIX
        self._client = client

    async def connect(self) -> None:
        if self._client is None:
            self._client = await open_redis(self._settings)

    async def disconnect(self) -> None:
        client, self._client = self._client, None
        await close_redis(client)

    def _redis(self) -> Redis:
        if self._client is None:
            raise RuntimeError("Redis 缓存后端尚未连接")
        return self._client

    async def get_entry(self, key: str) -> Optional[CacheEntry]:
        raw = await self._redis().get(self._prefix + key)
        if not raw:
            return None
        try:
            entry = CacheEntry.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError) as exc:
            logger.warning(f"缓存条目损坏，已忽略: {key}: {exc}")
            return None
        if not self._retained(entry, self.now()):
            return None
        return entry

    async def set(self, key: str, value: Any, ttl: float) -> None:
        entry = CacheEntry(key=key, value=value, stored_at=self.now(), ttl=float(ttl))
        serialized = json.dumps(entry.to_dict(), ensure_ascii=False, default=str)
        expire = max(int(ttl + self._stale_retention), 1)
        await self._redis().setex(self._prefix + key, expire, serialized)
        logger.debug(f"缓存写入（Redis）: {key} ttl={ttl}s")

    async def invalidate(self, key: str) -> None:
        await self._redis().delete(self._prefix + key)
        logger.debug(f"缓存失效（Redis）: {key}")

    async def stats(self) -> dict:
        try:
            keys = await self._redis().dbsize()
            return {"backend": self.backend, "keys": keys, "status": "healthy"}
        except Exception as exc:
            return {"backend": self.backend, "status": "error", "error": str(exc)}


def create_cache_store(settings: SearchInvestSettings) -> CacheStore:
    """根据配置选择缓存后端"""
    if settings.REDIS_ENABLED:
        return RedisCacheStore(settings)
    return MemoryCacheStore(
        stale_retention=settings.CACHE_STALE_RETENTION,
        max_entries=settings.CACHE_MAX_ENTRIES,
    )
