"""
持久化分析存储
对分析服务而言是一个外部键值协作者：与缓存使用相同的键，但持久保存、不受 TTL 约束。
新鲜度由分析服务自己的策略（computed_at + 最大年龄）判断。
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from searchinvest.config import SearchInvestSettings
from searchinvest.db import close_mongodb, open_mongodb

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnalysisRecord:
    key: str
    payload: Any
    computed_at: float

    def is_fresh(self, now: float, max_age: float) -> bool:
        return now - self.computed_at < max_age


class AnalysisStore:
    """持久化存储接口"""

    backend = "base"

    async def connect(self) -> None:
        pass

    async def disconnect(self) -> None:
        pass

    async def read(self, key: str) -> Optional[AnalysisRecord]:
        raise NotImplementedError

    async def write(self, key: str, record: AnalysisRecord) -> None:
        raise NotImplementedError


class MemoryAnalysisStore(AnalysisStore):
    """进程内实现，MongoDB 未启用时使用"""

    backend = "memory"

    def __init__(self):
        self._records: Dict[str, AnalysisRecord] = {}

    async def read(self, key: str) -> Optional[AnalysisRecord]:
        return self._records.get(key)

    async def write(self, key: str, record: AnalysisRecord) -> None:
        self._records[key] = record


class MongoAnalysisStore(AnalysisStore):
    """MongoDB 实现，每个键一份文档"""

    backend = "mongodb"

    def __init__(
        self,
        settings: SearchInvestSettings,
        database: Optional[AsyncIOMotorDatabase] = None,
    ):
        self._settings = settings
        self._collection_name = settings.MONGODB_ANALYSIS_COLLECTION
        self._client: Optional[AsyncIOMotorClient] = None
        self._db = database

    async def connect(self) -> None:
        if self._db is None:
            self._client, self._db = await open_mongodb(self._settings)
        await self._collection().create_index("key", unique=True)

    async def disconnect(self) -> None:
        client, self._client = self._client, None
        self._db = None
        close_mongodb(client)

    def _collection(self):
        if self._db is None:
            raise RuntimeError("MongoDB 分析存储尚未连接")
        return self._db[self._collection_name]

    async def read(self, key: str) -> Optional[AnalysisRecord]:
        doc = await self._collection().find_one({"key": key})
        if not doc:
            return None
        return AnalysisRecord(key=key, payload=doc.get("payload"), computed_at=float(doc["computed_at"]))

    async def write(self, key: str, record: AnalysisRecord) -> None:
        await self._collection().update_one(
            {"key": key},
            {"$set": {"key": key, "payload": record.payload, "computed_at": record.computed_at}},
            upsert=True,
        )
        logger.debug(f"分析记录已持久化（MongoDB）: {key}")


def create_analysis_store(settings: SearchInvestSettings) -> AnalysisStore:
    if settings.MONGODB_ENABLED:
        return MongoAnalysisStore(settings)
    logger.info("MongoDB 未启用，分析记录仅保存在进程内存")
    return MemoryAnalysisStore()
