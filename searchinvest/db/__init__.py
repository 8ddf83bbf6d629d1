"""
数据库连接管理模块
统一创建 / 关闭 MongoDB（异步）与 Redis（异步）连接。

连接对象由调用方（缓存后端、持久化分析存储）持有，本模块不保存全局实例。
启动阶段连接失败直接抛出异常；关闭阶段的失败只记录日志。
"""

import logging
from typing import Optional, Tuple

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from redis.asyncio import ConnectionPool, Redis

from searchinvest.config import SearchInvestSettings

logger = logging.getLogger(__name__)


async def open_mongodb(
    settings: SearchInvestSettings,
) -> Tuple[AsyncIOMotorClient, AsyncIOMotorDatabase]:
    """建立 MongoDB 连接并 ping 校验，失败时抛出异常"""
    client = AsyncIOMotorClient(
        settings.MONGO_URI,
        maxPoolSize=settings.MONGO_MAX_CONNECTIONS,
        minPoolSize=settings.MONGO_MIN_CONNECTIONS,
        serverSelectionTimeoutMS=settings.MONGO_SERVER_SELECTION_TIMEOUT_MS,
        connectTimeoutMS=settings.MONGO_CONNECT_TIMEOUT_MS,
        socketTimeoutMS=settings.MONGO_SOCKET_TIMEOUT_MS,
    )
    try:
        await client.admin.command("ping")
    except Exception:
        client.close()
        raise
    logger.info(f"✅ MongoDB 连接成功: {settings.MONGODB_HOST}:{settings.MONGODB_PORT}")
    return client, client[settings.MONGODB_DATABASE]


def close_mongodb(client: Optional[AsyncIOMotorClient]) -> None:
    if client is None:
        return
    try:
        client.close()
        logger.info("MongoDB 连接已关闭")
    except Exception as exc:
        logger.warning(f"⚠️ MongoDB 关闭失败（已忽略）: {exc}")


async def open_redis(settings: SearchInvestSettings) -> Redis:
    """建立 Redis 连接池并 ping 校验，失败时抛出异常"""
    pool = ConnectionPool.from_url(
        settings.REDIS_URL,
        max_connections=settings.REDIS_MAX_CONNECTIONS,
        decode_responses=True,
        socket_connect_timeout=5,
        socket_timeout=10,
    )
    client = Redis(connection_pool=pool)
    try:
        await client.ping()
    except Exception:
        await pool.disconnect()
        raise
    logger.info(f"✅ Redis 连接成功: {settings.REDIS_HOST}:{settings.REDIS_PORT}")
    return client


async def close_redis(client: Optional[Redis]) -> None:
    if client is None:
        return
    try:
        await client.aclose()
        await client.connection_pool.disconnect()
        logger.info("Redis 连接已关闭")
    except Exception as exc:
        logger.warning(f"⚠️ Redis 关闭失败（已忽略）: {exc}")
