"""
记录存储连接
启动时依次尝试 MongoDB（motor）与 Redis（redis.asyncio），据此选出自选股与缓存使用的记录存储后端。
两者都连不上时不阻断启动，记录存储退回进程内存。
"""

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from redis.asyncio import ConnectionPool, Redis

from market_service.config import ServiceSettings
from market_service.db.store import RecordStore, create_record_store

logger = logging.getLogger(__name__)


@dataclass
class _Connections:
    mongo_client: Optional[AsyncIOMotorClient] = None
    mongo_db: Optional[AsyncIOMotorDatabase] = None
    redis_pool: Optional[ConnectionPool] = None
    redis: Optional[Redis] = None


_conn = _Connections()


async def init_mongodb(settings: ServiceSettings) -> bool:
    """连接 MongoDB 并 ping 一次；未启用或失败返回 False"""
    if not settings.MONGODB_ENABLED:
        logger.info("MongoDB 未启用，记录存储不会使用 MongoDB")
        return False

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
    except Exception as exc:
        client.close()
        logger.warning(f"⚠️ MongoDB 不可达 {settings.MONGODB_HOST}:{settings.MONGODB_PORT}: {exc}")
        return False

    _conn.mongo_client = client
    _conn.mongo_db = client[settings.MONGODB_DATABASE]
    logger.info(f"✅ MongoDB 已连接: {settings.MONGODB_HOST}/{settings.MONGODB_DATABASE}")
    return True


async def init_redis(settings: ServiceSettings) -> bool:
    """连接 Redis 并 ping 一次；未启用或失败返回 False"""
    if not settings.REDIS_ENABLED:
        logger.info("Redis 未启用，记录存储不会使用 Redis")
        return False

    pool = ConnectionPool.from_url(
        settings.REDIS_URL,
        max_connections=settings.REDIS_MAX_CONNECTIONS,
        decode_responses=True,
        socket_connect_timeout=settings.HTTP_CONNECT_TIMEOUT,
        socket_timeout=settings.HTTP_TIMEOUT,
    )
    client = Redis(connection_pool=pool)
    try:
        await client.ping()
    except Exception as exc:
        await client.aclose()
        await pool.disconnect()
        logger.warning(f"⚠️ Redis 不可达 {settings.REDIS_HOST}:{settings.REDIS_PORT}: {exc}")
        return False

    _conn.redis_pool = pool
    _conn.redis = client
    logger.info(f"✅ Redis 已连接: {settings.REDIS_HOST}:{settings.REDIS_PORT}/{settings.REDIS_DB}")
    return True


async def open_record_store(settings: ServiceSettings) -> RecordStore:
    """连接数据库并按 MongoDB → Redis → 进程内存 选出记录存储"""
    await init_mongodb(settings)
    if _conn.mongo_db is None:
        await init_redis(settings)
    return create_record_store(_conn.mongo_db, _conn.redis)


async def close_connections() -> None:
    if _conn.mongo_client is not None:
        _conn.mongo_client.close()
        logger.info("MongoDB 连接已关闭")
    if _conn.redis is not None:
        await _conn.redis.aclose()
        await _conn.redis_pool.disconnect()
        logger.info("Redis 连接已关闭")
    _conn.mongo_client = _conn.mongo_db = _conn.redis_pool = _conn.redis = None


async def _probe(ping: Callable[[], Awaitable], host: str) -> Dict[str, str]:
    try:
        await ping()
    except Exception as exc:
        return {"status": "unhealthy", "error": str(exc)}
    return {"status": "healthy", "host": host}


async def check_health(settings: ServiceSettings) -> dict:
    """各数据库状态：disabled / unused / healthy / unhealthy"""
    mongo = {"status": "disabled"} if not settings.MONGODB_ENABLED else {"status": "unused"}
    redis = {"status": "disabled"} if not settings.REDIS_ENABLED else {"status": "unused"}

    if _conn.mongo_client is not None:
        client = _conn.mongo_client
        mongo = await _probe(lambda: client.admin.command("ping"), settings.MONGODB_HOST)
    if _conn.redis is not None:
        redis = await _probe(_conn.redis.ping, settings.REDIS_HOST)
    return {"mongodb": mongo, "redis": redis}
