"""
键值记录存储
每条记录是一个 JSON 兼容的 dict，必须带 "key" 字段；按集合（collection）分组。
支持：upsert / 点查 / 谓词扫描 / 删除 / 清空 / 计数。

后端：
  MongoRecordStore  – motor，每个集合对应一个 Mongo collection
  RedisRecordStore  – 每个集合对应一个 Hash，字段为 key，值为 JSON
  MemoryRecordStore – 进程内 dict（数据库均不可用时的降级后端，也用于测试）
"""

import asyncio
import copy
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from redis.asyncio import Redis

logger = logging.getLogger(__name__)

Record = Dict[str, Any]
Predicate = Callable[[Record], bool]


def _sorted(records: List[Record], sort_by: Optional[str]) -> List[Record]:
    if not sort_by:
        return records
    return sorted(records, key=lambda r: r.get(sort_by, 0))


class RecordStore(ABC):
    """记录存储接口"""

    backend: str = "abstract"

    @abstractmethod
    async def upsert(self, collection: str, record: Record) -> None:
        """按 record["key"] 插入或整体替换"""

    @abstractmethod
    async def get(self, collection: str, key: str) -> Optional[Record]:
        ...

    @abstractmethod
    async def scan(
        self,
        collection: str,
        where: Optional[Predicate] = None,
        sort_by: Optional[str] = None,
    ) -> List[Record]:
        """返回满足谓词的全部记录，可按字段升序排序"""

    @abstractmethod
    async def delete(self, collection: str, key: str) -> bool:
        ...

    @abstractmethod
    async def delete_all(self, collection: str) -> int:
        ...

    @abstractmethod
    async def count(self, collection: str) -> int:
        ...


# ── MongoDB ───────────────────────────────────────────────

class MongoRecordStore(RecordStore):
    backend = "mongodb"

    def __init__(self, db: AsyncIOMotorDatabase):
        self._db = db

    async def upsert(self, collection: str, record: Record) -> None:
        await self._db[collection].replace_one(
            {"key": record["key"]}, dict(record), upsert=True
        )

    async def get(self, collection: str, key: str) -> Optional[Record]:
        return await self._db[collection].find_one({"key": key}, {"_id": 0})

    async def scan(
        self,
        collection: str,
        where: Optional[Predicate] = None,
        sort_by: Optional[str] = None,
    ) -> List[Record]:
        cursor = self._db[collection].find({}, {"_id": 0})
        if sort_by:
            cursor = cursor.sort(sort_by, 1)
        records = [doc async for doc in cursor]
        if where is not None:
            records = [r for r in records if where(r)]
        return records

    async def delete(self, collection: str, key: str) -> bool:
        result = await self._db[collection].delete_one({"key": key})
        return result.deleted_count > 0

    async def delete_all(self, collection: str) -> int:
        result = await self._db[collection].delete_many({})
        return result.deleted_count

    async def count(self, collection: str) -> int:
        return await self._db[collection].count_documents({})


# ── Redis ─────────────────────────────────────────────────

class RedisRecordStore(RecordStore):
    backend = "redis"

    def __init__(self, redis: Redis, prefix: str = "market_service"):
        self._redis = redis
        self._prefix = prefix

    def _hash(self, collection: str) -> str:
        return f"{self._prefix}:{collection}"

    async def upsert(self, collection: str, record: Record) -> None:
        await self._redis.hset(
            self._hash(collection),
            record["key"],
            json.dumps(record, ensure_ascii=False, default=str),
        )

    async def get(self, collection: str, key: str) -> Optional[Record]:
        raw = await self._redis.hget(self._hash(collection), key)
        return json.loads(raw) if raw else None

    async def scan(
        self,
        collection: str,
        where: Optional[Predicate] = None,
        sort_by: Optional[str] = None,
    ) -> List[Record]:
        raw = await self._redis.hgetall(self._hash(collection))
        records = [json.loads(value) for value in raw.values()]
        if where is not None:
            records = [r for r in records if where(r)]
        return _sorted(records, sort_by)

    async def delete(self, collection: str, key: str) -> bool:
        return bool(await self._redis.hdel(self._hash(collection), key))

    async def delete_all(self, collection: str) -> int:
        name = self._hash(collection)
        count = await self._redis.hlen(name)
        await self._redis.delete(name)
        return count

    async def count(self, collection: str) -> int:
        return await self._redis.hlen(self._hash(collection))


# ── 进程内 ────────────────────────────────────────────────

class MemoryRecordStore(RecordStore):
    backend = "memory"

    def __init__(self):
        self._data: Dict[str, Dict[str, Record]] = {}
        self._lock = asyncio.Lock()

    async def upsert(self, collection: str, record: Record) -> None:
        async with self._lock:
            self._data.setdefault(collection, {})[record["key"]] = copy.deepcopy(record)

    async def get(self, collection: str, key: str) -> Optional[Record]:
        async with self._lock:
            record = self._data.get(collection, {}).get(key)
            return copy.deepcopy(record) if record is not None else None

    async def scan(
        self,
        collection: str,
        where: Optional[Predicate] = None,
        sort_by: Optional[str] = None,
    ) -> List[Record]:
        async with self._lock:
            records = [copy.deepcopy(r) for r in self._data.get(collection, {}).values()]
        if where is not None:
            records = [r for r in records if where(r)]
        return _sorted(records, sort_by)

    async def delete(self, collection: str, key: str) -> bool:
        async with self._lock:
            return self._data.get(collection, {}).pop(key, None) is not None

    async def delete_all(self, collection: str) -> int:
        async with self._lock:
            removed = self._data.pop(collection, {})
            return len(removed)

    async def count(self, collection: str) -> int:
        async with self._lock:
            return len(self._data.get(collection, {}))


def create_record_store(
    mongo_db: Optional[AsyncIOMotorDatabase], redis: Optional[Redis]
) -> RecordStore:
    """按可用连接选择后端：MongoDB → Redis → 进程内"""
    if mongo_db is not None:
        logger.info("✅ 记录存储使用 MongoDB")
        return MongoRecordStore(mongo_db)
    if redis is not None:
        logger.warning("⚠️ MongoDB 不可用，记录存储降级为 Redis")
        return RedisRecordStore(redis)
    logger.warning("⚠️ 数据库均不可用，记录存储降级为进程内存（重启后丢失）")
    return MemoryRecordStore()
