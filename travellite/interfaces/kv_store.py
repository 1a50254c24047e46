# interfaces/kv_store.py
"""
Key-Value Store
Holds ingestion dedup markers ("<provider>:<type>:<id>", "rag:file:<name>").
The mere presence of a key means "already ingested".
"""

import json
from typing import Any, Dict, Optional

from loguru import logger

from ..cache.redis_client import connect_redis
from ..config import settings


class KVStore:
    """
    String key -> JSON value store.

    Redis when available, in-memory dict otherwise. Errors from Redis
    propagate; callers decide whether to swallow them.
    """

    def __init__(self, use_redis: Optional[bool] = None, prefix: str = "kv:"):
        self.use_redis = settings.USE_REDIS if use_redis is None else use_redis
        self.prefix = prefix
        self.redis_client = None
        self._memory_store: Dict[str, str] = {}
        self._initialized = False

    async def _ensure_connected(self):
        if self._initialized:
            return
        if self.use_redis:
            self.redis_client = await connect_redis()
        if self.redis_client is None:
            logger.info("KVStore using in-memory storage")
        self._initialized = True

    async def get(self, key: str) -> Optional[Any]:
        """Get a value, or None if the key is absent"""
        await self._ensure_connected()

        if self.redis_client:
            raw = await self.redis_client.get(f"{self.prefix}{key}")
        else:
            raw = self._memory_store.get(key)

        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        try:
            return json.loads(raw)
        except ValueError:
            return raw

    async def put(self, key: str, value: Any):
        """Store a value (JSON-encoded)"""
        await self._ensure_connected()
        payload = value if isinstance(value, str) else json.dumps(value)

        if self.redis_client:
            await self.redis_client.set(f"{self.prefix}{key}", payload)
        else:
            self._memory_store[key] = payload

    async def delete(self, key: str):
        await self._ensure_connected()
        if self.redis_client:
            await self.redis_client.delete(f"{self.prefix}{key}")
        else:
            self._memory_store.pop(key, None)
