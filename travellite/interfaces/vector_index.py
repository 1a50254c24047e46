# interfaces/vector_index.py
"""
Vector Index
Stores (id, embedding, metadata) records and answers top-k cosine queries
with an optional metadata equality filter.

Redis layout:
    vector:<id>    hash {embedding: float32 bytes, metadata: json}
    vector:index   set of record keys
"""

import json
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
from loguru import logger

from ..cache.embeddings import cosine_similarity
from ..cache.redis_client import connect_redis
from ..config import settings
from ..schemas import VectorMatch


def _matches_filter(metadata: Dict[str, Any], filter: Optional[Dict[str, Any]]) -> bool:
    if not filter:
        return True
    return all(metadata.get(key) == value for key, value in filter.items())


class VectorIndex:
    """
    Brute-force cosine index.

    Fine for a knowledge base of a few thousand summaries; every query
    scores every stored vector. Redis errors propagate to the caller.
    """

    def __init__(self, use_redis: Optional[bool] = None, key_prefix: str = "vector:"):
        self.use_redis = settings.USE_REDIS if use_redis is None else use_redis
        self.key_prefix = key_prefix
        self.index_key = f"{key_prefix}index"
        self.redis_client = None
        self._memory_store: Dict[str, Tuple[np.ndarray, Dict[str, Any]]] = {}
        self._initialized = False

    async def _ensure_connected(self):
        if self._initialized:
            return
        if self.use_redis:
            self.redis_client = await connect_redis()
        if self.redis_client is None:
            logger.info("VectorIndex using in-memory storage")
        self._initialized = True

    async def upsert(self, id: str, vector: List[float], metadata: Dict[str, Any]):
        """Insert or replace one record"""
        await self._ensure_connected()
        embedding = np.asarray(vector, dtype=np.float32)

        if self.redis_client:
            key = f"{self.key_prefix}{id}"
            await self.redis_client.hset(
                key,
                mapping={
                    "embedding": embedding.tobytes(),
                    "metadata": json.dumps(metadata)
                }
            )
            await self.redis_client.sadd(self.index_key, key)
        else:
            self._memory_store[id] = (embedding, dict(metadata))

        logger.debug(f"Upserted vector {id} ({embedding.shape[0]} dims)")

    async def _iter_records(self):
        if not self.redis_client:
            for record_id, (embedding, metadata) in self._memory_store.items():
                yield record_id, embedding, metadata
            return

        keys = await self.redis_client.smembers(self.index_key)
        for key in keys:
            data = await self.redis_client.hgetall(key)
            key_str = key.decode("utf-8") if isinstance(key, bytes) else key
            if not data:
                # Deleted out from under the index
                await self.redis_client.srem(self.index_key, key)
                continue
            embedding_bytes = data.get(b"embedding")
            if not embedding_bytes:
                continue
            embedding = np.frombuffer(embedding_bytes, dtype=np.float32)
            metadata = json.loads(data.get(b"metadata", b"{}"))
            yield key_str[len(self.key_prefix):], embedding, metadata

    async def query(
        self,
        vector: List[float],
        top_k: int = 5,
        filter: Optional[Dict[str, Any]] = None
    ) -> List[VectorMatch]:
        """
        Top-k records by descending cosine similarity

        Args:
            vector: Query embedding
            top_k: Maximum matches to return
            filter: Metadata equality filter, e.g. {"city": "Paris"}
        """
        await self._ensure_connected()

        matches: List[VectorMatch] = []
        async for record_id, embedding, metadata in self._iter_records():
            if not _matches_filter(metadata, filter):
                continue
            score = cosine_similarity(vector, embedding)
            matches.append(VectorMatch(id=record_id, score=score, metadata=metadata))

        matches.sort(key=lambda m: m.score, reverse=True)
        return matches[:top_k]

    async def get(self, id: str) -> Optional[VectorMatch]:
        """Fetch one record by id (score is 1.0)"""
        await self._ensure_connected()
        if self.redis_client:
            data = await self.redis_client.hgetall(f"{self.key_prefix}{id}")
            if not data:
                return None
            return VectorMatch(id=id, score=1.0, metadata=json.loads(data.get(b"metadata", b"{}")))
        record = self._memory_store.get(id)
        if record is None:
            return None
        return VectorMatch(id=id, score=1.0, metadata=record[1])

    async def count(self) -> int:
        await self._ensure_connected()
        if self.redis_client:
            return await self.redis_client.scard(self.index_key)
        return len(self._memory_store)
