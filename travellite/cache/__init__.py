"""
Cache Module
Redis connection management and Ollama embeddings
"""

from .redis_client import connect_redis, check_redis_health, close_redis
from .embeddings import EmbeddingService, cosine_similarity

__all__ = [
    "connect_redis",
    "check_redis_health",
    "close_redis",
    "EmbeddingService",
    "cosine_similarity"
]
