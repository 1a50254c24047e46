"""
Embedding Service using Ollama
Uses a local embedding model (mxbai-embed-large by default) for retrieval
"""

from typing import List, Optional

import numpy as np
import ollama
from loguru import logger

from ..config import settings


def cosine_similarity(embedding1: List[float], embedding2: List[float]) -> float:
    """
    Calculate cosine similarity between two embeddings

    Returns:
        float: Cosine similarity (-1.0 to 1.0), 0.0 for zero vectors
        or mismatched dimensions
    """
    vec1 = np.asarray(embedding1, dtype=np.float32)
    vec2 = np.asarray(embedding2, dtype=np.float32)

    if vec1.shape != vec2.shape:
        return 0.0

    norm1 = np.linalg.norm(vec1)
    norm2 = np.linalg.norm(vec2)

    if norm1 == 0 or norm2 == 0:
        return 0.0

    return float(np.dot(vec1, vec2) / (norm1 * norm2))


class EmbeddingService:
    """
    Ollama-based embedding service

    Features:
    - Local embedding model (completely free)
    - Same text always yields the same vector for a given model

    Usage:
        embedder = EmbeddingService()
        embedding = await embedder.embed("Museums in Paris")
    """

    def __init__(self, model: Optional[str] = None, host: Optional[str] = None):
        self.model = model or settings.OLLAMA_EMBEDDING_MODEL
        self.ollama_host = host or settings.OLLAMA_BASE_URL
        self.embedding_dim = settings.OLLAMA_EMBEDDING_DIM
        self._client = ollama.AsyncClient(host=self.ollama_host)

        logger.info(
            f"Embedding Service initialized: {self.model} "
            f"({self.embedding_dim} dimensions)"
        )

    async def verify_setup(self) -> bool:
        """
        Check that Ollama is running and the model is pulled.
        Only logs; a missing model surfaces later as a failed embed().
        """
        try:
            response = await self._client.list()
            names = []
            for m in response["models"]:
                name = m.get("model") or m.get("name")
                if name:
                    names.append(name)
            if not any(n == self.model or n.startswith(f"{self.model}:") for n in names):
                logger.warning(
                    f"Ollama model '{self.model}' not found. "
                    f"Please run: ollama pull {self.model}"
                )
                return False
            return True
        except Exception as e:
            logger.warning(f"Ollama not reachable at {self.ollama_host}: {e}")
            return False

    async def embed(self, text: str) -> List[float]:
        """
        Generate embedding for a text

        Raises:
            RuntimeError: If embedding generation fails or the
                response carries no vector
        """
        try:
            response = await self._client.embeddings(model=self.model, prompt=text)
            embedding = list(response["embedding"])
        except Exception as e:
            logger.error(f"Failed to generate embedding: {e}")
            raise RuntimeError(f"Embedding generation failed: {e}")

        if not embedding:
            raise RuntimeError("Unexpected embedding response format")

        if len(embedding) != self.embedding_dim:
            logger.warning(
                f"Unexpected embedding dimension: {len(embedding)} "
                f"(expected {self.embedding_dim})"
            )

        logger.debug(f"Generated embedding for: '{text[:50]}...' ({len(embedding)} dims)")
        return embedding
