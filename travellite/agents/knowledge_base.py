# agents/knowledge_base.py
"""
Knowledge Base Seeding
Loads base travel-knowledge documents (one .txt file per topic) into
the vector index. Each file is ingested once, tracked by a
"rag:file:<fileName>" marker.
"""

import re
from pathlib import Path
from typing import Dict, Union

from loguru import logger

from ..schemas import now_ms


# Stored text is capped; retrieval only needs enough to ground an answer
MAX_STORED_TEXT = 1000


def topic_from_file_name(file_name: str) -> str:
    return file_name.replace(".txt", "").replace("_", " ")


def document_id(file_name: str) -> str:
    slug = re.sub(r"[^a-z0-9]", "-", file_name.replace(".txt", ""), flags=re.IGNORECASE)
    return f"rag-{slug.lower()}"


class KnowledgeBase:
    """
    Usage:
        kb = KnowledgeBase(embedder, vector_index, kv_store)
        await kb.seed_document("paris_museums.txt", text)
        counts = await kb.seed_directory("RAG_files")
    """

    def __init__(self, embedder, vector_index, kv_store):
        self.embedder = embedder
        self.vector_index = vector_index
        self.kv_store = kv_store

    @staticmethod
    def marker_key(file_name: str) -> str:
        return f"rag:file:{file_name}"

    async def seed_document(self, file_name: str, content: str) -> str:
        """
        Ingest one document.

        Returns:
            "ingested" or "skipped" (already ingested)

        Raises:
            whatever the embedder or stores raise
        """
        marker = self.marker_key(file_name)
        if await self.kv_store.get(marker) is not None:
            logger.info(f"Skipping {file_name} (already ingested)")
            return "skipped"

        embedding = await self.embedder.embed(content)
        topic = topic_from_file_name(file_name)
        doc_id = document_id(file_name)

        await self.vector_index.upsert(doc_id, embedding, {
            "source": "base-rag-file",
            "type": "travel-knowledge",
            "topic": topic,
            "fileName": file_name,
            "createdAt": now_ms(),
            "text": content[:MAX_STORED_TEXT]
        })
        await self.kv_store.put(marker, {"ingestedAt": now_ms(), "fileName": file_name})

        logger.info(f"Ingested {file_name} (ID: {doc_id})")
        return "ingested"

    async def seed_directory(self, directory: Union[str, Path]) -> Dict[str, int]:
        """Seed every .txt file in a directory; per-file errors are counted"""
        directory = Path(directory)
        counts = {"ingested": 0, "skipped": 0, "errors": 0}

        if not directory.is_dir():
            logger.warning(f"Knowledge directory not found: {directory}")
            return counts

        files = sorted(p for p in directory.iterdir() if p.suffix == ".txt")
        logger.info(f"Found {len(files)} knowledge files in {directory}")

        for path in files:
            try:
                status = await self.seed_document(path.name, path.read_text(encoding="utf-8"))
                counts[status] += 1
            except Exception as e:
                logger.error(f"Error processing {path.name}: {e}")
                counts["errors"] += 1

        logger.info(
            f"Knowledge seeding done: {counts['ingested']} ingested, "
            f"{counts['skipped']} skipped, {counts['errors']} errors"
        )
        return counts
