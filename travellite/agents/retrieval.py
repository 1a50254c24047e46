# agents/retrieval.py
"""
Retrieval Stage
Embeds the utterance, queries the vector index (filtered to the known
destination) and formats the top matches as a context block.

Read-only. Any failure yields an empty context; retrieval never aborts a turn.
"""

from typing import Dict, List, Optional

from loguru import logger

from ..config import settings
from ..schemas import ConversationState, RetrievedContextItem, VectorMatch


def to_context_item(match: VectorMatch) -> RetrievedContextItem:
    """Build a context item from stored metadata, with a topic-derived fallback text"""
    metadata = match.metadata or {}
    item_type = metadata.get("type") or "general"
    topic = metadata.get("topic") or ""
    text = metadata.get("text") or ""

    if not text:
        text = f"Information about {topic} ({item_type})" if topic else f"Travel information ({item_type})"

    return RetrievedContextItem(
        text=text,
        source=metadata.get("source") or "travel knowledge base",
        type=item_type,
        topic=topic,
        score=match.score,
    )


def format_context(items: List[RetrievedContextItem]) -> str:
    """
    "[<rank>] <text> (Source: <source>, Score: <0.000>)" per item,
    joined by blank lines, rank 1 first
    """
    paragraphs = []
    for rank, item in enumerate(items, start=1):
        score = f"{item.score:.3f}" if item.score is not None else "N/A"
        paragraphs.append(f"[{rank}] {item.text} (Source: {item.source}, Score: {score})")
    return "\n\n".join(paragraphs)


class RetrievalStage:
    """
    Usage:
        stage = RetrievalStage(embedder, vector_index)
        context = await stage.retrieve("Recommend museums", state)
    """

    def __init__(self, embedder, vector_index, top_k: Optional[int] = None):
        self.embedder = embedder
        self.vector_index = vector_index
        self.top_k = top_k or settings.RETRIEVAL_TOP_K

    def build_filter(self, state: ConversationState) -> Optional[Dict[str, str]]:
        if state.basics.destination:
            return {"city": state.basics.destination}
        return None

    async def retrieve(self, query: str, state: ConversationState) -> str:
        try:
            vector = await self.embedder.embed(query)
            matches = await self.vector_index.query(
                vector,
                top_k=self.top_k,
                filter=self.build_filter(state)
            )
            if not matches:
                logger.debug("[TravelAgent] RAG search returned no matches")
                return ""

            items = [to_context_item(m) for m in matches[:self.top_k]]
            context = format_context(items)
        except Exception as e:
            logger.error(f"[TravelAgent] RAG search error: {e}")
            return ""

        logger.info(f"[TravelAgent] RAG context: {len(items)} item(s), top score {items[0].score:.3f}")
        return context
