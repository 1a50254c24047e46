import asyncio

from conftest import FakeEmbedder
from travellite.agents import RetrievalStage
from travellite.agents.retrieval import format_context, to_context_item
from travellite.schemas import ConversationState, TripBasics, VectorMatch


def test_format_context():
    matches = [
        VectorMatch(id="a", score=0.91234, metadata={"text": "Louvre tips", "source": "base-rag-file"}),
        VectorMatch(id="b", score=0.5, metadata={"topic": "paris museums", "type": "travel-knowledge"}),
        VectorMatch(id="c", score=0.1, metadata={}),
    ]
    context = format_context([to_context_item(m) for m in matches])

    assert context.split("\n\n") == [
        "[1] Louvre tips (Source: base-rag-file, Score: 0.912)",
        "[2] Information about paris museums (travel-knowledge) (Source: travel knowledge base, Score: 0.500)",
        "[3] Travel information (general) (Source: travel knowledge base, Score: 0.100)",
    ]


def test_filter_uses_destination(embedder, vector_index):
    stage = RetrievalStage(embedder, vector_index)
    assert stage.build_filter(ConversationState()) is None
    state = ConversationState(basics=TripBasics(destination="Paris"))
    assert stage.build_filter(state) == {"city": "Paris"}


def test_empty_index_gives_empty_context(embedder, vector_index):
    stage = RetrievalStage(embedder, vector_index)
    assert asyncio.run(stage.retrieve("Recommend museums", ConversationState())) == ""


def test_city_filter_and_ranking(embedder, vector_index):
    async def run():
        for record_id, city, text in [
            ("p1", "Paris", "Musee d'Orsay at night"),
            ("p2", "Paris", "Recommend museums"),
            ("r1", "Rome", "Vatican museums"),
        ]:
            await vector_index.upsert(record_id, await embedder.embed(text), {"city": city, "text": text})

        stage = RetrievalStage(embedder, vector_index)
        state = ConversationState(basics=TripBasics(destination="Paris"))
        return await stage.retrieve("Recommend museums", state)

    context = asyncio.run(run())
    paragraphs = context.split("\n\n")
    assert len(paragraphs) == 2
    # Identical text embeds identically
    assert paragraphs[0].startswith("[1] Recommend museums")
    assert "Score: 1.000" in paragraphs[0]
    assert "Vatican" not in context


def test_top_k_limits_results(embedder, vector_index):
    async def run():
        for i in range(8):
            await vector_index.upsert(f"doc-{i}", await embedder.embed(f"doc {i}"), {"text": f"doc {i}"})
        return await RetrievalStage(embedder, vector_index, top_k=5).retrieve("doc", ConversationState())

    assert len(asyncio.run(run()).split("\n\n")) == 5


def test_embedding_failure_gives_empty_context(vector_index):
    stage = RetrievalStage(FakeEmbedder(fail=True), vector_index)
    assert asyncio.run(stage.retrieve("Recommend museums", ConversationState())) == ""


def test_malformed_metadata_gives_empty_context(embedder, vector_index):
    async def run():
        vector = await embedder.embed("Recommend museums")
        await vector_index.upsert("foreign", vector, {"source": 42, "topic": ["museums"]})
        return await RetrievalStage(embedder, vector_index).retrieve("Recommend museums", ConversationState())

    assert asyncio.run(run()) == ""
