from __future__ import annotations

import pytest

from persona_chat.domain.context.context_ranker import ContextRanker
from persona_chat.domain.context.context_retriever import ContextRetriever
from persona_chat.domain.context.memory.knowledge_index import InMemoryKnowledgeIndex
from persona_chat.domain.models.chat_state import RetrievedSnippet


def test_ranker_scores_keyword_overlap() -> None:
    ranker = ContextRanker()

    assert ranker.calculate_relevance("tcp handshake", "The TCP three-way handshake") == 1.0
    assert ranker.calculate_relevance("tcp udp", "tcp is reliable") == 0.5
    assert ranker.calculate_relevance("", "anything") == 0.0


def test_ranker_splits_cjk_text_into_characters() -> None:
    ranker = ContextRanker()

    assert {"检", "索"} <= ranker.tokenize("检索增强")
    assert ranker.calculate_relevance("检索", "RAG 的核心是检索和生成") > 0


@pytest.mark.asyncio
async def test_index_returns_top_k_best_first() -> None:
    index = InMemoryKnowledgeIndex()
    await index.add("a", "python list comprehension")
    await index.add("b", "python generators and list comprehension syntax")
    await index.add("c", "relationship advice")

    results = await index.search("python list comprehension syntax", top_k=2)

    assert [r.source_id for r in results] == ["b", "a"]
    assert results[0].score >= results[1].score


@pytest.mark.asyncio
async def test_load_directory_indexes_paragraphs(tmp_path) -> None:
    (tmp_path / "rag.md").write_text("RAG loads documents.\n\nThen it retrieves snippets.", encoding="utf-8")
    (tmp_path / "notes").mkdir()
    (tmp_path / "notes" / "tips.txt").write_text("Practice interview questions.", encoding="utf-8")
    (tmp_path / "image.png").write_bytes(b"\x89PNG")
    index = InMemoryKnowledgeIndex()

    count = await index.load_directory(str(tmp_path))

    assert count == 3
    assert set(index.snippets) == {"rag.md#0", "rag.md#1", "notes/tips.txt#0"}


@pytest.mark.asyncio
async def test_load_directory_missing_path_raises(tmp_path) -> None:
    with pytest.raises(FileNotFoundError):
        await InMemoryKnowledgeIndex().load_directory(str(tmp_path / "nope"))


@pytest.mark.asyncio
async def test_augment_without_index_or_top_k_is_empty() -> None:
    index = InMemoryKnowledgeIndex()
    await index.add("a", "python")

    assert (await ContextRetriever().augment("python", 3)).is_empty
    assert (await ContextRetriever(index).augment("python", 0)).is_empty


@pytest.mark.asyncio
async def test_augment_caps_and_orders_external_results() -> None:
    class UnsortedIndex:
        async def search(self, query, top_k):
            return [
                RetrievedSnippet(source_id="low", text="x", score=0.1),
                RetrievedSnippet(source_id="high", text="y", score=0.9),
                RetrievedSnippet(source_id="mid", text="z", score=0.5),
            ]

    context = await ContextRetriever(UnsortedIndex()).augment("q", 2)

    assert [s.source_id for s in context.snippets] == ["high", "mid"]


@pytest.mark.asyncio
async def test_augment_degrades_to_empty_on_error() -> None:
    class BrokenIndex:
        async def search(self, query, top_k):
            raise RuntimeError("boom")

    assert (await ContextRetriever(BrokenIndex()).augment("q", 3)).is_empty
