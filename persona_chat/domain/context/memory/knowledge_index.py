from typing import Dict, List, Protocol, Tuple
from pathlib import Path
import asyncio
import structlog

from persona_chat.domain.context.context_ranker import ContextRanker
from persona_chat.domain.models.chat_state import RetrievedSnippet

logger = structlog.get_logger(__name__)

DOCUMENT_SUFFIXES = (".md", ".txt")


class KnowledgeIndex(Protocol):
    """External knowledge index queried for reference snippets"""

    async def search(self, query: str, top_k: int) -> List[RetrievedSnippet]:
        ...


class InMemoryKnowledgeIndex:
    """Keyword-scored snippet index held in process memory"""

    def __init__(self, ranker: ContextRanker = None):
        self.snippets: Dict[str, str] = {}
        self.ranker = ranker or ContextRanker()
        self._lock = asyncio.Lock()

    async def add(self, source_id: str, text: str) -> None:
        """Add or replace a snippet"""

        async with self._lock:
            self.snippets[source_id] = text

    async def load_directory(self, path: str) -> int:
        """Index every markdown/text file under path, one snippet per paragraph"""

        root = Path(path)
        if not root.is_dir():
            raise FileNotFoundError(f"Knowledge directory not found: {path}")

        count = 0
        for file_path in sorted(root.rglob("*")):
            if file_path.suffix.lower() not in DOCUMENT_SUFFIXES or not file_path.is_file():
                continue
            text = file_path.read_text(encoding="utf-8")
            relative = file_path.relative_to(root).as_posix()
            for idx, chunk in enumerate(_split_paragraphs(text)):
                await self.add(f"{relative}#{idx}", chunk)
                count += 1

        logger.info("Loaded knowledge directory", path=str(root), snippets=count)
        return count

    async def search(self, query: str, top_k: int) -> List[RetrievedSnippet]:
        """Top-k snippets by keyword relevance"""

        if top_k <= 0:
            return []

        async with self._lock:
            candidates: List[Tuple[str, str]] = list(self.snippets.items())

        ranked = self.ranker.rank(query, candidates)[:top_k]
        return [
            RetrievedSnippet(source_id=source_id, text=text, score=score)
            for source_id, text, score in ranked
        ]


def _split_paragraphs(text: str) -> List[str]:
    chunks = [chunk.strip() for chunk in text.split("\n\n")]
    return [chunk for chunk in chunks if chunk]
