from typing import Optional
import asyncio
import structlog

from persona_chat.domain.context.memory.knowledge_index import KnowledgeIndex
from persona_chat.domain.models.chat_state import RetrievedContext

logger = structlog.get_logger(__name__)


class ContextRetriever:
    """Best-effort retrieval of reference snippets for a query"""

    def __init__(self, index: Optional[KnowledgeIndex] = None, timeout: float = 2.0):
        self.index = index
        self.timeout = timeout

    async def augment(self, query_text: str, top_k: int) -> RetrievedContext:
        """Fetch the top_k most relevant snippets, empty on any failure"""

        if self.index is None or top_k <= 0 or not query_text.strip():
            return RetrievedContext()

        try:
            snippets = await asyncio.wait_for(self.index.search(query_text, top_k), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning("Retrieval timed out, continuing without context", timeout=self.timeout)
            return RetrievedContext()
        except Exception as e:
            logger.warning("Retrieval failed, continuing without context", error=str(e))
            return RetrievedContext()

        ordered = sorted(snippets or [], key=lambda s: s.score, reverse=True)[:top_k]
        logger.info("Retrieved context", snippets=len(ordered))
        return RetrievedContext(snippets=tuple(ordered))
