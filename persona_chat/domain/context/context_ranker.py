from typing import Iterable, List, Set, Tuple
import re

_WORD_RE = re.compile(r"\w+")
_CJK_RE = re.compile(r"[㐀-鿿]")


class ContextRanker:
    """Keyword relevance scoring for reference snippets"""

    def tokenize(self, text: str) -> Set[str]:
        """Lowercased word tokens; CJK runs are split into single characters"""

        tokens: Set[str] = set()
        for word in _WORD_RE.findall(text.lower()):
            if _CJK_RE.search(word):
                tokens.update(ch for ch in word if not ch.isspace())
            else:
                tokens.add(word)
        return tokens

    def calculate_relevance(self, query: str, content: str) -> float:
        """Relevance score in [0, 1] between query and content"""

        query_words = self.tokenize(query)
        if not query_words:
            return 0.0

        content_words = self.tokenize(content)
        overlap = len(query_words & content_words)
        score = overlap / len(query_words)

        # Boost exact phrase matches
        if query.strip() and query.strip().lower() in content.lower():
            score += 0.3

        return min(score, 1.0)

    def rank(self, query: str, candidates: Iterable[Tuple[str, str]]) -> List[Tuple[str, str, float]]:
        """Score (source_id, text) pairs, best first, dropping zero scores"""

        scored = [
            (source_id, text, self.calculate_relevance(query, text))
            for source_id, text in candidates
        ]
        scored = [item for item in scored if item[2] > 0]
        scored.sort(key=lambda item: item[2], reverse=True)
        return scored
