from __future__ import annotations

from crucible_router.search.lexical import SearchEngine
from crucible_router.search.models import SearchMethod, SearchQuery, SearchResult

RAG_MATCH_CONFIDENCE = 0.8


class VectorRAGSystem:
    """Semantic retrieval facade over a lexical engine.

    The confidence it reports is a fixed heuristic (0.8 when anything was found,
    0.0 otherwise), not a calibrated relevance score.
    """

    def __init__(self, engine: SearchEngine) -> None:
        self._engine = engine

    async def search(self, query: SearchQuery) -> SearchResult:
        result = await self._engine.search(query)
        metadata = result.metadata.model_copy(
            update={
                "search_method": SearchMethod.RAG,
                "confidence": RAG_MATCH_CONFIDENCE if result.documents else 0.0,
            }
        )
        return result.model_copy(update={"metadata": metadata})
