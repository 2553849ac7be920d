from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class QueryType(str, Enum):
    SEMANTIC = "semantic"
    FUNCTION = "function"
    CLASS = "class"
    IMPORT = "import"
    TEXT = "text"


class SearchMethod(str, Enum):
    RAG = "rag"
    LEXICAL = "lexical"


class SearchQuery(BaseModel):
    query: str
    query_type: QueryType = QueryType.TEXT
    max_results: int = Field(default=20, ge=1)
    file_globs: list[str] = Field(default_factory=list)
    case_sensitive: bool = False


class SearchDocument(BaseModel):
    path: str
    line: int
    content: str
    score: float | None = None


class SearchMetadata(BaseModel):
    search_method: SearchMethod
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    total_matches: int | None = None
    extra: dict[str, Any] = Field(default_factory=dict)


class SearchResult(BaseModel):
    documents: list[SearchDocument] = Field(default_factory=list)
    metadata: SearchMetadata

    def as_context(self, *, max_documents: int | None = None) -> str:
        documents = self.documents[:max_documents] if max_documents else self.documents
        return "\n".join(f"{doc.path}:{doc.line}: {doc.content}" for doc in documents)
