from __future__ import annotations

import asyncio
import logging
import re
from fnmatch import fnmatch
from pathlib import Path
from typing import Iterator, Protocol

from crucible_router.search.models import (
    QueryType,
    SearchDocument,
    SearchMetadata,
    SearchMethod,
    SearchQuery,
    SearchResult,
)

logger = logging.getLogger("crucible_router")

DEFAULT_EXCLUDED_DIRS = frozenset(
    {".git", ".hg", ".venv", "venv", "node_modules", "__pycache__", "dist", "build"}
)
DEFAULT_MAX_FILE_BYTES = 1024 * 1024
LEXICAL_MATCH_CONFIDENCE = 0.9


class SearchEngine(Protocol):
    async def search(self, query: SearchQuery) -> SearchResult: ...


def build_pattern(query: SearchQuery) -> re.Pattern[str]:
    name = re.escape(query.query.strip())
    match query.query_type:
        case QueryType.FUNCTION:
            expression = (
                rf"\b(?:def|function|func|fn)\s+{name}\b"
                rf"|\b(?:const|let|var)\s+{name}\s*=\s*(?:async\s*)?\("
            )
        case QueryType.CLASS:
            expression = rf"\b(?:class|interface|struct|trait|enum)\s+{name}\b"
        case QueryType.IMPORT:
            expression = rf"\b(?:import|from|require|use)\b.*{name}"
        case QueryType.SEMANTIC | QueryType.TEXT:
            expression = name
    flags = 0 if query.case_sensitive else re.IGNORECASE
    return re.compile(expression, flags)


class LexicalSearchEngine:
    """Line-oriented keyword search over a workspace directory."""

    def __init__(
        self,
        root: str | Path,
        *,
        excluded_dirs: frozenset[str] = DEFAULT_EXCLUDED_DIRS,
        max_file_bytes: int = DEFAULT_MAX_FILE_BYTES,
    ) -> None:
        self.root = Path(root)
        self._excluded_dirs = excluded_dirs
        self._max_file_bytes = max_file_bytes

    async def search(self, query: SearchQuery) -> SearchResult:
        return await asyncio.to_thread(self.search_sync, query)

    def search_sync(self, query: SearchQuery) -> SearchResult:
        if not self.root.is_dir():
            raise FileNotFoundError(f"Search root does not exist: {self.root}")
        pattern = build_pattern(query)
        documents: list[SearchDocument] = []
        for path in self._iter_files(query.file_globs):
            for line_number, line in self._matching_lines(path, pattern):
                documents.append(
                    SearchDocument(
                        path=path.relative_to(self.root).as_posix(),
                        line=line_number,
                        content=line.strip(),
                    )
                )
                if len(documents) >= query.max_results:
                    return self._result(documents)
        return self._result(documents)

    @staticmethod
    def _result(documents: list[SearchDocument]) -> SearchResult:
        return SearchResult(
            documents=documents,
            metadata=SearchMetadata(
                search_method=SearchMethod.LEXICAL,
                confidence=LEXICAL_MATCH_CONFIDENCE if documents else 0.0,
                total_matches=len(documents),
            ),
        )

    def _iter_files(self, file_globs: list[str]) -> Iterator[Path]:
        for path in sorted(self.root.rglob("*")):
            if not path.is_file():
                continue
            relative = path.relative_to(self.root)
            if any(part in self._excluded_dirs for part in relative.parts[:-1]):
                continue
            if file_globs and not any(
                fnmatch(relative.as_posix(), pattern) or fnmatch(path.name, pattern)
                for pattern in file_globs
            ):
                continue
            yield path

    def _matching_lines(
        self, path: Path, pattern: re.Pattern[str]
    ) -> Iterator[tuple[int, str]]:
        try:
            if path.stat().st_size > self._max_file_bytes:
                return
            content = path.read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            logger.debug("search_file_skipped path=%s error=%s", path, exc)
            return
        if "\x00" in content:
            return
        for index, line in enumerate(content.splitlines(), start=1):
            if pattern.search(line):
                yield index, line
