from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Protocol


class ContextType(str, Enum):
    DEFAULT = "default"
    CODE_GENERATION = "code_generation"
    COMMAND_OUTPUT = "command_output"
    FILE_ANALYSIS = "file_analysis"
    SEARCH_RESULTS = "search_results"


@dataclass(frozen=True, slots=True)
class TruncationResult:
    text: str
    done: bool


class TruncationManager(Protocol):
    def append(self, text: str) -> TruncationResult: ...


@dataclass(frozen=True, slots=True)
class TruncationPolicy:
    max_chars: int | None = None
    max_lines: int | None = None


_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")

TRUNCATION_POLICIES: dict[ContextType, TruncationPolicy] = {
    ContextType.DEFAULT: TruncationPolicy(),
    ContextType.CODE_GENERATION: TruncationPolicy(max_chars=400_000),
    ContextType.COMMAND_OUTPUT: TruncationPolicy(max_chars=200_000, max_lines=2_000),
    ContextType.FILE_ANALYSIS: TruncationPolicy(max_chars=500_000),
    ContextType.SEARCH_RESULTS: TruncationPolicy(max_lines=500),
}


class PolicyTruncationManager:
    def __init__(self, policy: TruncationPolicy) -> None:
        self.policy = policy
        self._chars = 0
        self._lines = 0
        self._done = False

    @property
    def done(self) -> bool:
        return self._done

    def append(self, text: str) -> TruncationResult:
        if self._done:
            return TruncationResult(text="", done=True)

        accepted = text
        done = False
        if self.policy.max_lines is not None:
            accepted, done = self._clip_lines(accepted, self.policy.max_lines)
        if self.policy.max_chars is not None:
            remaining = max(0, self.policy.max_chars - self._chars)
            if len(accepted) >= remaining:
                accepted = accepted[:remaining]
                done = True

        self._chars += len(accepted)
        self._lines += accepted.count("\n")
        self._done = done
        return TruncationResult(text=accepted, done=done)

    def _clip_lines(self, text: str, max_lines: int) -> tuple[str, bool]:
        allowed = max_lines - self._lines
        if allowed <= 0:
            return "", True
        position = -1
        for _ in range(allowed):
            position = text.find("\n", position + 1)
            if position < 0:
                return text, False
        # The line budget ends at this newline; the rest of the chunk is dropped.
        return text[: position + 1], True


def resolve_context_type(context_type: ContextType | str | None) -> ContextType:
    if isinstance(context_type, ContextType):
        return context_type
    if not context_type:
        return ContextType.DEFAULT
    normalized = _CAMEL_BOUNDARY.sub("_", context_type.strip()).lower().replace("-", "_")
    try:
        return ContextType(normalized)
    except ValueError:
        return ContextType.DEFAULT


def truncation_manager_for(context_type: ContextType | str | None) -> TruncationManager:
    return PolicyTruncationManager(TRUNCATION_POLICIES[resolve_context_type(context_type)])
