from crucible_router.streaming.assembler import AssembledBuffer, ResponseAssembler
from crucible_router.streaming.coordinator import (
    OutputCoordinator,
    OutputOptions,
    OutputResult,
)
from crucible_router.streaming.formatting import (
    FormatDependencyError,
    FormatTransformer,
    OutputFormat,
)
from crucible_router.streaming.processor import (
    ChunkChannel,
    ChunkSource,
    StreamCancelledError,
    StreamProcessor,
)
from crucible_router.streaming.truncation import (
    ContextType,
    PolicyTruncationManager,
    TruncationManager,
    TruncationPolicy,
    TruncationResult,
    truncation_manager_for,
)

__all__ = [
    "AssembledBuffer",
    "ChunkChannel",
    "ChunkSource",
    "ContextType",
    "FormatDependencyError",
    "FormatTransformer",
    "OutputCoordinator",
    "OutputFormat",
    "OutputOptions",
    "OutputResult",
    "PolicyTruncationManager",
    "ResponseAssembler",
    "StreamCancelledError",
    "StreamProcessor",
    "TruncationManager",
    "TruncationPolicy",
    "TruncationResult",
    "truncation_manager_for",
]
