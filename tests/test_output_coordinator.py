from __future__ import annotations

import asyncio
import json

import pytest

from crucible_router.streaming import formatting
from crucible_router.streaming.coordinator import OutputCoordinator, OutputOptions
from crucible_router.streaming.formatting import (
    FormatDependencyError,
    FormatTransformer,
    OutputFormat,
)
from crucible_router.streaming.processor import ChunkChannel
from tests.routing_test_utils import stream_of


def test_plain_stream_is_assembled_without_formatting() -> None:
    result = asyncio.run(OutputCoordinator().process(stream_of("hello ", "world")))

    assert result.text == "hello world"
    assert result.raw_text == "hello world"
    assert result.truncated is False
    assert result.cancelled is False
    assert result.chunks == 2
    assert result.format is None


def test_overflow_cancels_async_generator_source_transparently() -> None:
    produced: list[int] = []

    async def endless():
        index = 0
        while True:
            produced.append(index)
            yield "x" * 6
            index += 1

    result = asyncio.run(
        OutputCoordinator(max_buffer_bytes=10).process(endless())
    )

    assert result.raw_text == "x" * 10
    assert result.size_bytes == 10
    assert result.truncated is True
    assert result.cancelled is True
    assert len(produced) == 2


def test_overflow_cancels_channel_source_transparently() -> None:
    async def scenario():
        channel = ChunkChannel()

        async def produce() -> int:
            sent = 0
            while await channel.send("y" * 4):
                sent += 1
                await asyncio.sleep(0)
            return sent

        producer = asyncio.create_task(produce())
        result = await OutputCoordinator().process(
            channel, OutputOptions(max_buffer_bytes=10)
        )
        await producer
        return result, channel.cancelled

    result, cancelled = asyncio.run(scenario())

    assert result.raw_text == "y" * 10
    assert result.cancelled is True
    assert cancelled is True


def test_on_chunk_callback_sees_every_consumed_chunk() -> None:
    seen: list[str | bytes] = []

    asyncio.run(
        OutputCoordinator().process(
            stream_of("a", "b"),
            OutputOptions(on_chunk=seen.append),
        )
    )

    assert seen == ["a", "b"]


def test_json_output_is_pretty_printed() -> None:
    result = asyncio.run(
        OutputCoordinator().process(
            stream_of('{"a": ', "1}"),
            OutputOptions(format=OutputFormat.JSON),
        )
    )

    assert result.text == json.dumps({"a": 1}, indent=2)
    assert result.raw_text == '{"a": 1}'
    assert result.format == "json"


def test_unparseable_text_falls_back_to_fenced_json_string() -> None:
    result = asyncio.run(
        OutputCoordinator().process(
            stream_of("not json"),
            OutputOptions(format="markdown"),
        )
    )

    assert result.text == '```json\n"not json"\n```'


def test_yaml_output_renders_parsed_structure() -> None:
    result = asyncio.run(
        OutputCoordinator().process(
            stream_of('{"name": "crucible", "tags": ["a"]}'),
            OutputOptions(format=OutputFormat.YAML),
        )
    )

    assert result.text == "name: crucible\ntags:\n- a"


def test_yaml_without_pyyaml_raises_dependency_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(formatting, "_yaml", None)

    with pytest.raises(FormatDependencyError) as exc_info:
        FormatTransformer().to(OutputFormat.YAML, {"a": 1})

    assert exc_info.value.package == "pyyaml"
    assert exc_info.value.install_hint == "pip install pyyaml"


def test_markdown_passes_text_through_and_fences_structures() -> None:
    transformer = FormatTransformer()

    assert transformer.to("markdown", "# Title") == "# Title"
    assert transformer.to("markdown", {"a": 1}) == '```json\n{\n  "a": 1\n}\n```'
    assert transformer.to("unknown", [1]) == "[\n  1\n]"


def test_explicit_zero_buffer_accepts_nothing() -> None:
    result = asyncio.run(
        OutputCoordinator().process(
            stream_of("never", "stored"), OutputOptions(max_buffer_bytes=0)
        )
    )

    assert result.raw_text == ""
    assert result.cancelled is True
    assert result.chunks == 1
