from __future__ import annotations

import json
from enum import Enum
from typing import Any

_yaml: Any | None

try:
    import yaml as _yaml
except ImportError:  # pragma: no cover - exercised by patching ``_yaml``.
    _yaml = None


class OutputFormat(str, Enum):
    JSON = "json"
    YAML = "yaml"
    MARKDOWN = "markdown"


class FormatDependencyError(RuntimeError):
    def __init__(self, output_format: str, package: str):
        self.output_format = output_format
        self.package = package
        self.install_hint = f"pip install {package}"
        super().__init__(
            f"Output format '{output_format}' requires the '{package}' package. "
            f"Install it with: {self.install_hint}"
        )


def resolve_format(output_format: OutputFormat | str | None) -> OutputFormat:
    if isinstance(output_format, OutputFormat):
        return output_format
    try:
        return OutputFormat((output_format or "").strip().lower())
    except ValueError:
        return OutputFormat.JSON


def _pretty_json(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False, default=str)


class FormatTransformer:
    def to(
        self,
        output_format: OutputFormat | str | None,
        data: Any,
        *,
        as_value: bool = False,
    ) -> str:
        """Render ``data`` in ``output_format``.

        Markdown passes text through untouched unless ``as_value`` is set, in
        which case a string is treated like any other structured value and
        shown as a fenced JSON block.
        """
        match resolve_format(output_format):
            case OutputFormat.JSON:
                return _pretty_json(data)
            case OutputFormat.MARKDOWN:
                if isinstance(data, str) and not as_value:
                    return data
                return f"```json\n{_pretty_json(data)}\n```"
            case OutputFormat.YAML:
                return self._to_yaml(data)

    @staticmethod
    def _to_yaml(data: Any) -> str:
        if _yaml is None:
            raise FormatDependencyError(OutputFormat.YAML.value, "pyyaml")
        # Round-trip through JSON so arbitrary objects reduce to safe YAML types.
        plain = json.loads(json.dumps(data, default=str))
        return _yaml.safe_dump(plain, sort_keys=False, allow_unicode=True).rstrip("\n")
