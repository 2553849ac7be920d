from __future__ import annotations

import contextlib
import os
import tempfile
from pathlib import Path
from typing import Any

import yaml


def load_yaml_dict(path: str | Path) -> dict[str, Any]:
    """Read a YAML mapping; a missing or empty file reads as ``{}``."""
    resolved = Path(path)
    if not resolved.exists():
        return {}
    with resolved.open("r", encoding="utf-8") as handle:
        payload = yaml.safe_load(handle)
    if payload is None:
        return {}
    if isinstance(payload, dict):
        return payload
    raise ValueError(f"Expected YAML object in '{resolved}'.")


def write_yaml_dict(
    path: str | Path,
    payload: dict[str, Any],
    *,
    sort_keys: bool = False,
) -> Path:
    """Replace ``path`` with ``payload`` so readers never observe a partial file."""
    resolved = Path(path)
    resolved.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_name = tempfile.mkstemp(
        prefix=f".{resolved.name}.", suffix=".tmp", dir=resolved.parent
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            yaml.safe_dump(payload, handle, sort_keys=sort_keys)
        os.replace(temp_name, resolved)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(temp_name)
        raise
    return resolved
