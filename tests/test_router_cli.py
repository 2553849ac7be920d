from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest
import yaml

from crucible_router.cli import main


def _load(path: Path) -> dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        return yaml.safe_load(handle) or {}


def _save(path: Path, payload: dict[str, Any]) -> None:
    with path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(payload, handle, sort_keys=False)


def test_router_cli_init_and_validate(tmp_path: Path, capsys: Any) -> None:
    config_path = tmp_path / "crucible.router.yaml"

    assert main(["init", "--path", str(config_path)]) == 0
    assert [backend["id"] for backend in _load(config_path)["backends"]] == [
        "ollama",
        "lm-studio",
    ]
    assert main(["validate-config", "--path", str(config_path)]) == 0

    output = capsys.readouterr().out
    assert "Wrote router config" in output
    assert "(2/2 backends enabled)" in output


def test_router_cli_init_refuses_to_overwrite(tmp_path: Path, capsys: Any) -> None:
    config_path = tmp_path / "crucible.router.yaml"
    config_path.write_text("backends: []\n", encoding="utf-8")

    with pytest.raises(SystemExit) as exc_info:
        main(["init", "--path", str(config_path)])

    assert exc_info.value.code == 2
    assert "Use --force to overwrite" in capsys.readouterr().err
    assert main(["init", "--path", str(config_path), "--force"]) == 0


def test_router_cli_validate_reports_invalid_config(tmp_path: Path, capsys: Any) -> None:
    config_path = tmp_path / "crucible.router.yaml"
    _save(config_path, {"backends": [{"id": "a", "models": ["m"]}], "fallback_chain": ["b"]})

    with pytest.raises(SystemExit) as exc_info:
        main(["validate-config", "--path", str(config_path)])

    assert exc_info.value.code == 2
    assert "unknown backends: b" in capsys.readouterr().err


def test_router_cli_explain_route(tmp_path: Path, capsys: Any) -> None:
    config_path = tmp_path / "crucible.router.yaml"
    main(["init", "--path", str(config_path)])
    capsys.readouterr()

    assert (
        main(
            [
                "explain-route",
                "--path",
                str(config_path),
                "--local",
                "--function-calling",
            ]
        )
        == 0
    )

    payload = yaml.safe_load(capsys.readouterr().out)
    assert payload["final_selection"]["backend"] == "lm-studio"
    assert payload["eligible"] == ["lm-studio"]
    assert payload["fallback_candidates"] == ["ollama"]
    assert payload["constraints"]["require_local"] is True


def test_router_cli_fallbacks_rotate_across_rounds(tmp_path: Path, capsys: Any) -> None:
    config_path = tmp_path / "crucible.router.yaml"
    payload = {
        "backends": [
            {"id": name, "type": "local", "models": [f"{name}-model"]}
            for name in ("a", "b", "c")
        ]
    }
    _save(config_path, payload)

    assert (
        main(
            [
                "fallbacks",
                "--path",
                str(config_path),
                "--current",
                "a",
                "--rounds",
                "2",
            ]
        )
        == 0
    )

    output = yaml.safe_load(capsys.readouterr().out)
    assert output["rounds"] == [
        {"offset": 0, "candidates": ["b", "c"]},
        {"offset": 1, "candidates": ["c", "b"]},
    ]


def test_router_cli_search_outputs_json(tmp_path: Path, capsys: Any) -> None:
    (tmp_path / "app.py").write_text("def handler():\n    return 1\n", encoding="utf-8")

    assert (
        main(
            [
                "--log-level",
                "WARNING",
                "search",
                "handler",
                "--type",
                "function",
                "--root",
                str(tmp_path),
            ]
        )
        == 0
    )

    payload = json.loads(capsys.readouterr().out)
    assert payload["documents"][0]["path"] == "app.py"
    assert payload["metadata"]["search_method"] == "lexical"
