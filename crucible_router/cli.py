from __future__ import annotations

import argparse
import asyncio
from pathlib import Path
from typing import Any, Callable, cast

import yaml

from crucible_router import configure_logging
from crucible_router.config import (
    default_config_document,
    load_router_config,
)
from crucible_router.routing.load_balancer import LoadBalancer
from crucible_router.routing.registry import ProviderRegistry
from crucible_router.routing.selector import (
    ModelSelector,
    RoutingConstraints,
    RoutingRequest,
)
from crucible_router.search.models import QueryType, SearchQuery
from crucible_router.settings import get_settings
from crucible_router.streaming.formatting import FormatTransformer, OutputFormat
from crucible_router.utils.yaml_utils import write_yaml_dict
from crucible_router.wiring import build_search_coordinator


def _add_config_path_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--path",
        default=None,
        help="Router config path (defaults to CRUCIBLE_ROUTING_CONFIG_PATH).",
    )


def _config_path(args: argparse.Namespace) -> Path:
    return Path(args.path or get_settings().routing_config_path)


def _load_registry(args: argparse.Namespace) -> ProviderRegistry:
    return ProviderRegistry.from_config(load_router_config(_config_path(args)))


def _constraints(args: argparse.Namespace) -> RoutingConstraints:
    return RoutingConstraints(
        require_local=args.local,
        require_streaming=args.streaming,
        require_function_calling=args.function_calling,
    )


def _print_yaml(payload: dict[str, Any]) -> None:
    print(yaml.safe_dump(payload, sort_keys=False).rstrip())


def cmd_init(args: argparse.Namespace) -> int:
    output_path = _config_path(args)
    if output_path.exists() and not args.force:
        raise ValueError(
            f"Refusing to overwrite existing file: {output_path}. Use --force to overwrite."
        )

    write_yaml_dict(output_path, default_config_document())
    print(f"Wrote router config: {output_path}")
    return 0


def cmd_validate_config(args: argparse.Namespace) -> int:
    config_path = _config_path(args)
    config = load_router_config(config_path)
    enabled = len(config.to_backends())
    print(
        f"Router config is valid: {config_path} "
        f"({enabled}/{len(config.backends)} backends enabled)"
    )
    return 0


def cmd_explain_route(args: argparse.Namespace) -> int:
    registry = _load_registry(args)
    constraints = _constraints(args)
    decision = ModelSelector(registry).select(RoutingRequest(constraints=constraints))
    fallbacks = LoadBalancer(registry).get_fallback_providers(
        decision.backend.id, count=args.fallbacks
    )

    _print_yaml(
        {
            "constraints": constraints.to_dict(),
            "eligible": [
                backend.id
                for backend in ModelSelector(registry).eligible_backends(constraints)
            ],
            "final_selection": {
                "backend": decision.backend.id,
                "model": decision.model.name,
                "weight": decision.backend.weight,
            },
            "reasons": list(decision.reasons),
            "fallback_candidates": [backend.id for backend in fallbacks],
            "fallback_chain": registry.get_fallback_chain(),
        }
    )
    return 0


def cmd_fallbacks(args: argparse.Namespace) -> int:
    registry = _load_registry(args)
    if args.current not in registry:
        raise ValueError(
            f"Unknown backend '{args.current}'. Known backends: {', '.join(registry.ids())}."
        )
    balancer = LoadBalancer(registry)
    rounds = []
    for _ in range(max(1, args.rounds)):
        offset = balancer.cursor.offset
        candidates = balancer.get_fallback_providers(args.current, count=args.count)
        rounds.append(
            {"offset": offset, "candidates": [backend.id for backend in candidates]}
        )
    _print_yaml({"current": args.current, "rounds": rounds})
    return 0


def cmd_search(args: argparse.Namespace) -> int:
    settings = get_settings()
    coordinator = build_search_coordinator(settings, root=args.root)
    query = SearchQuery(
        query=args.query,
        query_type=QueryType(args.type),
        max_results=args.max_results,
        file_globs=args.glob or [],
        case_sensitive=args.case_sensitive,
    )
    result = asyncio.run(coordinator.search(query))
    print(FormatTransformer().to(args.format, result.model_dump(mode="json")))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="crucible-router",
        description="Backend routing and workspace search diagnostics for crucible-router.",
    )
    parser.add_argument("--log-level", default=None)
    subparsers = parser.add_subparsers(dest="command", required=True)

    init_cmd = subparsers.add_parser("init", help="Create a router config file.")
    _add_config_path_argument(init_cmd)
    init_cmd.add_argument("--force", action="store_true")
    init_cmd.set_defaults(handler=cmd_init)

    validate_cmd = subparsers.add_parser(
        "validate-config",
        help="Validate backend declarations and the fallback chain.",
    )
    _add_config_path_argument(validate_cmd)
    validate_cmd.set_defaults(handler=cmd_validate_config)

    explain_cmd = subparsers.add_parser(
        "explain-route",
        help="Explain backend selection for a set of routing constraints.",
    )
    _add_config_path_argument(explain_cmd)
    explain_cmd.add_argument("--local", action="store_true")
    explain_cmd.add_argument("--streaming", action="store_true")
    explain_cmd.add_argument("--function-calling", action="store_true")
    explain_cmd.add_argument("--fallbacks", type=int, default=2)
    explain_cmd.set_defaults(handler=cmd_explain_route)

    fallbacks_cmd = subparsers.add_parser(
        "fallbacks",
        help="Show round-robin fallback candidates after a backend failure.",
    )
    _add_config_path_argument(fallbacks_cmd)
    fallbacks_cmd.add_argument("--current", required=True)
    fallbacks_cmd.add_argument("--count", type=int, default=2)
    fallbacks_cmd.add_argument("--rounds", type=int, default=1)
    fallbacks_cmd.set_defaults(handler=cmd_fallbacks)

    search_cmd = subparsers.add_parser("search", help="Search the workspace for context.")
    search_cmd.add_argument("query")
    search_cmd.add_argument(
        "--type",
        default=QueryType.TEXT.value,
        choices=[item.value for item in QueryType],
    )
    search_cmd.add_argument("--root", default=None)
    search_cmd.add_argument("--max-results", type=int, default=20)
    search_cmd.add_argument("--glob", action="append")
    search_cmd.add_argument("--case-sensitive", action="store_true")
    search_cmd.add_argument(
        "--format",
        default=OutputFormat.JSON.value,
        choices=[item.value for item in OutputFormat],
    )
    search_cmd.set_defaults(handler=cmd_search)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    handler = cast(Callable[[argparse.Namespace], int], args.handler)

    try:
        configure_logging(args.log_level or get_settings().log_level)
        return handler(args)
    except Exception as exc:  # pragma: no cover - covered via CLI tests
        parser.exit(2, f"error: {exc}\n")


if __name__ == "__main__":
    raise SystemExit(main())
