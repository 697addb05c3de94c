"""
Command-line entry point.

    nocheat-bridge analyze round_stats.json [--library PATH] [--model PATH]
    nocheat-bridge locate [--library PATH] [--search-dir DIR ...]

analyze reads a JSON object mapping entity id -> stats payload (object or
JSON string), runs it through the engine and prints the batch report as JSON.
Exit status 1 when the batch was degraded (engine unavailable or failed).
locate prints the library candidates and the one that would be loaded.
Settings not given as flags come from the environment (.env supported).
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

from nocheat_bridge import __version__
from nocheat_bridge.analysis.bridge import AnalysisBridge
from nocheat_bridge.config import BridgeSettings, get_settings
from nocheat_bridge.config.env import MALFORMED_POLICIES
from nocheat_bridge.core.exceptions import BridgeError, LoadError
from nocheat_bridge.engine.loader import candidate_paths, resolve_library
from nocheat_bridge.nocheat_logging import get_logger

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_DEGRADED = 1
EXIT_USAGE = 2


def _read_stats_file(path: Path) -> dict[str, Any]:
    with path.open(encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a JSON object mapping entity id -> stats payload")
    return data


def _settings_from_args(args: argparse.Namespace) -> BridgeSettings:
    settings = get_settings()
    search_dirs = tuple(Path(d) for d in args.search_dir) if args.search_dir else None
    return settings.with_overrides(
        library_path=Path(args.library) if args.library else None,
        library_dirs=search_dirs,
        model_path=Path(args.model) if getattr(args, "model", None) else None,
        id_field=getattr(args, "id_field", None),
        malformed_policy=getattr(args, "policy", None),
    )


def cmd_analyze(args: argparse.Namespace) -> int:
    try:
        records = _read_stats_file(Path(args.stats_file))
    except (OSError, ValueError) as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_USAGE

    settings = _settings_from_args(args)
    with AnalysisBridge.from_settings(settings) as bridge:
        report = bridge.analyze_batch_report(records)
    print(json.dumps(report.to_dict(), indent=2 if args.pretty else None))
    return EXIT_DEGRADED if report.degraded else EXIT_OK


def cmd_locate(args: argparse.Namespace) -> int:
    settings = _settings_from_args(args)
    for path in candidate_paths(settings.library_path, settings.library_dirs):
        mark = "found" if path.is_file() else "missing"
        print(f"{mark:8} {path}")
    try:
        resolved = resolve_library(settings.library_path, settings.library_dirs)
    except LoadError as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_DEGRADED
    print(f"resolved {resolved}")
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="nocheat-bridge",
        description="Run batches of per-entity stats through the NoCheat analysis engine.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command", required=True)

    def add_library_args(p: argparse.ArgumentParser) -> None:
        p.add_argument("--library", help="Engine library path (default: NOCHEAT_LIBRARY_PATH)")
        p.add_argument(
            "--search-dir",
            action="append",
            default=[],
            help="Directory to search for the engine library (repeatable; default: NOCHEAT_LIBRARY_DIRS)",
        )

    analyze = sub.add_parser("analyze", help="Analyze one batch of stats from a JSON file")
    analyze.add_argument("stats_file", help="JSON object: entity id -> stats payload")
    add_library_args(analyze)
    analyze.add_argument("--model", help="Model file for set_model_path (default: NOCHEAT_MODEL_PATH)")
    analyze.add_argument("--id-field", help="Entity id field on the wire (default: NOCHEAT_ID_FIELD or entity_id)")
    analyze.add_argument("--policy", choices=MALFORMED_POLICIES, help="Malformed payload policy")
    analyze.add_argument("--pretty", action="store_true", help="Indent the JSON report")
    analyze.set_defaults(func=cmd_analyze)

    locate = sub.add_parser("locate", help="Show where the engine library is looked for")
    add_library_args(locate)
    locate.set_defaults(func=cmd_locate)
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        return args.func(args)
    except BridgeError as e:
        logger.error("cli_failed", command=args.command, error=str(e), error_type=type(e).__name__)
        print(f"error: {e}", file=sys.stderr)
        return EXIT_USAGE


if __name__ == "__main__":
    sys.exit(main())
