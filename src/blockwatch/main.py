"""Command-line entry point for blockwatch."""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from dataclasses import asdict
from typing import List

from .config import ConfigError, init_logging, load_config
from .exposition import parse_metrics_text
from .history import SnapshotHistory
from .snapshot import format_snapshot_json

logger = logging.getLogger("blockwatch.main")


def _read_text(path: str) -> str:
    """Brief: Read an exposition payload from ``path`` ('-' means stdin).

    Undecodable bytes in files are replaced so one bad byte only spoils the
    line it sits on.
    """

    if path == "-":
        return sys.stdin.read()
    with open(path, "r", encoding="utf-8", errors="replace") as f:
        return f.read()


def _cmd_parse(args: argparse.Namespace) -> int:
    snapshot = parse_metrics_text(_read_text(args.file))
    print(format_snapshot_json(snapshot))
    return 0


def _cmd_replay(args: argparse.Namespace, history: SnapshotHistory) -> int:
    """Brief: Push each file as one scrape and print the derived figures.

    Inputs:
      - args.files: Exposition files in scrape order.
      - args.interval: Seconds between consecutive scrapes.
      - history: Empty SnapshotHistory configured from the config file.

    Outputs:
      - int exit code; prints one JSON object to stdout.
    """

    start = time.time()
    for i, path in enumerate(args.files):
        history.push(parse_metrics_text(_read_text(path)), captured_at=start + i * args.interval)

    if len(args.files) > history.capacity:
        logger.info(
            "Replayed %d files; only the newest %d are kept",
            len(args.files),
            history.capacity,
        )

    out = {
        "activity": [asdict(p) for p in history.activity_series()],
        "queries_per_interval": history.queries_per_interval(),
        "blocked_per_interval": history.blocked_per_interval(),
    }
    print(json.dumps(out, separators=(",", ":")))
    return 0


def main(argv: List[str] | None = None) -> int:
    """
    Parse arguments, load configuration and run the selected subcommand.

    Args:
        argv: Command-line arguments (defaults to sys.argv[1:]).

    Returns:
        Exit code: 0 on success, 1 on config or input errors.

    Example use:
        blockwatch parse metrics.txt
        blockwatch replay scrape1.txt scrape2.txt --interval 10
    """
    parser = argparse.ArgumentParser(
        description="Parse Blocky Prometheus metrics and derive per-interval activity"
    )
    parser.add_argument("--config", default=None, help="Path to YAML config")
    sub = parser.add_subparsers(dest="command", required=True)

    p_parse = sub.add_parser("parse", help="Print one payload as a JSON snapshot")
    p_parse.add_argument("file", help="Exposition file, or '-' for stdin")

    p_replay = sub.add_parser(
        "replay", help="Treat files as consecutive scrapes and print activity"
    )
    p_replay.add_argument("files", nargs="+", help="Exposition files in scrape order")
    p_replay.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Seconds between scrapes (default: poller.interval_seconds)",
    )
    args = parser.parse_args(argv)

    try:
        cfg = load_config(args.config)
    except ConfigError as exc:
        print(str(exc), file=sys.stderr)
        return 1

    init_logging(cfg.logging)

    try:
        if args.command == "parse":
            return _cmd_parse(args)
        if args.interval is None:
            args.interval = cfg.poller.interval_seconds
        history = SnapshotHistory(
            capacity=cfg.history.capacity,
            blocked_marker=cfg.history.blocked_marker,
        )
        return _cmd_replay(args, history)
    except (OSError, UnicodeDecodeError) as exc:
        logger.error("Cannot read metrics input: %s", exc)
        return 1


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
