from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import logging
import signal
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from arbiter.arbiter import ResourceArbiter
from arbiter.config import ArbiterConfig
from arbiter.errors import ArbiterError
from arbiter.storage import JsonlStorage, result_record

logger = logging.getLogger("arbiter.cli")

# (kind, params) pairs, served in order
Job = Tuple[str, Dict[str, Any]]


def _build_jobs(args: argparse.Namespace) -> List[Job]:
    if args.command == "search":
        return [("search_notes", {"keywords": " ".join(args.keywords), "limit": args.limit})]
    if args.command == "note":
        return [("get_note_content", {"url": url}) for url in args.urls]
    if args.command == "comments":
        return [("get_note_comments", {"url": url}) for url in args.urls]
    raise ValueError(f"Unknown command: {args.command}")


def _build_config(args: argparse.Namespace) -> ArbiterConfig:
    config = ArbiterConfig.from_env(args.env_file)
    overrides: Dict[str, Any] = {}
    if args.headless is not None:
        overrides["headless"] = args.headless
    if args.log_level:
        overrides["log_level"] = args.log_level.upper()
    if args.cookies:
        overrides["cookie_path"] = Path(args.cookies).expanduser()
    if args.no_humanize:
        overrides["humanize_scale"] = 0.0
    return dataclasses.replace(config, **overrides) if overrides else config


def _install_signal_handlers(arbiter: ResourceArbiter) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, lambda s=sig: asyncio.ensure_future(_on_signal(arbiter, s)))
        except NotImplementedError:
            # add_signal_handler is not available on Windows event loops
            pass


async def _on_signal(arbiter: ResourceArbiter, sig: signal.Signals) -> None:
    logger.warning("Received %s, shutting down", sig.name)
    await arbiter.shutdown()


async def run_jobs(jobs: List[Job], config: ArbiterConfig, results_path: Optional[str]) -> int:
    """Serve jobs one after another; returns the number of failed jobs."""
    arbiter = ResourceArbiter.from_config(config)
    storage = JsonlStorage(results_path) if results_path else None
    _install_signal_handlers(arbiter)

    ok = 0
    fail = 0
    try:
        for index, (kind, params) in enumerate(jobs):
            if arbiter.closed:
                break
            if index:
                await arbiter.pace()
            try:
                result = await arbiter.request(kind, params)
            except (ArbiterError, ValueError) as exc:
                fail += 1
                print(f"error kind={kind} params={params} error={type(exc).__name__}: {exc}", file=sys.stderr)
                continue

            ok += 1
            if storage is not None:
                storage.write(result)
            print(json.dumps(result_record(result), ensure_ascii=False))
    finally:
        await arbiter.shutdown()
        if storage is not None:
            storage.close()

    snap = arbiter.metrics.snapshot(window_secs=24 * 3600)
    print(
        f"\nDONE: success={ok} fail={fail} total={ok + fail} cache_hits={snap.cache_hits}",
        file=sys.stderr,
    )
    return fail


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Fetch RedNote content through the resource arbiter")
    parser.add_argument("--output", default=None, help="Append results to this JSONL file")
    parser.add_argument(
        "--headless",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Run Chromium headless (default from REDNOTE_HEADLESS)",
    )
    parser.add_argument("--log-level", default=None, help="Logging level (default from REDNOTE_LOG_LEVEL)")
    parser.add_argument("--cookies", default=None, help="Path to the cookie JSON file")
    parser.add_argument("--no-humanize", action="store_true", help="Disable humanization delays")
    parser.add_argument("--env-file", default=None, help="Load REDNOTE_* settings from this .env file")

    sub = parser.add_subparsers(dest="command", required=True)

    search = sub.add_parser("search", help="Search notes by keywords")
    search.add_argument("keywords", nargs="+", help="Search keywords")
    search.add_argument("--limit", type=int, default=10, help="Max number of notes to return")

    note = sub.add_parser("note", help="Fetch note content")
    note.add_argument("urls", nargs="+", metavar="URL", help="Note URL or share text")

    comments = sub.add_parser("comments", help="Fetch note comments")
    comments.add_argument("urls", nargs="+", metavar="URL", help="Note URL or share text")

    args = parser.parse_args(argv)
    config = _build_config(args)

    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    failed = asyncio.run(run_jobs(_build_jobs(args), config, args.output))
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
