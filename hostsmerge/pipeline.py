#!/usr/bin/env python3
"""
pipeline.py

Build a hosts blocklist from a list of remote and local sources.

Pipeline stages (strictly linear):
  1. load blacklist  -- domains that are always emitted
  2. fetch sources   -- sequential, archive reuse / fallback for URLs
  3. aggregate       -- blacklist + every fetched source, deduplicated
  4. filter          -- whitelist, exact or ancestor-inclusive
  5. sort + emit     -- header, marker, `0.0.0.0 <domain>` lines

Raw downloads are staged in a scratch directory that is removed on every exit
path. The run aborts only when nothing usable was fetched and no blacklist
exists, or when the output cannot be written.

Usage:
    python -m hostsmerge.pipeline [-s sources.txt] [-o hosts.blocked] ...
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path

from hostsmerge import emit, merge, normalize, utils
from hostsmerge.cache_utils import ArchiveStore
from hostsmerge.fetch_sources import (
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_TIMEOUT,
    FetchError,
    fetch_all,
)
from hostsmerge.merge import WhitelistPolicy


DEFAULT_SOURCES = "sources.txt"
DEFAULT_OUTPUT = "hosts.blocked"
DEFAULT_WHITELIST = "whitelist.txt"
DEFAULT_BLACKLIST = "blacklist.txt"
DEFAULT_LOG_FILE = "hosts-build.log"
DEFAULT_ARCHIVE_DIR = ".archive"

LOG_FORMAT = "[%(asctime)s] %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"
RUN_LOGGER_NAME = "hostsmerge.run"


class NoUsableInput(Exception):
    """No source could be fetched and no blacklist file exists."""


@dataclass(frozen=True)
class PipelineConfig:
    """Everything a run needs; built from CLI arguments or directly in code."""

    sources: Path = Path(DEFAULT_SOURCES)
    output: Path = Path(DEFAULT_OUTPUT)
    whitelist: Path | None = Path(DEFAULT_WHITELIST)
    blacklist: Path | None = Path(DEFAULT_BLACKLIST)
    header: Path | None = None
    archive_dir: Path = Path(DEFAULT_ARCHIVE_DIR)
    log_file: Path | None = Path(DEFAULT_LOG_FILE)
    whitelist_policy: WhitelistPolicy = WhitelistPolicy.ANCESTOR
    archive_enabled: bool = True
    address: str = utils.DEFAULT_BLOCK_ADDRESS
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    total_timeout: float = DEFAULT_TIMEOUT
    verbose: bool = False

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> PipelineConfig:
        return cls(
            sources=Path(args.sources),
            output=Path(args.output),
            whitelist=Path(args.whitelist) if args.whitelist else None,
            blacklist=Path(args.blacklist) if args.blacklist else None,
            header=Path(args.header) if args.header else None,
            archive_dir=Path(args.archive_dir),
            log_file=Path(args.log_file) if args.log_file else None,
            whitelist_policy=WhitelistPolicy(args.whitelist_policy),
            archive_enabled=not args.no_archive,
            address=args.address,
            connect_timeout=args.connect_timeout,
            total_timeout=args.timeout,
            verbose=args.verbose,
        )


@dataclass
class RunContext:
    """Per-run handles passed to every stage."""

    log: logging.Logger
    scratch: Path


@dataclass
class RunSummary:
    sources_listed: int = 0
    sources_fetched: int = 0
    sources_failed: int = 0
    blacklisted: int = 0
    aggregated: int = 0
    whitelisted: int = 0
    domains: int = 0
    output: str = ""


# ----------------------------------------
# Helpers
# ----------------------------------------
def _configure_logging(log_file: Path | None, verbose: bool = False) -> logging.Logger:
    """Return the run logger: timestamped lines to stderr and the append-only log."""
    log = logging.getLogger(RUN_LOGGER_NAME)
    log.setLevel(logging.DEBUG if verbose else logging.INFO)
    log.propagate = False
    _close_logging(log)

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT)
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, mode="a", encoding="utf-8"))
    for handler in handlers:
        handler.setFormatter(formatter)
        log.addHandler(handler)
    return log


def _close_logging(log: logging.Logger) -> None:
    for handler in list(log.handlers):
        log.removeHandler(handler)
        handler.close()


def _raise_on_sigterm(signum, frame) -> None:
    raise SystemExit(128 + signum)


def _read_header(path: Path | None, log: logging.Logger) -> str:
    if path is None:
        return emit.DEFAULT_HEADER
    try:
        return path.read_text(encoding="utf-8")
    except OSError as exc:
        log.warning("WARN: cannot read header %s (%s), using default header", path, exc)
        return emit.DEFAULT_HEADER


def _load_domain_list(
    path: Path | None, kind: str, ctx: RunContext
) -> frozenset[str] | None:
    try:
        return normalize.load_domain_file(path)
    except OSError as exc:
        ctx.log.error("ERROR: cannot read %s %s: %s", kind, path, exc)
        raise


# ----------------------------------------
# Stages
# ----------------------------------------
def load_blacklist(config: PipelineConfig, ctx: RunContext) -> frozenset[str] | None:
    blacklist = _load_domain_list(config.blacklist, "blacklist", ctx)
    if blacklist is None:
        ctx.log.info("INFO: no blacklist found")
    else:
        ctx.log.info("INFO: loaded %d blacklisted domain(s)", len(blacklist))
    return blacklist


def fetch_sources(
    config: PipelineConfig, ctx: RunContext, summary: RunSummary
) -> list[normalize.DomainStream]:
    """Fetch every source and stage its body in scratch; return token streams."""
    try:
        locators = utils.load_sources(config.sources)
    except FileNotFoundError:
        ctx.log.error("ERROR: sources file not found: %s", config.sources)
        locators = []
    summary.sources_listed = len(locators)

    archive = ArchiveStore(config.archive_dir) if config.archive_enabled else None
    results = asyncio.run(
        fetch_all(
            locators,
            archive,
            ctx.log,
            connect_timeout=config.connect_timeout,
            total_timeout=config.total_timeout,
        )
    )

    streams: list[normalize.DomainStream] = []
    for index, result in enumerate(results):
        if isinstance(result, FetchError):
            summary.sources_failed += 1
            continue
        staged = ctx.scratch / utils.staging_name(index, result.locator)
        staged.write_bytes(result.body)
        streams.append(normalize.DomainStream(staged, label=result.locator))
    summary.sources_fetched = len(streams)
    return streams


def aggregate_sources(
    blacklist: frozenset[str] | None,
    streams: list[normalize.DomainStream],
    ctx: RunContext,
    summary: RunSummary,
) -> set[str]:
    if not streams and blacklist is None:
        ctx.log.error("ERROR: no sources could be fetched and no blacklist found")
        raise NoUsableInput("no sources could be fetched and no blacklist found")

    ctx.log.info("INFO: processed %d source(s)", len(streams))
    aggregated = merge.aggregate(blacklist, streams)
    for stream in streams:
        ctx.log.debug(
            "%s",
            utils.format_summary(stream.label, [stream.stats], utils.NORMALIZE_SUMMARY_ORDER),
        )
    summary.blacklisted = len(blacklist or ())
    summary.aggregated = len(aggregated)
    return aggregated


def filter_whitelist(
    config: PipelineConfig,
    aggregated: set[str],
    blacklist: frozenset[str] | None,
    ctx: RunContext,
    summary: RunSummary,
) -> set[str]:
    whitelist = _load_domain_list(config.whitelist, "whitelist", ctx)
    wl_filter = merge.WhitelistFilter(whitelist, config.whitelist_policy)
    if not wl_filter.active:
        ctx.log.info("INFO: no whitelist found")
    else:
        ctx.log.info(
            "INFO: applying whitelist (%d domain(s), policy=%s)",
            len(whitelist),
            wl_filter.policy.value,
        )
    filtered = wl_filter.apply(aggregated, protected=blacklist or ())
    summary.whitelisted = wl_filter.removed
    return filtered


def emit_output(
    config: PipelineConfig, domains: set[str], ctx: RunContext, summary: RunSummary
) -> None:
    header = _read_header(config.header, ctx.log)
    ctx.log.info("INFO: sorting final list")
    try:
        count = emit.write_hosts(config.output, domains, header, config.address)
    except emit.OutputWriteFailed as exc:
        ctx.log.error("ERROR: %s", exc)
        raise
    summary.domains = count
    summary.output = str(config.output)
    ctx.log.info("DONE: generated %s with %d domains", config.output, count)


# ----------------------------------------
# Pipeline core
# ----------------------------------------
def run(config: PipelineConfig) -> RunSummary:
    """Run the whole pipeline once. Raises NoUsableInput / OutputWriteFailed."""
    log = _configure_logging(config.log_file, config.verbose)
    run_start = time.perf_counter()
    summary = RunSummary()
    try:
        with tempfile.TemporaryDirectory(prefix="hostsmerge_") as tmpdir:
            ctx = RunContext(log=log, scratch=Path(tmpdir))
            blacklist = load_blacklist(config, ctx)
            streams = fetch_sources(config, ctx, summary)
            aggregated = aggregate_sources(blacklist, streams, ctx, summary)
            filtered = filter_whitelist(config, aggregated, blacklist, ctx, summary)
            emit_output(config, filtered, ctx, summary)
        log.debug("run finished in %.2fs", time.perf_counter() - run_start)
        return summary
    finally:
        _close_logging(log)


# ----------------------------------------
# CLI entrypoint
# ----------------------------------------
def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Merge remote and local blocklists into one hosts file"
    )
    parser.add_argument("-s", "--sources", default=DEFAULT_SOURCES, help="Source list file")
    parser.add_argument("-o", "--output", default=DEFAULT_OUTPUT, help="Output hosts file")
    parser.add_argument(
        "-w", "--whitelist", default=DEFAULT_WHITELIST, help="Whitelist file ('' to disable)"
    )
    parser.add_argument(
        "-b", "--blacklist", default=DEFAULT_BLACKLIST, help="Blacklist file ('' to disable)"
    )
    parser.add_argument("--header", default=None, help="Static header file")
    parser.add_argument(
        "--whitelist-policy",
        choices=[p.value for p in WhitelistPolicy],
        default=WhitelistPolicy.ANCESTOR.value,
        help="exact: only the listed domain; ancestor: also its subdomains",
    )
    parser.add_argument(
        "-a", "--archive-dir", default=DEFAULT_ARCHIVE_DIR, help="Archive directory"
    )
    parser.add_argument(
        "--no-archive", action="store_true", help="Never reuse or store archived bodies"
    )
    parser.add_argument("--log-file", default=DEFAULT_LOG_FILE, help="Append-only run log")
    parser.add_argument(
        "--address", default=utils.DEFAULT_BLOCK_ADDRESS, help="Blocking address"
    )
    parser.add_argument(
        "--connect-timeout",
        type=float,
        default=DEFAULT_CONNECT_TIMEOUT,
        help="Connect timeout (seconds)",
    )
    parser.add_argument(
        "--timeout", type=float, default=DEFAULT_TIMEOUT, help="Total request budget (seconds)"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    config = PipelineConfig.from_args(args)
    # SIGTERM unwinds like an exception so the scratch directory is removed
    previous = signal.signal(signal.SIGTERM, _raise_on_sigterm)

    try:
        run(config)
    except (NoUsableInput, emit.OutputWriteFailed):
        return 1
    except Exception as exc:
        print(f"[FATAL] {exc}", file=sys.stderr)
        return 1
    finally:
        signal.signal(signal.SIGTERM, previous)
    return 0


if __name__ == "__main__":
    sys.exit(main())
