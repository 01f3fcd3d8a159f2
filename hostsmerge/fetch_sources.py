#!/usr/bin/env python3
"""
fetch_sources.py

Sequential downloader for blocklist sources with archive reuse and fallback.

Behavior:
 - Uses one aiohttp session; sources are fetched one at a time, in list order.
 - Local paths are read from disk; failures skip the source (no fallback).
 - Remote sources with an archived ETag are probed with a conditional HEAD
   (If-None-Match); "unchanged" reuses the archived body without a GET.
 - Without an ETag, a stored byte length is compared against the remote
   Content-Length reported by a HEAD.
 - Otherwise a single GET is issued; successful bodies are archived together
   with the ETag / Content-Length the response exposed.
 - A failed GET falls back to the archived body when one exists.
 - No request is ever retried.

Usage:
    python -m hostsmerge.fetch_sources -s sources.txt -a .archive
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from enum import Enum
from pathlib import Path
from typing import NamedTuple, Sequence

import aiohttp

from hostsmerge import utils
from hostsmerge.cache_utils import ArchiveEntry, ArchiveStore


# ----------------------------------------
# Constants
# ----------------------------------------
DEFAULT_CONNECT_TIMEOUT = 10  # seconds
DEFAULT_TIMEOUT = 60  # overall budget per request, seconds
MAX_REDIRECTS = 10
USER_AGENT = "hostsmerge/1.0 (+hosts blocklist builder)"

STATUS = utils.FETCH_STATUS


# ----------------------------------------
# Result and error types
# ----------------------------------------
class FetchErrorKind(str, Enum):
    UNREACHABLE = "unreachable"
    TIMEOUT = "timeout"
    LOCAL_READ_FAILED = "local-read-failed"


class FetchError(Exception):
    """Raised when a single source cannot be acquired. Never fatal to a run."""

    def __init__(self, kind: FetchErrorKind, locator: str, reason: str) -> None:
        super().__init__(f"{locator}: {reason}")
        self.kind = kind
        self.locator = locator
        self.reason = reason


class ProbeResult(Enum):
    UNCHANGED = "unchanged"
    CHANGED = "changed"
    UNKNOWN = "unknown"


class FetchOutcome(NamedTuple):
    """Bytes for one source and how they were obtained."""

    locator: str
    status: str
    body: bytes
    info: str = ""


def _content_length(headers) -> int | None:
    raw = headers.get("Content-Length")
    if raw is None or not raw.strip().isdigit():
        return None
    return int(raw.strip())


def _is_success(status: int) -> bool:
    return 200 <= status < 300


# ----------------------------------------
# Fetcher
# ----------------------------------------
class SourceFetcher:
    """
    Resolve locators to bytes.

    `archive` may be None, in which case remote sources are always
    downloaded and nothing is persisted.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        archive: ArchiveStore | None,
        *,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        total_timeout: float = DEFAULT_TIMEOUT,
        log: logging.Logger | None = None,
    ) -> None:
        self.session = session
        self.archive = archive
        self.timeout = aiohttp.ClientTimeout(total=total_timeout, connect=connect_timeout)
        self.log = log or logging.getLogger(__name__)
        # identity keeps Content-Length comparable with the archived body length
        self.headers = {"User-Agent": USER_AGENT, "Accept-Encoding": "identity"}

    async def fetch(self, locator: str) -> FetchOutcome:
        """Return the source's bytes or raise FetchError."""
        if not utils.is_remote_locator(locator):
            return self._read_local(locator)

        if self.archive is None:
            body, _etag, _size = await self._download(locator)
            return FetchOutcome(locator, STATUS.OK, body)

        key = self.archive.key_for(locator)
        entry = self.archive.get(key)

        if entry is not None and (entry.etag or entry.size is not None):
            result = await self.probe_validator(locator, entry)
            if result is ProbeResult.UNCHANGED:
                status = STATUS.NOT_MODIFIED if entry.etag else STATUS.SIZE_MATCH
                return FetchOutcome(locator, status, entry.body)
            self.log.debug("probe for %s: %s", locator, result.value)

        try:
            body, etag, size = await self._download(locator)
        except FetchError as exc:
            if entry is None:
                raise
            return FetchOutcome(locator, STATUS.USED_ARCHIVE_ON_FAIL, entry.body, exc.reason)

        try:
            self.archive.put(key, body, etag=etag, size=size)
        except OSError as exc:
            # archive persistence should not fail the source
            self.log.warning("WARN: could not archive %s: %s", locator, exc)
        return FetchOutcome(locator, STATUS.OK, body)

    async def probe_validator(self, url: str, entry: ArchiveEntry) -> ProbeResult:
        """
        Ask the server whether the archived body is still current.

        With an ETag the HEAD carries If-None-Match; a 304 (or a 2xx echoing
        the same ETag) means unchanged. Without one, the remote Content-Length
        is compared against the archived body length. Any failure is UNKNOWN.
        """
        headers = dict(self.headers)
        if entry.etag:
            headers["If-None-Match"] = entry.etag
        try:
            async with self.session.head(
                url,
                headers=headers,
                timeout=self.timeout,
                allow_redirects=True,
                max_redirects=MAX_REDIRECTS,
            ) as resp:
                if entry.etag:
                    if resp.status == 304:
                        return ProbeResult.UNCHANGED
                    if not _is_success(resp.status):
                        return ProbeResult.UNKNOWN
                    if resp.headers.get("ETag") == entry.etag:
                        return ProbeResult.UNCHANGED
                    return ProbeResult.CHANGED

                if not _is_success(resp.status):
                    return ProbeResult.UNKNOWN
                remote_size = _content_length(resp.headers)
                if remote_size is None:
                    return ProbeResult.UNKNOWN
                if remote_size == len(entry.body):
                    return ProbeResult.UNCHANGED
                return ProbeResult.CHANGED
        except asyncio.TimeoutError:
            self.log.debug("probe for %s timed out", url)
            return ProbeResult.UNKNOWN
        except aiohttp.ClientError as exc:
            self.log.debug("probe for %s failed: %s", url, type(exc).__name__)
            return ProbeResult.UNKNOWN

    async def _download(self, url: str) -> tuple[bytes, str | None, int | None]:
        """Issue the single GET for `url`; return (body, etag, content_length)."""
        try:
            async with self.session.get(
                url,
                headers=self.headers,
                timeout=self.timeout,
                allow_redirects=True,
                max_redirects=MAX_REDIRECTS,
            ) as resp:
                if not _is_success(resp.status):
                    raise FetchError(FetchErrorKind.UNREACHABLE, url, f"HTTP {resp.status}")
                body = await resp.read()
                return body, resp.headers.get("ETag"), _content_length(resp.headers)
        except asyncio.TimeoutError as exc:
            raise FetchError(
                FetchErrorKind.TIMEOUT, url, "timeout - server did not respond in time"
            ) from exc
        except aiohttp.ClientError as exc:
            raise FetchError(
                FetchErrorKind.UNREACHABLE, url, f"connection error - {type(exc).__name__}"
            ) from exc

    def _read_local(self, locator: str) -> FetchOutcome:
        try:
            body = Path(locator).expanduser().read_bytes()
        except OSError as exc:
            raise FetchError(
                FetchErrorKind.LOCAL_READ_FAILED, locator, exc.strerror or str(exc)
            ) from exc
        return FetchOutcome(locator, STATUS.LOCAL, body)


# ----------------------------------------
# Fetch all sources
# ----------------------------------------
def _log_outcome(log: logging.Logger, outcome: FetchOutcome) -> None:
    if outcome.status in (STATUS.OK, STATUS.LOCAL):
        log.info("OK: fetched %s", outcome.locator)
    elif outcome.status == STATUS.NOT_MODIFIED:
        log.info("OK: %s unchanged (ETag), using archived copy", outcome.locator)
    elif outcome.status == STATUS.SIZE_MATCH:
        log.info("OK: %s unchanged (size), using archived copy", outcome.locator)
    else:
        log.warning(
            "WARN: failed to fetch %s (%s), using archived copy",
            outcome.locator,
            outcome.info,
        )


def _log_failure(log: logging.Logger, exc: FetchError) -> None:
    if exc.kind is FetchErrorKind.LOCAL_READ_FAILED:
        log.warning("WARN: failed to read local file %s (%s)", exc.locator, exc.reason)
    else:
        log.warning("WARN: failed to fetch %s (%s)", exc.locator, exc.reason)


async def fetch_all(
    locators: Sequence[str],
    archive: ArchiveStore | None,
    log: logging.Logger,
    *,
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
    total_timeout: float = DEFAULT_TIMEOUT,
) -> list[FetchOutcome | FetchError]:
    """
    Fetch every locator in order, absorbing per-source errors.

    Returns one FetchOutcome or FetchError per locator, in input order.
    """
    results: list[FetchOutcome | FetchError] = []
    async with aiohttp.ClientSession() as session:
        fetcher = SourceFetcher(
            session,
            archive,
            connect_timeout=connect_timeout,
            total_timeout=total_timeout,
            log=log,
        )
        for locator in locators:
            try:
                outcome = await fetcher.fetch(locator)
            except FetchError as exc:
                _log_failure(log, exc)
                results.append(exc)
                continue
            _log_outcome(log, outcome)
            results.append(outcome)
    return results


# ----------------------------------------
# CLI
# ----------------------------------------
def main() -> int:
    """Refresh the archive for every remote source without building output."""
    parser = argparse.ArgumentParser(
        description="Fetch blocklist sources (sequential, with archive fallback)"
    )
    parser.add_argument(
        "-s", "--sources", default="sources.txt", help="File with source locators"
    )
    parser.add_argument("-a", "--archive", default=".archive", help="Archive directory")
    parser.add_argument(
        "--connect-timeout",
        type=float,
        default=DEFAULT_CONNECT_TIMEOUT,
        help="Connect timeout (seconds)",
    )
    parser.add_argument(
        "--timeout", type=float, default=DEFAULT_TIMEOUT, help="Total request budget (seconds)"
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(message)s", stream=sys.stderr)
    log = logging.getLogger("fetch_sources")

    try:
        locators = utils.load_sources(args.sources)
    except FileNotFoundError:
        log.error("ERROR: sources file not found: %s", args.sources)
        return 1

    results = asyncio.run(
        fetch_all(
            locators,
            ArchiveStore(args.archive),
            log,
            connect_timeout=args.connect_timeout,
            total_timeout=args.timeout,
        )
    )
    counts: dict[str, int] = {}
    for res in results:
        key = "failed" if isinstance(res, FetchError) else res.status
        counts[key] = counts.get(key, 0) + 1

    print("fetch_sources: finished")
    print(f"  processed:             {len(results)}")
    for key in (
        STATUS.OK,
        STATUS.LOCAL,
        STATUS.NOT_MODIFIED,
        STATUS.SIZE_MATCH,
        STATUS.USED_ARCHIVE_ON_FAIL,
        "failed",
    ):
        print(f"    {key + ':':<22}{counts.get(key, 0)}")
    if results and counts.get("failed", 0) == len(results):
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
