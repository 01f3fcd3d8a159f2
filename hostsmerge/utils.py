# utils.py
"""
Shared helpers for building a hosts blocklist.

This module provides:
- Precompiled regexes for domain-token extraction and hosts-style prefixes
- Comment / blank-line detection for list files
- Source-list loading (one locator per line)
- Domain suffix walking for ancestor lookups
- Shared statistics key namespaces

Example Usage:
    from hostsmerge.utils import walk_suffixes, load_sources

    list(walk_suffixes("x.ads.example.com"))
    # ['x.ads.example.com', 'ads.example.com', 'example.com', 'com']
"""

from __future__ import annotations

import re
from pathlib import Path
from types import SimpleNamespace
from typing import Iterator, Sequence


# -------------------------
# Precompiled regexes & constants
# -------------------------

COMMENT_MARKERS = ("#", "//")
SOURCE_COMMENT_MARKER = "#"
DEFAULT_BLOCK_ADDRESS = "0.0.0.0"

IO_BUFFER_SIZE = 131072  # 128KB buffer for file I/O

# Label(s) each followed by a dot, then a final label of at least two letters.
DOMAIN_TOKEN_RE = re.compile(r"(?:[A-Za-z0-9-]+\.)+[A-Za-z]{2,}")
LOOPBACK_PREFIX_RE = re.compile(r"^(?:0\.0\.0\.0|127\.0\.0\.1)\s+")
IPV4_LITERAL_RE = re.compile(r"^[0-9]+\.[0-9]+\.[0-9]+\.[0-9]+$")
_REMOTE_SCHEME_RE = re.compile(r"^https?://", flags=re.IGNORECASE)

NORMALIZE_STATS_KEYS = SimpleNamespace(
    LINES_IN="lines_in",
    TOKENS_OUT="tokens_out",
    DROPPED_EMPTY="dropped_empty",
    DROPPED_IP_LITERAL="dropped_ip_literal",
    DROPPED_NO_DOMAIN="dropped_no_domain",
)

NORMALIZE_SUMMARY_ORDER = (
    NORMALIZE_STATS_KEYS.LINES_IN,
    NORMALIZE_STATS_KEYS.TOKENS_OUT,
    NORMALIZE_STATS_KEYS.DROPPED_EMPTY,
    NORMALIZE_STATS_KEYS.DROPPED_IP_LITERAL,
    NORMALIZE_STATS_KEYS.DROPPED_NO_DOMAIN,
)

FETCH_STATUS = SimpleNamespace(
    OK="ok",
    NOT_MODIFIED="not-modified",
    SIZE_MATCH="size-match",
    LOCAL="local",
    USED_ARCHIVE_ON_FAIL="used-archive-on-fail",
)


# -------------------------
# Basic helpers
# -------------------------


def is_blank_line(line: str | None) -> bool:
    """True if line is None or only whitespace."""
    return line is None or line.strip() == ""


def is_comment_line(line: str | None) -> bool:
    """Detect source-list comment lines (first non-blank char is '#')."""
    if not line:
        return False
    return line.lstrip().startswith(SOURCE_COMMENT_MARKER)


def is_remote_locator(locator: str) -> bool:
    """Return True for http:// and https:// locators."""
    return bool(_REMOTE_SCHEME_RE.match(locator))


def strip_trailing_comment(line: str) -> str:
    """Cut `line` at the first '#' or '//' (whichever comes first)."""
    cut = len(line)
    for marker in COMMENT_MARKERS:
        idx = line.find(marker)
        if idx != -1 and idx < cut:
            cut = idx
    return line[:cut]


def summarize_stats(
    stats_list: list[dict[str, int | str]], keys: Sequence[str]
) -> dict[str, int]:
    """Aggregate totals for the provided keys across a list of stats dicts."""
    return {key: sum(int(s.get(key, 0)) for s in stats_list) for key in keys}


def format_summary(
    label: str, stats_list: list[dict[str, int | str]], keys: Sequence[str]
) -> str:
    """Return a space-joined summary string."""
    totals = summarize_stats(stats_list, keys)
    parts = [f"{label}: files={len(stats_list)}"]
    parts.extend(f"{key}={totals.get(key, 0)}" for key in keys)
    return " ".join(parts)


# -------------------------
# Filesystem helpers
# -------------------------


def load_sources(sources_file: str | Path) -> list[str]:
    """
    Return locators from `sources_file` in listed order.

    Blank lines and lines starting with '#' are skipped. Raises
    FileNotFoundError when the file does not exist.
    """
    path = Path(sources_file)
    locators: list[str] = []
    with path.open(encoding="utf-8-sig", errors="replace") as fh:
        for line in fh:
            if is_blank_line(line) or is_comment_line(line):
                continue
            locators.append(line.strip())
    return locators


def staging_name(index: int, locator: str) -> str:
    """Return a scratch filename for the `index`-th source."""
    base = locator.rstrip("/").rsplit("/", 1)[-1] or "source"
    base = re.sub(r"[^A-Za-z0-9._-]", "_", base)[:80]
    return f"{index:03d}_{base}"


# -------------------------
# Domain suffix helpers
# -------------------------


def walk_suffixes(domain: str) -> Iterator[str]:
    """
    Yield domain and successive parent suffixes (e.g., a.b.c -> a.b.c, b.c, c).

    Args:
        domain: Domain string to walk

    Yields:
        Domain and each parent suffix in order
    """
    if not domain:
        return
    cur = domain
    yield cur
    idx = cur.find(".")
    while idx != -1:
        cur = cur[idx + 1:]
        yield cur
        idx = cur.find(".")


__all__ = [
    # Functions
    "is_blank_line",
    "is_comment_line",
    "is_remote_locator",
    "strip_trailing_comment",
    "summarize_stats",
    "format_summary",
    "load_sources",
    "staging_name",
    "walk_suffixes",
    # Constants
    "COMMENT_MARKERS",
    "DEFAULT_BLOCK_ADDRESS",
    "IO_BUFFER_SIZE",
    "NORMALIZE_STATS_KEYS",
    "NORMALIZE_SUMMARY_ORDER",
    "FETCH_STATUS",
    # Regex patterns
    "DOMAIN_TOKEN_RE",
    "LOOPBACK_PREFIX_RE",
    "IPV4_LITERAL_RE",
]
