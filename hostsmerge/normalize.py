#!/usr/bin/env python3
"""
normalize.py

Turn raw list text (hosts files, plain domain lists, mixed junk) into a lazy
stream of lower-case domain tokens.

Per line, in order:
  1. cut a trailing comment at the first '#' or '//'
  2. trim surrounding whitespace, drop empty lines
  3. strip a leading '0.0.0.0 ' / '127.0.0.1 ' prefix
  4. drop lines that are just an IPv4 literal
  5. strip a trailing carriage return
  6. extract every `label.(label.)*tld` substring

Extraction is loose: any domain-shaped substring counts.

Usage:
    python -m hostsmerge.normalize INPUT OUTPUT
"""

from __future__ import annotations

import logging
import sys
import tempfile
from pathlib import Path
from typing import Iterable, Iterator, NamedTuple

from hostsmerge import utils

IO_BUFFER_SIZE = utils.IO_BUFFER_SIZE
NK = utils.NORMALIZE_STATS_KEYS

logger = logging.getLogger(__name__)

DROP_EMPTY = "empty"
DROP_IP_LITERAL = "ip_literal"
DROP_NO_DOMAIN = "no_domain"

_DROP_STATS_KEY = {
    DROP_EMPTY: NK.DROPPED_EMPTY,
    DROP_IP_LITERAL: NK.DROPPED_IP_LITERAL,
    DROP_NO_DOMAIN: NK.DROPPED_NO_DOMAIN,
}


class LineResult(NamedTuple):
    """Parse result for one raw line: tokens found, or why it was dropped."""

    tokens: tuple[str, ...] = ()
    dropped: str | None = None

    @property
    def ok(self) -> bool:
        return self.dropped is None


def parse_line(raw_line: str) -> LineResult:
    """Parse a single raw line into domain tokens."""
    line = utils.strip_trailing_comment(raw_line).strip()
    if not line:
        return LineResult(dropped=DROP_EMPTY)

    line = utils.LOOPBACK_PREFIX_RE.sub("", line, count=1)
    if utils.IPV4_LITERAL_RE.match(line):
        return LineResult(dropped=DROP_IP_LITERAL)
    line = line.rstrip("\r")

    tokens = tuple(m.group(0).lower() for m in utils.DOMAIN_TOKEN_RE.finditer(line))
    if not tokens:
        return LineResult(dropped=DROP_NO_DOMAIN)
    return LineResult(tokens=tokens)


def new_stats() -> dict[str, int]:
    return {key: 0 for key in utils.NORMALIZE_SUMMARY_ORDER}


def iter_domains(
    lines: Iterable[str], stats: dict[str, int] | None = None
) -> Iterator[str]:
    """Yield domain tokens from `lines`, counting drops into `stats` if given."""
    for raw in lines:
        result = parse_line(raw)
        if stats is not None:
            stats[NK.LINES_IN] += 1
            if result.ok:
                stats[NK.TOKENS_OUT] += len(result.tokens)
            else:
                stats[_DROP_STATS_KEY[result.dropped]] += 1
        yield from result.tokens


class DomainStream:
    """
    Restartable, lazy iterable of domain tokens.

    Every iteration re-reads the underlying file (or text), so a stream can be
    consumed more than once. `stats` reflects the most recent full pass.
    """

    def __init__(
        self,
        path: str | Path | None = None,
        *,
        text: str | None = None,
        label: str | None = None,
    ) -> None:
        if (path is None) == (text is None):
            raise ValueError("DomainStream needs exactly one of path or text")
        self.path = Path(path) if path is not None else None
        self._text = text
        self.label = label or (str(path) if path is not None else "<text>")
        self.stats = new_stats()

    @classmethod
    def from_text(cls, text: str, label: str = "<text>") -> DomainStream:
        return cls(text=text, label=label)

    def _lines(self) -> Iterator[str]:
        if self.path is None:
            yield from (self._text or "").splitlines()
            return
        with self.path.open(
            "r", encoding="utf-8-sig", errors="replace", buffering=IO_BUFFER_SIZE
        ) as fh:
            yield from fh

    def __iter__(self) -> Iterator[str]:
        self.stats = new_stats()
        return iter_domains(self._lines(), self.stats)


def load_domain_file(path: str | Path | None) -> frozenset[str] | None:
    """
    Return the domain set of a blacklist / whitelist file.

    None means "no such file", which callers treat differently from an empty
    set.
    """
    if path is None:
        return None
    p = Path(path)
    if not p.is_file():
        return None
    return frozenset(DomainStream(p))


def process_file(in_path: str | Path, out_path: str | Path) -> dict[str, int | str]:
    """Write the tokens of one file (one per line) atomically; return stats."""
    stream = DomainStream(in_path)
    out_path_p = Path(out_path)
    out_parent = out_path_p.parent
    out_parent.mkdir(parents=True, exist_ok=True)

    tmp_path: Path | None = None
    try:
        with tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            newline="\n",
            dir=out_parent,
            prefix=".tmp_normalize_",
            delete=False,
            buffering=IO_BUFFER_SIZE,
        ) as tmp_file:
            tmp_path = Path(tmp_file.name)
            for token in stream:
                tmp_file.write(token + "\n")
            tmp_file.flush()
        tmp_path.replace(out_path_p)
        tmp_path = None
    finally:
        if tmp_path and tmp_path.exists():
            tmp_path.unlink(missing_ok=True)

    stats: dict[str, int | str] = {"in_path": str(in_path), "out_path": str(out_path_p)}
    stats.update(stream.stats)
    return stats


def _print_summary(stats_list: list[dict[str, int | str]]) -> None:
    summary = utils.format_summary("normalize", stats_list, utils.NORMALIZE_SUMMARY_ORDER)
    logger.info(summary)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s:%(name)s:%(message)s")
    if len(sys.argv) < 3:
        logger.error("Usage: python -m hostsmerge.normalize INPUT OUTPUT")
        sys.exit(2)

    try:
        _print_summary([process_file(sys.argv[1], sys.argv[2])])
    except Exception as exc:
        logger.exception("ERROR in normalize: %s", exc)
        sys.exit(1)
