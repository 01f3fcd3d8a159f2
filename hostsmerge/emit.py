#!/usr/bin/env python3
"""
emit.py

Render the final hosts file: static header, a blank line, a marker comment,
then one `<address> <domain>` line per domain in ascending order.

The file is written to a temporary sibling and atomically moved into place,
so a failed run never leaves a partially written output.
"""
from __future__ import annotations

import tempfile
from pathlib import Path
from typing import Iterable, Iterator

from hostsmerge import utils

IO_BUFFER_SIZE = utils.IO_BUFFER_SIZE
BLOCK_MARKER = "# Blocked domains"

DEFAULT_HEADER = """\
127.0.0.1 localhost
127.0.0.1 local
127.0.0.1 localhost.localdomain
::1 localhost
::1 ip6-localhost
::1 ip6-loopback
255.255.255.255 broadcasthost
fe80::1%lo0 localhost
ff00::0 ip6-localnet
ff00::0 ip6-mcastprefix
ff02::1 ip6-allnodes
ff02::2 ip6-allrouters
ff02::3 ip6-allhosts
0.0.0.0 0.0.0.0
"""


class OutputWriteFailed(Exception):
    """Raised when the generated hosts file cannot be written."""


def render(
    domains: Iterable[str],
    header: str = DEFAULT_HEADER,
    address: str = utils.DEFAULT_BLOCK_ADDRESS,
) -> Iterator[str]:
    """Yield output chunks: header, blank line, marker, sorted entries."""
    yield header
    if header and not header.endswith("\n"):
        yield "\n"
    yield "\n"
    yield BLOCK_MARKER + "\n"
    for domain in sorted(domains):
        yield f"{address} {domain}\n"


def write_hosts(
    path: str | Path,
    domains: Iterable[str],
    header: str = DEFAULT_HEADER,
    address: str = utils.DEFAULT_BLOCK_ADDRESS,
) -> int:
    """Write the hosts file atomically and return the number of entries."""
    out_path = Path(path)
    entries = list(domains)
    tmp_path: Path | None = None
    try:
        out_path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            newline="\n",
            dir=out_path.parent,
            prefix=".tmp_hosts_",
            delete=False,
            buffering=IO_BUFFER_SIZE,
        ) as tmp_file:
            tmp_path = Path(tmp_file.name)
            tmp_file.writelines(render(entries, header, address))
            tmp_file.flush()
        tmp_path.replace(out_path)
        tmp_path = None
    except OSError as exc:
        raise OutputWriteFailed(f"cannot write {out_path}: {exc}") from exc
    finally:
        if tmp_path and tmp_path.exists():
            tmp_path.unlink(missing_ok=True)
    return len(entries)
