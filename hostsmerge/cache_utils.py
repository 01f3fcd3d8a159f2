#!/usr/bin/env python3
"""
cache_utils.py

Durable archive of previously fetched remote source bodies.

Responsibilities:
 - Key each remote locator by the SHA256 of its URL.
 - Persist three artifacts per key: body, ETag validator, byte-length validator.
 - Provide atomic writes so an interrupted run never pairs a stale validator
   with a newer body.
 - Serve as the fallback layer when a remote download fails.

Entries are never evicted. This module does not perform any network fetching.
"""

from __future__ import annotations

import hashlib
import logging
import tempfile
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

BODY_SUFFIX = ".body"
ETAG_SUFFIX = ".etag"
SIZE_SUFFIX = ".size"


# ----------------------------------------
# Helpers
# ----------------------------------------
def archive_key(url: str) -> str:
    """Return the stable archive key (SHA256 hex digest) for `url`."""
    return hashlib.sha256(url.encode("utf-8")).hexdigest()


def atomic_write_bytes(target: Path, data: bytes) -> None:
    """
    Atomically write `data` to `target`.

    Ensures the target directory exists and replaces the file in one rename
    so readers never observe a partial write.
    """
    target.parent.mkdir(parents=True, exist_ok=True)
    tmp_path: Path | None = None
    try:
        with tempfile.NamedTemporaryFile(
            "wb", delete=False, dir=target.parent, prefix=".tmp_archive_"
        ) as tmp:
            tmp_path = Path(tmp.name)
            tmp.write(data)
        tmp_path.replace(target)
        tmp_path = None
    finally:
        # Set only while the temp file exists and was not moved into place
        if tmp_path is not None:
            tmp_path.unlink(missing_ok=True)


def atomic_write_text(target: Path, text: str, encoding: str = "utf-8") -> None:
    """Atomically write `text` to `target`."""
    atomic_write_bytes(target, text.encode(encoding))


# ----------------------------------------
# Archive store
# ----------------------------------------
@dataclass(frozen=True)
class ArchiveEntry:
    """
    A previously fetched body plus whatever validators the server exposed.

    Attributes:
        key: SHA256 of the source URL.
        body: Raw bytes of the last successful download.
        etag: ETag header value, if the response carried one.
        size: Content-Length header value, if the response carried one.
    """

    key: str
    body: bytes
    etag: str | None = None
    size: int | None = None


class ArchiveStore:
    """Manage archived bodies and validators for remote sources."""

    def __init__(self, archive_dir: str | Path) -> None:
        self.archive_dir = Path(archive_dir)
        self.archive_dir.mkdir(parents=True, exist_ok=True)

    def key_for(self, url: str) -> str:
        return archive_key(url)

    def _path(self, key: str, suffix: str) -> Path:
        return self.archive_dir / f"{key}{suffix}"

    # --------------------
    # Artifact readers
    # --------------------
    def _read_etag(self, key: str) -> str | None:
        path = self._path(key, ETAG_SUFFIX)
        try:
            value = path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Ignoring unreadable validator %s: %s", path.name, exc)
            return None
        return value or None

    def _read_size(self, key: str) -> int | None:
        path = self._path(key, SIZE_SUFFIX)
        try:
            raw = path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Ignoring unreadable validator %s: %s", path.name, exc)
            return None
        if not raw.isdigit():
            return None
        return int(raw)

    # --------------------
    # Public API
    # --------------------
    def get(self, key: str) -> ArchiveEntry | None:
        """Return the archived entry for `key`, or None if no body is stored."""
        try:
            body = self._path(key, BODY_SUFFIX).read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.warning("Archived body for %s unreadable: %s", key, exc)
            return None
        return ArchiveEntry(
            key=key, body=body, etag=self._read_etag(key), size=self._read_size(key)
        )

    def put(
        self,
        key: str,
        body: bytes,
        etag: str | None = None,
        size: int | None = None,
    ) -> ArchiveEntry:
        """
        Store `body` with its validators.

        Old validators are removed before the body is replaced and new ones
        are written only after it, so an interruption can drop validators but
        never leave one describing a different body.
        """
        self._path(key, ETAG_SUFFIX).unlink(missing_ok=True)
        self._path(key, SIZE_SUFFIX).unlink(missing_ok=True)
        atomic_write_bytes(self._path(key, BODY_SUFFIX), body)
        if etag:
            atomic_write_text(self._path(key, ETAG_SUFFIX), etag + "\n")
        if size is not None:
            atomic_write_text(self._path(key, SIZE_SUFFIX), f"{size}\n")
        return ArchiveEntry(key=key, body=body, etag=etag or None, size=size)
