"""Torrent descriptor loading and metadata derivations.

This module decodes torrent files, and derives the two values the announce
request needs: the total content size and the info hash.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import bencodepy

from peerscout.utils.exceptions import ContentTooLargeError, TorrentError

logger = logging.getLogger(__name__)

# Width of the ``left`` field of the announce request
SIZE_FIELD_BYTES = 8
_MAX_CONTENT_SIZE = (1 << (SIZE_FIELD_BYTES * 8)) - 1


@dataclass(frozen=True)
class FileEntry:
    """One file of a multi-file torrent."""

    path: tuple[str, ...]
    length: int


@dataclass(frozen=True)
class TorrentDescriptor:
    """Decoded torrent, read-only for the lifetime of a tracker session.

    ``info`` is kept exactly as decoded so that re-encoding it yields the
    same bytes the tracker hashes.
    """

    announce: str
    info: dict[bytes, Any] = field(repr=False)
    name: str = ""
    files: tuple[FileEntry, ...] = ()
    length: int | None = None

    @property
    def is_multi_file(self) -> bool:
        """Whether the torrent lists several files."""
        return bool(self.files)

    @classmethod
    def from_decoded(cls, data: dict[bytes, Any]) -> TorrentDescriptor:
        """Build a descriptor from a decoded torrent dictionary.

        Raises:
            TorrentError: If required keys are missing or malformed
        """
        if not isinstance(data, dict):
            msg = "Torrent data must be a dictionary"
            raise TorrentError(msg)

        for key in (b"announce", b"info"):
            if key not in data:
                msg = f"Missing required key in torrent: {key.decode()}"
                raise TorrentError(msg)

        info = data[b"info"]
        if not isinstance(info, dict):
            msg = "Invalid info dictionary in torrent"
            raise TorrentError(msg)

        if b"length" not in info and b"files" not in info:
            msg = "Torrent must specify either length (single file) or files (multi-file)"
            raise TorrentError(msg)

        try:
            announce = _to_str(data[b"announce"])
            name = _to_str(info.get(b"name", b""))
            files = tuple(
                FileEntry(
                    path=tuple(_to_str(part) for part in entry[b"path"]),
                    length=_to_length(entry[b"length"]),
                )
                for entry in info.get(b"files", ())
            )
            length = None if files else _to_length(info[b"length"])
        except (KeyError, TypeError) as e:
            msg = f"Malformed file list in torrent: {e}"
            raise TorrentError(msg) from e

        return cls(announce=announce, info=info, name=name, files=files, length=length)


def _to_str(value: bytes | str) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, str):
        return value
    msg = f"Expected a byte string, got {type(value).__name__}"
    raise TypeError(msg)


def _to_length(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        msg = f"File length must be an integer, got {type(value).__name__}"
        raise TypeError(msg)
    if value < 0:
        msg = f"File length must not be negative: {value}"
        raise TypeError(msg)
    return value


def load_torrent(torrent_path: str | Path) -> TorrentDescriptor:
    """Read and decode a torrent file.

    Args:
        torrent_path: Path to a local ``.torrent`` file

    Returns:
        Decoded torrent descriptor

    Raises:
        TorrentError: If the file is missing or cannot be decoded
    """
    path = Path(torrent_path)
    if not path.exists():
        msg = f"Torrent file not found: {path}"
        raise TorrentError(msg)

    raw = path.read_bytes()
    try:
        decoded = bencodepy.decode(raw)
    except Exception as e:
        msg = f"Failed to decode torrent {path}: {e}"
        raise TorrentError(msg) from e

    descriptor = TorrentDescriptor.from_decoded(decoded)
    logger.debug(
        "Loaded torrent %r (%d files) announcing to %s",
        descriptor.name,
        len(descriptor.files) or 1,
        descriptor.announce,
    )
    return descriptor


def total_length(descriptor: TorrentDescriptor) -> int:
    """Total content size in bytes."""
    if descriptor.files:
        return sum(entry.length for entry in descriptor.files)
    if descriptor.length is None:
        msg = "Torrent has neither a file list nor a length"
        raise TorrentError(msg)
    return descriptor.length


def size(descriptor: TorrentDescriptor) -> bytes:
    """Total content size as the 8-byte big-endian ``left`` field.

    Raises:
        ContentTooLargeError: If the total does not fit in 64 bits
    """
    total = total_length(descriptor)
    if total > _MAX_CONTENT_SIZE:
        msg = "Content size exceeds the 64-bit announce field"
        raise ContentTooLargeError(msg, {"size": total})
    return total.to_bytes(SIZE_FIELD_BYTES, "big")


def content_hash(descriptor: TorrentDescriptor) -> bytes:
    """SHA-1 of the bencoded info dictionary (the torrent's info hash)."""
    return hashlib.sha1(bencodepy.encode(descriptor.info)).digest()  # nosec B324 - mandated by BEP 3
