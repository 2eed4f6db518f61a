"""Torrent metadata and client identity."""

from __future__ import annotations

from peerscout.core.peer_id import PeerIdentity, get_peer_identity
from peerscout.core.torrent import (
    FileEntry,
    TorrentDescriptor,
    content_hash,
    load_torrent,
    size,
    total_length,
)

__all__ = [
    "FileEntry",
    "PeerIdentity",
    "TorrentDescriptor",
    "content_hash",
    "get_peer_identity",
    "load_torrent",
    "size",
    "total_length",
]
