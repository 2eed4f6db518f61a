"""peerscout - UDP tracker client that discovers BitTorrent peers."""

from __future__ import annotations

__version__ = "0.1.0"

from peerscout.core.peer_id import PeerIdentity, get_peer_identity
from peerscout.core.torrent import (
    TorrentDescriptor,
    content_hash,
    load_torrent,
    size,
    total_length,
)
from peerscout.discovery.tracker_udp_client import (
    TrackerSession,
    UDPTrackerChannel,
    announce_peers,
    get_peers,
)
from peerscout.discovery.udp_codec import PeerEndpoint

__all__ = [
    "PeerEndpoint",
    "PeerIdentity",
    "TorrentDescriptor",
    "TrackerSession",
    "UDPTrackerChannel",
    "__version__",
    "announce_peers",
    "content_hash",
    "get_peer_identity",
    "get_peers",
    "load_torrent",
    "size",
    "total_length",
]
