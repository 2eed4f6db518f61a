"""Peer discovery through UDP trackers."""

from __future__ import annotations

from peerscout.discovery.tracker_udp_client import (
    SessionState,
    TrackerSession,
    UDPTrackerChannel,
    announce_peers,
    get_peers,
    get_udp_tracker_channel,
    init_udp_tracker_channel,
    shutdown_udp_tracker_channel,
)
from peerscout.discovery.udp_codec import (
    AnnounceResponse,
    ConnectResponse,
    PeerEndpoint,
    ResponseKind,
    TrackerAction,
    TrackerEvent,
)

__all__ = [
    "AnnounceResponse",
    "ConnectResponse",
    "PeerEndpoint",
    "ResponseKind",
    "SessionState",
    "TrackerAction",
    "TrackerEvent",
    "TrackerSession",
    "UDPTrackerChannel",
    "announce_peers",
    "get_peers",
    "get_udp_tracker_channel",
    "init_udp_tracker_channel",
    "shutdown_udp_tracker_channel",
]
