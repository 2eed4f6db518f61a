"""Wire codec for the UDP tracker protocol (BEP 15).

Pure encode/decode functions for the connect and announce exchanges. All
integers are big-endian. Nothing here performs I/O or keeps state; the
tracker session decides what to do with the decoded values.
"""

from __future__ import annotations

import secrets
import socket
import struct
from dataclasses import dataclass
from enum import Enum

from peerscout.utils.exceptions import MalformedResponseError

# Magic connection id of the connect request
PROTOCOL_ID = 0x41727101980

CONNECT_REQUEST = struct.Struct("!QII")
CONNECT_RESPONSE = struct.Struct("!II8s")
# connection_id, action, transaction_id, info_hash, peer_id, downloaded,
# left, uploaded, event, ip, key, num_want, port
ANNOUNCE_REQUEST = struct.Struct("!8sII20s20sQ8sQIIIiH")
ANNOUNCE_HEADER = struct.Struct("!IIIII")
RESPONSE_HEADER = struct.Struct("!II")
PEER_ENTRY = struct.Struct("!4sH")

DEFAULT_NUM_WANT = -1


class TrackerAction(Enum):
    """UDP tracker actions."""

    CONNECT = 0
    ANNOUNCE = 1
    SCRAPE = 2
    ERROR = 3


class TrackerEvent(Enum):
    """Tracker announce events."""

    NONE = 0
    COMPLETED = 1
    STARTED = 2
    STOPPED = 3


class ResponseKind(Enum):
    """Classification of an inbound datagram."""

    CONNECT = "connect"
    ANNOUNCE = "announce"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class PeerEndpoint:
    """IPv4 address and port of a swarm participant."""

    ip: str
    port: int

    def __str__(self) -> str:
        return f"{self.ip}:{self.port}"


@dataclass(frozen=True)
class ConnectResponse:
    """Decoded connect response."""

    action: int
    transaction_id: int
    connection_id: bytes


@dataclass(frozen=True)
class AnnounceResponse:
    """Decoded announce response."""

    action: int
    transaction_id: int
    interval: int
    leechers: int
    seeders: int
    peers: tuple[PeerEndpoint, ...]


@dataclass(frozen=True)
class TrackerErrorResponse:
    """Decoded error response (action 3)."""

    action: int
    transaction_id: int
    message: str


def new_transaction_id() -> int:
    """Random 32-bit transaction id."""
    return secrets.randbits(32)


def new_key() -> int:
    """Random 32-bit announce key."""
    return secrets.randbits(32)


def encode_connect_request(transaction_id: int | None = None) -> bytes:
    """Encode the 16-byte connect request."""
    if transaction_id is None:
        transaction_id = new_transaction_id()
    return CONNECT_REQUEST.pack(
        PROTOCOL_ID,
        TrackerAction.CONNECT.value,
        transaction_id,
    )


def decode_connect_response(data: bytes) -> ConnectResponse:
    """Decode a connect response.

    Raises:
        MalformedResponseError: If the datagram is shorter than 16 bytes
    """
    if len(data) < CONNECT_RESPONSE.size:
        msg = f"Connect response too short: {len(data)} bytes"
        raise MalformedResponseError(msg)
    action, transaction_id, connection_id = CONNECT_RESPONSE.unpack_from(data)
    return ConnectResponse(action, transaction_id, connection_id)


def _check_length(name: str, value: bytes, expected: int) -> None:
    if len(value) != expected:
        msg = f"{name} must be {expected} bytes, got {len(value)}"
        raise ValueError(msg)


def encode_announce_request(
    connection_id: bytes,
    info_hash: bytes,
    peer_id: bytes,
    size: bytes,
    port: int,
    *,
    transaction_id: int | None = None,
    key: int | None = None,
    event: TrackerEvent = TrackerEvent.NONE,
    downloaded: int = 0,
    uploaded: int = 0,
) -> bytes:
    """Encode the 98-byte announce request.

    Args:
        connection_id: Connection id exactly as received in the connect response
        info_hash: 20-byte info hash
        peer_id: 20-byte peer id
        size: 8-byte big-endian ``left`` value
        port: Port we listen on for peers
        transaction_id: Request correlation id, random when omitted
        key: Announce key, random when omitted
        event: Announce event
        downloaded: Bytes downloaded so far
        uploaded: Bytes uploaded so far

    Raises:
        ValueError: If a field has the wrong width or the port is out of range
    """
    _check_length("connection_id", connection_id, 8)
    _check_length("info_hash", info_hash, 20)
    _check_length("peer_id", peer_id, 20)
    _check_length("size", size, 8)
    if not 0 <= port <= 0xFFFF:
        msg = f"Port out of range: {port}"
        raise ValueError(msg)

    if transaction_id is None:
        transaction_id = new_transaction_id()
    if key is None:
        key = new_key()

    return ANNOUNCE_REQUEST.pack(
        connection_id,
        TrackerAction.ANNOUNCE.value,
        transaction_id,
        info_hash,
        peer_id,
        downloaded,
        size,
        uploaded,
        event.value,
        0,  # IP address (0 = use sender IP)
        key,
        DEFAULT_NUM_WANT,
        port,
    )


def decode_announce_response(data: bytes) -> AnnounceResponse:
    """Decode an announce response and its compact peer list.

    Raises:
        MalformedResponseError: If the datagram is shorter than 20 bytes or the
            peer list is not made of whole 6-byte entries
    """
    if len(data) < ANNOUNCE_HEADER.size:
        msg = f"Announce response too short: {len(data)} bytes"
        raise MalformedResponseError(msg)

    peer_data = data[ANNOUNCE_HEADER.size :]
    if len(peer_data) % PEER_ENTRY.size:
        msg = f"Peer list length {len(peer_data)} is not a multiple of {PEER_ENTRY.size}"
        raise MalformedResponseError(msg)

    action, transaction_id, interval, leechers, seeders = ANNOUNCE_HEADER.unpack_from(data)
    peers = tuple(
        PeerEndpoint(socket.inet_ntoa(ip), port)
        for ip, port in PEER_ENTRY.iter_unpack(peer_data)
    )
    return AnnounceResponse(action, transaction_id, interval, leechers, seeders, peers)


def decode_error_response(data: bytes) -> TrackerErrorResponse:
    """Decode an error response."""
    if len(data) < RESPONSE_HEADER.size:
        msg = f"Error response too short: {len(data)} bytes"
        raise MalformedResponseError(msg)
    action, transaction_id = RESPONSE_HEADER.unpack_from(data)
    message = data[RESPONSE_HEADER.size :].decode("utf-8", errors="replace")
    return TrackerErrorResponse(action, transaction_id, message)


def response_action(data: bytes) -> int | None:
    """Action field of a response, or None if the datagram is too short."""
    if len(data) < 4:
        return None
    return int.from_bytes(data[:4], "big")


def response_transaction_id(data: bytes) -> int | None:
    """Transaction id field of a response, or None if the datagram is too short."""
    if len(data) < RESPONSE_HEADER.size:
        return None
    return int.from_bytes(data[4:8], "big")


def classify_response(data: bytes) -> ResponseKind:
    """Classify a datagram by its action field."""
    action = response_action(data)
    if action == TrackerAction.CONNECT.value:
        return ResponseKind.CONNECT
    if action == TrackerAction.ANNOUNCE.value:
        return ResponseKind.ANNOUNCE
    return ResponseKind.UNKNOWN
