"""End-to-end tracker exchange against an in-process UDP tracker on localhost."""

from __future__ import annotations

import asyncio
import dataclasses
import os
import socket
import struct

import pytest
import pytest_asyncio

from peerscout.core.torrent import content_hash
from peerscout.discovery.tracker_udp_client import UDPTrackerChannel, announce_peers
from peerscout.discovery.udp_codec import PROTOCOL_ID, PeerEndpoint
from peerscout.models import TrackerConfig
from peerscout.utils.exceptions import TrackerUnreachableError

pytestmark = [pytest.mark.integration, pytest.mark.tracker]


class FakeTracker(asyncio.DatagramProtocol):
    """Connect and announce handling with an in-memory swarm."""

    def __init__(self, swarm=(), garbage_first=False, silent=False):
        self.swarm = list(swarm)
        self.garbage_first = garbage_first
        self.silent = silent
        self.requests: list[bytes] = []
        self.connection_ids: set[bytes] = set()
        self.announced: list[tuple[bytes, int]] = []
        self.transport = None

    def connection_made(self, transport):
        self.transport = transport

    def datagram_received(self, data, addr):
        self.requests.append(data)
        if self.silent or len(data) < 16:
            return
        action, transaction_id = struct.unpack("!II", data[8:16])
        if action == 0:
            self._handle_connect(data, addr, transaction_id)
        elif action == 1:
            self._handle_announce(data, addr, transaction_id)

    def _handle_connect(self, data, addr, transaction_id):
        if struct.unpack("!Q", data[:8])[0] != PROTOCOL_ID:
            return
        connection_id = os.urandom(8)
        self.connection_ids.add(connection_id)
        if self.garbage_first:
            # Wrong transaction id, then a truncated reply
            self.transport.sendto(struct.pack("!IIQ", 0, transaction_id ^ 1, 7), addr)
            self.transport.sendto(struct.pack("!II", 0, transaction_id), addr)
        self.transport.sendto(struct.pack("!II", 0, transaction_id) + connection_id, addr)

    def _handle_announce(self, data, addr, transaction_id):
        if len(data) < 98 or data[:8] not in self.connection_ids:
            self.transport.sendto(struct.pack("!II", 3, transaction_id) + b"bad announce", addr)
            return
        info_hash = data[16:36]
        port = struct.unpack("!H", data[96:98])[0]
        self.announced.append((info_hash, port))

        compact = b"".join(
            socket.inet_aton(ip) + struct.pack("!H", peer_port)
            for ip, peer_port in self.swarm
        )
        header = struct.pack("!IIIII", 1, transaction_id, 1800, 1, len(self.swarm))
        if self.garbage_first:
            self.transport.sendto(header + compact + b"\x00", addr)
        self.transport.sendto(header + compact, addr)


@pytest_asyncio.fixture
async def tracker_factory():
    """Start fake trackers on ephemeral localhost ports."""
    transports = []

    async def _start(**kwargs):
        loop = asyncio.get_running_loop()
        transport, protocol = await loop.create_datagram_endpoint(
            lambda: FakeTracker(**kwargs),
            local_addr=("127.0.0.1", 0),
        )
        transports.append(transport)
        return protocol, transport.get_extra_info("sockname")[1]

    yield _start
    for transport in transports:
        transport.close()


@pytest_asyncio.fixture
async def client_channel():
    """Open a tracker channel on localhost."""
    channel = UDPTrackerChannel()
    await channel.start(("127.0.0.1", 0))
    yield channel
    await channel.stop()


def _pointing_at(descriptor, port):
    return dataclasses.replace(descriptor, announce=f"udp://127.0.0.1:{port}/announce")


@pytest.mark.asyncio
async def test_announce_returns_swarm(tracker_factory, client_channel, descriptor, peer_identity):
    swarm = [("192.168.1.1", 6881), ("10.0.0.5", 51413)]
    tracker, port = await tracker_factory(swarm=swarm)

    peers = await asyncio.wait_for(
        announce_peers(
            _pointing_at(descriptor, port),
            channel=client_channel,
            peer_identity=peer_identity,
            port=7001,
            config=TrackerConfig(base_timeout=1.0, max_retries=2),
        ),
        timeout=5.0,
    )

    assert peers == [PeerEndpoint(ip, p) for ip, p in swarm]
    assert tracker.announced == [(content_hash(descriptor), 7001)]
    assert client_channel.pending_count == 0


@pytest.mark.asyncio
async def test_garbage_replies_are_ignored(
    tracker_factory, client_channel, descriptor, peer_identity
):
    tracker, port = await tracker_factory(swarm=[("172.16.0.9", 6882)], garbage_first=True)

    peers = await asyncio.wait_for(
        announce_peers(
            _pointing_at(descriptor, port),
            channel=client_channel,
            peer_identity=peer_identity,
            config=TrackerConfig(base_timeout=1.0, max_retries=2),
        ),
        timeout=5.0,
    )

    assert peers == [PeerEndpoint("172.16.0.9", 6882)]
    # One connect and one announce; nothing was retransmitted
    assert len(tracker.requests) == 2


@pytest.mark.asyncio
async def test_concurrent_sessions_share_channel(
    tracker_factory, client_channel, descriptor, peer_identity
):
    _first, first_port = await tracker_factory(swarm=[("1.1.1.1", 1111)])
    _second, second_port = await tracker_factory(swarm=[("2.2.2.2", 2222)])
    config = TrackerConfig(base_timeout=1.0, max_retries=2)

    first_peers, second_peers = await asyncio.wait_for(
        asyncio.gather(
            announce_peers(
                _pointing_at(descriptor, first_port),
                channel=client_channel,
                peer_identity=peer_identity,
                config=config,
            ),
            announce_peers(
                _pointing_at(descriptor, second_port),
                channel=client_channel,
                peer_identity=peer_identity,
                config=config,
            ),
        ),
        timeout=5.0,
    )

    assert first_peers == [PeerEndpoint("1.1.1.1", 1111)]
    assert second_peers == [PeerEndpoint("2.2.2.2", 2222)]


@pytest.mark.asyncio
async def test_silent_tracker_is_unreachable(
    tracker_factory, client_channel, descriptor, peer_identity
):
    tracker, port = await tracker_factory(silent=True)

    with pytest.raises(TrackerUnreachableError) as exc_info:
        await asyncio.wait_for(
            announce_peers(
                _pointing_at(descriptor, port),
                channel=client_channel,
                peer_identity=peer_identity,
                config=TrackerConfig(base_timeout=0.02, max_retries=2),
            ),
            timeout=5.0,
        )

    assert exc_info.value.details["attempts"] == 3
    assert len(tracker.requests) == 3
    assert all(len(request) == 16 for request in tracker.requests)
