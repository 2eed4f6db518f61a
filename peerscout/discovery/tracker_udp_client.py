"""UDP Tracker Client (BEP 15).

A ``TrackerSession`` runs the connect -> announce exchange for one torrent.
Sessions share a ``UDPTrackerChannel``: one datagram endpoint with a
lock-protected table of pending transaction ids and a single dispatch point
that routes every inbound datagram to the session waiting for it. Waiting is
a loop timer plus datagram callbacks, so any number of sessions run on one
event loop without a thread each.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from enum import Enum
from typing import TYPE_CHECKING, Callable, Optional, Protocol

from peerscout.config import get_config
from peerscout.core.peer_id import PeerIdentity, get_peer_identity
from peerscout.core.torrent import TorrentDescriptor, content_hash, size
from peerscout.discovery.udp_codec import (
    AnnounceResponse,
    ConnectResponse,
    PeerEndpoint,
    ResponseKind,
    TrackerAction,
    classify_response,
    decode_announce_response,
    decode_connect_response,
    decode_error_response,
    encode_announce_request,
    encode_connect_request,
    new_transaction_id,
    response_action,
    response_transaction_id,
)
from peerscout.utils.backoff import RetrySchedule
from peerscout.utils.exceptions import (
    DatagramRejectedError,
    MalformedResponseError,
    TrackerError,
    TrackerUnreachableError,
    TransactionMismatchError,
    UnknownActionError,
)

if TYPE_CHECKING:  # pragma: no cover
    from peerscout.models import TrackerConfig

# Error message constants
_ERROR_UDP_TRANSPORT_NOT_INITIALIZED = "UDP transport is not initialized"

logger = logging.getLogger(__name__)

PeerCallback = Callable[[Optional[list[PeerEndpoint]], Optional[TrackerError]], None]


class DatagramSender(Protocol):
    """The part of a datagram transport the channel sends through."""

    def sendto(self, data: bytes, addr: tuple[str, int]) -> None:
        """Send one datagram."""


class SessionState(Enum):
    """Tracker session states."""

    IDLE = "idle"
    AWAITING_CONNECT = "awaiting_connect"
    AWAITING_ANNOUNCE = "awaiting_announce"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATES = frozenset(
    {SessionState.DONE, SessionState.FAILED, SessionState.CANCELLED}
)

_EXPECTED_KIND = {
    SessionState.AWAITING_CONNECT: ResponseKind.CONNECT,
    SessionState.AWAITING_ANNOUNCE: ResponseKind.ANNOUNCE,
}


def parse_udp_url(url: str) -> tuple[str, int]:
    """Parse a UDP tracker URL into host and port.

    Handles URLs with and without paths:
    - udp://host:port/announce -> (host, port)
    - udp://host:port -> (host, port)

    Raises:
        TrackerError: If the URL is not a well-formed udp:// URL
    """
    if not url.startswith("udp://"):
        msg = f"Unsupported tracker URL (only udp:// is supported): {url}"
        raise TrackerError(msg)

    netloc = url[len("udp://") :]
    # UDP trackers don't use paths or query strings
    netloc = netloc.split("/", 1)[0].split("?", 1)[0]

    host, sep, port_str = netloc.rpartition(":")
    if not sep or not host or host.isspace():
        msg = f"Missing host or port in UDP URL: {url}"
        raise TrackerError(msg)

    try:
        port = int(port_str)
    except ValueError as e:
        msg = f"Invalid port in UDP URL: {url}"
        raise TrackerError(msg) from e

    if not 1 <= port <= 65535:
        msg = f"Invalid port range in UDP URL: {url} (port: {port})"
        raise TrackerError(msg)

    return host, port


class TrackerSession:
    """Connect -> announce state machine for one torrent and one tracker."""

    def __init__(
        self,
        channel: UDPTrackerChannel,
        descriptor: TorrentDescriptor,
        callback: PeerCallback,
        *,
        peer_identity: PeerIdentity | None = None,
        port: int | None = None,
        config: TrackerConfig | None = None,
        schedule: RetrySchedule | None = None,
    ):
        """Initialize tracker session.

        Args:
            channel: Shared datagram channel
            descriptor: Torrent to announce
            callback: Called once with ``(peers, None)`` or ``(None, error)``
            peer_identity: Client identity, the process-wide one when omitted
            port: Port announced to the tracker
            config: Tracker settings, the global configuration when omitted
            schedule: Response timeouts and retry limit, derived from ``config``
                when omitted
        """
        if config is None:
            config = get_config().tracker

        self.channel = channel
        self.descriptor = descriptor
        self.callback = callback
        self.peer_identity = peer_identity or get_peer_identity()
        self.port = config.listen_port if port is None else port
        self.connection_id_ttl = config.connection_id_ttl
        self.schedule = schedule or RetrySchedule.from_config(config)

        self.state = SessionState.IDLE
        self.host = ""
        self.tracker_port = 0
        self.pending_transaction_id: int | None = None
        self.connection_id: bytes | None = None
        self.connection_time = 0.0
        self.attempt = 0

        # Filled in from the announce response
        self.interval: int | None = None
        self.leechers: int | None = None
        self.seeders: int | None = None
        self.error: TrackerError | None = None

        self._info_hash = b""
        self._size = b""
        self._loop: asyncio.AbstractEventLoop | None = None
        self._timer: asyncio.TimerHandle | None = None

    @property
    def expected_kind(self) -> ResponseKind | None:
        """Response kind the session is waiting for, if any."""
        return _EXPECTED_KIND.get(self.state)

    @property
    def done(self) -> bool:
        """Whether the session reached a terminal state."""
        return self.state in TERMINAL_STATES

    def start(self) -> None:
        """Derive the announce inputs and send the connect request.

        Metadata errors (e.g. ``ContentTooLargeError``), URL errors and an
        out-of-range announce port raise here, before anything is sent.
        """
        if self.state is not SessionState.IDLE:
            msg = f"Session already started (state={self.state.value})"
            raise RuntimeError(msg)

        self._size = size(self.descriptor)
        self._info_hash = content_hash(self.descriptor)
        self.host, self.tracker_port = parse_udp_url(self.descriptor.announce)
        if not 0 <= self.port <= 0xFFFF:
            msg = f"Announce port out of range: {self.port}"
            raise TrackerError(msg)

        if not self.channel.is_open:
            raise TrackerError(_ERROR_UDP_TRANSPORT_NOT_INITIALIZED)

        self._loop = asyncio.get_running_loop()
        logger.debug(
            "Starting tracker session for %r with %s:%d",
            self.descriptor.name,
            self.host,
            self.tracker_port,
        )
        self._send_connect()

    def cancel(self) -> None:
        """Abandon the session; the callback will not be invoked."""
        if self.done:
            return
        self._finish(SessionState.CANCELLED)
        logger.debug("Tracker session with %s:%d cancelled", self.host, self.tracker_port)

    def on_datagram(self, kind: ResponseKind, data: bytes) -> None:
        """Handle a datagram the channel routed to this session."""
        try:
            response = self._accept(kind, data)
        except DatagramRejectedError as e:
            logger.debug(
                "Dropped datagram from %s:%d in state %s: %s",
                self.host,
                self.tracker_port,
                self.state.value,
                e,
            )
            return

        if isinstance(response, ConnectResponse):
            self._on_connect(response)
        elif isinstance(response, AnnounceResponse):
            self._on_announce(response)

    def _accept(
        self,
        kind: ResponseKind,
        data: bytes,
    ) -> ConnectResponse | AnnounceResponse:
        """Decode the datagram if it answers the pending request."""
        expected = self.expected_kind
        if expected is None:
            msg = f"Session is not awaiting a response (state={self.state.value})"
            raise TransactionMismatchError(msg)
        if kind is not expected:
            msg = f"Expected {expected.value} response, got {kind.value}"
            raise UnknownActionError(msg)

        if expected is ResponseKind.CONNECT:
            response: ConnectResponse | AnnounceResponse = decode_connect_response(data)
        else:
            response = decode_announce_response(data)

        if response.transaction_id != self.pending_transaction_id:
            msg = (
                f"Transaction id {response.transaction_id} does not match "
                f"pending {self.pending_transaction_id}"
            )
            raise TransactionMismatchError(msg)
        return response

    def _on_connect(self, response: ConnectResponse) -> None:
        self.connection_id = response.connection_id
        self.connection_time = self._now()
        logger.debug(
            "Connected to tracker %s:%d (connection_id=%s)",
            self.host,
            self.tracker_port,
            response.connection_id.hex(),
        )
        self._send_announce()

    def _on_announce(self, response: AnnounceResponse) -> None:
        self.interval = response.interval
        self.leechers = response.leechers
        self.seeders = response.seeders
        self._finish(SessionState.DONE)
        logger.info(
            "Got %d peers from %s:%d (seeders=%d, leechers=%d, interval=%ds)",
            len(response.peers),
            self.host,
            self.tracker_port,
            response.seeders,
            response.leechers,
            response.interval,
        )
        self._deliver(list(response.peers), None)

    def _send_connect(self) -> None:
        self.state = SessionState.AWAITING_CONNECT
        self.connection_id = None
        self._send_request(encode_connect_request)

    def _send_announce(self) -> None:
        connection_id = self.connection_id
        if connection_id is None:  # pragma: no cover - guarded by the state machine
            msg = "Announce requires a connection id"
            raise RuntimeError(msg)

        def build(transaction_id: int) -> bytes:
            return encode_announce_request(
                connection_id,
                self._info_hash,
                self.peer_identity.current_id(),
                self._size,
                self.port,
                transaction_id=transaction_id,
            )

        self.state = SessionState.AWAITING_ANNOUNCE
        self._send_request(build)

    def _send_request(self, build: Callable[[int], bytes]) -> None:
        """Send a request under a fresh transaction id and arm the timeout."""
        self._release_transaction()
        transaction_id = self.channel.allocate_transaction_id(self)
        self.pending_transaction_id = transaction_id
        try:
            data = build(transaction_id)
        except ValueError as e:
            msg = f"Cannot encode request for tracker {self.host}:{self.tracker_port}: {e}"
            self._fail(TrackerError(msg))
            return
        try:
            self.channel.send(data, self.host, self.tracker_port)
        except OSError as e:
            # Same as a lost datagram: the timeout resends it
            logger.warning(
                "Failed to send to tracker %s:%d: %s",
                self.host,
                self.tracker_port,
                e,
            )
        self._arm_timer()

    def _arm_timer(self) -> None:
        self._cancel_timer()
        delay = self.schedule.timeout(self.attempt)
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        self._timer = self._loop.call_later(delay, self._on_timeout)

    def _on_timeout(self) -> None:
        self._timer = None
        if self.done:
            return

        self.attempt += 1
        if self.schedule.exhausted(self.attempt):
            logger.warning(
                "Tracker %s:%d unreachable after %d attempts",
                self.host,
                self.tracker_port,
                self.attempt,
            )
            msg = f"No response from tracker {self.host}:{self.tracker_port}"
            self._fail(
                TrackerUnreachableError(
                    msg,
                    {
                        "attempts": self.attempt,
                        "state": self.state.value,
                        "waited": self.schedule.total_wait(),
                    },
                ),
            )
            return

        logger.info(
            "Timeout waiting for %s response from %s:%d, retry %d/%d",
            self.state.value,
            self.host,
            self.tracker_port,
            self.attempt,
            self.schedule.max_retries,
        )
        if self.state is SessionState.AWAITING_ANNOUNCE and not self._connection_expired():
            self._send_announce()
        else:
            self._send_connect()

    def _connection_expired(self) -> bool:
        return self._now() - self.connection_time > self.connection_id_ttl

    def _now(self) -> float:
        loop = self._loop or asyncio.get_running_loop()
        return loop.time()

    def _fail(self, error: TrackerError) -> None:
        self.error = error
        self._finish(SessionState.FAILED)
        self._deliver(None, error)

    def _finish(self, state: SessionState) -> None:
        self._cancel_timer()
        self._release_transaction()
        self.state = state

    def _deliver(
        self,
        peers: list[PeerEndpoint] | None,
        error: TrackerError | None,
    ) -> None:
        try:
            self.callback(peers, error)
        except Exception:
            logger.exception("Peer callback raised")

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _release_transaction(self) -> None:
        if self.pending_transaction_id is not None:
            self.channel.release_transaction_id(self.pending_transaction_id, self)
            self.pending_transaction_id = None


class UDPTrackerChannel:
    """Datagram endpoint shared by tracker sessions."""

    def __init__(self, transport: DatagramSender | None = None):
        """Initialize UDP tracker channel.

        Args:
            transport: Already open transport; ``start()`` opens one otherwise
        """
        self.transport: DatagramSender | None = transport
        self._pending: dict[int, TrackerSession] = {}
        self._lock = threading.Lock()

    @property
    def is_open(self) -> bool:
        """Whether the channel has a transport to send through."""
        return self.transport is not None

    @property
    def pending_count(self) -> int:
        """Number of requests awaiting a response."""
        with self._lock:
            return len(self._pending)

    async def start(self, local_addr: tuple[str, int] | None = None) -> None:
        """Open the UDP socket."""
        if local_addr is None:
            tracker_config = get_config().tracker
            local_addr = (tracker_config.bind_host, tracker_config.bind_port)

        loop = asyncio.get_running_loop()
        self.transport, _protocol = await loop.create_datagram_endpoint(
            lambda: UDPTrackerProtocol(self),
            local_addr=local_addr,
        )
        logger.info(
            "UDP tracker channel listening on %s",
            self.transport.get_extra_info("sockname"),
        )

    async def stop(self) -> None:
        """Cancel live sessions and close the socket."""
        with self._lock:
            sessions = list(self._pending.values())
        for session in sessions:
            session.cancel()

        if self.transport is not None:
            close = getattr(self.transport, "close", None)
            if close is not None:
                close()
            self.transport = None
        logger.info("UDP tracker channel stopped")

    def send(self, data: bytes, host: str, port: int) -> None:
        """Send one datagram to a tracker."""
        if self.transport is None:
            raise TrackerError(_ERROR_UDP_TRANSPORT_NOT_INITIALIZED)
        self.transport.sendto(data, (host, port))

    def allocate_transaction_id(self, session: TrackerSession) -> int:
        """Mint a transaction id unique among pending requests and register it."""
        with self._lock:
            while True:
                transaction_id = new_transaction_id()
                if transaction_id not in self._pending:
                    self._pending[transaction_id] = session
                    return transaction_id

    def release_transaction_id(self, transaction_id: int, session: TrackerSession) -> None:
        """Forget a transaction id registered by ``session``."""
        with self._lock:
            if self._pending.get(transaction_id) is session:
                del self._pending[transaction_id]

    def datagram_received(self, data: bytes, addr: tuple[str, int] | None = None) -> None:
        """Classify an inbound datagram and route it to its session."""
        transaction_id = response_transaction_id(data)
        if transaction_id is None:
            logger.debug(
                "Dropped datagram from %s: %s",
                addr,
                MalformedResponseError(f"{len(data)} bytes is too short for a response"),
            )
            return

        with self._lock:
            session = self._pending.get(transaction_id)
        if session is None:
            logger.debug(
                "Dropped datagram from %s: no pending request with transaction id %d",
                addr,
                transaction_id,
            )
            return

        kind = classify_response(data)
        if kind is ResponseKind.UNKNOWN:
            self._log_unknown(data, addr)
            return

        session.on_datagram(kind, data)

    def _log_unknown(self, data: bytes, addr: tuple[str, int] | None) -> None:
        action = response_action(data)
        if action == TrackerAction.ERROR.value:
            error = decode_error_response(data)
            logger.warning("Tracker %s returned error: %s", addr, error.message)
        else:
            logger.debug("Dropped datagram from %s with unknown action %s", addr, action)


class UDPTrackerProtocol(asyncio.DatagramProtocol):
    """UDP protocol handler for tracker communication."""

    def __init__(self, channel: UDPTrackerChannel):
        """Initialize UDP protocol handler."""
        self.channel = channel

    def datagram_received(self, data: bytes, addr: tuple[str, int]) -> None:
        """Handle incoming UDP datagram."""
        self.channel.datagram_received(data, addr)

    def error_received(self, exc: Exception) -> None:
        """Handle UDP error."""
        logger.debug("UDP error: %s", exc)


def get_peers(
    descriptor: TorrentDescriptor,
    on_peers: PeerCallback,
    *,
    channel: UDPTrackerChannel | None = None,
    peer_identity: PeerIdentity | None = None,
    port: int | None = None,
    config: TrackerConfig | None = None,
) -> TrackerSession:
    """Start a tracker session that reports its peer list to ``on_peers``.

    Must be called from a running event loop. Returns the session so the
    caller can ``cancel()`` it.
    """
    session = TrackerSession(
        channel or get_udp_tracker_channel(),
        descriptor,
        on_peers,
        peer_identity=peer_identity,
        port=port,
        config=config,
    )
    session.start()
    return session


async def announce_peers(
    descriptor: TorrentDescriptor,
    *,
    channel: UDPTrackerChannel | None = None,
    peer_identity: PeerIdentity | None = None,
    port: int | None = None,
    config: TrackerConfig | None = None,
) -> list[PeerEndpoint]:
    """Announce to the torrent's tracker and return its peer list.

    Raises:
        TrackerUnreachableError: If the tracker does not answer in time
    """
    future: asyncio.Future[list[PeerEndpoint]] = asyncio.get_running_loop().create_future()

    def on_peers(peers: list[PeerEndpoint] | None, error: TrackerError | None) -> None:
        if future.done():
            return
        if error is not None:
            future.set_exception(error)
        else:
            future.set_result(peers or [])

    session = get_peers(
        descriptor,
        on_peers,
        channel=channel,
        peer_identity=peer_identity,
        port=port,
        config=config,
    )
    try:
        return await future
    finally:
        session.cancel()


# Global UDP tracker channel instance
_udp_tracker_channel: UDPTrackerChannel | None = None


def get_udp_tracker_channel() -> UDPTrackerChannel:
    """Get the global UDP tracker channel."""
    global _udp_tracker_channel
    if _udp_tracker_channel is None:
        _udp_tracker_channel = UDPTrackerChannel()
    return _udp_tracker_channel


async def init_udp_tracker_channel(
    local_addr: tuple[str, int] | None = None,
) -> UDPTrackerChannel:
    """Open the global UDP tracker channel."""
    channel = get_udp_tracker_channel()
    if not channel.is_open:
        await channel.start(local_addr)
    return channel


async def shutdown_udp_tracker_channel() -> None:
    """Close the global UDP tracker channel."""
    global _udp_tracker_channel
    if _udp_tracker_channel is not None:
        await _udp_tracker_channel.stop()
        _udp_tracker_channel = None
