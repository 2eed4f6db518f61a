"""Process-wide peer identifier.

The peer id is generated once and then reused for every tracker request,
so all announces from this process present the same identity.
"""

from __future__ import annotations

import secrets
import threading

from peerscout.utils.version import get_peer_id_prefix

PEER_ID_LENGTH = 20
PREFIX_LENGTH = 8


class PeerIdentity:
    """Lazily generated, exactly-once 20-byte peer id."""

    def __init__(self, prefix: bytes | None = None):
        """Initialize peer identity.

        Args:
            prefix: 8-byte client tag, derived from the package version when omitted
        """
        if prefix is None:
            prefix = get_peer_id_prefix()
        if len(prefix) != PREFIX_LENGTH:
            msg = f"Peer id prefix must be {PREFIX_LENGTH} bytes, got {len(prefix)}"
            raise ValueError(msg)
        self.prefix = prefix
        self._peer_id: bytes | None = None
        self._lock = threading.Lock()

    def current_id(self) -> bytes:
        """Return the peer id, generating it on first use."""
        peer_id = self._peer_id
        if peer_id is None:
            with self._lock:
                if self._peer_id is None:
                    random_id = secrets.token_bytes(PEER_ID_LENGTH)
                    self._peer_id = self.prefix + random_id[PREFIX_LENGTH:]
                peer_id = self._peer_id
        return peer_id


_default_identity: PeerIdentity | None = None
_default_identity_lock = threading.Lock()


def get_peer_identity() -> PeerIdentity:
    """Get the process-wide peer identity."""
    global _default_identity
    if _default_identity is None:
        with _default_identity_lock:
            if _default_identity is None:
                _default_identity = PeerIdentity()
    return _default_identity
