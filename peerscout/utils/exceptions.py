"""Exception hierarchy for peerscout.

Per-datagram errors (everything under ``DatagramRejectedError``) are caught
inside the tracker session and never reach the caller. Pre-flight metadata
errors and exhausted retries are the only failures that surface.
"""

from __future__ import annotations

from typing import Any


class PeerScoutError(Exception):
    """Base exception for all peerscout errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        """Initialize peerscout error."""
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return string representation of the error."""
        if self.details:
            return f"{self.message} (Details: {self.details})"
        return self.message


class NetworkError(PeerScoutError):
    """Network-related errors."""


class TrackerError(NetworkError):
    """Tracker communication errors."""


class TrackerUnreachableError(TrackerError):
    """Tracker did not answer within the retry budget."""


class ProtocolError(PeerScoutError):
    """Tracker protocol errors."""


class MessageError(ProtocolError):
    """Message parsing/serialization errors."""


class DatagramRejectedError(MessageError):
    """Inbound datagram that must be dropped without affecting the session."""


class MalformedResponseError(DatagramRejectedError):
    """Response buffer too short or not aligned to the peer group size."""


class TransactionMismatchError(DatagramRejectedError):
    """Response does not correlate to the pending request."""


class UnknownActionError(DatagramRejectedError):
    """Response carries an action code the session does not expect."""


class ValidationError(PeerScoutError):
    """Data validation errors."""


class ConfigurationError(ValidationError):
    """Configuration validation errors."""


class TorrentError(ValidationError):
    """Torrent file validation errors."""


class ContentTooLargeError(TorrentError):
    """Total content size does not fit in the 64-bit ``left`` field."""
