"""Pytest configuration and shared fixtures for peerscout tests."""

from __future__ import annotations

import logging

import pytest

from peerscout.core.peer_id import PeerIdentity
from peerscout.core.torrent import TorrentDescriptor
from peerscout.models import TrackerConfig


def pytest_configure(config):
    """Register all project markers to avoid warnings when ini isn't loaded."""
    markers = [
        ("unit", "marks tests as unit tests"),
        ("integration", "marks tests as integration tests"),
        ("core", "marks tests as core functionality tests"),
        ("tracker", "marks tests as tracker tests"),
        ("config", "marks tests as configuration tests"),
        ("cli", "marks tests as CLI tests"),
    ]
    for name, desc in markers:
        config.addinivalue_line("markers", f"{name}: {desc}")


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch, tmp_path):
    """Keep user config files and PEERSCOUT_* variables out of tests."""
    import os

    for name in list(os.environ):
        if name.startswith("PEERSCOUT_"):
            monkeypatch.delenv(name)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path))

    from peerscout.config import reset_config

    reset_config()
    yield
    reset_config()


@pytest.fixture(autouse=True)
def cleanup_logging():
    """Clean up logging handlers after each test to prevent closed file errors."""
    yield
    for logger_name in list(logging.Logger.manager.loggerDict.keys()):
        logger = logging.getLogger(logger_name)
        for handler in logger.handlers[:]:
            handler.close()
            logger.removeHandler(handler)

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        handler.close()
        root_logger.removeHandler(handler)

    # setup_logging turns propagation off, which hides records from caplog
    package_logger = logging.getLogger("peerscout")
    package_logger.propagate = True
    package_logger.setLevel(logging.NOTSET)


class FakeTransport:
    """Datagram transport that records what is sent."""

    def __init__(self):
        self.sent: list[tuple[bytes, tuple[str, int]]] = []
        self.closed = False

    def sendto(self, data: bytes, addr: tuple[str, int]) -> None:
        self.sent.append((bytes(data), addr))

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_transport():
    """Create a recording datagram transport."""
    return FakeTransport()


@pytest.fixture
def peer_identity():
    """Create a peer identity with the release prefix."""
    return PeerIdentity(b"-PS0100-")


@pytest.fixture
def tracker_config():
    """Tracker settings whose timeouts never fire during a single test step."""
    return TrackerConfig(base_timeout=30.0, max_retries=2, listen_port=6881)


@pytest.fixture
def info_dict():
    """Create a multi-file info dictionary, keys in bencode order."""
    return {
        b"files": [
            {b"length": 100, b"path": [b"a.txt"]},
            {b"length": 250, b"path": [b"sub", b"b.bin"]},
            {b"length": 150, b"path": [b"c.iso"]},
        ],
        b"name": b"sample",
        b"piece length": 16384,
        b"pieces": b"\x01" * 20,
    }


@pytest.fixture
def descriptor(info_dict):
    """Create a multi-file torrent descriptor announcing to a UDP tracker."""
    return TorrentDescriptor.from_decoded(
        {
            b"announce": b"udp://tracker.example.com:6969/announce",
            b"info": info_dict,
        }
    )
