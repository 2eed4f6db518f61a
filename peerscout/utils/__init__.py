"""Shared utilities for peerscout."""
