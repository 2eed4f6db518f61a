"""Command line interface for peerscout."""
