"""Allow ``python -m peerscout``."""

from peerscout.cli.main import main

main()
