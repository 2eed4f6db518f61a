"""Command line interface for peerscout."""

from __future__ import annotations

import asyncio
import logging

import click
from rich.console import Console
from rich.table import Table

from peerscout.config import init_config
from peerscout.core.torrent import (
    TorrentDescriptor,
    content_hash,
    load_torrent,
    total_length,
)
from peerscout.discovery.tracker_udp_client import UDPTrackerChannel, announce_peers
from peerscout.discovery.udp_codec import PeerEndpoint
from peerscout.models import LogLevel
from peerscout.utils.exceptions import ConfigurationError, TorrentError, TrackerError
from peerscout.utils.logging_config import setup_logging

logger = logging.getLogger(__name__)


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    help="Configuration file path",
)
@click.option(
    "--verbose",
    "-v",
    count=True,
    help="Increase verbosity (-v: info, -vv: debug)",
)
@click.pass_context
def cli(ctx, config, verbose):
    """Peerscout - find BitTorrent peers through UDP trackers."""
    ctx.ensure_object(dict)
    try:
        config_manager = init_config(config)
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e

    cfg = config_manager.config
    if verbose >= 2:
        cfg.observability.log_level = LogLevel.DEBUG
        setup_logging(cfg.observability)
    elif verbose == 1:
        cfg.observability.log_level = LogLevel.INFO
        setup_logging(cfg.observability)

    ctx.obj["config"] = cfg


@cli.command()
@click.argument("torrent_file", type=click.Path(exists=True))
def info(torrent_file):
    """Show the announce URL, size and info hash of a torrent."""
    console = Console()
    descriptor = _load(torrent_file)

    table = Table(title=descriptor.name or torrent_file, show_header=False)
    table.add_row("Announce", descriptor.announce)
    table.add_row("Files", str(len(descriptor.files) or 1))
    table.add_row("Size", f"{total_length(descriptor)} bytes")
    table.add_row("Info hash", content_hash(descriptor).hex())
    console.print(table)


@cli.command()
@click.argument("torrent_file", type=click.Path(exists=True))
@click.option(
    "--port",
    "-p",
    type=click.IntRange(0, 65535),
    help="Port announced to the tracker",
)
@click.pass_context
def peers(ctx, torrent_file, port):
    """Announce to the torrent's UDP tracker and list its peers."""
    console = Console()
    descriptor = _load(torrent_file)
    tracker_config = ctx.obj["config"].tracker

    try:
        found = asyncio.run(_discover(descriptor, tracker_config, port))
    except (TorrentError, TrackerError, OSError) as e:
        raise click.ClickException(str(e)) from e

    table = Table(title=f"Peers for {descriptor.name or torrent_file}")
    table.add_column("IP")
    table.add_column("Port", justify="right")
    for peer in found:
        table.add_row(peer.ip, str(peer.port))
    console.print(table)
    console.print(f"[green]{len(found)} peers[/green]")


async def _discover(descriptor: TorrentDescriptor, tracker_config, port) -> list[PeerEndpoint]:
    channel = UDPTrackerChannel()
    await channel.start((tracker_config.bind_host, tracker_config.bind_port))
    try:
        return await announce_peers(
            descriptor,
            channel=channel,
            port=port,
            config=tracker_config,
        )
    finally:
        await channel.stop()


def _load(torrent_file: str) -> TorrentDescriptor:
    try:
        return load_torrent(torrent_file)
    except TorrentError as e:
        raise click.ClickException(str(e)) from e


def main() -> None:
    """Entry point for the ``peerscout`` command."""
    cli(obj={})


if __name__ == "__main__":  # pragma: no cover
    main()
