"""
Auction relay shell
"""
from datetime import datetime, timedelta, UTC
from pathlib import Path

import click
from click_shell import shell  # type: ignore

from auction_relay.apps.shell.app import App
from auction_relay.apps.shell.display import auction_details, auction_summary
from auction_relay.config import ClientConfig, ConfigError
from auction_relay.domain.auction import AuctionId
from auction_relay.domain.errors import AuctionError
from auction_relay.notifications import Notification

__app: App | None = None


class AppNotInitialized(Exception):
    pass


def _get_app() -> App:
    if __app is None:
        raise AppNotInitialized
    return __app


def _on_notification(notification: Notification):
    click.echo(f"\n* {notification.message}")


def _on_finished(_ctx: click.Context):
    if __app:
        __app.stop()


@shell(
    prompt="auction-relay > ",
    intro="Auction Relay Shell",
    on_finished=_on_finished,
)
@click.option(
    "--config-file",
    required=False,
    type=click.Path(exists=True, resolve_path=True, readable=True, path_type=Path),
    help="TOML config file - defaults are used when not specified",
)
def app(config_file: Path | None = None):
    global __app

    if __app is not None:
        return

    try:
        config = ClientConfig.from_file(config_file) if config_file else ClientConfig()
    except ConfigError as err:
        raise click.ClickException(str(err)) from err
    __app = App(config)
    __app.start(_on_notification)
    click.echo(f"user: {config.identity.user}")


@app.command
def status():
    """
    Displays the client identity and relay connection state
    """
    shell_app = _get_app()
    client = shell_app.client
    click.echo(f"session: {client.identity.session_id}")
    click.echo(f"user: {client.identity.user}")
    click.echo(f"relay: {shell_app.config.relay_url}")
    click.echo(f"connected: {shell_app.call(lambda: client.connected)}")
    click.echo(f"auctions: {shell_app.call(lambda: len(client.registry))}")


@app.command
@click.option("--finalized", is_flag=True, help="List finalized auctions")
def list_auctions(finalized: bool):
    """
    Lists active auctions, or finalized auctions
    """
    client = _get_app().client
    query = client.finalized_auctions if finalized else client.active_auctions
    auctions = _get_app().call(lambda: [auction.copy() for auction in query()])

    if not auctions:
        click.echo("no auctions")
        return

    now = datetime.now(UTC)
    for auction in auctions:
        click.echo(auction_summary(auction, now))


@app.command
@click.option("--id", "auction_id", required=True, prompt="Auction ID")
def show_auction(auction_id: str):
    """
    Displays the auction and its bid history
    """
    client = _get_app().client
    try:
        auction = _get_app().call(
            lambda: client.auction(AuctionId(auction_id.strip())).copy()
        )
    except AuctionError as err:
        raise click.ClickException(f"unknown auction: {err}") from err

    for line in auction_details(auction, datetime.now(UTC)):
        click.echo(line)


@app.command
@click.option("--title", required=True, prompt="Title")
@click.option("--initial-price", required=True, prompt="Initial Price", type=float)
@click.option("--description", default="", help="Auction description")
@click.option(
    "--min-increment",
    type=float,
    default=None,
    help="Minimum bid increment - defaults to the configured increment",
)
@click.option(
    "--duration-minutes",
    type=float,
    default=None,
    help="Auction duration - defaults to the configured duration",
)
def create_auction(
    title: str,
    initial_price: float,
    description: str,
    min_increment: float | None,
    duration_minutes: float | None,
):
    """
    Creates an auction and broadcasts it to all clients
    """
    client = _get_app().client
    duration = (
        timedelta(minutes=duration_minutes) if duration_minutes is not None else None
    )
    try:
        auction = _get_app().call(
            client.create_auction,
            title=title,
            initial_price=initial_price,
            description=description,
            min_increment=min_increment,
            duration=duration,
        )
    except AuctionError as err:
        raise click.ClickException(str(err)) from err

    click.echo(f"auction created: {auction.id}")


@app.command
@click.option("--id", "auction_id", required=True, prompt="Auction ID")
@click.option("--price", required=True, prompt="Price", type=float)
def bid(auction_id: str, price: float):
    """
    Bids on the auction - the price must exceed the current price
    """
    client = _get_app().client
    try:
        _get_app().call(client.place_bid, AuctionId(auction_id.strip()), price)
    except AuctionError as err:
        raise click.ClickException(str(err)) from err

    click.echo(f"bid sent: ${price:.2f}")


@app.command
@click.option("--id", "auction_id", required=True, prompt="Auction ID")
def bid_increment(auction_id: str):
    """
    Bids the current price plus the minimum increment
    """
    client = _get_app().client
    try:
        event = _get_app().call(client.place_increment_bid, AuctionId(auction_id.strip()))
    except AuctionError as err:
        raise click.ClickException(str(err)) from err

    click.echo(f"bid sent: ${event.price:.2f}")
