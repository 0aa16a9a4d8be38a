"""
Runs the websocket relay server
"""
import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Self

import click

from auction_relay.config import ClientConfig, ConfigError
from auction_relay.core.logging import parse_level
from auction_relay.services.logging_service import AsyncLoggingService
from auction_relay.transport.relay_server import RelayServer


@dataclass(slots=True, frozen=True)
class RelaySettings:
    """
    Relay server settings.

    Command line options take precedence over the `[relay]` and `[logging]` sections of the config file.
    """

    host: str = "localhost"
    port: int = 8765
    log_level: int = 20

    @classmethod
    def resolve(
        cls,
        config_file: Path | None = None,
        host: str | None = None,
        port: int | None = None,
        log_level: str | None = None,
    ) -> Self:
        """
        :raise ConfigError: if the config file is invalid
        :raise ValueError: if `log_level` is not a valid level
        """
        settings = cls()
        if config_file:
            config = ClientConfig.from_file(config_file)
            settings = cls(
                host=config.relay_host,
                port=config.relay_port,
                log_level=config.log_level,
            )
        return cls(
            host=host or settings.host,
            port=settings.port if port is None else port,
            log_level=settings.log_level if log_level is None else parse_level(log_level),
        )


async def run_relay_server(settings: RelaySettings):
    logging_service = AsyncLoggingService(level=settings.log_level)
    await logging_service.start()

    server = RelayServer(host=settings.host, port=settings.port)
    await server.start()
    click.echo(f"relay listening on {server.url}")
    try:
        # runs until cancelled
        await asyncio.Future()
    finally:
        await server.stop()
        await logging_service.stop()


@click.command
@click.option(
    "--config-file",
    help="TOML config file, see the [relay] section",
    type=click.Path(exists=True, resolve_path=True, readable=True, path_type=Path),
)
@click.option("--host", help="[default: localhost]")
@click.option("--port", type=click.IntRange(0, 65535), help="[default: 8765]")
@click.option("--log-level", help="[default: INFO]")
def main(
    config_file: Path | None,
    host: str | None,
    port: int | None,
    log_level: str | None,
):
    """
    Auction relay server - forwards auction events between connected clients
    """
    try:
        settings = RelaySettings.resolve(config_file, host, port, log_level)
    except ConfigError as err:
        raise click.ClickException(str(err)) from err
    except ValueError as err:
        raise click.BadParameter(str(err), param_hint="--log-level") from err

    try:
        asyncio.run(run_relay_server(settings))
    except KeyboardInterrupt:
        click.echo("relay stopped")
