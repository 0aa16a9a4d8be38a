"""
Client configuration

Example TOML config file::

    [client]
    name = "alice"
    tick_interval_seconds = 1.0

    [relay]
    url = "ws://localhost:8765"
    reconnect_delay_seconds = 2.0

    [auction]
    default_min_increment = 1
    default_duration_minutes = 5

    [logging]
    level = "INFO"
"""
import tomllib
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any, Self

from auction_relay.core.logging import parse_level
from auction_relay.domain.auction import ClientIdentity


class ConfigError(Exception):
    """
    Config is invalid
    """


def _section(config: dict[str, Any], name: str) -> dict[str, Any]:
    section = config.get(name, {})
    if not isinstance(section, dict):
        raise ConfigError(f"[{name}] must be a table")
    return section


def _positive(section: dict[str, Any], key: str, default: float) -> float:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise ConfigError(f"{key} must be a positive number: {value!r}")
    return float(value)


def _optional_str(section: dict[str, Any], key: str) -> str | None:
    value = section.get(key)
    if value is not None and not isinstance(value, str):
        raise ConfigError(f"{key} must be a string: {value!r}")
    return value


@dataclass(slots=True, frozen=True)
class ClientConfig:
    """
    Auction client settings
    """

    # pylint: disable=too-many-instance-attributes

    identity: ClientIdentity = field(default_factory=ClientIdentity.create)

    relay_url: str = "ws://localhost:8765"
    reconnect_delay: timedelta = timedelta(seconds=2)

    # used when running the relay server
    relay_host: str = "localhost"
    relay_port: int = 8765

    tick_interval: timedelta = timedelta(seconds=1)

    default_min_increment: float = 1.0
    default_duration: timedelta = timedelta(minutes=5)

    log_level: int = 30

    @classmethod
    def from_dict(cls, config: dict[str, Any]) -> Self:
        """
        :raise ConfigError: if a setting is invalid
        """
        client = _section(config, "client")
        relay = _section(config, "relay")
        auction = _section(config, "auction")
        logging_config = _section(config, "logging")

        session_id = _optional_str(client, "session_id")
        name = _optional_str(client, "name")
        identity = (
            ClientIdentity(session_id=session_id, name=name)
            if session_id
            else ClientIdentity.create(name=name)
        )

        port = relay.get("port", 8765)
        if isinstance(port, bool) or not isinstance(port, int) or not 0 <= port <= 65535:
            raise ConfigError(f"port must be in the range 0-65535: {port!r}")

        try:
            log_level = parse_level(logging_config.get("level", "WARNING"))
        except (ValueError, AttributeError) as err:
            raise ConfigError(f"invalid log level: {err}") from err

        return cls(
            identity=identity,
            relay_url=_optional_str(relay, "url") or "ws://localhost:8765",
            reconnect_delay=timedelta(
                seconds=_positive(relay, "reconnect_delay_seconds", 2.0)
            ),
            relay_host=_optional_str(relay, "host") or "localhost",
            relay_port=port,
            tick_interval=timedelta(
                seconds=_positive(client, "tick_interval_seconds", 1.0)
            ),
            default_min_increment=_positive(auction, "default_min_increment", 1.0),
            default_duration=timedelta(
                minutes=_positive(auction, "default_duration_minutes", 5.0)
            ),
            log_level=log_level,
        )

    @classmethod
    def from_file(cls, file: Path) -> Self:
        """
        Loads the config from the specified TOML config file

        :raise ConfigError: if the file is not valid TOML or a setting is invalid
        """
        with open(file, "rb") as config_file:
            try:
                config = tomllib.load(config_file)
            except tomllib.TOMLDecodeError as err:
                raise ConfigError(f"invalid TOML config file: {file}: {err}") from err
        return cls.from_dict(config)
