"""
Commands issued by the local user
"""
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import timedelta
from logging import Logger
from typing import Generic, TypeVar

from auction_relay.core.logging import get_logger
from auction_relay.core.scheduler import TickScheduler
from auction_relay.domain.auction import Auction, UserId
from auction_relay.domain.errors import ValidationError
from auction_relay.events import AuctionCreated, encode
from auction_relay.transport import Scope, Transport

Args = TypeVar("Args")

Result = TypeVar("Result")


class Command(Generic[Args, Result], ABC):
    """
    Commands are invoked as functions
    """

    @abstractmethod
    def __call__(self, args: Args) -> Result:
        """
        Executes the command
        """

    def get_logger(self, name: str | None = None) -> Logger:
        """
        :return: logger named after the command class, see :func:`get_logger`
        """
        return get_logger(self, name)


@dataclass(slots=True)
class CreateAuctionRequest:
    """
    Auction form input.

    `title` and `initial_price` are required. Missing or non-positive `min_increment` and `duration` fall back to
    the configured defaults.
    """

    title: str
    initial_price: float | None
    description: str = ""
    min_increment: float | None = None
    duration: timedelta | None = None


class CreateAuction(Command[CreateAuctionRequest, Auction]):
    """
    Validates the request and broadcasts the new auction to all clients, including this one.

    The auction is not inserted into the local registry here: it is inserted when the creation event is delivered
    back, exactly like on every other client.
    """

    def __init__(
        self,
        transport: Transport,
        scheduler: TickScheduler,
        creator: UserId,
        default_min_increment: float = 1.0,
        default_duration: timedelta = timedelta(minutes=5),
    ):
        if default_min_increment <= 0:
            raise ValueError("default_min_increment must be positive")
        if default_duration <= timedelta(0):
            raise ValueError("default_duration must be positive")

        self.__transport = transport
        self.__scheduler = scheduler
        self.__creator = creator
        self.__default_min_increment = default_min_increment
        self.__default_duration = default_duration

    def __call__(self, args: CreateAuctionRequest) -> Auction:
        """
        :return: the auction that was broadcast
        :raise ValidationError: if the title or initial price is missing or invalid
        :raise TransportUnavailable: if the transport is not connected
        """
        title = args.title.strip() if args.title else ""
        if not title:
            raise ValidationError("title is required")
        if (
            args.initial_price is None
            or not math.isfinite(args.initial_price)
            or args.initial_price <= 0
        ):
            raise ValidationError("initial price is required and must be positive")

        min_increment = args.min_increment
        if min_increment is None or not math.isfinite(min_increment) or min_increment <= 0:
            min_increment = self.__default_min_increment

        duration = args.duration
        if duration is None or duration <= timedelta(0):
            duration = self.__default_duration

        auction = Auction.create(
            title=title,
            description=args.description.strip() if args.description else "",
            initial_price=float(args.initial_price),
            min_increment=float(min_increment),
            duration=duration,
            creator=self.__creator,
            now=self.__scheduler.now(),
        )
        self.__transport.broadcast(encode(AuctionCreated(auction=auction)), Scope.ALL)
        self.get_logger().info("auction created: %s [%s]", auction.id, auction.title)
        return auction
