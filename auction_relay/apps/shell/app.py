"""
Auction shell app
"""
import asyncio
from concurrent.futures import Future
from pathlib import Path
from threading import Thread
from typing import Any, Awaitable, Callable, Self, TypeVar

from reactivex.abc import DisposableBase

from auction_relay.client import AuctionClient
from auction_relay.config import ClientConfig
from auction_relay.core.logging import get_logger
from auction_relay.core.scheduler import EventLoopScheduler
from auction_relay.notifications import Notification
from auction_relay.services.logging_service import AsyncLoggingService
from auction_relay.transport.websocket import WebsocketTransport

T = TypeVar("T")


class AppNotStarted(Exception):
    """
    The app's event loop is not running
    """


class App:
    """
    Runs an :type:`AuctionClient` on an event loop in a background thread.

    Shell commands run on the main thread. Every call into the client is submitted to the event loop, so the client
    is only ever touched from the loop thread.
    """

    def __init__(self, config: ClientConfig, timeout: float = 10.0):
        """
        :param timeout: seconds to wait for calls submitted to the event loop
        """
        self.config = config
        self.__timeout = timeout
        self.__loop: asyncio.AbstractEventLoop | None = None
        self.__thread: Thread | None = None
        self.__client: AuctionClient | None = None
        self.__transport: WebsocketTransport | None = None
        self.__logging_service = AsyncLoggingService(level=config.log_level)
        self.__notifications: DisposableBase | None = None
        self.__logger = get_logger(self)

    @classmethod
    def from_config_file(cls, config_file: Path) -> Self:
        return cls(ClientConfig.from_file(config_file))

    @property
    def client(self) -> AuctionClient:
        if self.__client is None:
            raise AppNotStarted
        return self.__client

    @property
    def transport(self) -> WebsocketTransport:
        if self.__transport is None:
            raise AppNotStarted
        return self.__transport

    def start(self, on_notification: Callable[[Notification], None]):
        """
        Starts the event loop thread, then the client and its relay connection.

        :param on_notification: invoked on the event loop thread
        """
        if self.__loop:
            return

        loop = asyncio.new_event_loop()
        self.__loop = loop
        self.__thread = Thread(target=loop.run_forever, name="auction-relay", daemon=True)
        self.__thread.start()
        self.run(self.__start(on_notification))

    def stop(self):
        loop = self.__loop
        if loop is None:
            return

        try:
            self.run(self.__stop())
        finally:
            loop.call_soon_threadsafe(loop.stop)
            if self.__thread:
                self.__thread.join(self.__timeout)
            loop.close()
            self.__loop = None
            self.__thread = None

    def run(self, coro: Awaitable[T]) -> T:
        """
        Runs the coroutine on the event loop and waits for its result
        """
        if self.__loop is None:
            raise AppNotStarted

        future: Future = asyncio.run_coroutine_threadsafe(coro, self.__loop)  # type: ignore
        return future.result(self.__timeout)

    def call(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """
        Invokes the function on the event loop thread and waits for its result.
        Exceptions raised by the function are raised to the caller.
        """

        async def invoke() -> T:
            return func(*args, **kwargs)

        return self.run(invoke())

    async def __start(self, on_notification: Callable[[Notification], None]):
        await self.__logging_service.start()

        config = self.config
        self.__transport = WebsocketTransport(
            config.relay_url,
            config.identity.session_id,
            reconnect_delay=config.reconnect_delay,
        )
        self.__client = AuctionClient(
            identity=config.identity,
            transport=self.__transport,
            scheduler=EventLoopScheduler(),
            tick_interval=config.tick_interval,
            default_min_increment=config.default_min_increment,
            default_duration=config.default_duration,
        )
        self.__notifications = self.__client.subscribe_notifications(on_notification)

        # the client subscribes to the transport before the transport connects
        await self.__client.start()
        await self.__transport.start()
        self.__logger.info("started: %s", config.identity)

    async def __stop(self):
        if self.__transport:
            await self.__transport.stop()
        if self.__client:
            await self.__client.stop()
        if self.__notifications:
            self.__notifications.dispose()
            self.__notifications = None
        await self.__logging_service.stop()
