"""
Async logging service
"""
import logging
from logging.handlers import QueueHandler, QueueListener
from queue import SimpleQueue

from auction_relay.core.async_service import AsyncService
from auction_relay.core.logging import configure_logging


class AsyncLoggingService(AsyncService):
    """
    Routes log records through a queue, so that handlers write from a listener thread instead of the event loop thread.

    The interactive shell uses this to keep console output from stalling lifecycle ticks and message handling.
    """

    def __init__(
        self,
        level: int = logging.WARNING,
        handlers: list[logging.Handler] | None = None,
    ):
        """
        :param level: root logging level
        :param handlers: root logging handlers, defaults to a stderr stream handler
        """
        super().__init__()
        self.level = level
        self.__handlers = handlers[:] if handlers else None
        self.__queue: SimpleQueue[logging.LogRecord] = SimpleQueue()
        self.__listener: QueueListener | None = None

    async def _start(self) -> None:
        configure_logging(self.level, self.__handlers)

        root = logging.getLogger()
        handlers: list[logging.Handler] = root.handlers[:]
        root.handlers.clear()
        root.addHandler(QueueHandler(self.__queue))  # type: ignore

        self.__listener = QueueListener(
            self.__queue,  # type: ignore
            *handlers,
            respect_handler_level=True,
        )
        self.__listener.start()

    async def _stop(self):
        # reset logging
        configure_logging(self.level, self.__handlers)

        if self.__listener:
            self.__listener.stop()
            self.__listener = None
