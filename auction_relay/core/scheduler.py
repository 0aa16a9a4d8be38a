"""
Clock and periodic scheduling used to drive auction lifecycle ticks
"""
import asyncio
from datetime import datetime, timedelta, UTC
from typing import Callable, Protocol

from reactivex.abc import DisposableBase
from reactivex.scheduler.eventloop import AsyncIOScheduler


class TickScheduler(Protocol):
    """
    Provides the local clock and periodic callbacks.

    The returned :type:`DisposableBase` is the cancellation token: once disposed, the action is never invoked again.
    """

    def now(self) -> datetime:
        """
        :return: current UTC time
        """
        ...

    def schedule_periodic(
        self, period: timedelta, action: Callable[[], None]
    ) -> DisposableBase:
        """
        Invokes `action` every `period`, starting one period from now.
        """
        ...


class EventLoopScheduler:
    """
    :type:`TickScheduler` backed by the running asyncio event loop.

    Actions run on the loop thread, so they are never interleaved with transport callbacks.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None):
        self.__scheduler = AsyncIOScheduler(loop if loop else asyncio.get_running_loop())

    def now(self) -> datetime:
        return datetime.now(UTC)

    def schedule_periodic(
        self, period: timedelta, action: Callable[[], None]
    ) -> DisposableBase:
        if period <= timedelta(0):
            raise ValueError("period must be positive")

        def periodic(_state):
            action()

        return self.__scheduler.schedule_periodic(period, periodic)
