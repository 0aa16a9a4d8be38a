"""
Async service lifecycle
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import timedelta
from enum import IntEnum, auto


class ServiceLifecycleState(IntEnum):
    """
    Service lifecycle states

    Normal service lifecycle: NEW -> STARTING -> RUNNING -> STOPPING -> STOPPED

    A stopped service can be restarted, i.e., STOPPED -> STARTING
    """

    NEW = auto()
    STARTING = auto()
    START_FAILED = auto()
    RUNNING = auto()
    STOPPING = auto()
    STOPPED = auto()


@dataclass(slots=True)
class ServiceError(Exception):
    """
    Base class for service lifecycle errors
    """

    service_name: str
    cause: Exception | str

    def __str__(self) -> str:
        return f"[{self.service_name}] [{self.__class__.__name__}] {self.cause}"


class ServiceStartError(ServiceError):
    """
    Service failed to start
    """


class ServiceStopError(ServiceError):
    """
    Service cannot be stopped from its current state
    """


class AsyncService(ABC):
    """
    Base class for the long-running parts of an auction client: the lifecycle tick, transports, the relay server.

    Subclasses implement the `_start` and `_stop` hooks. Both run on the event loop and must not block.
    """

    def __init__(self):
        self.__state = ServiceLifecycleState.NEW
        self._logger = logging.getLogger(self.__class__.__name__)

        self.__running = asyncio.Event()
        self.__stopped = asyncio.Event()

    @property
    def state(self) -> ServiceLifecycleState:
        return self.__state

    @property
    def running(self) -> bool:
        """
        :return: True is service is running
        """
        return self.__state == ServiceLifecycleState.RUNNING

    @property
    def stopped(self) -> bool:
        """
        :return: True if service is stopped
        """
        return self.__state == ServiceLifecycleState.STOPPED

    @property
    def name(self) -> str:
        """
        By default, the type class name is used.
        """
        return self.__class__.__name__

    async def await_running(self, timeout: timedelta | None = None):
        """
        Used to await the service is running
        """
        await asyncio.wait_for(
            self.__running.wait(), timeout.total_seconds() if timeout else None
        )

    async def await_stopped(self, timeout: timedelta | None = None):
        """
        Used to await service shutdown
        """
        await asyncio.wait_for(
            self.__stopped.wait(), timeout.total_seconds() if timeout else None
        )

    async def start(self):
        """
        Start the service

        :raise ServiceStartError: if the `_start` hook fails or the service is in a state that cannot be started
        """
        if self.__state in (
            ServiceLifecycleState.RUNNING,
            ServiceLifecycleState.STARTING,
        ):
            return

        if self.__state not in (ServiceLifecycleState.NEW, ServiceLifecycleState.STOPPED):
            raise ServiceStartError(
                self.name,
                f"service cannot be started when state is: {self.__state.name}",
            )

        self.__set_state(ServiceLifecycleState.STARTING)
        try:
            await self._start()
        except Exception as err:
            self.__set_state(ServiceLifecycleState.START_FAILED)
            await self.stop()
            raise ServiceStartError(self.name, "error occurred while starting") from err
        self.__set_state(ServiceLifecycleState.RUNNING)

    async def stop(self):
        """
        Stop the service

        Notes
        -----
        - When state in [STOPPED, STOPPING], then this is a noop
        - Errors raised by the `_stop` hook are logged, and the service still transitions to STOPPED
        """
        match self.__state:
            case ServiceLifecycleState.STOPPED | ServiceLifecycleState.STOPPING:
                return
            case ServiceLifecycleState.NEW:
                self.__set_state(ServiceLifecycleState.STOPPED)
            case ServiceLifecycleState.STARTING:
                raise ServiceStopError(
                    self.name,
                    f"service cannot be stopped when state is: {self.__state.name}",
                )
            case _:
                self.__set_state(ServiceLifecycleState.STOPPING)
                try:
                    await self._stop()
                except Exception as err:  # pylint: disable=broad-exception-caught
                    self._logger.error("service failed to stop cleanly: %s", err)
                finally:
                    self.__set_state(ServiceLifecycleState.STOPPED)

    async def restart(self):
        """
        Used to restart the service.
        """
        if self.__state == ServiceLifecycleState.STARTING:
            await self.await_running()

        await self.stop()
        await self.start()

    def __set_state(self, state: ServiceLifecycleState):
        self._logger.info("state transition: %s -> %s", self.__state.name, state.name)

        self.__state = state

        match state:
            case ServiceLifecycleState.STARTING:
                self.__stopped.clear()
            case ServiceLifecycleState.RUNNING:
                self.__running.set()
            case ServiceLifecycleState.STOPPING:
                self.__running.clear()
            case ServiceLifecycleState.STOPPED:
                self.__running.clear()
                self.__stopped.set()

    @abstractmethod
    async def _start(self):
        """
        Service startup hook
        """

    @abstractmethod
    async def _stop(self):
        """
        Service shutdown hook
        """
