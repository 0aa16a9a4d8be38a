"""
Websocket client transport
"""
import asyncio
from contextlib import suppress
from datetime import timedelta
from asyncio import Task

from reactivex import Observable, Subject
from reactivex.subject import BehaviorSubject
from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from auction_relay.core.async_service import AsyncService
from auction_relay.domain.errors import TransportUnavailable
from auction_relay.transport import MessageHandler, Scope, Unsubscribe
from auction_relay.transport.frames import IdentifyFrame, RelayFrame, pack_frame


class WebsocketTransport(AsyncService):
    """
    :type:`Transport` that connects to a :type:`RelayServer`.

    Notes
    -----
    - The connection is retried every `reconnect_delay` until the service is stopped.
    - Messages are delivered to subscribers on the event loop, one at a time.
    - `broadcast` does not wait for the send to complete, and nothing is queued while disconnected.
    """

    def __init__(
        self,
        url: str,
        session_id: str,
        reconnect_delay: timedelta = timedelta(seconds=2),
    ):
        super().__init__()
        self.__url = url
        self.__session_id = session_id
        self.__reconnect_delay = reconnect_delay

        self.__messages: Subject[bytes] = Subject()
        self.__connection: BehaviorSubject[bool] = BehaviorSubject(False)
        self.__websocket: ClientConnection | None = None
        self.__run_task: Task | None = None
        self.__send_tasks: set[Task] = set()

    @property
    def url(self) -> str:
        return self.__url

    @property
    def connected(self) -> bool:
        return self.__connection.value

    @property
    def connection_observable(self) -> Observable[bool]:
        return self.__connection

    def broadcast(self, data: bytes, scope: Scope = Scope.ALL) -> None:
        websocket = self.__websocket
        if websocket is None or not self.connected:
            raise TransportUnavailable(f"not connected to relay: {self.__url}")

        task = asyncio.create_task(websocket.send(pack_frame(RelayFrame(scope, data))))
        self.__send_tasks.add(task)

        def on_done(task: Task):
            self.__send_tasks.discard(task)
            if task.cancelled():
                return
            if err := task.exception():
                self._logger.warning("send failed: %r", err)

        task.add_done_callback(on_done)

    def subscribe(self, handler: MessageHandler) -> Unsubscribe:
        return self.__messages.subscribe(on_next=handler).dispose

    async def _start(self):
        self.__run_task = asyncio.create_task(self.__run(), name=self.name)

        def on_done(task: Task):
            if not task.cancelled() and (err := task.exception()):
                self._logger.error("relay connection task failed: %r", err)

        self.__run_task.add_done_callback(on_done)

    async def _stop(self):
        if self.__send_tasks:
            await asyncio.gather(*self.__send_tasks, return_exceptions=True)

        if self.__run_task:
            self.__run_task.cancel()
            with suppress(asyncio.CancelledError):
                await self.__run_task
            self.__run_task = None

    async def __run(self):
        while True:
            try:
                async with connect(self.__url) as websocket:
                    await websocket.send(pack_frame(IdentifyFrame(self.__session_id)))
                    self.__websocket = websocket
                    self.__set_connected(True)
                    async for data in websocket:
                        if isinstance(data, bytes):
                            self.__messages.on_next(data)
                        else:
                            self._logger.warning("text message from relay ignored")
            except ConnectionClosed as err:
                self._logger.warning("relay connection closed: %s", err)
            except (OSError, WebSocketException) as err:
                self._logger.warning("relay connection failed: %r", err)
            finally:
                self.__websocket = None
                self.__set_connected(False)

            await asyncio.sleep(self.__reconnect_delay.total_seconds())

    def __set_connected(self, connected: bool):
        if connected != self.__connection.value:
            self._logger.info("connected=%s [%s]", connected, self.__url)
            self.__connection.on_next(connected)
