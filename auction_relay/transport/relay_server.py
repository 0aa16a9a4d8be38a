"""
Websocket relay server

The relay is the broadcast channel. It holds no auction state: it forwards payloads between connected clients.
"""
from dataclasses import dataclass
from datetime import datetime, UTC

from websockets.asyncio.server import Server, ServerConnection, broadcast, serve
from websockets.exceptions import ConnectionClosed
from websockets.protocol import State

from auction_relay.core.async_service import AsyncService
from auction_relay.core.message import InvalidMessage
from auction_relay.transport import Scope
from auction_relay.transport.frames import (
    CloseCode,
    IdentifyFrame,
    RelayFrame,
    unpack_frame,
)


@dataclass(slots=True)
class RelayServerMetrics:
    connections: int = 0
    frames_received: int = 0
    messages_forwarded: int = 0
    invalid_frames: int = 0

    last_frame_timestamp: datetime = datetime.fromtimestamp(0, UTC)


class RelayServer(AsyncService):
    """
    Relay protocol
    --------------
    1. The client identifies itself with an :type:`IdentifyFrame` as its first message.
    2. The client sends :type:`RelayFrame` messages. Each payload is forwarded as a binary message to the connections
       within the frame's scope: all (including the sender), others (excluding the sender) or self.

    Notes
    -----
    - Any frame that is not part of the protocol closes the connection.
    - Forwarding is best-effort: connections that close while a payload is being forwarded are skipped.
    """

    def __init__(self, host: str = "localhost", port: int = 8765):
        """
        :param port: 0 binds an ephemeral port, see :attr:`port`
        """
        super().__init__()
        self.__host = host
        self.__port = port
        self.__server: Server | None = None
        self.__connections: dict[ServerConnection, str] = {}
        self.__metrics = RelayServerMetrics()

    @property
    def host(self) -> str:
        return self.__host

    @property
    def port(self) -> int:
        """
        Port the server is bound to, once started
        """
        if self.__server:
            for sock in self.__server.sockets:
                return sock.getsockname()[1]
        return self.__port

    @property
    def url(self) -> str:
        return f"ws://{self.__host}:{self.port}"

    @property
    def metrics(self) -> RelayServerMetrics:
        return self.__metrics

    @property
    def sessions(self) -> list[str]:
        """
        :return: session IDs of the identified connections
        """
        return list(self.__connections.values())

    async def _start(self):
        self.__server = await serve(self.__handle_connection, self.__host, self.__port)
        self._logger.info("relay listening on %s", self.url)

    async def _stop(self):
        if self.__server:
            self.__server.close()
            await self.__server.wait_closed()
            self.__server = None

    async def __handle_connection(self, websocket: ServerConnection):
        try:
            session_id = await self.__identify(websocket)
        except ConnectionClosed:
            return
        if session_id is None:
            return

        self.__connections[websocket] = session_id
        self.__metrics.connections += 1
        self._logger.info("client connected: %s", session_id)
        try:
            async for data in websocket:
                frame = await self.__read_frame(websocket, data)
                if frame is None:
                    return
                if not isinstance(frame, RelayFrame):
                    await websocket.close(CloseCode.POLICY_VIOLATION, "already identified")
                    return
                self.__forward(websocket, frame)
        except ConnectionClosed as err:
            self._logger.debug("connection closed: %s [%s]", session_id, err)
        finally:
            del self.__connections[websocket]
            self.__metrics.connections -= 1
            self._logger.info("client disconnected: %s", session_id)

    async def __identify(self, websocket: ServerConnection) -> str | None:
        frame = await self.__read_frame(websocket, await websocket.recv())
        if isinstance(frame, IdentifyFrame):
            return frame.session_id

        if frame is not None:
            await websocket.close(CloseCode.POLICY_VIOLATION, "identify frame expected")
        return None

    async def __read_frame(
        self, websocket: ServerConnection, data: str | bytes
    ) -> IdentifyFrame | RelayFrame | None:
        """
        :return: None if the frame was invalid, in which case the connection has been closed
        """
        self.__metrics.frames_received += 1
        self.__metrics.last_frame_timestamp = datetime.now(UTC)
        try:
            if not isinstance(data, bytes):
                raise InvalidMessage("text frames are not supported")
            return unpack_frame(data)
        except InvalidMessage as err:
            self.__metrics.invalid_frames += 1
            self._logger.warning("invalid frame: %s", err)
            await websocket.close(CloseCode.POLICY_VIOLATION, "invalid frame")
            return None

    def __forward(self, sender: ServerConnection, frame: RelayFrame):
        match frame.scope:
            case Scope.ALL:
                recipients = list(self.__connections)
            case Scope.OTHERS:
                recipients = [conn for conn in self.__connections if conn is not sender]
            case Scope.SELF:
                recipients = [sender]

        # broadcast skips connections that are not open and does not wait for slow recipients
        recipients = [conn for conn in recipients if conn.state is State.OPEN]
        broadcast(recipients, frame.payload)
        self.__metrics.messages_forwarded += len(recipients)
