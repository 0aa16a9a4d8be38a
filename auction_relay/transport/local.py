"""
In-process relay

Delivery is queued: messages are routed to recipient queues when broadcast and are handed to subscribers only when the
relay is flushed. Tests use this to control delivery order per client. When an event loop is provided, the relay
flushes itself on the loop after each broadcast.
"""
import asyncio
from collections import deque

from reactivex import Observable, Subject
from reactivex.subject import BehaviorSubject

from auction_relay.core.logging import get_logger
from auction_relay.domain.errors import TransportUnavailable
from auction_relay.transport import MessageHandler, Scope, Unsubscribe


class LocalTransport:
    """
    :type:`Transport` attached to a :type:`LocalRelay`
    """

    def __init__(self, relay: "LocalRelay", client_id: str):
        self.__relay = relay
        self.__client_id = client_id
        self.__messages: Subject[bytes] = Subject()
        self.__connection: BehaviorSubject[bool] = BehaviorSubject(False)

    @property
    def client_id(self) -> str:
        return self.__client_id

    @property
    def connected(self) -> bool:
        return self.__connection.value

    @property
    def connection_observable(self) -> Observable[bool]:
        return self.__connection

    def broadcast(self, data: bytes, scope: Scope = Scope.ALL) -> None:
        if not self.connected:
            raise TransportUnavailable(f"client is not connected: {self.__client_id}")
        self.__relay.route(self.__client_id, data, scope)

    def subscribe(self, handler: MessageHandler) -> Unsubscribe:
        return self.__messages.subscribe(on_next=handler).dispose

    def _deliver(self, data: bytes):
        self.__messages.on_next(data)

    def _set_connected(self, connected: bool):
        if connected != self.__connection.value:
            self.__connection.on_next(connected)


class LocalRelay:
    """
    Routes broadcasts between :type:`LocalTransport` instances
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None):
        """
        :param loop: if specified, the relay is flushed on the loop after every broadcast
        """
        self.__transports: dict[str, LocalTransport] = {}
        self.__pending: deque[tuple[str, bytes]] = deque()
        self.__loop = loop
        self.__flush_scheduled = False
        self.__logger = get_logger(self)

    def connect(self, client_id: str) -> LocalTransport:
        """
        Connects the client, creating its transport on first use.
        """
        transport = self.__transports.get(client_id)
        if transport is None:
            transport = LocalTransport(self, client_id)
            self.__transports[client_id] = transport
        transport._set_connected(True)  # pylint: disable=protected-access
        return transport

    def disconnect(self, client_id: str):
        """
        Disconnects the client. Messages still queued for it are dropped.
        """
        transport = self.__transports.get(client_id)
        if transport is None:
            return

        transport._set_connected(False)  # pylint: disable=protected-access
        self.__pending = deque(
            (recipient, data)
            for recipient, data in self.__pending
            if recipient != client_id
        )

    def route(self, sender: str, data: bytes, scope: Scope = Scope.ALL):
        """
        Queues the message for each connected client within the scope
        """
        match scope:
            case Scope.ALL:
                recipients = [
                    client_id
                    for client_id, transport in self.__transports.items()
                    if transport.connected
                ]
            case Scope.OTHERS:
                recipients = [
                    client_id
                    for client_id, transport in self.__transports.items()
                    if transport.connected and client_id != sender
                ]
            case Scope.SELF:
                recipients = [sender]

        for recipient in recipients:
            self.__pending.append((recipient, data))

        if self.__loop and not self.__flush_scheduled:
            self.__flush_scheduled = True
            self.__loop.call_soon(self.flush)

    def pending(self, client_id: str | None = None) -> list[bytes]:
        """
        :return: queued messages, optionally only those for the specified client
        """
        return [
            data
            for recipient, data in self.__pending
            if client_id is None or recipient == client_id
        ]

    def deliver_next(self, client_id: str, position: int = 0) -> bool:
        """
        Delivers a message queued for the client, by default the oldest one.

        :param position: position within the client's queue, used to deliver messages out of order
        :return: False if fewer than `position + 1` messages are queued for the client
        """
        queued = [
            index
            for index, (recipient, _) in enumerate(self.__pending)
            if recipient == client_id
        ]
        if position >= len(queued):
            return False

        index = queued[position]
        recipient, data = self.__pending[index]
        del self.__pending[index]
        self.__deliver(recipient, data)
        return True

    def flush(self) -> int:
        """
        Delivers queued messages in FIFO order until no messages are left, including messages that are broadcast by
        handlers while flushing. Each handler runs to completion before the next message is delivered.

        :return: number of messages delivered
        """
        self.__flush_scheduled = False
        count = 0
        while self.__pending:
            recipient, data = self.__pending.popleft()
            self.__deliver(recipient, data)
            count += 1
        return count

    def __deliver(self, recipient: str, data: bytes):
        transport = self.__transports.get(recipient)
        if transport is None or not transport.connected:
            self.__logger.debug("message for disconnected client dropped: %s", recipient)
            return
        transport._deliver(data)  # pylint: disable=protected-access
