"""
Broadcast transport contract

Transports deliver opaque bytes to every subscribed client within the requested scope. Delivery is best-effort:
messages may be lost, duplicated, or arrive in a different order at different clients.
"""
from enum import StrEnum, auto
from typing import Callable, Protocol

from reactivex import Observable

MessageHandler = Callable[[bytes], None]

Unsubscribe = Callable[[], None]


class Scope(StrEnum):
    """
    Broadcast scope
    """

    # every connected client, including the sender
    ALL = auto()
    # every connected client, except the sender
    OTHERS = auto()
    # only the sender
    SELF = auto()


class Transport(Protocol):
    """
    Transport contract consumed by the auction client
    """

    @property
    def connected(self) -> bool:
        """
        :return: True when the transport is able to send and receive
        """
        ...

    @property
    def connection_observable(self) -> Observable[bool]:
        """
        Publishes the connection state. The current state is replayed to new subscribers.
        """
        ...

    def broadcast(self, data: bytes, scope: Scope = Scope.ALL) -> None:
        """
        Fire-and-forget send. Sent messages cannot be recalled.

        :raise TransportUnavailable: if not connected
        """
        ...

    def subscribe(self, handler: MessageHandler) -> Unsubscribe:
        """
        Registers a handler that is invoked once per delivered message.

        :return: function that unsubscribes the handler
        """
        ...
