"""
Frames sent by clients to the websocket relay server

The server forwards the payload of a :type:`RelayFrame` unchanged, as a binary websocket message, to every connection
in the frame's scope. It never inspects payloads.
"""
from dataclasses import dataclass
from enum import IntEnum
from typing import ClassVar, Self

import msgpack  # type: ignore

from auction_relay.core.message import InvalidMessage, Message, Serializable
from auction_relay.transport import Scope


class CloseCode(IntEnum):
    """
    WebSocket close codes
    """

    # Normal close
    OK = 1000
    # Server is shutting down
    GOING_AWAY = 1001
    # Client sent a frame that is not part of the relay protocol
    POLICY_VIOLATION = 1008


@dataclass(slots=True)
class IdentifyFrame(Serializable):
    """
    First frame sent on a new connection
    """

    session_id: str

    MSG_TYPE: ClassVar[str] = "relay.identify"

    @classmethod
    def message_type(cls) -> str:
        return cls.MSG_TYPE

    def pack(self) -> bytes:
        return msgpack.packb(self.session_id)

    @classmethod
    def unpack(cls, packed: bytes) -> Self:
        session_id = msgpack.unpackb(packed)
        if not isinstance(session_id, str) or not session_id:
            raise ValueError("session_id must be a non-empty string")
        return cls(session_id)


@dataclass(slots=True)
class RelayFrame(Serializable):
    """
    Payload to broadcast within `scope`
    """

    scope: Scope
    payload: bytes

    MSG_TYPE: ClassVar[str] = "relay.broadcast"

    @classmethod
    def message_type(cls) -> str:
        return cls.MSG_TYPE

    def pack(self) -> bytes:
        return msgpack.packb((self.scope.value, self.payload))

    @classmethod
    def unpack(cls, packed: bytes) -> Self:
        (scope, payload) = msgpack.unpackb(packed, use_list=False)
        if not isinstance(payload, bytes):
            raise ValueError("payload must be bytes")
        return cls(scope=Scope(scope), payload=payload)


ClientFrame = IdentifyFrame | RelayFrame


def unpack_frame(data: bytes) -> ClientFrame:
    """
    :raise InvalidMessage: if the data is not a client frame
    """
    msg = Message.unpack(data)
    match msg.msg_type:
        case IdentifyFrame.MSG_TYPE:
            frame_type: type[ClientFrame] = IdentifyFrame
        case RelayFrame.MSG_TYPE:
            frame_type = RelayFrame
        case _:
            raise InvalidMessage(f"unsupported frame type: {msg.msg_type}")

    try:
        return frame_type.unpack(msg.data)
    except Exception as err:
        raise InvalidMessage(f"invalid {msg.msg_type} frame: {err!r}") from err


def pack_frame(frame: ClientFrame) -> bytes:
    return Message.wrap(frame).pack()
