"""
Standardized messaging format

Every event that crosses the relay is wrapped in a :type:`Message` envelope and serialized with msgpack.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Self

import msgpack  # type: ignore
from ulid import ULID


class MessageId(ULID):
    """
    Unique message ID
    """


class InvalidMessage(Exception):
    """
    Raised when bytes cannot be unpacked into a :type:`Message`
    """


class Serializable(ABC):
    """
    Message payloads implement this interface to be wrapped in a :type:`Message`
    """

    __slots__ = ()

    @classmethod
    @abstractmethod
    def message_type(cls) -> str:
        """
        :return: the message type discriminator
        """

    @abstractmethod
    def pack(self) -> bytes:
        """
        Packs the object into bytes
        """

    @classmethod
    @abstractmethod
    def unpack(cls, packed: bytes) -> Self:
        """
        Unpacks the object from bytes
        """


@dataclass(slots=True)
class Message:
    """
    Message

    :field:`msg_id` - unique message ID
    :field:`msg_type` - message type discriminator
    :field:`data` - msgpack serialized payload
    """

    msg_id: MessageId
    msg_type: str
    data: bytes

    @classmethod
    def create(cls, msg_type: str, data: bytes) -> Self:
        """
        Constructor
        """
        return cls(
            msg_id=MessageId(),
            msg_type=msg_type,
            data=data,
        )

    @classmethod
    def wrap(cls, payload: Serializable) -> Self:
        """
        Wraps the payload into a new message
        """
        return cls.create(payload.message_type(), payload.pack())

    @classmethod
    def unpack(cls, packed: bytes) -> Self:
        """
        deserializes the message

        :raise InvalidMessage: if the bytes are not a packed message
        """
        try:
            unpacked = msgpack.unpackb(packed, use_list=False)
        except Exception as err:
            raise InvalidMessage(f"message could not be unpacked: {err}") from err

        if not isinstance(unpacked, tuple) or len(unpacked) != 3:
            raise InvalidMessage("message must be an array of [id, type, data]")

        (msg_id, msg_type, data) = unpacked
        if not isinstance(msg_id, bytes):
            raise InvalidMessage("message id must be bytes")
        if not isinstance(msg_type, str) or not isinstance(data, bytes):
            raise InvalidMessage("message type must be str and data must be bytes")

        try:
            return cls(
                msg_id=MessageId.from_bytes(msg_id),
                msg_type=msg_type,
                data=data,
            )
        except (ValueError, TypeError) as err:
            raise InvalidMessage(f"invalid message id: {err}") from err

    def pack(self) -> bytes:
        """
        Serialize the message
        """
        return msgpack.packb((self.msg_id.bytes, self.msg_type, self.data))
