"""
Relay events and their codec

Each event is a :type:`Serializable` dataclass whose fields are packed as a msgpack map, and is carried inside a
:type:`Message` envelope whose `msg_type` is the event type discriminator.

Map based payloads let peers running newer versions add fields: unknown keys are ignored on decode.
"""
from abc import abstractmethod
from dataclasses import dataclass, field
from enum import StrEnum, auto
from typing import Any, ClassVar, Self

import msgpack  # type: ignore

from auction_relay.core.message import Message, InvalidMessage, Serializable
from auction_relay.domain.auction import Auction, AuctionId, Bid, UserId, check_price
from auction_relay.domain.errors import MalformedEvent


class EventType(StrEnum):
    """
    Event type discriminator
    """

    AUCTION_CREATED = auto()
    AUCTION_UPDATED = auto()
    BID_PLACED = auto()
    AUCTION_FINALIZED = auto()
    SYNC_REQUEST = auto()
    SYNC_SNAPSHOT = auto()


def _unpack_map(packed: bytes) -> dict[str, Any]:
    try:
        fields = msgpack.unpackb(packed)
    except Exception as err:
        raise ValueError(f"payload could not be unpacked: {err}") from err

    if not isinstance(fields, dict):
        raise ValueError("payload must be a map")
    return fields


def _str(value: Any, name: str) -> str:
    if not isinstance(value, str) or not value:
        raise ValueError(f"{name} must be a non-empty string: {value!r}")
    return value


def _optional_str(value: Any, name: str) -> str | None:
    return None if value is None else _str(value, name)


def _dict(value: Any, name: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise ValueError(f"{name} must be a map")
    return value


class RelayEvent(Serializable):
    """
    Base class for events exchanged over the relay
    """

    __slots__ = ()

    MSG_TYPE: ClassVar[EventType]

    @classmethod
    def message_type(cls) -> str:
        return cls.MSG_TYPE.value

    def pack(self) -> bytes:
        return msgpack.packb(self._to_fields())

    @classmethod
    def unpack(cls, packed: bytes) -> Self:
        """
        :raise ValueError: if the payload is invalid
        :raise KeyError: if a required field is missing
        :raise TypeError: if a field has an unexpected shape
        """
        return cls._from_fields(_unpack_map(packed))

    @abstractmethod
    def _to_fields(self) -> dict[str, Any]:
        ...

    @classmethod
    @abstractmethod
    def _from_fields(cls, fields: dict[str, Any]) -> Self:
        ...


@dataclass(slots=True)
class AuctionCreated(RelayEvent):
    """
    A new auction, broadcast by its creator
    """

    auction: Auction

    MSG_TYPE: ClassVar[EventType] = EventType.AUCTION_CREATED

    def _to_fields(self) -> dict[str, Any]:
        return {"auction": self.auction.to_dict()}

    @classmethod
    def _from_fields(cls, fields: dict[str, Any]) -> Self:
        return cls(auction=Auction.from_dict(_dict(fields["auction"], "auction")))


def _encode_optional_bid(bid: Bid | None) -> dict[str, Any] | None:
    return bid.to_dict() if bid else None


def _decode_optional_bid(value: Any) -> Bid | None:
    return None if value is None else Bid.from_dict(_dict(value, "last_bid"))


def _decode_bids(value: Any) -> list[Bid]:
    if not isinstance(value, list):
        raise ValueError("bids must be an array")
    return [Bid.from_dict(_dict(bid, "bid")) for bid in value]


def _decode_price(value: Any) -> float:
    return check_price(value, "current_price")


# (encode, decode) for the auction fields that may be carried by an update
UPDATE_FIELD_CODECS: dict[str, tuple[Any, Any]] = {
    "current_price": (float, _decode_price),
    "bids": (lambda bids: [bid.to_dict() for bid in bids], _decode_bids),
    "last_bid": (_encode_optional_bid, _decode_optional_bid),
}


@dataclass(slots=True)
class AuctionUpdated(RelayEvent):
    """
    Partial auction record to merge into a known auction.

    `fields` maps auction field names to domain values. Names without a codec are passed through as received and are
    left for the registry to reject.
    """

    auction_id: AuctionId
    fields: dict[str, Any] = field(default_factory=dict)

    MSG_TYPE: ClassVar[EventType] = EventType.AUCTION_UPDATED

    def _to_fields(self) -> dict[str, Any]:
        encoded = {}
        for name, value in self.fields.items():
            codec = UPDATE_FIELD_CODECS.get(name)
            encoded[name] = codec[0](value) if codec else value
        return {"id": self.auction_id, "fields": encoded}

    @classmethod
    def _from_fields(cls, fields: dict[str, Any]) -> Self:
        decoded = {}
        for name, value in _dict(fields["fields"], "fields").items():
            if not isinstance(name, str):
                raise ValueError(f"field names must be strings: {name!r}")
            codec = UPDATE_FIELD_CODECS.get(name)
            decoded[name] = codec[1](value) if codec else value
        return cls(auction_id=AuctionId(_str(fields["id"], "id")), fields=decoded)


@dataclass(slots=True)
class BidPlaced(RelayEvent):
    """
    A bid, broadcast to every client including the bidder
    """

    auction_id: AuctionId
    user: UserId
    price: float

    MSG_TYPE: ClassVar[EventType] = EventType.BID_PLACED

    def _to_fields(self) -> dict[str, Any]:
        return {"auction_id": self.auction_id, "user": self.user, "price": self.price}

    @classmethod
    def _from_fields(cls, fields: dict[str, Any]) -> Self:
        return cls(
            auction_id=AuctionId(_str(fields["auction_id"], "auction_id")),
            user=UserId(_str(fields["user"], "user")),
            price=check_price(fields["price"], "price"),
        )


@dataclass(slots=True)
class AuctionFinalized(RelayEvent):
    """
    Auction has expired. Every client broadcasts this independently, so it is routinely received more than once.
    """

    auction_id: AuctionId
    winner: UserId | None = None

    MSG_TYPE: ClassVar[EventType] = EventType.AUCTION_FINALIZED

    def _to_fields(self) -> dict[str, Any]:
        return {"auction_id": self.auction_id, "winner": self.winner}

    @classmethod
    def _from_fields(cls, fields: dict[str, Any]) -> Self:
        winner = _optional_str(fields.get("winner"), "winner")
        return cls(
            auction_id=AuctionId(_str(fields["auction_id"], "auction_id")),
            winner=UserId(winner) if winner else None,
        )


@dataclass(slots=True)
class SyncRequest(RelayEvent):
    """
    Sent on (re)connect to ask every peer for its auctions
    """

    requester_id: str

    MSG_TYPE: ClassVar[EventType] = EventType.SYNC_REQUEST

    def _to_fields(self) -> dict[str, Any]:
        return {"requester_id": self.requester_id}

    @classmethod
    def _from_fields(cls, fields: dict[str, Any]) -> Self:
        return cls(requester_id=_str(fields["requester_id"], "requester_id"))


@dataclass(slots=True)
class SyncSnapshot(RelayEvent):
    """
    Full copy of a peer's registry.

    `requester_id` addresses the snapshot to the client that asked for it. Snapshots without one are applied by every
    client that receives them.
    """

    auctions: list[Auction]
    requester_id: str | None = None

    MSG_TYPE: ClassVar[EventType] = EventType.SYNC_SNAPSHOT

    def _to_fields(self) -> dict[str, Any]:
        return {
            "auctions": [auction.to_dict() for auction in self.auctions],
            "requester_id": self.requester_id,
        }

    @classmethod
    def _from_fields(cls, fields: dict[str, Any]) -> Self:
        auctions = fields["auctions"]
        if not isinstance(auctions, list):
            raise ValueError("auctions must be an array")
        return cls(
            auctions=[
                Auction.from_dict(_dict(auction, "auction")) for auction in auctions
            ],
            requester_id=_optional_str(fields.get("requester_id"), "requester_id"),
        )


@dataclass(slots=True)
class UnrecognizedEvent:
    """
    Well-formed message with an event type this client does not know, e.g., sent by a newer peer
    """

    msg_type: str
    data: bytes


Event = (
    AuctionCreated
    | AuctionUpdated
    | BidPlaced
    | AuctionFinalized
    | SyncRequest
    | SyncSnapshot
    | UnrecognizedEvent
)

EVENT_TYPES: dict[str, type[RelayEvent]] = {
    event_type.MSG_TYPE.value: event_type
    for event_type in (
        AuctionCreated,
        AuctionUpdated,
        BidPlaced,
        AuctionFinalized,
        SyncRequest,
        SyncSnapshot,
    )
}


def encode(event: RelayEvent) -> bytes:
    """
    Wraps the event in a :type:`Message` and serializes it
    """
    return Message.wrap(event).pack()


def decode(data: bytes) -> Event:
    """
    :raise MalformedEvent: if the bytes are not a valid message, or the payload does not match its event type
    """
    try:
        msg = Message.unpack(data)
    except InvalidMessage as err:
        raise MalformedEvent(str(err)) from err

    event_type = EVENT_TYPES.get(msg.msg_type)
    if event_type is None:
        return UnrecognizedEvent(msg_type=msg.msg_type, data=msg.data)

    try:
        return event_type.unpack(msg.data)
    except (KeyError, TypeError, ValueError) as err:
        raise MalformedEvent(f"invalid {msg.msg_type} event: {err!r}") from err
