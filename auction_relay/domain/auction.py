"""
Auction domain model
"""
import math
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, UTC
from enum import StrEnum, auto
from typing import Any, NewType, Self

from ulid import ULID

AuctionId = NewType("AuctionId", str)

UserId = NewType("UserId", str)


class AuctionState(StrEnum):
    """
    Auctions start out ACTIVE. FINALIZED and CANCELLED are terminal.

    CANCELLED is reserved: no event in the relay protocol produces it, but peers may report it in snapshots.
    """

    ACTIVE = auto()
    FINALIZED = auto()
    CANCELLED = auto()

    @property
    def terminal(self) -> bool:
        return self != AuctionState.ACTIVE


def to_epoch_millis(timestamp: datetime) -> int:
    """
    Timestamps are exchanged as milliseconds since the epoch
    """
    return round(timestamp.timestamp() * 1000)


def from_epoch_millis(millis: int) -> datetime:
    return datetime.fromtimestamp(millis / 1000, UTC)


def truncate_millis(timestamp: datetime) -> datetime:
    """
    Drops sub-millisecond precision so that a timestamp survives the wire unchanged
    """
    return timestamp.replace(microsecond=timestamp.microsecond // 1000 * 1000)


def check_price(value: Any, name: str) -> float:
    """
    :return: `value` as a float
    :raise ValueError: if `value` is not a finite, positive number
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{name} must be a number: {value!r}")
    if not math.isfinite(value) or value <= 0:
        raise ValueError(f"{name} must be a positive number: {value!r}")
    return float(value)


def _check_str(value: Any, name: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"{name} must be a string: {value!r}")
    return value


def _check_millis(value: Any, name: str) -> datetime:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be epoch milliseconds: {value!r}")
    return from_epoch_millis(value)


@dataclass(slots=True, frozen=True)
class ClientIdentity:
    """
    Identity of the local client.

    The user recorded on bids and auctions is the display name when one is set, otherwise the session ID.
    """

    session_id: str
    name: str | None = None

    @classmethod
    def create(cls, name: str | None = None) -> Self:
        return cls(session_id=f"user_{ULID()}", name=name)

    @property
    def user(self) -> UserId:
        if self.name and self.name.strip():
            return UserId(self.name.strip())
        return UserId(self.session_id)


@dataclass(slots=True, frozen=True)
class Bid:
    """
    Bid

    `timestamp` is the local capture time and is used for display ordering only.
    """

    user: UserId
    price: float
    timestamp: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "user": self.user,
            "price": self.price,
            "timestamp": to_epoch_millis(self.timestamp),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        """
        :raise ValueError: if a field is invalid
        :raise KeyError: if a field is missing
        """
        return cls(
            user=UserId(_check_str(data["user"], "user")),
            price=check_price(data["price"], "price"),
            timestamp=_check_millis(data["timestamp"], "timestamp"),
        )


@dataclass(slots=True)
class Auction:
    """
    Auction record as replicated by each client.

    Notes
    -----
    - `current_price` never decreases, and every applied bid strictly exceeds the price it replaced
    - `remaining` is display-only. It is maintained by the local lifecycle tick and is never sent over the wire.
    """

    # pylint: disable=too-many-instance-attributes

    id: AuctionId
    title: str
    description: str
    initial_price: float
    min_increment: float
    current_price: float
    start_timestamp: datetime
    end_timestamp: datetime
    creator: UserId

    state: AuctionState = AuctionState.ACTIVE
    bids: list[Bid] = field(default_factory=list)
    last_bid: Bid | None = None
    winner: UserId | None = None

    remaining: timedelta | None = field(default=None, compare=False)

    @classmethod
    def create(
        cls,
        title: str,
        initial_price: float,
        min_increment: float,
        duration: timedelta,
        creator: UserId,
        now: datetime,
        description: str = "",
    ) -> Self:
        start = truncate_millis(now)
        return cls(
            id=AuctionId(str(ULID())),
            title=title,
            description=description,
            initial_price=initial_price,
            min_increment=min_increment,
            current_price=initial_price,
            start_timestamp=start,
            end_timestamp=start + duration,
            creator=creator,
            remaining=duration,
        )

    @property
    def active(self) -> bool:
        return self.state == AuctionState.ACTIVE

    @property
    def next_min_bid(self) -> float:
        """
        Suggested next bid. Any price above `current_price` is accepted.
        """
        return self.current_price + self.min_increment

    def accepts(self, price: float) -> bool:
        """
        :return: True if a bid at `price` would be applied right now
        """
        return self.active and price > self.current_price

    def apply_bid(self, bid: Bid) -> bool:
        """
        :return: True if the bid was applied, False if it was not acceptable
        """
        if not self.accepts(bid.price):
            return False

        self.bids.append(bid)
        self.last_bid = bid
        self.current_price = bid.price
        return True

    def finalize(self, winner: UserId | None) -> bool:
        """
        Finalization is idempotent: a terminal auction is never modified.

        :return: True if the auction transitioned to FINALIZED
        """
        if self.state.terminal:
            return False

        self.state = AuctionState.FINALIZED
        self.winner = winner
        self.remaining = timedelta(0)
        return True

    def time_remaining(self, now: datetime) -> timedelta:
        return self.end_timestamp - now

    def copy(self) -> "Auction":
        return replace(self, bids=list(self.bids))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "initial_price": self.initial_price,
            "min_increment": self.min_increment,
            "current_price": self.current_price,
            "start_timestamp": to_epoch_millis(self.start_timestamp),
            "end_timestamp": to_epoch_millis(self.end_timestamp),
            "creator": self.creator,
            "state": self.state.value,
            "bids": [bid.to_dict() for bid in self.bids],
            "last_bid": self.last_bid.to_dict() if self.last_bid else None,
            "winner": self.winner,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        """
        :raise ValueError: if a field is invalid or the record breaks an auction invariant
        :raise KeyError: if a required field is missing
        """
        bids = data.get("bids") or ()
        if not isinstance(bids, (list, tuple)):
            raise ValueError("bids must be an array")
        last_bid = data.get("last_bid")
        winner = data.get("winner")

        auction = cls(
            id=AuctionId(_check_str(data["id"], "id")),
            title=_check_str(data["title"], "title"),
            description=_check_str(data.get("description") or "", "description"),
            initial_price=check_price(data["initial_price"], "initial_price"),
            min_increment=check_price(data["min_increment"], "min_increment"),
            current_price=check_price(data["current_price"], "current_price"),
            start_timestamp=_check_millis(data["start_timestamp"], "start_timestamp"),
            end_timestamp=_check_millis(data["end_timestamp"], "end_timestamp"),
            creator=UserId(_check_str(data["creator"], "creator")),
            state=AuctionState(data.get("state", AuctionState.ACTIVE)),
            bids=[Bid.from_dict(bid) for bid in bids],
            last_bid=Bid.from_dict(last_bid) if last_bid is not None else None,
            winner=UserId(_check_str(winner, "winner")) if winner is not None else None,
        )

        if auction.current_price < auction.initial_price:
            raise ValueError("current_price must not be less than initial_price")
        if auction.end_timestamp < auction.start_timestamp:
            raise ValueError("end_timestamp must not precede start_timestamp")
        if auction.winner is not None and auction.state != AuctionState.FINALIZED:
            raise ValueError("winner is only defined for finalized auctions")
        return auction
