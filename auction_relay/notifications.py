"""
User-facing notifications derived from locally applied state changes
"""
from dataclasses import dataclass
from enum import StrEnum, auto

from reactivex import Observable, Subject

from auction_relay.domain.auction import Auction, AuctionId, Bid, UserId


class NotificationKind(StrEnum):
    AUCTION_CREATED = auto()
    BID_PLACED = auto()
    AUCTION_FINALIZED = auto()
    STATE_SYNCED = auto()


@dataclass(slots=True, frozen=True)
class Notification:
    kind: NotificationKind
    message: str
    auction_id: AuctionId | None = None


class NotificationEmitter:
    """
    Publishes notifications on an Observable stream.

    Notifications are published synchronously on the event loop that applied the state change, after the change has
    been applied.
    """

    def __init__(self, user: UserId):
        """
        :param user: local user; bids placed by the local user are not announced back to them
        """
        self.__user = user
        self.__subject: Subject[Notification] = Subject()

    @property
    def observable(self) -> Observable[Notification]:
        return self.__subject

    def auction_created(self, auction: Auction):
        self.__subject.on_next(
            Notification(
                kind=NotificationKind.AUCTION_CREATED,
                message=f"New auction: {auction.title}",
                auction_id=auction.id,
            )
        )

    def bid_placed(self, auction: Auction, bid: Bid):
        if bid.user == self.__user:
            return

        self.__subject.on_next(
            Notification(
                kind=NotificationKind.BID_PLACED,
                message=f"{bid.user} bid ${bid.price:.2f} on {auction.title}",
                auction_id=auction.id,
            )
        )

    def auction_finalized(self, auction: Auction):
        outcome = f"won by {auction.winner}" if auction.winner else "ended without bids"
        self.__subject.on_next(
            Notification(
                kind=NotificationKind.AUCTION_FINALIZED,
                message=f"{auction.title} {outcome}",
                auction_id=auction.id,
            )
        )

    def state_synced(self, auction_count: int):
        self.__subject.on_next(
            Notification(
                kind=NotificationKind.STATE_SYNCED,
                message=f"Synchronized {auction_count} auctions",
            )
        )
