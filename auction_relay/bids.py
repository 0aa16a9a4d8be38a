"""
Bid processing
"""
import math
from datetime import datetime

from auction_relay.core.logging import get_logger
from auction_relay.domain.auction import AuctionId, Bid, UserId, truncate_millis
from auction_relay.domain.errors import RejectedBid
from auction_relay.events import BidPlaced, encode
from auction_relay.notifications import NotificationEmitter
from auction_relay.registry import AuctionRegistry
from auction_relay.transport import Scope, Transport


class BidProcessor:
    """
    Validates bids and applies bid events to the registry.

    Notes
    -----
    - Submitting a bid never mutates the registry. The bid is broadcast to every client, including this one, and is
      applied when the broadcast is delivered back, through the same path as bids from remote peers.
    - Whether a bid event is applied is decided independently by each client, in arrival order. Two near-simultaneous
      bids may both be valid at different clients, and bid histories may differ between clients as a result.
    """

    def __init__(
        self,
        registry: AuctionRegistry,
        transport: Transport,
        notifications: NotificationEmitter | None = None,
    ):
        self.__registry = registry
        self.__transport = transport
        self.__notifications = notifications
        self.__logger = get_logger(self)

    def submit_bid(self, auction_id: AuctionId, user: UserId, price: float) -> BidPlaced:
        """
        Validates the bid against the local view of the auction and broadcasts it.

        :return: the broadcast event
        :raise RejectedBid: if the auction is unknown, not active, or `price` does not exceed the current price
        :raise TransportUnavailable: if the transport is not connected
        """
        auction = self.__registry.get(auction_id)
        if auction is None:
            raise RejectedBid(f"auction does not exist: {auction_id}")
        if not auction.active:
            raise RejectedBid(f"auction is {auction.state}: {auction_id}")
        if not math.isfinite(price) or price <= auction.current_price:
            raise RejectedBid(
                f"bid must be greater than the current price: {price} <= {auction.current_price}"
            )

        event = BidPlaced(auction_id=auction_id, user=user, price=float(price))
        self.__transport.broadcast(encode(event), Scope.ALL)
        self.__logger.debug("bid submitted: %s", event)
        return event

    def submit_increment_bid(self, auction_id: AuctionId, user: UserId) -> BidPlaced:
        """
        Bids the current price plus the auction's minimum increment.

        :raise RejectedBid: if the auction is unknown or not active
        :raise TransportUnavailable: if the transport is not connected
        """
        auction = self.__registry.get(auction_id)
        if auction is None:
            raise RejectedBid(f"auction does not exist: {auction_id}")
        return self.submit_bid(auction_id, user, auction.next_min_bid)

    def handle_bid_event(self, event: BidPlaced, arrival_time: datetime) -> Bid | None:
        """
        Applies the bid if, at the time it arrives here, the auction is known, active, and the bid price is strictly
        greater than the current price.

        :param arrival_time: local time, recorded as the bid timestamp
        :return: the applied bid, or None if the bid was dropped
        """
        auction = self.__registry.get(event.auction_id)
        if auction is None:
            self.__logger.debug("bid for unknown auction dropped: %s", event)
            return None

        bid = Bid(user=event.user, price=event.price, timestamp=truncate_millis(arrival_time))
        if not auction.apply_bid(bid):
            self.__logger.debug(
                "bid dropped: %s [state=%s, current_price=%s]",
                event,
                auction.state,
                auction.current_price,
            )
            return None

        if self.__notifications:
            self.__notifications.bid_placed(auction, bid)
        return bid
