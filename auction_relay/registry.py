"""
Auction registry: one client's replica of the auction state
"""
from itertools import pairwise
from typing import Any, Iterable, Iterator

from auction_relay.core.logging import get_logger
from auction_relay.domain.auction import Auction, AuctionId, AuctionState, Bid

# fields that an auction update may merge; everything else is fixed at creation
MUTABLE_FIELDS = frozenset(("current_price", "bids", "last_bid"))


class AuctionRegistry:
    """
    In-memory mapping from auction ID to auction record, preserving insertion order.

    Notes
    -----
    - The registry is owned by a single event loop and is never mutated concurrently.
    - Auctions are never removed, except when a sync snapshot replaces the whole registry.
    """

    def __init__(self, auctions: Iterable[Auction] = ()):
        self.__auctions: dict[AuctionId, Auction] = {}
        self.__logger = get_logger(self)
        for auction in auctions:
            self.upsert_created(auction)

    def __len__(self) -> int:
        return len(self.__auctions)

    def __contains__(self, auction_id: object) -> bool:
        return auction_id in self.__auctions

    def __iter__(self) -> Iterator[Auction]:
        return iter(self.__auctions.values())

    def get(self, auction_id: AuctionId) -> Auction | None:
        return self.__auctions.get(auction_id)

    def upsert_created(self, auction: Auction) -> bool:
        """
        Creation events are broadcast to every client, including the creator, and may be redelivered.

        :return: True if the auction was inserted, False if the ID was already known
        """
        if auction.id in self.__auctions:
            self.__logger.debug("duplicate auction ignored: %s", auction.id)
            return False

        self.__auctions[auction.id] = auction
        return True

    def apply_update(
        self, auction_id: AuctionId, fields: dict[str, Any]
    ) -> Auction | None:
        """
        Merges the fields into a known auction.

        Only mutable fields are merged, and only while the auction stays consistent:
        - terminal auctions are not modified
        - `current_price` never decreases
        - `last_bid` must be the last entry in `bids`, bid prices must strictly increase, and `current_price` must be
          the price of the last bid (or `initial_price` when there are no bids)

        :return: the updated auction, or None if the auction is unknown or the update was rejected
        """
        auction = self.__auctions.get(auction_id)
        if auction is None:
            self.__logger.debug("update for unknown auction dropped: %s", auction_id)
            return None

        if auction.state.terminal:
            self.__logger.debug(
                "update for %s auction dropped: %s", auction.state, auction_id
            )
            return None

        ignored = set(fields) - MUTABLE_FIELDS
        if ignored:
            self.__logger.warning(
                "update for %s contains fields that cannot be merged: %s",
                auction_id,
                sorted(ignored),
            )

        bids: list[Bid] = list(fields.get("bids", auction.bids))
        last_bid: Bid | None = fields.get("last_bid", bids[-1] if bids else None)
        if (bids[-1] if bids else None) != last_bid:
            self.__logger.warning("update for %s has inconsistent last_bid", auction_id)
            return None

        prices = [auction.initial_price] + [bid.price for bid in bids]
        if any(lower >= higher for lower, higher in pairwise(prices)):
            self.__logger.warning(
                "update for %s has bids that are not strictly increasing", auction_id
            )
            return None

        current_price = fields.get("current_price", prices[-1])
        if current_price != prices[-1]:
            self.__logger.warning(
                "update for %s has current_price that does not match its last bid",
                auction_id,
            )
            return None
        if current_price < auction.current_price:
            self.__logger.warning(
                "update for %s would lower current_price: %s -> %s",
                auction_id,
                auction.current_price,
                current_price,
            )
            return None

        auction.current_price = current_price
        auction.bids = bids
        auction.last_bid = last_bid
        return auction

    def replace_all(self, auctions: Iterable[Auction]) -> None:
        """
        Replaces the whole registry with the snapshot. Nothing is merged: the last snapshot applied wins.
        """
        replacement: dict[AuctionId, Auction] = {}
        for auction in auctions:
            if auction.id in replacement:
                self.__logger.warning("duplicate auction in snapshot: %s", auction.id)
                continue
            replacement[auction.id] = auction.copy()

        self.__auctions = replacement
        self.__logger.info("registry replaced: %s auctions", len(replacement))

    def query_by_state(self, state: AuctionState) -> list[Auction]:
        """
        :return: auctions in the given state, in insertion order
        """
        return [auction for auction in self.__auctions.values() if auction.state == state]

    def snapshot(self) -> list[Auction]:
        """
        :return: copies of all auctions, in insertion order
        """
        return [auction.copy() for auction in self.__auctions.values()]
