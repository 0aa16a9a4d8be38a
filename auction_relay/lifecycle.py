"""
Auction lifecycle: expiry detection and finalization
"""
from datetime import timedelta

from reactivex.abc import DisposableBase

from auction_relay.core.async_service import AsyncService
from auction_relay.core.scheduler import TickScheduler
from auction_relay.domain.auction import Auction, AuctionState
from auction_relay.domain.errors import TransportUnavailable
from auction_relay.events import AuctionFinalized, encode
from auction_relay.notifications import NotificationEmitter
from auction_relay.registry import AuctionRegistry
from auction_relay.transport import Scope, Transport


class LifecycleController(AsyncService):
    """
    Periodically scans active auctions against the local clock.

    Every client runs its own controller, with no coordination. When an auction expires, each client broadcasts the
    same finalization fact and then finalizes the auction locally. Finalization is idempotent, so the redundant
    broadcasts are harmless.

    State machine: ACTIVE --(remaining <= 0)--> FINALIZED
    """

    def __init__(
        self,
        registry: AuctionRegistry,
        transport: Transport,
        scheduler: TickScheduler,
        tick_interval: timedelta = timedelta(seconds=1),
        notifications: NotificationEmitter | None = None,
    ):
        super().__init__()
        if tick_interval <= timedelta(0):
            raise ValueError("tick_interval must be positive")

        self.__registry = registry
        self.__transport = transport
        self.__scheduler = scheduler
        self.__tick_interval = tick_interval
        self.__notifications = notifications
        self.__ticks: DisposableBase | None = None

    @property
    def tick_interval(self) -> timedelta:
        return self.__tick_interval

    async def _start(self):
        self.__ticks = self.__scheduler.schedule_periodic(self.__tick_interval, self.tick)

    async def _stop(self):
        if self.__ticks:
            self.__ticks.dispose()
            self.__ticks = None

    def tick(self) -> list[Auction]:
        """
        - remaining <= 0: broadcast the finalization, then finalize locally
        - remaining > 0: update the display-only `remaining` field

        :return: auctions finalized by this tick
        """
        now = self.__scheduler.now()
        finalized = []
        for auction in self.__registry.query_by_state(AuctionState.ACTIVE):
            remaining = auction.time_remaining(now)
            if remaining > timedelta(0):
                auction.remaining = remaining
                continue

            winner = auction.last_bid.user if auction.last_bid else None
            self.__broadcast(AuctionFinalized(auction_id=auction.id, winner=winner))
            if self.__finalize(auction, winner):
                finalized.append(auction)
        return finalized

    def handle_finalized_event(self, event: AuctionFinalized) -> bool:
        """
        Applies a finalization broadcast by any client, including this one.

        :return: True if the auction transitioned to FINALIZED, False for unknown or already terminal auctions
        """
        auction = self.__registry.get(event.auction_id)
        if auction is None:
            self._logger.debug("finalization for unknown auction dropped: %s", event)
            return False
        return self.__finalize(auction, event.winner)

    def __finalize(self, auction: Auction, winner) -> bool:
        if not auction.finalize(winner):
            return False

        self._logger.info("auction finalized: %s [winner=%s]", auction.id, winner)
        if self.__notifications:
            self.__notifications.auction_finalized(auction)
        return True

    def __broadcast(self, event: AuctionFinalized):
        try:
            self.__transport.broadcast(encode(event), Scope.ALL)
        except TransportUnavailable:
            # peers finalize on their own ticks
            self._logger.warning(
                "disconnected - finalization not broadcast: %s", event.auction_id
            )
