"""
Auction client: one participant's replica of the auction state
"""
from datetime import timedelta
from typing import Callable

from reactivex import Observable
from reactivex.abc import DisposableBase

from auction_relay.bids import BidProcessor
from auction_relay.commands import CreateAuction, CreateAuctionRequest
from auction_relay.core.async_service import AsyncService
from auction_relay.core.scheduler import TickScheduler
from auction_relay.domain.auction import (
    Auction,
    AuctionId,
    AuctionState,
    ClientIdentity,
)
from auction_relay.domain.errors import MalformedEvent, UnknownAuctionReference
from auction_relay.events import (
    AuctionCreated,
    AuctionFinalized,
    AuctionUpdated,
    BidPlaced,
    SyncRequest,
    SyncSnapshot,
    UnrecognizedEvent,
    decode,
)
from auction_relay.lifecycle import LifecycleController
from auction_relay.notifications import Notification, NotificationEmitter
from auction_relay.registry import AuctionRegistry
from auction_relay.sync import SyncCoordinator
from auction_relay.transport import Transport, Unsubscribe


class AuctionClient(AsyncService):
    """
    Wires the registry, bid processing, lifecycle ticks, and sync onto a transport.

    Notes
    -----
    - The client must be driven from a single event loop. Inbound messages, lifecycle ticks, and local commands
      never run concurrently, so each handler sees and leaves the registry in a consistent state.
    - Local commands only broadcast. State changes are applied when the broadcast is delivered back.
    - Inbound events that fail validation are logged and dropped.
    """

    # pylint: disable=too-many-instance-attributes

    def __init__(
        self,
        identity: ClientIdentity,
        transport: Transport,
        scheduler: TickScheduler,
        tick_interval: timedelta = timedelta(seconds=1),
        default_min_increment: float = 1.0,
        default_duration: timedelta = timedelta(minutes=5),
    ):
        super().__init__()
        self.__identity = identity
        self.__transport = transport
        self.__scheduler = scheduler

        self.__registry = AuctionRegistry()
        self.__notifications = NotificationEmitter(identity.user)
        self.__bids = BidProcessor(self.__registry, transport, self.__notifications)
        self.__lifecycle = LifecycleController(
            self.__registry,
            transport,
            scheduler,
            tick_interval=tick_interval,
            notifications=self.__notifications,
        )
        self.__sync = SyncCoordinator(
            identity.session_id, self.__registry, transport, self.__notifications
        )
        self.__create_auction = CreateAuction(
            transport,
            scheduler,
            identity.user,
            default_min_increment=default_min_increment,
            default_duration=default_duration,
        )
        self.__unsubscribe: Unsubscribe | None = None

    @property
    def identity(self) -> ClientIdentity:
        return self.__identity

    @property
    def registry(self) -> AuctionRegistry:
        return self.__registry

    @property
    def lifecycle(self) -> LifecycleController:
        return self.__lifecycle

    @property
    def sync(self) -> SyncCoordinator:
        return self.__sync

    @property
    def connected(self) -> bool:
        return self.__transport.connected

    @property
    def notifications(self) -> Observable[Notification]:
        return self.__notifications.observable

    def subscribe_notifications(
        self, handler: Callable[[Notification], None]
    ) -> DisposableBase:
        return self.__notifications.observable.subscribe(on_next=handler)

    async def _start(self):
        # subscribe before attaching sync, the sync request is delivered back to this client
        self.__unsubscribe = self.__transport.subscribe(self.on_message)
        self.__sync.attach()
        await self.__lifecycle.start()

    async def _stop(self):
        await self.__lifecycle.stop()
        self.__sync.detach()
        if self.__unsubscribe:
            self.__unsubscribe()
            self.__unsubscribe = None

    # queries

    def active_auctions(self) -> list[Auction]:
        return self.__registry.query_by_state(AuctionState.ACTIVE)

    def finalized_auctions(self) -> list[Auction]:
        return self.__registry.query_by_state(AuctionState.FINALIZED)

    def get_auction(self, auction_id: AuctionId) -> Auction | None:
        return self.__registry.get(auction_id)

    def auction(self, auction_id: AuctionId) -> Auction:
        """
        :raise UnknownAuctionReference: if the auction is not in the local registry
        """
        auction = self.__registry.get(auction_id)
        if auction is None:
            raise UnknownAuctionReference(auction_id)
        return auction

    # commands

    def create_auction(
        self,
        title: str,
        initial_price: float | None,
        description: str = "",
        min_increment: float | None = None,
        duration: timedelta | None = None,
    ) -> Auction:
        """
        :raise ValidationError: if the title or initial price is missing or invalid
        :raise TransportUnavailable: if the transport is not connected
        """
        return self.__create_auction(
            CreateAuctionRequest(
                title=title,
                initial_price=initial_price,
                description=description,
                min_increment=min_increment,
                duration=duration,
            )
        )

    def place_bid(self, auction_id: AuctionId, price: float) -> BidPlaced:
        """
        :raise RejectedBid: if the bid is not acceptable against the local view of the auction
        :raise TransportUnavailable: if the transport is not connected
        """
        return self.__bids.submit_bid(auction_id, self.__identity.user, price)

    def place_increment_bid(self, auction_id: AuctionId) -> BidPlaced:
        """
        Bids the current price plus the auction's minimum increment
        """
        return self.__bids.submit_increment_bid(auction_id, self.__identity.user)

    # inbound

    def on_message(self, data: bytes):
        """
        Decodes and applies a message delivered by the transport
        """
        try:
            event = decode(data)
        except MalformedEvent as err:
            self._logger.warning("malformed event dropped: %s", err)
            return

        match event:
            case AuctionCreated(auction=auction):
                if self.__registry.upsert_created(auction):
                    self.__notifications.auction_created(auction)
            case AuctionUpdated(auction_id=auction_id, fields=fields):
                self.__registry.apply_update(auction_id, fields)
            case BidPlaced():
                self.__bids.handle_bid_event(event, self.__scheduler.now())
            case AuctionFinalized():
                self.__lifecycle.handle_finalized_event(event)
            case SyncRequest():
                self.__sync.handle_sync_request(event)
            case SyncSnapshot():
                self.__sync.handle_snapshot(event)
            case UnrecognizedEvent(msg_type=msg_type):
                self._logger.debug("unrecognized event ignored: %s", msg_type)
