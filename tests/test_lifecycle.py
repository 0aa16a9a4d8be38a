import unittest
from datetime import timedelta

from auction_relay.domain.auction import Auction, AuctionState, Bid, UserId
from auction_relay.events import AuctionFinalized, decode
from auction_relay.lifecycle import LifecycleController
from auction_relay.notifications import Notification, NotificationEmitter, NotificationKind
from auction_relay.registry import AuctionRegistry
from auction_relay.transport.local import LocalRelay
from tests.support.scheduler import ManualScheduler
from tests.test_support import AuctionRelayIsolatedAsyncioTestCase


class LifecycleControllerTestCase(AuctionRelayIsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        await super().asyncSetUp()
        self.scheduler = ManualScheduler()
        self.relay = LocalRelay()
        self.transport = self.relay.connect("session_alice")
        self.registry = AuctionRegistry()
        self.notifications: list[Notification] = []
        emitter = NotificationEmitter(UserId("alice"))
        emitter.observable.subscribe(on_next=self.notifications.append)
        self.controller = LifecycleController(
            self.registry,
            self.transport,
            self.scheduler,
            tick_interval=timedelta(seconds=1),
            notifications=emitter,
        )

    def create_auction(self, duration: timedelta = timedelta(seconds=10)) -> Auction:
        auction = Auction.create(
            title="Vintage Camera",
            initial_price=100,
            min_increment=10,
            duration=duration,
            creator=UserId("alice"),
            now=self.scheduler.now(),
        )
        self.registry.upsert_created(auction)
        return auction

    def finalizations(self) -> list[AuctionFinalized]:
        return [decode(data) for data in self.relay.pending()]

    async def test_expired_auction_is_finalized_once(self):
        auction = self.create_auction()
        auction.apply_bid(Bid(UserId("bob"), 110, self.scheduler.now()))
        auction.apply_bid(Bid(UserId("carol"), 120, self.scheduler.now()))

        await self.controller.start()
        self.scheduler.advance(timedelta(seconds=5))
        self.assertEqual(AuctionState.ACTIVE, auction.state)
        with self.subTest("ticks maintain the remaining time"):
            self.assertEqual(timedelta(seconds=5), auction.remaining)

        self.scheduler.advance(timedelta(seconds=5))
        self.assertEqual(AuctionState.FINALIZED, auction.state)
        self.assertEqual("carol", auction.winner)
        self.assertEqual(
            [AuctionFinalized(auction.id, UserId("carol"))], self.finalizations()
        )

        self.scheduler.advance(timedelta(seconds=5))
        with self.subTest("finalized auctions are not finalized again"):
            self.assertEqual(1, len(self.finalizations()))
            self.assertEqual(
                [NotificationKind.AUCTION_FINALIZED],
                [notification.kind for notification in self.notifications],
            )

        await self.controller.stop()

    async def test_auction_without_bids_has_no_winner(self):
        auction = self.create_auction()
        self.scheduler.advance(timedelta(seconds=10))

        finalized = self.controller.tick()
        self.assertEqual([auction], finalized)
        self.assertIsNone(auction.winner)
        self.assertEqual("Vintage Camera ended without bids", self.notifications[0].message)

    async def test_handle_finalized_event_is_idempotent(self):
        auction = self.create_auction()
        event = AuctionFinalized(auction.id, UserId("bob"))

        self.assertTrue(self.controller.handle_finalized_event(event))
        finalized = auction.copy()

        for winner in [UserId("bob"), UserId("carol"), None]:
            with self.subTest(winner=winner):
                self.assertFalse(
                    self.controller.handle_finalized_event(
                        AuctionFinalized(auction.id, winner)
                    )
                )
                self.assertEqual(finalized, auction)
        self.assertEqual(1, len(self.notifications))

        with self.subTest("tick does not finalize the auction again"):
            self.scheduler.advance(timedelta(minutes=1))
            self.assertEqual([], self.controller.tick())
            self.assertEqual([], self.finalizations())

    async def test_finalizes_locally_while_disconnected(self):
        auction = self.create_auction()
        self.relay.disconnect("session_alice")
        self.scheduler.advance(timedelta(seconds=10))

        self.assertEqual([auction], self.controller.tick())
        self.assertEqual(AuctionState.FINALIZED, auction.state)

    async def test_stop_cancels_ticks(self):
        self.create_auction()
        await self.controller.start()
        self.assertEqual(1, self.scheduler.scheduled)

        await self.controller.stop()
        self.assertEqual(0, self.scheduler.scheduled)

    def test_tick_interval_must_be_positive(self):
        with self.assertRaises(ValueError):
            LifecycleController(
                self.registry, self.transport, self.scheduler, tick_interval=timedelta(0)
            )


if __name__ == "__main__":
    unittest.main()
