import unittest
from datetime import timedelta

import msgpack  # type: ignore
from reactivex import operators as ops

from auction_relay.client import AuctionClient
from auction_relay.core.message import Message
from auction_relay.domain.auction import AuctionId, AuctionState, Bid, UserId
from auction_relay.domain.errors import (
    RejectedBid,
    TransportUnavailable,
    UnknownAuctionReference,
    ValidationError,
)
from auction_relay.events import AuctionCreated, AuctionFinalized, AuctionUpdated, encode
from auction_relay.notifications import Notification, NotificationKind
from auction_relay.transport.local import LocalRelay
from tests.support.clients import start_client
from tests.support.scheduler import ManualScheduler
from tests.test_support import AuctionRelayIsolatedAsyncioTestCase


class AuctionClientTestCase(AuctionRelayIsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        await super().asyncSetUp()
        self.scheduler = ManualScheduler()
        self.relay = LocalRelay()
        self.alice = await start_client(self.relay, self.scheduler, "alice")
        self.bob = await start_client(self.relay, self.scheduler, "bob")
        self.carol = await start_client(self.relay, self.scheduler, "carol")
        self.relay.flush()

        self.notifications: dict[str, list[Notification]] = {}
        for client in self.clients:
            received: list[Notification] = []
            client.subscribe_notifications(received.append)
            self.notifications[client.identity.user] = received

    async def asyncTearDown(self) -> None:
        for client in self.clients:
            await client.stop()

    @property
    def clients(self) -> list[AuctionClient]:
        return [self.alice, self.bob, self.carol]

    def create_auction(self, duration: timedelta = timedelta(minutes=5)) -> AuctionId:
        auction = self.alice.create_auction(
            "Vintage Camera", 100, min_increment=10, duration=duration
        )
        self.relay.flush()
        return auction.id

    async def test_create_auction(self):
        auction = self.alice.create_auction("Vintage Camera", 100, min_increment=10)

        with self.subTest("creation is applied when the broadcast is delivered"):
            self.assertIsNone(self.alice.get_auction(auction.id))

        self.relay.flush()
        for client in self.clients:
            with self.subTest(client=client.identity.user):
                self.assertEqual(auction, client.auction(auction.id))
                self.assertEqual([auction], client.active_auctions())
                self.assertEqual(
                    [NotificationKind.AUCTION_CREATED],
                    [n.kind for n in self.notifications[client.identity.user]],
                )

        with self.subTest("redelivered creation is ignored"):
            self.bob.on_message(encode(AuctionCreated(auction)))
            self.assertEqual(1, len(self.bob.registry))
            self.assertEqual(1, len(self.notifications["bob"]))

    async def test_create_auction_validation(self):
        with self.assertRaises(ValidationError):
            self.alice.create_auction("", 100)
        with self.assertRaises(ValidationError):
            self.alice.create_auction("Vintage Camera", None)
        self.assertEqual([], self.relay.pending())

    async def test_bids_converge(self):
        auction_id = self.create_auction()

        self.bob.place_bid(auction_id, 105)
        self.relay.flush()
        for client in self.clients:
            with self.subTest("bid is applied by every client", client=client.identity.user):
                auction = client.auction(auction_id)
                self.assertEqual(105, auction.current_price)
                self.assertEqual("bob", auction.last_bid.user)

        with self.subTest("bid at or below the current price is rejected locally"):
            with self.assertRaises(RejectedBid):
                self.carol.place_bid(auction_id, 100)
            with self.assertRaises(RejectedBid):
                self.carol.place_bid(auction_id, 105)
            self.assertEqual([], self.relay.pending())
            self.assertEqual(105, self.carol.auction(auction_id).current_price)

        with self.subTest("increment bid"):
            event = self.carol.place_increment_bid(auction_id)
            self.assertEqual(115, event.price)
            self.relay.flush()
            for client in self.clients:
                self.assertEqual(115, client.auction(auction_id).current_price)

        with self.subTest("bid notifications are only shown to other users"):
            self.assertEqual(
                ["bob bid $105.00 on Vintage Camera"],
                [
                    n.message
                    for n in self.notifications["carol"]
                    if n.kind == NotificationKind.BID_PLACED
                ],
            )
            self.assertEqual(
                2,
                len([n for n in self.notifications["alice"] if n.kind == NotificationKind.BID_PLACED]),
            )

    async def test_concurrent_bids_converge_on_highest_price(self):
        """
        Bob bids 110 and carol bids 115 before either bid is delivered anywhere. Alice receives the bids in the order
        they were sent and applies both. Bob receives them in the opposite order: 115 is applied and 110 is dropped,
        because it no longer exceeds the current price. Every client ends at 115, but the bid histories differ.
        """
        auction_id = self.create_auction()

        self.bob.place_bid(auction_id, 110)
        self.carol.place_bid(auction_id, 115)

        # alice: 110, 115
        self.assertTrue(self.relay.deliver_next("alice"))
        self.assertTrue(self.relay.deliver_next("alice"))
        # bob: 115, 110
        self.assertTrue(self.relay.deliver_next("bob", position=1))
        self.assertTrue(self.relay.deliver_next("bob"))
        # carol: 110, 115
        self.relay.flush()

        for client in self.clients:
            with self.subTest(client=client.identity.user):
                auction = client.auction(auction_id)
                self.assertEqual(115, auction.current_price)
                self.assertEqual("carol", auction.last_bid.user)

        self.assertEqual(
            [110, 115], [bid.price for bid in self.alice.auction(auction_id).bids]
        )
        self.assertEqual([115], [bid.price for bid in self.bob.auction(auction_id).bids])
        self.assertEqual(
            [110, 115], [bid.price for bid in self.carol.auction(auction_id).bids]
        )

    async def test_lower_bid_after_higher_bid_is_dropped(self):
        auction_id = self.create_auction()

        self.bob.place_bid(auction_id, 105)
        self.carol.place_bid(auction_id, 101)
        self.relay.flush()

        for client in self.clients:
            with self.subTest(client=client.identity.user):
                auction = client.auction(auction_id)
                self.assertEqual(105, auction.current_price)
                self.assertEqual(1, len(auction.bids))

    async def test_auction_is_finalized_by_every_client(self):
        auction_id = self.create_auction(duration=timedelta(seconds=30))
        self.bob.place_bid(auction_id, 150)
        self.relay.flush()

        self.scheduler.advance(timedelta(seconds=30))
        self.relay.flush()

        for client in self.clients:
            with self.subTest(client=client.identity.user):
                auction = client.auction(auction_id)
                self.assertEqual(AuctionState.FINALIZED, auction.state)
                self.assertEqual("bob", auction.winner)
                self.assertEqual([], client.active_auctions())
                self.assertEqual([auction], client.finalized_auctions())
                self.assertEqual(
                    1,
                    len(
                        [
                            n
                            for n in self.notifications[client.identity.user]
                            if n.kind == NotificationKind.AUCTION_FINALIZED
                        ]
                    ),
                )

        with self.subTest("bids on finalized auctions are rejected"):
            with self.assertRaises(RejectedBid):
                self.carol.place_bid(auction_id, 500)

    async def test_repeated_finalization_is_idempotent(self):
        auction_id = self.create_auction()
        self.bob.place_bid(auction_id, 150)
        self.relay.flush()

        self.relay.connect("session_mallory").broadcast(
            encode(AuctionFinalized(auction_id, UserId("bob")))
        )
        self.relay.flush()
        finalized = self.alice.auction(auction_id).copy()

        self.relay.connect("session_mallory").broadcast(
            encode(AuctionFinalized(auction_id, UserId("carol")))
        )
        self.relay.flush()
        self.assertEqual(finalized, self.alice.auction(auction_id))
        self.assertEqual("bob", self.alice.auction(auction_id).winner)

    async def test_late_joiner_is_synced(self):
        auction_id = self.create_auction()
        self.bob.place_bid(auction_id, 120)
        self.relay.flush()

        dave = await start_client(self.relay, self.scheduler, "dave")
        self.assertEqual(0, len(dave.registry))
        self.relay.flush()

        auction = dave.auction(auction_id)
        self.assertEqual(self.alice.auction(auction_id), auction)
        self.assertEqual(120, auction.current_price)

        with self.subTest("the snapshot is only applied by the requester"):
            self.assertEqual(1, len(self.alice.registry))
            self.assertEqual(1, len(self.bob.registry))

        with self.subTest("synced client can bid"):
            dave.place_bid(auction_id, 130)
            self.relay.flush()
            self.assertEqual(130, self.alice.auction(auction_id).current_price)

        await dave.stop()

    async def test_non_finite_bid_does_not_block_sync(self):
        auction_id = self.create_auction()
        inf_bid = Message.create(
            "bid_placed",
            msgpack.packb({"auction_id": auction_id, "user": "mallory", "price": float("inf")}),
        ).pack()
        self.relay.route("session_mallory", inf_bid)
        self.relay.flush()
        self.assertEqual(100, self.alice.auction(auction_id).current_price)

        dave = await start_client(self.relay, self.scheduler, "dave")
        self.relay.flush()
        self.assertEqual(self.alice.auction(auction_id), dave.auction(auction_id))
        await dave.stop()

    async def test_disconnected_client(self):
        auction_id = self.create_auction()

        self.relay.disconnect(self.carol.identity.session_id)
        self.assertFalse(self.carol.connected)
        with self.assertRaises(TransportUnavailable):
            self.carol.place_bid(auction_id, 200)

        self.bob.place_bid(auction_id, 150)
        self.relay.flush()
        self.assertEqual(100, self.carol.auction(auction_id).current_price)

        with self.subTest("reconnected client is synced"):
            self.relay.connect(self.carol.identity.session_id)
            self.assertTrue(self.carol.connected)
            self.relay.flush()
            self.assertEqual(150, self.carol.auction(auction_id).current_price)

    async def test_auction_updates(self):
        auction_id = self.create_auction()
        self.bob.place_bid(auction_id, 110)
        self.relay.flush()
        bids = list(self.bob.auction(auction_id).bids)
        bids.append(Bid(UserId("carol"), 130.0, self.scheduler.now()))

        self.alice.on_message(
            encode(
                AuctionUpdated(
                    auction_id,
                    {"current_price": 130.0, "bids": bids, "last_bid": bids[-1]},
                )
            )
        )
        auction = self.alice.auction(auction_id)
        self.assertEqual(bids, auction.bids)
        self.assertEqual(130, auction.current_price)
        self.assertEqual("carol", auction.last_bid.user)

        with self.subTest("update that lowers the current price is dropped"):
            self.alice.on_message(
                encode(
                    AuctionUpdated(
                        auction_id,
                        {"current_price": 110.0, "bids": bids[:1], "last_bid": bids[0]},
                    )
                )
            )
            self.assertEqual(130, self.alice.auction(auction_id).current_price)

    async def test_invalid_messages_are_dropped(self):
        auction_id = self.create_auction()
        before = self.alice.auction(auction_id).copy()

        for name, data in [
            ("garbage", b"garbage"),
            ("unrecognized event", Message.create("auction_cancelled", b"\x80").pack()),
            ("malformed bid", Message.create("bid_placed", b"\x80").pack()),
        ]:
            with self.subTest(name):
                self.alice.on_message(data)
                self.assertEqual(before, self.alice.auction(auction_id))

    async def test_unknown_auction(self):
        with self.assertRaises(UnknownAuctionReference):
            self.alice.auction(AuctionId("unknown"))
        self.assertIsNone(self.alice.get_auction(AuctionId("unknown")))
        with self.assertRaises(RejectedBid):
            self.alice.place_bid(AuctionId("unknown"), 100)

    async def test_notifications_observable(self):
        titles: list[str] = []
        self.bob.notifications.pipe(
            ops.filter(lambda n: n.kind == NotificationKind.AUCTION_CREATED),
            ops.map(lambda n: n.message),
        ).subscribe(on_next=titles.append)

        self.create_auction()
        self.assertEqual(["New auction: Vintage Camera"], titles)

    async def test_stopped_client_ignores_messages(self):
        await self.carol.stop()
        auction_id = self.create_auction()
        self.assertIsNone(self.carol.get_auction(auction_id))


if __name__ == "__main__":
    unittest.main()
