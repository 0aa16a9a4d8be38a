import unittest
from datetime import datetime, timedelta, UTC

from auction_relay.domain.auction import (
    Auction,
    AuctionState,
    Bid,
    ClientIdentity,
    UserId,
    from_epoch_millis,
    to_epoch_millis,
    truncate_millis,
)

NOW = datetime(2026, 3, 1, 12, 0, 0, 123456, tzinfo=UTC)


def create_auction(
    initial_price: float = 100.0,
    min_increment: float = 10.0,
    duration: timedelta = timedelta(minutes=5),
) -> Auction:
    return Auction.create(
        title="Vintage Camera",
        initial_price=initial_price,
        min_increment=min_increment,
        duration=duration,
        creator=UserId("alice"),
        now=NOW,
    )


def bid(user: str, price: float) -> Bid:
    return Bid(user=UserId(user), price=price, timestamp=truncate_millis(NOW))


class AuctionTestCase(unittest.TestCase):
    def test_create(self):
        auction = create_auction()
        self.assertEqual(AuctionState.ACTIVE, auction.state)
        self.assertEqual(auction.initial_price, auction.current_price)
        self.assertEqual([], auction.bids)
        self.assertIsNone(auction.last_bid)
        self.assertIsNone(auction.winner)
        self.assertEqual(truncate_millis(NOW), auction.start_timestamp)
        self.assertEqual(
            auction.start_timestamp + timedelta(minutes=5), auction.end_timestamp
        )
        with self.subTest("auction IDs are unique"):
            self.assertNotEqual(auction.id, create_auction().id)

    def test_strictly_increasing_bids(self):
        auction = create_auction()
        prices = [101.0, 150.0, 150.5, 200.0]
        for price in prices:
            self.assertTrue(auction.apply_bid(bid("bob", price)))

        self.assertEqual(prices[-1], auction.current_price)
        self.assertEqual(len(prices), len(auction.bids))
        self.assertEqual(auction.bids[-1], auction.last_bid)

    def test_bid_must_exceed_current_price(self):
        auction = create_auction(initial_price=100, min_increment=10)

        with self.subTest("any price above the current price is accepted"):
            self.assertTrue(auction.apply_bid(bid("bob", 105)))
            self.assertEqual(105, auction.current_price)

        for price in [105, 100, 50]:
            with self.subTest(price=price):
                self.assertFalse(auction.accepts(price))
                self.assertFalse(auction.apply_bid(bid("carol", price)))
                self.assertEqual(105, auction.current_price)
                self.assertEqual(1, len(auction.bids))
                self.assertEqual("bob", auction.last_bid.user)

    def test_next_min_bid(self):
        auction = create_auction(initial_price=100, min_increment=10)
        self.assertEqual(110, auction.next_min_bid)
        auction.apply_bid(bid("bob", 115))
        self.assertEqual(125, auction.next_min_bid)

    def test_finalize(self):
        auction = create_auction()
        auction.apply_bid(bid("bob", 120))

        self.assertTrue(auction.finalize(UserId("bob")))
        self.assertEqual(AuctionState.FINALIZED, auction.state)
        self.assertEqual("bob", auction.winner)
        self.assertEqual(timedelta(0), auction.remaining)

        with self.subTest("finalization is idempotent"):
            finalized = auction.copy()
            self.assertFalse(auction.finalize(UserId("carol")))
            self.assertEqual(finalized, auction)

        with self.subTest("bids are not applied to finalized auctions"):
            self.assertFalse(auction.apply_bid(bid("carol", 500)))
            self.assertEqual(120, auction.current_price)

    def test_finalize_without_bids(self):
        auction = create_auction()
        self.assertTrue(auction.finalize(None))
        self.assertIsNone(auction.winner)

    def test_time_remaining(self):
        auction = create_auction(duration=timedelta(minutes=1))
        self.assertEqual(
            timedelta(seconds=30),
            auction.time_remaining(auction.start_timestamp + timedelta(seconds=30)),
        )
        self.assertLess(
            auction.time_remaining(auction.end_timestamp + timedelta(seconds=1)),
            timedelta(0),
        )

    def test_copy_does_not_share_bids(self):
        auction = create_auction()
        copy = auction.copy()
        auction.apply_bid(bid("bob", 150))
        self.assertEqual([], copy.bids)
        self.assertEqual(100, copy.current_price)

    def test_to_from_dict(self):
        auction = create_auction()
        auction.apply_bid(bid("bob", 110))
        auction.apply_bid(bid("carol", 120))
        auction.finalize(UserId("carol"))

        self.assertEqual(auction, Auction.from_dict(auction.to_dict()))
        self.assertNotIn("remaining", auction.to_dict())

    def test_from_dict_validation(self):
        valid = create_auction().to_dict()
        for name, changes in [
            ("missing title", {"title": None}),
            ("non-positive initial price", {"initial_price": 0}),
            ("price is not a number", {"current_price": "100"}),
            ("price is a bool", {"min_increment": True}),
            ("current price below initial price", {"current_price": 50}),
            ("end before start", {"end_timestamp": valid["start_timestamp"] - 1}),
            ("timestamp is not millis", {"start_timestamp": "today"}),
            ("unknown state", {"state": "paused"}),
            ("winner on active auction", {"winner": "bob"}),
            ("bids is not an array", {"bids": "none"}),
        ]:
            with self.subTest(name):
                with self.assertRaises(ValueError):
                    Auction.from_dict(valid | changes)

        with self.subTest("missing required field"):
            data = dict(valid)
            del data["creator"]
            with self.assertRaises(KeyError):
                Auction.from_dict(data)


class EpochMillisTestCase(unittest.TestCase):
    def test_timestamps_survive_round_trip_once_truncated(self):
        timestamp = truncate_millis(NOW)
        self.assertEqual(123000, timestamp.microsecond)
        self.assertEqual(timestamp, from_epoch_millis(to_epoch_millis(timestamp)))


class ClientIdentityTestCase(unittest.TestCase):
    def test_user(self):
        with self.subTest("display name is used when set"):
            self.assertEqual("alice", ClientIdentity("session_1", " alice ").user)

        for name in [None, "", "   "]:
            with self.subTest("session ID is used without a display name", name=name):
                self.assertEqual("session_1", ClientIdentity("session_1", name).user)

    def test_create(self):
        identity = ClientIdentity.create()
        self.assertTrue(identity.session_id.startswith("user_"))
        self.assertNotEqual(identity.session_id, ClientIdentity.create().session_id)


if __name__ == "__main__":
    unittest.main()
