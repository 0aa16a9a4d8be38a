import asyncio
import unittest

from auction_relay.domain.errors import TransportUnavailable
from auction_relay.transport import Scope
from auction_relay.transport.local import LocalRelay
from tests.test_support import AuctionRelayIsolatedAsyncioTestCase


class LocalRelayTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.relay = LocalRelay()
        self.received: dict[str, list[bytes]] = {}
        self.transports = {}
        for client_id in ["alice", "bob", "carol"]:
            transport = self.relay.connect(client_id)
            received: list[bytes] = []
            transport.subscribe(received.append)
            self.received[client_id] = received
            self.transports[client_id] = transport

    def test_scopes(self):
        for scope, recipients in [
            (Scope.ALL, ["alice", "bob", "carol"]),
            (Scope.OTHERS, ["bob", "carol"]),
            (Scope.SELF, ["alice"]),
        ]:
            with self.subTest(scope=scope):
                for received in self.received.values():
                    received.clear()

                self.transports["alice"].broadcast(b"msg", scope)
                self.assertEqual(len(recipients), self.relay.flush())
                self.assertEqual(
                    recipients,
                    [client_id for client_id, received in self.received.items() if received],
                )

    def test_delivery_is_queued(self):
        self.transports["alice"].broadcast(b"1")
        self.transports["bob"].broadcast(b"2")
        self.assertEqual([], self.received["carol"])
        self.assertEqual([b"1", b"2"], self.relay.pending("carol"))

        with self.subTest("messages can be delivered out of order"):
            self.assertTrue(self.relay.deliver_next("carol", position=1))
            self.assertTrue(self.relay.deliver_next("carol"))
            self.assertFalse(self.relay.deliver_next("carol"))
            self.assertEqual([b"2", b"1"], self.received["carol"])

        self.relay.flush()
        self.assertEqual([b"1", b"2"], self.received["alice"])

    def test_flush_delivers_messages_broadcast_by_handlers(self):
        bob = self.transports["bob"]

        def echo(data: bytes):
            if data == b"ping":
                bob.broadcast(b"pong", Scope.OTHERS)

        bob.subscribe(echo)
        self.transports["alice"].broadcast(b"ping", Scope.OTHERS)
        self.relay.flush()
        self.assertEqual([b"ping", b"pong"], self.received["carol"])
        self.assertEqual([b"pong"], self.received["alice"])

    def test_disconnect(self):
        connection_states: list[bool] = []
        self.transports["carol"].connection_observable.subscribe(
            on_next=connection_states.append
        )
        self.transports["alice"].broadcast(b"1")

        self.relay.disconnect("carol")
        self.assertFalse(self.transports["carol"].connected)
        with self.subTest("queued messages are dropped"):
            self.assertEqual([], self.relay.pending("carol"))

        with self.assertRaises(TransportUnavailable):
            self.transports["carol"].broadcast(b"2")

        self.transports["alice"].broadcast(b"3")
        self.relay.flush()
        self.assertEqual([], self.received["carol"])

        with self.subTest("reconnected client uses the same transport"):
            self.assertIs(self.transports["carol"], self.relay.connect("carol"))
            self.transports["alice"].broadcast(b"4")
            self.relay.flush()
            self.assertEqual([b"4"], self.received["carol"])

        self.assertEqual([True, False, True], connection_states)

    def test_unsubscribe(self):
        received: list[bytes] = []
        unsubscribe = self.transports["bob"].subscribe(received.append)
        unsubscribe()
        self.transports["alice"].broadcast(b"1")
        self.relay.flush()
        self.assertEqual([], received)


class LocalRelayEventLoopTestCase(AuctionRelayIsolatedAsyncioTestCase):
    async def test_flushes_on_event_loop(self):
        relay = LocalRelay(asyncio.get_running_loop())
        alice = relay.connect("alice")
        received: list[bytes] = []
        relay.connect("bob").subscribe(received.append)

        alice.broadcast(b"1")
        alice.broadcast(b"2")
        self.assertEqual([], received)

        await asyncio.sleep(0)
        self.assertEqual([b"1", b"2"], received)


if __name__ == "__main__":
    unittest.main()
