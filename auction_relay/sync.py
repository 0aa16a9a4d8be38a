"""
Bootstrap synchronization for clients that join or reconnect
"""
from reactivex.abc import DisposableBase

from auction_relay.core.logging import get_logger
from auction_relay.domain.errors import TransportUnavailable
from auction_relay.events import SyncRequest, SyncSnapshot, encode
from auction_relay.notifications import NotificationEmitter
from auction_relay.registry import AuctionRegistry
from auction_relay.transport import Scope, Transport


class SyncCoordinator:
    """
    Sync handshake
    --------------
    1. When the transport connects, the client broadcasts a sync request to all clients, itself included.
    2. Every other client answers with a snapshot of its entire registry.
    3. The requester replaces its registry with each snapshot it receives, so the last snapshot to arrive wins.

    Notes
    -----
    - Every peer answers, so N-1 snapshots are sent for each request. Which snapshot wins is not deterministic.
    - Snapshots are addressed to the requester. A snapshot without a requester is applied by every receiver.
    """

    def __init__(
        self,
        session_id: str,
        registry: AuctionRegistry,
        transport: Transport,
        notifications: NotificationEmitter | None = None,
    ):
        self.__session_id = session_id
        self.__registry = registry
        self.__transport = transport
        self.__notifications = notifications
        self.__connection_subscription: DisposableBase | None = None
        self.__logger = get_logger(self)

    def attach(self):
        """
        Requests a sync every time the transport (re)connects
        """
        if self.__connection_subscription is None:
            self.__connection_subscription = self.__transport.connection_observable.subscribe(
                on_next=self.__on_connection_state
            )

    def detach(self):
        if self.__connection_subscription:
            self.__connection_subscription.dispose()
            self.__connection_subscription = None

    def __on_connection_state(self, connected: bool):
        self.__logger.info("connected=%s", connected)
        if connected:
            self.request_sync()

    def request_sync(self) -> SyncRequest | None:
        """
        :return: the broadcast request, or None if the transport is not connected
        """
        request = SyncRequest(requester_id=self.__session_id)
        try:
            self.__transport.broadcast(encode(request), Scope.ALL)
        except TransportUnavailable:
            self.__logger.warning("disconnected - sync request not sent")
            return None
        return request

    def handle_sync_request(self, request: SyncRequest) -> SyncSnapshot | None:
        """
        Answers another client's sync request with the full local registry.

        :return: the broadcast snapshot, or None if the request was this client's own
        """
        if request.requester_id == self.__session_id:
            return None

        snapshot = SyncSnapshot(
            auctions=self.__registry.snapshot(),
            requester_id=request.requester_id,
        )
        try:
            self.__transport.broadcast(encode(snapshot), Scope.OTHERS)
        except TransportUnavailable:
            self.__logger.warning(
                "disconnected - sync request from %s not answered", request.requester_id
            )
            return None
        self.__logger.debug(
            "snapshot sent to %s: %s auctions",
            request.requester_id,
            len(snapshot.auctions),
        )
        return snapshot

    def handle_snapshot(self, snapshot: SyncSnapshot) -> bool:
        """
        :return: True if the snapshot replaced the registry
        """
        if snapshot.requester_id not in (None, self.__session_id):
            return False

        self.__registry.replace_all(snapshot.auctions)
        if self.__notifications:
            self.__notifications.state_synced(len(snapshot.auctions))
        return True
