from datetime import timedelta

from auction_relay.client import AuctionClient
from auction_relay.domain.auction import ClientIdentity
from auction_relay.transport.local import LocalRelay
from tests.support.scheduler import ManualScheduler


async def start_client(
    relay: LocalRelay,
    scheduler: ManualScheduler,
    name: str,
    tick_interval: timedelta = timedelta(seconds=1),
) -> AuctionClient:
    """
    Connects a client named `name` to the relay and starts it.

    The client's sync request is queued on the relay: flush the relay to deliver it.
    """
    identity = ClientIdentity(session_id=f"session_{name}", name=name)
    client = AuctionClient(
        identity=identity,
        transport=relay.connect(identity.session_id),
        scheduler=scheduler,
        tick_interval=tick_interval,
    )
    await client.start()
    return client
