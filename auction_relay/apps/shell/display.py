"""
Text rendering for the auction shell
"""
from datetime import datetime, timedelta

from auction_relay.domain.auction import Auction


def format_remaining(remaining: timedelta | None) -> str:
    """
    Renders the time left in its two largest units

    >>> format_remaining(timedelta(days=1, hours=2, minutes=3))
    '1d 2h'
    >>> format_remaining(timedelta(minutes=4, seconds=5))
    '4m 5s'
    >>> format_remaining(timedelta(0))
    'Ended'
    """
    if remaining is None or remaining <= timedelta(0):
        return "Ended"

    seconds = int(remaining.total_seconds())
    minutes, seconds = divmod(seconds, 60)
    hours, minutes = divmod(minutes, 60)
    days, hours = divmod(hours, 24)

    if days > 0:
        return f"{days}d {hours}h"
    if hours > 0:
        return f"{hours}h {minutes}m"
    if minutes > 0:
        return f"{minutes}m {seconds}s"
    return f"{seconds}s"


def format_price(price: float) -> str:
    return f"${price:.2f}"


def auction_summary(auction: Auction, now: datetime) -> str:
    remaining = auction.time_remaining(now) if auction.active else None
    return (
        f"{auction.id}  {auction.title}  {format_price(auction.current_price)}  "
        f"[{format_remaining(remaining)}]"
    )


def auction_details(auction: Auction, now: datetime) -> list[str]:
    lines = [
        f"{auction.title} ({auction.id})",
        f"  description: {auction.description or '-'}",
        f"  state: {auction.state}",
        f"  creator: {auction.creator}",
        f"  current price: {format_price(auction.current_price)}",
        f"  initial price: {format_price(auction.initial_price)}",
        f"  min increment: {format_price(auction.min_increment)}",
    ]
    if auction.active:
        lines.append(f"  next min bid: {format_price(auction.next_min_bid)}")
        lines.append(f"  remaining: {format_remaining(auction.time_remaining(now))}")
    else:
        lines.append(f"  winner: {auction.winner or '-'}")

    lines.append(f"  bids: {len(auction.bids)}")
    # most recent first
    for bid in reversed(auction.bids):
        lines.append(
            f"    {bid.timestamp:%H:%M:%S}  {bid.user}  {format_price(bid.price)}"
        )
    return lines
