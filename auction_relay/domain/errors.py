"""
Auction errors

None of these are fatal: the local registry always stays in a well-defined state.
"""


class AuctionError(Exception):
    """
    Base exception
    """


class ValidationError(AuctionError):
    """
    A local command failed validation. It is surfaced to the caller and nothing is broadcast.
    """


class RejectedBid(ValidationError):
    """
    Bid is not acceptable against the local view of the auction
    """


class UnknownAuctionReference(AuctionError):
    """
    Auction ID is not known to the local registry
    """


class MalformedEvent(AuctionError):
    """
    Inbound event payload failed validation
    """


class TransportUnavailable(AuctionError):
    """
    The transport is not connected. Nothing is queued or retried.
    """
