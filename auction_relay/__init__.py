"""
Replicated live auctions over a best-effort broadcast relay.
"""
