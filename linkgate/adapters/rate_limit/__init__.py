"""Rate limiting adapters.

The limiter starts with an in-memory counter store and can later move to
Redis or another shared store without changing the HTTP layer.
"""
