"""Route modules exposed by the API package."""

from . import clients, notify, orders, ping, statuses

__all__ = ["clients", "notify", "orders", "ping", "statuses"]
