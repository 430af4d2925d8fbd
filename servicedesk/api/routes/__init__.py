"""Route modules exposed by the API package."""

from . import coverage, ping, tickets, tracking

__all__ = ["coverage", "ping", "tickets", "tracking"]
