"""Route modules exposed by the API package."""

from . import attachments, auth, dashboard, ping, tickets, users

__all__ = ["attachments", "auth", "dashboard", "ping", "tickets", "users"]
