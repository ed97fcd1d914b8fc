"""Clients for external services."""

from simple_bookkeeping.clients.database import (
    DatabaseClient,
    DatabaseError,
    NetworkError,
    RateLimitError,
)

__all__ = ["DatabaseClient", "DatabaseError", "NetworkError", "RateLimitError"]
