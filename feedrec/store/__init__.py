"""SQLite store for resources, users, votes, and daily recommendations.

This module provides persistent storage for:
- Users, topics, and their interests
- Resources and votes produced by ingestion and the API
- Daily recommendation sets, replaced atomically per (user, feed type, date)
"""

from feedrec.store.errors import (
    MigrationError,
    PersistenceError,
    StoreConnectionError,
    StoreError,
    UserNotFoundError,
)
from feedrec.store.metrics import StoreMetrics
from feedrec.store.models import (
    FeedType,
    Recommendation,
    Resource,
    ResourceVote,
    Topic,
    User,
    VoteType,
)
from feedrec.store.protocols import (
    RecommendationRepository,
    ResourceRepository,
    UserRepository,
    VoteRepository,
)
from feedrec.store.store import SqliteStore


__all__ = [
    # Errors
    "MigrationError",
    "PersistenceError",
    "StoreConnectionError",
    "StoreError",
    "UserNotFoundError",
    # Metrics
    "StoreMetrics",
    # Models
    "FeedType",
    "Recommendation",
    "Resource",
    "ResourceVote",
    "Topic",
    "User",
    "VoteType",
    # Protocols
    "RecommendationRepository",
    "ResourceRepository",
    "UserRepository",
    "VoteRepository",
    # Store
    "SqliteStore",
]
