"""Protocol interfaces for the stores the pipeline consumes.

The recommendation pipeline depends only on these shapes. ``SqliteStore``
implements all of them; other backends can be swapped in as long as they
match the signatures.
"""

from datetime import date, datetime
from typing import Protocol, runtime_checkable

from feedrec.store.models import (
    FeedType,
    Recommendation,
    Resource,
    ResourceVote,
    User,
)


@runtime_checkable
class ResourceRepository(Protocol):
    """Read access to eligible resources."""

    def list_resources(
        self,
        feed_type: FeedType,
        created_since: datetime | None = None,
    ) -> list[Resource]:
        """List resources of a feed type, optionally created after a cutoff."""
        ...


@runtime_checkable
class UserRepository(Protocol):
    """Read access to users."""

    def user_exists(self, user_id: str) -> bool:
        """Check whether a user exists."""
        ...

    def get_user(self, user_id: str) -> User | None:
        """Get a user by ID."""
        ...

    def list_user_ids(self) -> list[str]:
        """List all user IDs in a stable order."""
        ...


@runtime_checkable
class VoteRepository(Protocol):
    """Read access to vote history."""

    def get_votes_by_user(self, user_id: str) -> list[ResourceVote]:
        """Get all votes cast by a user."""
        ...


@runtime_checkable
class RecommendationRepository(Protocol):
    """Persistence for daily recommendation sets."""

    def replace_recommendations(
        self,
        user_id: str,
        feed_type: FeedType,
        feed_date: date,
        recommendations: list[Recommendation],
    ) -> int:
        """Atomically replace every row for the (user, feed type, date) key.

        Returns:
            Number of rows written.
        """
        ...

    def get_recommendations(
        self,
        user_id: str,
        feed_type: FeedType,
        feed_date: date,
    ) -> list[Recommendation]:
        """Get rows for an exact key ordered by position."""
        ...

    def get_most_recent_date_before(
        self,
        user_id: str,
        feed_type: FeedType,
        before: date,
    ) -> date | None:
        """Get the latest date strictly before ``before`` that has rows."""
        ...

    def get_recommended_resource_ids(
        self,
        user_id: str,
        feed_type: FeedType,
        start: date,
        end: date,
    ) -> set[str]:
        """Get resource IDs recommended with a date in ``[start, end)``."""
        ...

    def get_history(
        self,
        user_id: str,
        feed_type: FeedType | None = None,
        page_size: int = 30,
        page_number: int = 1,
    ) -> list[Recommendation]:
        """Get a page of past recommendations, newest date first."""
        ...
