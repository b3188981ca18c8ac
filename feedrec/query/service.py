"""Read path for persisted recommendations with historical fallback."""

from collections.abc import Callable
from datetime import UTC, date, datetime

import structlog

from feedrec.query.models import (
    FeedRecommendations,
    RecommendationHistoryPage,
    RecommendationView,
)
from feedrec.store.errors import UserNotFoundError
from feedrec.store.models import FeedType
from feedrec.store.protocols import RecommendationRepository, UserRepository


logger = structlog.get_logger()


class RecommendationQueryService:
    """Serves feeds to callers such as the HTTP API and the CLI.

    When no set exists for the requested date, the most recent earlier set
    for the same user and feed type is returned instead.
    """

    def __init__(
        self,
        users: UserRepository,
        recommendations: RecommendationRepository,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            users: User lookup.
            recommendations: Persisted recommendation sets.
            clock: Source of the current time; "today" is its UTC date.
        """
        self._users = users
        self._recommendations = recommendations
        self._clock = clock or (lambda: datetime.now(UTC))
        self._log = logger.bind(component="query")

    def today(self) -> date:
        """Today's date in UTC according to the clock."""
        now = self._clock()
        if now.tzinfo is not None:
            now = now.astimezone(UTC)
        return now.date()

    def _require_user(self, user_id: str) -> None:
        if not self._users.user_exists(user_id):
            self._log.info("user_not_found", user_id=user_id)
            raise UserNotFoundError(user_id)

    def get_feed_recommendations(
        self,
        user_id: str,
        feed_type: FeedType,
        date: date,
    ) -> FeedRecommendations:
        """Get a feed for a date, falling back to the latest earlier date.

        Args:
            user_id: Feed owner.
            feed_type: Feed type.
            date: Requested date.

        Returns:
            The feed with its effective date. Empty, with the requested
            date, when no set exists on or before it.

        Raises:
            UserNotFoundError: If the user does not exist.
        """
        self._require_user(user_id)
        return self._resolve_feed(user_id, feed_type, date)

    def get_todays_recommendations(self, user_id: str) -> list[FeedRecommendations]:
        """Get every non-empty feed for today.

        Args:
            user_id: Feed owner.

        Returns:
            Feeds in FeedType declaration order; feed types with no data on
            or before today are omitted.

        Raises:
            UserNotFoundError: If the user does not exist.
        """
        self._require_user(user_id)
        today = self.today()

        feeds = [
            self._resolve_feed(user_id, feed_type, today) for feed_type in FeedType
        ]
        return [feed for feed in feeds if not feed.is_empty]

    def get_history(
        self,
        user_id: str,
        feed_type: FeedType | None = None,
        page_size: int = 30,
        page_number: int = 1,
    ) -> RecommendationHistoryPage:
        """Get a page of past recommendations grouped into feeds.

        Args:
            user_id: Feed owner.
            feed_type: Optional feed type filter.
            page_size: Rows per page.
            page_number: 1-based page number.

        Returns:
            Page of feeds ordered by date descending.

        Raises:
            UserNotFoundError: If the user does not exist.
        """
        self._require_user(user_id)
        rows = self._recommendations.get_history(
            user_id,
            feed_type=feed_type,
            page_size=page_size,
            page_number=page_number,
        )

        grouped: dict[tuple[date, FeedType], list[RecommendationView]] = {}
        for row in rows:
            grouped.setdefault((row.feed_date, row.feed_type), []).append(
                RecommendationView.from_recommendation(row)
            )

        return RecommendationHistoryPage(
            user_id=user_id,
            page_number=page_number,
            page_size=page_size,
            feeds=[
                FeedRecommendations(feed_type=ft, date=day, recommendations=views)
                for (day, ft), views in grouped.items()
            ],
        )

    def _resolve_feed(
        self,
        user_id: str,
        feed_type: FeedType,
        requested: date,
    ) -> FeedRecommendations:
        rows = self._recommendations.get_recommendations(user_id, feed_type, requested)
        effective = requested

        if not rows:
            fallback = self._recommendations.get_most_recent_date_before(
                user_id, feed_type, requested
            )
            if fallback is not None:
                rows = self._recommendations.get_recommendations(
                    user_id, feed_type, fallback
                )
                effective = fallback
                self._log.info(
                    "feed_fallback_used",
                    user_id=user_id,
                    feed_type=feed_type.value,
                    requested_date=requested.isoformat(),
                    effective_date=fallback.isoformat(),
                )

        views = sorted(
            (RecommendationView.from_recommendation(row) for row in rows),
            key=lambda view: view.position,
        )
        return FeedRecommendations(
            feed_type=feed_type,
            date=effective if views else requested,
            recommendations=views,
        )
