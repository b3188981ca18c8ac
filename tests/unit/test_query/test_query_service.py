"""Unit tests for RecommendationQueryService."""

from datetime import UTC, date, datetime

import pytest

from feedrec.query.service import RecommendationQueryService
from feedrec.store.errors import UserNotFoundError
from feedrec.store.models import FeedType
from tests.helpers.factories import (
    InMemoryRepository,
    make_recommendation,
    make_resource,
    make_user,
)
from tests.helpers.time import FIXED_NOW, FIXED_TODAY


@pytest.fixture
def repo() -> InMemoryRepository:
    repo = InMemoryRepository()
    repo.add_user(make_user("user-1"))
    return repo


@pytest.fixture
def service(repo: InMemoryRepository) -> RecommendationQueryService:
    return RecommendationQueryService(repo, repo, clock=lambda: FIXED_NOW)


def _seed(
    repo: InMemoryRepository,
    feed_date: date,
    resource_ids: list[str],
    feed_type: FeedType = FeedType.PAPER,
) -> None:
    repo.rows[("user-1", feed_type, feed_date)] = [
        make_recommendation(
            make_resource(rid, feed_type=feed_type), i, feed_date, feed_type=feed_type
        )
        for i, rid in enumerate(resource_ids, start=1)
    ]


class TestGetFeedRecommendations:
    """Tests for get_feed_recommendations."""

    def test_exact_date(
        self, repo: InMemoryRepository, service: RecommendationQueryService
    ) -> None:
        """Test rows for the requested date are returned in position order."""
        _seed(repo, date(2024, 12, 1), ["a", "b", "c"])

        feed = service.get_feed_recommendations("user-1", FeedType.PAPER, date(2024, 12, 1))

        assert feed.date == date(2024, 12, 1)
        assert [v.resource.id for v in feed.recommendations] == ["a", "b", "c"]
        assert [v.position for v in feed.recommendations] == [1, 2, 3]

    def test_falls_back_to_previous_date(
        self, repo: InMemoryRepository, service: RecommendationQueryService
    ) -> None:
        """Test an empty date falls back to the latest earlier date."""
        _seed(repo, date(2024, 11, 30), ["x", "y"])

        feed = service.get_feed_recommendations("user-1", FeedType.PAPER, date(2024, 12, 1))

        assert feed.date == date(2024, 11, 30)
        assert [v.resource.id for v in feed.recommendations] == ["x", "y"]
        assert [v.position for v in feed.recommendations] == [1, 2]

    def test_fallback_picks_most_recent(
        self, repo: InMemoryRepository, service: RecommendationQueryService
    ) -> None:
        """Test the most recent earlier date wins over older ones."""
        _seed(repo, date(2024, 11, 20), ["old"])
        _seed(repo, date(2024, 11, 28), ["newer"])

        feed = service.get_feed_recommendations("user-1", FeedType.PAPER, date(2024, 12, 1))

        assert feed.date == date(2024, 11, 28)

    def test_never_falls_forward(
        self, repo: InMemoryRepository, service: RecommendationQueryService
    ) -> None:
        """Test later dates are never used as fallback."""
        _seed(repo, date(2024, 12, 5), ["future"])

        feed = service.get_feed_recommendations("user-1", FeedType.PAPER, date(2024, 12, 1))

        assert feed.is_empty
        assert feed.date == date(2024, 12, 1)

    def test_no_data_returns_empty(self, service: RecommendationQueryService) -> None:
        """Test no data at all is not an error."""
        feed = service.get_feed_recommendations("user-1", FeedType.VIDEO, FIXED_TODAY)

        assert feed.recommendations == []
        assert feed.date == FIXED_TODAY
        assert feed.feed_type == FeedType.VIDEO

    def test_unknown_user(self, service: RecommendationQueryService) -> None:
        """Test an unknown user raises UserNotFoundError."""
        with pytest.raises(UserNotFoundError) as exc_info:
            service.get_feed_recommendations("ghost", FeedType.PAPER, FIXED_TODAY)

        assert exc_info.value.user_id == "ghost"

    def test_serialized_shape(
        self, repo: InMemoryRepository, service: RecommendationQueryService
    ) -> None:
        """Test the JSON shape exposed to API callers."""
        _seed(repo, FIXED_TODAY, ["a"])

        data = service.get_feed_recommendations(
            "user-1", FeedType.PAPER, FIXED_TODAY
        ).model_dump(mode="json")

        assert data["feed_type"] == "Paper"
        assert data["date"] == "2024-12-01"
        assert set(data["recommendations"][0]) == {
            "id",
            "resource",
            "position",
            "score",
            "generated_at",
        }


class TestGetTodaysRecommendations:
    """Tests for get_todays_recommendations."""

    def test_omits_feed_types_without_data(
        self, repo: InMemoryRepository, service: RecommendationQueryService
    ) -> None:
        """Test only feed types with reachable data are returned."""
        _seed(repo, FIXED_TODAY, ["p1"], FeedType.PAPER)
        _seed(repo, date(2024, 11, 29), ["b1"], FeedType.BLOG_POST)

        feeds = service.get_todays_recommendations("user-1")

        assert [f.feed_type for f in feeds] == [FeedType.PAPER, FeedType.BLOG_POST]
        assert feeds[1].date == date(2024, 11, 29)

    def test_declaration_order(
        self, repo: InMemoryRepository, service: RecommendationQueryService
    ) -> None:
        """Test feeds come back in FeedType declaration order."""
        for feed_type in reversed(list(FeedType)):
            _seed(repo, FIXED_TODAY, [f"{feed_type.value}-1"], feed_type)

        feeds = service.get_todays_recommendations("user-1")

        assert [f.feed_type for f in feeds] == list(FeedType)

    def test_today_is_utc(self, repo: InMemoryRepository) -> None:
        """Test today is derived from the clock in UTC."""
        clock_time = datetime(2024, 12, 1, 23, 30, tzinfo=UTC)
        service = RecommendationQueryService(repo, repo, clock=lambda: clock_time)

        assert service.today() == date(2024, 12, 1)

    def test_unknown_user(self, service: RecommendationQueryService) -> None:
        """Test an unknown user raises UserNotFoundError."""
        with pytest.raises(UserNotFoundError):
            service.get_todays_recommendations("ghost")


class TestGetHistory:
    """Tests for get_history."""

    def test_groups_newest_first(
        self, repo: InMemoryRepository, service: RecommendationQueryService
    ) -> None:
        """Test history is grouped by date and ordered newest first."""
        _seed(repo, date(2024, 11, 29), ["old1", "old2"])
        _seed(repo, date(2024, 11, 30), ["new1"])

        page = service.get_history("user-1")

        assert [f.date for f in page.feeds] == [date(2024, 11, 30), date(2024, 11, 29)]
        assert [v.resource.id for v in page.feeds[1].recommendations] == [
            "old1",
            "old2",
        ]

    def test_paging(
        self, repo: InMemoryRepository, service: RecommendationQueryService
    ) -> None:
        """Test page_size and page_number slice the rows."""
        _seed(repo, date(2024, 11, 30), ["a", "b", "c"])

        page = service.get_history("user-1", page_size=2, page_number=2)

        assert page.page_number == 2
        assert [v.resource.id for f in page.feeds for v in f.recommendations] == ["c"]
