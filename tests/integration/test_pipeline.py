"""End-to-end tests: generate into SQLite, then read back through the query service."""

from collections.abc import Generator
from datetime import timedelta
from pathlib import Path

import pytest

from feedrec.config.schemas import FeedsConfig, RecommendationConfig
from feedrec.jobs.daily_feed import DailyFeedJob
from feedrec.query.service import RecommendationQueryService
from feedrec.recommendation.generator import RecommendationGenerator
from feedrec.recommendation.metrics import GenerationMetrics
from feedrec.store.metrics import StoreMetrics
from feedrec.store.models import FeedType, VoteType
from feedrec.store.store import SqliteStore
from tests.helpers.factories import make_resource, make_topic, make_user
from tests.helpers.time import FIXED_NOW, FIXED_TODAY


pytestmark = pytest.mark.integration


@pytest.fixture
def store(tmp_path: Path) -> Generator[SqliteStore]:
    """Create a seeded store."""
    StoreMetrics.reset()
    GenerationMetrics.reset()
    store = SqliteStore(tmp_path / "feedrec.sqlite", run_id="test-pipeline")
    store.connect()

    for topic_id in ("ml", "nlp", "cv"):
        store.upsert_topic(make_topic(topic_id))
    store.upsert_user(make_user("alice", interest_topic_ids=["ml"]))
    store.upsert_user(make_user("bob"))

    for i in range(6):
        store.upsert_resource(
            make_resource(f"paper-{i}", topic_ids=["ml" if i % 2 else "cv"], age_days=i)
        )
    store.upsert_resource(make_resource("video-1", feed_type=FeedType.VIDEO))
    store.upsert_resource(make_resource("voted", topic_ids=["ml"], source_id="arxiv"))
    store.record_vote("alice", "voted", VoteType.UPVOTE, created_at=FIXED_NOW)

    yield store
    store.close()


def _generator(store: SqliteStore, count: int = 4) -> RecommendationGenerator:
    config = RecommendationConfig(feeds=FeedsConfig(default_count=count))
    return RecommendationGenerator(
        resources=store,
        users=store,
        votes=store,
        recommendations=store,
        config=config,
        clock=lambda: FIXED_NOW,
    )


class TestPipeline:
    """Generation and query against a real database."""

    def test_generate_then_query(self, store: SqliteStore) -> None:
        """Test a generated feed is served with 1-based positions."""
        _generator(store).generate("alice", FeedType.PAPER, FIXED_TODAY)
        service = RecommendationQueryService(store, store, clock=lambda: FIXED_NOW)

        feed = service.get_feed_recommendations("alice", FeedType.PAPER, FIXED_TODAY)

        ids = [v.resource.id for v in feed.recommendations]
        assert [v.position for v in feed.recommendations] == [1, 2, 3, 4]
        assert "voted" not in ids
        assert len(set(ids)) == len(ids)
        scores = [v.score for v in feed.recommendations]
        assert scores == sorted(scores, reverse=True)

    def test_regeneration_is_idempotent(self, store: SqliteStore) -> None:
        """Test running twice yields the same rows and no duplicates."""
        generator = _generator(store)
        generator.generate("alice", FeedType.PAPER, FIXED_TODAY)
        first = store.get_recommendations("alice", FeedType.PAPER, FIXED_TODAY)

        generator.generate("alice", FeedType.PAPER, FIXED_TODAY)
        second = store.get_recommendations("alice", FeedType.PAPER, FIXED_TODAY)

        assert [(r.position, r.resource_id, r.score) for r in first] == [
            (r.position, r.resource_id, r.score) for r in second
        ]
        assert store.get_stats()["recommendations"] == 4

    def test_next_day_excludes_yesterdays_picks(self, store: SqliteStore) -> None:
        """Test resources recommended yesterday are not repeated today."""
        yesterday = FIXED_TODAY - timedelta(days=1)
        generator = _generator(store, count=2)
        generator.generate("alice", FeedType.PAPER, yesterday)
        picked = {r.resource_id for r in store.get_recommendations("alice", FeedType.PAPER, yesterday)}

        generator.generate("alice", FeedType.PAPER, FIXED_TODAY)

        today = {r.resource_id for r in store.get_recommendations("alice", FeedType.PAPER, FIXED_TODAY)}
        assert today
        assert not today & picked

    def test_query_falls_back_to_previous_day(self, store: SqliteStore) -> None:
        """Test a day without a run serves the previous day's set."""
        _generator(store).generate("alice", FeedType.PAPER, FIXED_TODAY)
        tomorrow = FIXED_TODAY + timedelta(days=1)
        service = RecommendationQueryService(store, store)

        feed = service.get_feed_recommendations("alice", FeedType.PAPER, tomorrow)

        assert feed.date == FIXED_TODAY
        assert len(feed.recommendations) == 4

    def test_daily_job_across_users(self, store: SqliteStore) -> None:
        """Test the batch writes every user's feeds."""
        job = DailyFeedJob(
            _generator(store), store, run_id="test-pipeline", max_workers=3,
            clock=lambda: FIXED_NOW,
        )

        result = job.run(feed_types=[FeedType.PAPER, FeedType.VIDEO])

        assert result.success
        assert len(result.outcomes) == 4
        service = RecommendationQueryService(store, store, clock=lambda: FIXED_NOW)
        feeds = service.get_todays_recommendations("bob")
        assert [f.feed_type for f in feeds] == [FeedType.PAPER, FeedType.VIDEO]
        assert [v.resource.id for v in feeds[1].recommendations] == ["video-1"]
