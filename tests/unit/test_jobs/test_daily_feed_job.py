"""Unit tests for the daily feed batch job."""

import threading
import time
from datetime import date
from unittest.mock import MagicMock

import pytest

from feedrec.config.schemas import RecommendationConfig
from feedrec.jobs.daily_feed import DailyFeedJob
from feedrec.recommendation.errors import GenerationCancelledError, GenerationError
from feedrec.recommendation.generator import RecommendationGenerator
from feedrec.recommendation.metrics import GenerationMetrics
from feedrec.recommendation.models import GenerationResult
from feedrec.store.models import FeedType
from tests.helpers.factories import InMemoryRepository, make_resource, make_user
from tests.helpers.time import FIXED_NOW, FIXED_TODAY


def _mock_generator(side_effect: object) -> MagicMock:
    generator = MagicMock()
    generator.config = RecommendationConfig()
    generator.generate.side_effect = side_effect
    return generator


def _users(*user_ids: str) -> MagicMock:
    users = MagicMock()
    users.list_user_ids.return_value = list(user_ids)
    return users


class TestDailyFeedJob:
    """Tests for DailyFeedJob.run."""

    @pytest.mark.parametrize("max_workers", [1, 4])
    def test_failure_isolated(self, max_workers: int) -> None:
        """Test one failing unit does not stop the others."""

        def _generate(
            user_id: str, feed_type: FeedType, day: date, cancel: object
        ) -> GenerationResult:
            if user_id == "bad":
                msg = "boom"
                raise GenerationError(msg, user_id, feed_type.value)
            return GenerationResult(user_id=user_id, feed_type=feed_type, date=day)

        job = DailyFeedJob(
            _mock_generator(_generate),
            _users("alice", "bad", "bob"),
            run_id="test-run",
            max_workers=max_workers,
            clock=lambda: FIXED_NOW,
        )

        result = job.run(feed_types=[FeedType.PAPER, FeedType.VIDEO])

        assert result.date == FIXED_TODAY
        assert len(result.outcomes) == 6
        assert result.units_failed == 2
        assert result.units_succeeded == 4
        assert not result.success
        assert [(o.user_id, o.feed_type) for o in result.outcomes][:2] == [
            ("alice", FeedType.PAPER),
            ("alice", FeedType.VIDEO),
        ]
        failed = [o for o in result.outcomes if not o.success]
        assert {o.user_id for o in failed} == {"bad"}
        assert all("boom" in (o.error or "") for o in failed)

    def test_unexpected_exception_isolated(self) -> None:
        """Test a non-generation exception is still contained."""
        job = DailyFeedJob(
            _mock_generator(RuntimeError("unexpected")),
            _users("alice"),
            run_id="test-run",
            max_workers=2,
            clock=lambda: FIXED_NOW,
        )

        result = job.run(feed_types=[FeedType.PAPER])

        assert result.units_failed == 1
        assert "unexpected" in (result.outcomes[0].error or "")

    def test_cancelled_units_marked(self) -> None:
        """Test cancelled units are reported as cancelled."""
        error = GenerationCancelledError("cancelled", "alice", "Paper")
        job = DailyFeedJob(
            _mock_generator(error),
            _users("alice"),
            run_id="test-run",
            max_workers=1,
            clock=lambda: FIXED_NOW,
        )

        result = job.run(feed_types=[FeedType.PAPER], cancel_event=threading.Event())

        assert result.outcomes[0].cancelled

    def test_defaults_to_all_feed_types(self) -> None:
        """Test every feed type is generated when none are given."""
        generator = _mock_generator(
            lambda u, ft, d, c: GenerationResult(user_id=u, feed_type=ft, date=d)
        )
        job = DailyFeedJob(
            generator, _users("alice"), run_id="test-run", clock=lambda: FIXED_NOW
        )

        result = job.run(date=date(2024, 11, 15))

        assert [o.feed_type for o in result.outcomes] == list(FeedType)
        assert all(call.args[2] == date(2024, 11, 15) for call in generator.generate.call_args_list)

    def test_run_for_user(self) -> None:
        """Test run_for_user only processes the given user."""
        users = _users("alice", "bob")
        generator = _mock_generator(
            lambda u, ft, d, c: GenerationResult(user_id=u, feed_type=ft, date=d)
        )
        job = DailyFeedJob(generator, users, run_id="test-run", clock=lambda: FIXED_NOW)

        result = job.run_for_user("bob")

        assert {o.user_id for o in result.outcomes} == {"bob"}
        users.list_user_ids.assert_not_called()


class TestDailyFeedJobWithGenerator:
    """Tests running the job against a real generator."""

    def test_writes_every_user(self) -> None:
        """Test each user's feed is persisted."""
        GenerationMetrics.reset()
        repo = InMemoryRepository()
        repo.add_user(make_user("alice"))
        repo.add_user(make_user("bob"))
        repo.add_resource(make_resource("p1"))
        generator = RecommendationGenerator(repo, repo, repo, repo, clock=lambda: FIXED_NOW)

        result = DailyFeedJob(
            generator, repo, run_id="test-run", clock=lambda: FIXED_NOW
        ).run(feed_types=[FeedType.PAPER])

        assert result.success
        assert result.recommendations_written == 2
        assert repo.get_recommendations("bob", FeedType.PAPER, FIXED_TODAY)[0].resource_id == "p1"


class TestDailyFeedJobInterrupt:
    """Tests for interrupting a running batch."""

    @staticmethod
    def _slow_generator(written: list[str]) -> MagicMock:
        def _generate(
            user_id: str, feed_type: FeedType, day: date, cancel: threading.Event
        ) -> GenerationResult:
            time.sleep(0.1)
            if cancel.is_set():
                msg = "cancelled"
                raise GenerationCancelledError(msg, user_id, feed_type.value)
            written.append(user_id)
            return GenerationResult(user_id=user_id, feed_type=feed_type, date=day)

        return _mock_generator(_generate)

    def test_interrupt_stops_pending_units(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test Ctrl-C while waiting on the pool persists nothing further."""
        written: list[str] = []
        user_ids = [f"user-{i:02d}" for i in range(20)]
        job = DailyFeedJob(
            self._slow_generator(written),
            _users(*user_ids),
            run_id="test-run",
            max_workers=2,
            clock=lambda: FIXED_NOW,
        )

        def _interrupt(futures: object) -> object:
            raise KeyboardInterrupt

        monkeypatch.setattr("feedrec.jobs.daily_feed.as_completed", _interrupt)
        cancel_event = threading.Event()

        with pytest.raises(KeyboardInterrupt):
            job.run(feed_types=[FeedType.PAPER], cancel_event=cancel_event)

        assert cancel_event.is_set()
        assert written == []

    def test_interrupt_without_caller_event(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test units are cancelled even when no event was passed in."""
        written: list[str] = []
        job = DailyFeedJob(
            self._slow_generator(written),
            _users(*[f"user-{i:02d}" for i in range(10)]),
            run_id="test-run",
            max_workers=2,
            clock=lambda: FIXED_NOW,
        )

        def _interrupt(futures: object) -> object:
            raise KeyboardInterrupt

        monkeypatch.setattr("feedrec.jobs.daily_feed.as_completed", _interrupt)

        with pytest.raises(KeyboardInterrupt):
            job.run(feed_types=[FeedType.PAPER])

        assert written == []

    def test_sequential_interrupt_sets_event(self) -> None:
        """Test an interrupt in sequential mode cancels later units."""
        calls: list[str] = []

        def _generate(
            user_id: str, feed_type: FeedType, day: date, cancel: threading.Event
        ) -> GenerationResult:
            calls.append(user_id)
            raise KeyboardInterrupt

        job = DailyFeedJob(
            _mock_generator(_generate),
            _users("alice", "bob"),
            run_id="test-run",
            max_workers=1,
            clock=lambda: FIXED_NOW,
        )
        cancel_event = threading.Event()

        with pytest.raises(KeyboardInterrupt):
            job.run(feed_types=[FeedType.PAPER], cancel_event=cancel_event)

        assert calls == ["alice"]
        assert cancel_event.is_set()
