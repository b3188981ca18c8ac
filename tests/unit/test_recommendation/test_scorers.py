"""Unit tests for the individual relevance scorers."""

import math
from datetime import UTC, datetime, time, timedelta
from unittest.mock import MagicMock

import pytest

from feedrec.config.schemas import ScoringConfig
from feedrec.recommendation.models import RecommendationContext, UserInterestProfile
from feedrec.recommendation.scorers import (
    RecencyScorer,
    Scorer,
    SimilarityScorer,
    SourceScorer,
    TopicScorer,
    VoteHistoryScorer,
    build_scorers,
)
from feedrec.store.models import FeedType, VoteType
from tests.helpers.factories import make_resource, make_vote
from tests.helpers.time import FIXED_TODAY


def _make_context(
    profile: UserInterestProfile | None = None,
    votes: tuple = (),
) -> RecommendationContext:
    return RecommendationContext(
        user_id="user-1",
        feed_type=FeedType.PAPER,
        date=FIXED_TODAY,
        count=10,
        profile=profile,
        votes=votes,
    )


class TestTopicScorer:
    """Tests for TopicScorer."""

    def test_neutral_without_profile(self) -> None:
        """Test a missing profile yields the neutral score."""
        resource = make_resource(topic_ids=["ml"])
        assert TopicScorer().score(resource, _make_context()) == 0.5

    def test_neutral_without_topics(self) -> None:
        """Test an untagged resource yields the neutral score."""
        profile = UserInterestProfile(user_id="user-1", topic_scores={"ml": 1.0})
        resource = make_resource(topic_ids=[])
        assert TopicScorer().score(resource, _make_context(profile)) == 0.5

    def test_average_plus_bonus(self) -> None:
        """Test mean topic interest plus the per-topic bonus."""
        profile = UserInterestProfile(
            user_id="user-1", topic_scores={"ml": 0.8, "nlp": 0.4}
        )
        resource = make_resource(topic_ids=["ml", "nlp"])

        score = TopicScorer().score(resource, _make_context(profile))

        assert score == pytest.approx(0.6 + 0.1)

    def test_bonus_is_capped(self) -> None:
        """Test the bonus never exceeds the cap."""
        profile = UserInterestProfile(user_id="user-1", topic_scores={})
        resource = make_resource(topic_ids=[f"t{i}" for i in range(10)])

        score = TopicScorer().score(resource, _make_context(profile))

        assert score == pytest.approx(0.2)

    def test_clamped_to_one(self) -> None:
        """Test full interest plus bonus is clamped to 1.0."""
        profile = UserInterestProfile(user_id="user-1", topic_scores={"ml": 1.0})
        resource = make_resource(topic_ids=["ml"])
        assert TopicScorer().score(resource, _make_context(profile)) == 1.0


class TestSourceScorer:
    """Tests for SourceScorer."""

    def test_neutral_without_profile(self) -> None:
        """Test a missing profile yields the neutral score."""
        assert SourceScorer().score(make_resource(), _make_context()) == 0.5

    def test_neutral_without_source(self) -> None:
        """Test a resource without a source yields the neutral score."""
        profile = UserInterestProfile(user_id="user-1", source_scores={"src-1": 0.9})
        resource = make_resource(source_id=None)
        assert SourceScorer().score(resource, _make_context(profile)) == 0.5

    def test_neutral_for_unvoted_source(self) -> None:
        """Test a source absent from the profile yields the neutral score."""
        profile = UserInterestProfile(user_id="user-1", source_scores={"src-9": 0.9})
        assert SourceScorer().score(make_resource(), _make_context(profile)) == 0.5

    def test_uses_profile_source_score(self) -> None:
        """Test the profile's interest in the source is returned."""
        profile = UserInterestProfile(
            user_id="user-1", source_scores={"src-1": 0.82, "src-2": 0.1}
        )

        score = SourceScorer().score(make_resource(), _make_context(profile))

        assert score == pytest.approx(0.82)

    def test_disliked_source_scores_low(self) -> None:
        """Test a downvoted source scores below a liked one."""
        profile = UserInterestProfile(
            user_id="user-1", source_scores={"liked": 1.0, "disliked": 0.0}
        )
        context = _make_context(profile)

        scorer = SourceScorer()
        liked = scorer.score(make_resource("a", source_id="liked"), context)
        disliked = scorer.score(make_resource("b", source_id="disliked"), context)

        assert liked == 1.0
        assert disliked == 0.0


class TestRecencyScorer:
    """Tests for RecencyScorer."""

    def test_created_at_target_day_start_scores_one(self) -> None:
        """Test a resource created at the start of the target date scores 1.0."""
        created = datetime.combine(FIXED_TODAY, time.min, tzinfo=UTC)
        resource = make_resource(created_at=created)
        assert RecencyScorer().score(resource, _make_context()) == pytest.approx(1.0)

    def test_half_life_decay(self) -> None:
        """Test one half-life of age scores exp(-1)."""
        created = datetime.combine(FIXED_TODAY, time.min, tzinfo=UTC) - timedelta(days=30)
        resource = make_resource(created_at=created)

        score = RecencyScorer(half_life_days=30).score(resource, _make_context())

        assert score == pytest.approx(math.exp(-1))

    def test_future_resource_clamped(self) -> None:
        """Test a resource created later on the target date is clamped to 1.0."""
        created = datetime.combine(FIXED_TODAY, time(12, 0), tzinfo=UTC)
        resource = make_resource(created_at=created)
        assert RecencyScorer().score(resource, _make_context()) == 1.0

    def test_older_scores_lower(self) -> None:
        """Test older resources score lower."""
        scorer = RecencyScorer()
        newer = scorer.score(make_resource(age_days=2), _make_context())
        older = scorer.score(make_resource(age_days=20), _make_context())
        assert newer > older


class TestVoteHistoryScorer:
    """Tests for VoteHistoryScorer."""

    def test_neutral_without_votes(self) -> None:
        """Test no votes yields the neutral score."""
        assert VoteHistoryScorer().score(make_resource(), _make_context()) == 0.5

    def test_neutral_without_source(self) -> None:
        """Test a resource without a source yields the neutral score."""
        voted = make_resource("voted", source_id="src-1")
        context = _make_context(votes=(make_vote(voted),))
        resource = make_resource(source_id=None)
        assert VoteHistoryScorer().score(resource, context) == 0.5

    def test_neutral_without_matching_source(self) -> None:
        """Test votes on other sources yield the neutral score."""
        voted = make_resource("voted", source_id="src-other")
        context = _make_context(votes=(make_vote(voted),))
        assert VoteHistoryScorer().score(make_resource(), context) == 0.5

    def test_upvote_ratio(self) -> None:
        """Test the score is the upvote ratio for the same source."""
        votes = tuple(
            make_vote(make_resource(f"v{i}"), vote_type)
            for i, vote_type in enumerate(
                [VoteType.UPVOTE, VoteType.UPVOTE, VoteType.UPVOTE, VoteType.DOWNVOTE]
            )
        )
        score = VoteHistoryScorer().score(make_resource(), _make_context(votes=votes))
        assert score == pytest.approx(0.75)


class TestSimilarityScorer:
    """Tests for SimilarityScorer."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [(0.42, 0.42), (1.3, 1.3), (-0.2, -0.2)],
    )
    def test_returns_provider_value(self, raw: float, expected: float) -> None:
        """Test provider values are passed through without clamping."""
        provider = MagicMock()
        provider.similarity.return_value = raw

        score = SimilarityScorer(provider, weight=0.1).score(
            make_resource(), _make_context()
        )

        assert score == pytest.approx(expected)
        provider.similarity.assert_called_once_with("user-1", "res-1")

    def test_provider_error_propagates(self) -> None:
        """Test provider errors are raised to the caller."""
        provider = MagicMock()
        provider.similarity.side_effect = RuntimeError("backend down")

        with pytest.raises(RuntimeError):
            SimilarityScorer(provider).score(make_resource(), _make_context())


class TestBuildScorers:
    """Tests for build_scorers."""

    def test_default_scorers(self) -> None:
        """Test the default scorer keys and weights."""
        scorers = build_scorers(ScoringConfig())

        assert [s.key for s in scorers] == ["topic", "source", "recency", "vote_history"]
        assert [s.weight for s in scorers] == [0.5, 0.2, 0.3, 0.2]
        assert all(isinstance(s, Scorer) for s in scorers)

    def test_similarity_registered_with_provider(self) -> None:
        """Test the similarity scorer is added when a provider exists."""
        config = ScoringConfig(
            weights={"topic": 0.5, "recency": 0.3, "vote_history": 0.2, "similarity": 0.4}
        )
        scorers = build_scorers(config, similarity_provider=MagicMock())

        assert scorers[-1].key == "similarity"
        assert scorers[-1].weight == 0.4
