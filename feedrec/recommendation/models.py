"""Data models for the recommendation pipeline."""

import datetime as dt
from dataclasses import dataclass, field

from feedrec.store.models import FeedType, Recommendation, Resource, ResourceVote


@dataclass(frozen=True)
class UserInterestProfile:
    """Interest weights derived from a user's votes and declared topics.

    Attributes:
        user_id: Profile owner.
        topic_scores: Topic ID to interest in [0, 1].
        source_scores: Source ID to interest in [0, 1].
        total_interactions: Number of votes the profile was built from.
        last_updated: When the profile was built.
    """

    user_id: str
    topic_scores: dict[str, float] = field(default_factory=dict)
    source_scores: dict[str, float] = field(default_factory=dict)
    total_interactions: int = 0
    last_updated: dt.datetime | None = None

    def topic_score(self, topic_id: str) -> float:
        """Interest in a topic, 0.0 when unknown."""
        return self.topic_scores.get(topic_id, 0.0)

    def source_score(self, source_id: str) -> float:
        """Interest in a source, 0.0 when unknown."""
        return self.source_scores.get(source_id, 0.0)


@dataclass(frozen=True)
class RecommendationContext:
    """Inputs shared by every scorer and filter in one generation unit.

    Built per unit and discarded afterwards.

    Attributes:
        user_id: User being recommended to.
        feed_type: Feed being generated.
        date: Target date.
        count: Maximum number of recommendations.
        seen_resource_ids: Resources the user already voted on.
        recently_recommended_ids: Resources recommended in the lookback window.
        profile: Interest profile, if one could be built.
        votes: The user's votes.
    """

    user_id: str
    feed_type: FeedType
    date: dt.date
    count: int
    seen_resource_ids: frozenset[str] = frozenset()
    recently_recommended_ids: frozenset[str] = frozenset()
    profile: UserInterestProfile | None = None
    votes: tuple[ResourceVote, ...] = ()

    @property
    def excluded_resource_ids(self) -> frozenset[str]:
        """Resources that must not be recommended again."""
        return self.seen_resource_ids | self.recently_recommended_ids


@dataclass
class ScoredResource:
    """A candidate with its per-signal and composite scores.

    Attributes:
        resource: The candidate.
        scores: Scorer key to valid signal value.
        final_score: Weighted average of the valid signals.
    """

    resource: Resource
    scores: dict[str, float] = field(default_factory=dict)
    final_score: float = 0.0

    @property
    def resource_id(self) -> str:
        """ID of the scored resource."""
        return self.resource.id


@dataclass
class GenerationResult:
    """Outcome of one generation unit.

    Attributes:
        user_id: Owner of the unit.
        feed_type: Feed type of the unit.
        date: Target date.
        recommendations: Persisted rows in position order.
        candidates_in: Candidates loaded.
        candidates_filtered: Candidates left after pre-score filters.
        duration_ms: Wall time of the unit.
    """

    user_id: str
    feed_type: FeedType
    date: dt.date
    recommendations: list[Recommendation] = field(default_factory=list)
    candidates_in: int = 0
    candidates_filtered: int = 0
    duration_ms: float = 0.0

    @property
    def count(self) -> int:
        """Number of recommendations written."""
        return len(self.recommendations)
