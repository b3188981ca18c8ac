"""Relevance signals combined by the composite scorer.

Each scorer is independent and returns a value in [0, 1] for a single
resource. Scorers are matched structurally against ``Scorer``; none of them
needs to inherit from anything.
"""

import math
from datetime import UTC, datetime, time
from typing import Protocol, runtime_checkable

from feedrec.config.schemas import ScoringConfig
from feedrec.recommendation.constants import (
    NEUTRAL_SCORE,
    RECENCY_SCORER_KEY,
    SECONDS_PER_DAY,
    SIMILARITY_SCORER_KEY,
    SOURCE_SCORER_KEY,
    TOPIC_SCORER_KEY,
    VOTE_HISTORY_SCORER_KEY,
)
from feedrec.recommendation.models import RecommendationContext
from feedrec.signals.protocols import SimilarityProvider
from feedrec.store.models import Resource, VoteType


def _clamp(value: float) -> float:
    return min(max(value, 0.0), 1.0)


@runtime_checkable
class Scorer(Protocol):
    """A single relevance signal.

    Attributes:
        key: Stable name recorded in score maps.
        weight: Non-negative contribution to the composite score.
    """

    key: str
    weight: float

    def score(self, resource: Resource, context: RecommendationContext) -> float:
        """Score a resource for the context's user.

        Returns:
            Signal value in [0, 1].
        """
        ...


class TopicScorer:
    """Scores resources by the user's interest in their topics.

    Uses the mean profile interest across the resource's topics plus a
    small bonus for every topic, capped.
    """

    key = TOPIC_SCORER_KEY

    def __init__(
        self,
        weight: float = 0.5,
        bonus_per_match: float = 0.05,
        bonus_cap: float = 0.2,
    ) -> None:
        self.weight = weight
        self._bonus_per_match = bonus_per_match
        self._bonus_cap = bonus_cap

    def score(self, resource: Resource, context: RecommendationContext) -> float:
        if context.profile is None or not resource.topics:
            return NEUTRAL_SCORE

        topic_scores = [context.profile.topic_score(t) for t in resource.topic_ids]
        average = sum(topic_scores) / len(topic_scores)
        bonus = min(len(topic_scores) * self._bonus_per_match, self._bonus_cap)
        return _clamp(average + bonus)


class SourceScorer:
    """Scores resources by the user's interest in where they come from.

    Neutral without a profile, without a source, or for a source the user
    never voted on.
    """

    key = SOURCE_SCORER_KEY

    def __init__(self, weight: float = 0.2) -> None:
        self.weight = weight

    def score(self, resource: Resource, context: RecommendationContext) -> float:
        profile = context.profile
        if profile is None or resource.source_id is None:
            return NEUTRAL_SCORE
        if resource.source_id not in profile.source_scores:
            return NEUTRAL_SCORE
        return _clamp(profile.source_score(resource.source_id))


class RecencyScorer:
    """Exponential decay on resource age at the target date.

    ``exp(-age_days / half_life_days)``: a resource created at the start of
    the target date scores 1.0, one ``half_life_days`` old about 0.37.
    """

    key = RECENCY_SCORER_KEY

    def __init__(self, weight: float = 0.3, half_life_days: float = 30.0) -> None:
        self.weight = weight
        self._half_life_days = half_life_days

    def score(self, resource: Resource, context: RecommendationContext) -> float:
        reference = datetime.combine(context.date, time.min, tzinfo=UTC)
        created_at = resource.created_at
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=UTC)

        age_days = (reference - created_at).total_seconds() / SECONDS_PER_DAY
        return _clamp(math.exp(-age_days / self._half_life_days))


class VoteHistoryScorer:
    """Upvote ratio of the user's votes on resources from the same source."""

    key = VOTE_HISTORY_SCORER_KEY

    def __init__(self, weight: float = 0.2) -> None:
        self.weight = weight

    def score(self, resource: Resource, context: RecommendationContext) -> float:
        if not context.votes or resource.source_id is None:
            return NEUTRAL_SCORE

        same_source = [
            vote
            for vote in context.votes
            if vote.resource_source_id == resource.source_id
        ]
        if not same_source:
            return NEUTRAL_SCORE

        upvotes = sum(1 for vote in same_source if vote.vote_type == VoteType.UPVOTE)
        return _clamp(upvotes / len(same_source))


class SimilarityScorer:
    """Embedding similarity between the user's interests and a resource.

    Provider errors propagate and provider values are returned unchanged.
    A non-finite or out-of-range similarity is rejected by the composite
    scorer for that resource instead of being clamped into a top score.
    """

    key = SIMILARITY_SCORER_KEY

    def __init__(self, provider: SimilarityProvider, weight: float = 0.0) -> None:
        self.weight = weight
        self._provider = provider

    def score(self, resource: Resource, context: RecommendationContext) -> float:
        return self._provider.similarity(context.user_id, resource.id)


def build_scorers(
    config: ScoringConfig,
    similarity_provider: SimilarityProvider | None = None,
) -> list[Scorer]:
    """Build the default scorer list from config.

    Args:
        config: Scoring weights and tuning.
        similarity_provider: Registers the similarity scorer when given.

    Returns:
        Scorers in registration order.
    """
    scorers: list[Scorer] = [
        TopicScorer(
            weight=config.weight_for(TOPIC_SCORER_KEY),
            bonus_per_match=config.topic_bonus_per_match,
            bonus_cap=config.topic_bonus_cap,
        ),
        SourceScorer(weight=config.weight_for(SOURCE_SCORER_KEY)),
        RecencyScorer(
            weight=config.weight_for(RECENCY_SCORER_KEY),
            half_life_days=config.recency_half_life_days,
        ),
        VoteHistoryScorer(weight=config.weight_for(VOTE_HISTORY_SCORER_KEY)),
    ]
    if similarity_provider is not None:
        scorers.append(
            SimilarityScorer(
                similarity_provider,
                weight=config.weight_for(SIMILARITY_SCORER_KEY),
            )
        )
    return scorers
