"""Recommendation configuration schema."""

from typing import Annotated

from pydantic import Field, field_validator, model_validator

from feedrec.data_model import StrictBaseModel
from feedrec.store.models import FeedType


KNOWN_SCORER_KEYS = frozenset(
    {"topic", "source", "recency", "vote_history", "similarity"}
)


class ScoringConfig(StrictBaseModel):
    """Signal weights and scorer tuning.

    Attributes:
        weights: Weight per scorer key. Zero disables a scorer.
        recency_half_life_days: Decay constant of the recency signal.
        topic_bonus_per_match: Bonus added per matched topic.
        topic_bonus_cap: Upper bound of the topic match bonus.
    """

    weights: dict[str, Annotated[float, Field(ge=0.0, le=100.0)]] = Field(
        default_factory=lambda: {
            "topic": 0.5,
            "source": 0.2,
            "recency": 0.3,
            "vote_history": 0.2,
            "similarity": 0.0,
        }
    )
    recency_half_life_days: Annotated[float, Field(gt=0.0, le=3650.0)] = 30.0
    topic_bonus_per_match: Annotated[float, Field(ge=0.0, le=1.0)] = 0.05
    topic_bonus_cap: Annotated[float, Field(ge=0.0, le=1.0)] = 0.2

    @field_validator("weights")
    @classmethod
    def validate_weight_keys(cls, v: dict[str, float]) -> dict[str, float]:
        """Reject weights for scorers that do not exist."""
        unknown = sorted(set(v) - KNOWN_SCORER_KEYS)
        if unknown:
            msg = f"Unknown scorer keys: {', '.join(unknown)}"
            raise ValueError(msg)
        return v

    def weight_for(self, key: str) -> float:
        """Get the configured weight for a scorer key (0.0 if unset)."""
        return self.weights.get(key, 0.0)


class GenerationConfig(StrictBaseModel):
    """Generation windows and concurrency limits.

    Attributes:
        recently_recommended_days: Lookback for recently recommended items.
        candidate_window_days: Only resources created this recently are candidates.
        max_scoring_concurrency: Worker threads scoring one unit.
        max_workers: Units generated in parallel by the daily job.
    """

    recently_recommended_days: Annotated[int, Field(ge=0, le=365)] = 7
    candidate_window_days: Annotated[int, Field(ge=1, le=3650)] = 90
    max_scoring_concurrency: Annotated[int, Field(ge=1, le=64)] = 4
    max_workers: Annotated[int, Field(ge=1, le=64)] = 4


class FeedsConfig(StrictBaseModel):
    """Per feed type output sizes.

    Attributes:
        default_count: Items per feed when no override exists.
        per_feed_count: Overrides keyed by feed type.
    """

    default_count: Annotated[int, Field(ge=0, le=500)] = 10
    per_feed_count: dict[FeedType, Annotated[int, Field(ge=0, le=500)]] = Field(
        default_factory=dict
    )

    def count_for(self, feed_type: FeedType) -> int:
        """Get the maximum number of items for a feed type."""
        return self.per_feed_count.get(feed_type, self.default_count)


class DiversityConfig(StrictBaseModel):
    """Topic diversity limits applied after scoring."""

    enabled: bool = True
    max_per_topic: Annotated[int, Field(ge=1, le=100)] = 2


class RecommendationConfig(StrictBaseModel):
    """Root configuration for recommendation.yaml.

    Attributes:
        version: Schema version.
        scoring: Signal weights.
        generation: Windows and concurrency.
        feeds: Output sizes.
        diversity: Topic diversity limits.
    """

    version: Annotated[str, Field(pattern=r"^\d+\.\d+$")] = "1.0"
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    generation: GenerationConfig = Field(default_factory=GenerationConfig)
    feeds: FeedsConfig = Field(default_factory=FeedsConfig)
    diversity: DiversityConfig = Field(default_factory=DiversityConfig)

    @model_validator(mode="after")
    def validate_some_weight(self) -> "RecommendationConfig":
        """Require at least one scorer with a positive weight."""
        if not any(w > 0 for w in self.scoring.weights.values()):
            msg = "At least one scorer weight must be positive"
            raise ValueError(msg)
        return self
