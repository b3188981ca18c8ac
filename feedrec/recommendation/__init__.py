"""Recommendation generation: scoring, filtering, ranking, persisting."""

from feedrec.recommendation.composite import CompositeScorer
from feedrec.recommendation.errors import (
    GenerationCancelledError,
    GenerationError,
    GenerationStateError,
)
from feedrec.recommendation.filters import (
    DiversityFilter,
    FilterChain,
    ResourceFilter,
    SeenResourceFilter,
)
from feedrec.recommendation.generator import RecommendationGenerator
from feedrec.recommendation.metrics import GenerationMetrics
from feedrec.recommendation.models import (
    GenerationResult,
    RecommendationContext,
    ScoredResource,
    UserInterestProfile,
)
from feedrec.recommendation.profile import UserProfileService, build_profile
from feedrec.recommendation.ranker import RankedResource, Ranker, ranking_key
from feedrec.recommendation.scorers import (
    RecencyScorer,
    Scorer,
    SimilarityScorer,
    SourceScorer,
    TopicScorer,
    VoteHistoryScorer,
    build_scorers,
)
from feedrec.recommendation.state_machine import (
    GenerationState,
    GenerationStateMachine,
)


__all__ = [
    # Errors
    "GenerationCancelledError",
    "GenerationError",
    "GenerationStateError",
    # Filters
    "DiversityFilter",
    "FilterChain",
    "ResourceFilter",
    "SeenResourceFilter",
    # Generation
    "CompositeScorer",
    "GenerationMetrics",
    "GenerationResult",
    "GenerationState",
    "GenerationStateMachine",
    "RankedResource",
    "Ranker",
    "RecommendationContext",
    "RecommendationGenerator",
    "ScoredResource",
    "ranking_key",
    # Profiles
    "UserInterestProfile",
    "UserProfileService",
    "build_profile",
    # Scorers
    "RecencyScorer",
    "Scorer",
    "SimilarityScorer",
    "SourceScorer",
    "TopicScorer",
    "VoteHistoryScorer",
    "build_scorers",
]
