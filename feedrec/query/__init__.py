"""Read path for persisted recommendations."""

from feedrec.query.models import (
    FeedRecommendations,
    RecommendationHistoryPage,
    RecommendationView,
)
from feedrec.query.service import RecommendationQueryService


__all__ = [
    "FeedRecommendations",
    "RecommendationHistoryPage",
    "RecommendationQueryService",
    "RecommendationView",
]
