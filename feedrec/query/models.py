"""Read models returned by the recommendation query service."""

import datetime as dt
from typing import Annotated

from pydantic import Field

from feedrec.data_model import StrictBaseModel
from feedrec.store.models import FeedType, Recommendation, Resource


class RecommendationView(StrictBaseModel):
    """One recommendation as shown to the user."""

    id: str
    resource: Resource
    position: Annotated[int, Field(ge=1)]
    score: float
    generated_at: dt.datetime

    @classmethod
    def from_recommendation(cls, rec: Recommendation) -> "RecommendationView":
        """Build a view from a persisted row."""
        return cls(
            id=rec.id,
            resource=rec.resource,
            position=rec.position,
            score=rec.score,
            generated_at=rec.generated_at,
        )


class FeedRecommendations(StrictBaseModel):
    """A feed for one date.

    ``date`` is the date the rows were generated for. It differs from the
    requested date when an earlier set was used as fallback.
    """

    feed_type: FeedType
    date: dt.date
    recommendations: list[RecommendationView] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        """Check if the feed has no recommendations."""
        return not self.recommendations


class RecommendationHistoryPage(StrictBaseModel):
    """A page of past feeds, newest date first."""

    user_id: str
    page_number: Annotated[int, Field(ge=1)]
    page_size: Annotated[int, Field(ge=1)]
    feeds: list[FeedRecommendations] = Field(default_factory=list)
