"""Candidate filters applied before and after scoring."""

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

import structlog

from feedrec.recommendation.models import RecommendationContext, ScoredResource
from feedrec.recommendation.ranker import ranking_key


logger = structlog.get_logger()


@runtime_checkable
class ResourceFilter(Protocol):
    """Removes candidates that should not be recommended.

    Implementations must keep the relative order of the candidates they
    return.
    """

    name: str

    def filter(
        self,
        candidates: list[ScoredResource],
        context: RecommendationContext,
    ) -> list[ScoredResource]:
        """Return the surviving candidates."""
        ...


class SeenResourceFilter:
    """Drops resources the user voted on or was recently recommended."""

    name = "seen_resource"

    def filter(
        self,
        candidates: list[ScoredResource],
        context: RecommendationContext,
    ) -> list[ScoredResource]:
        excluded = context.excluded_resource_ids
        return [c for c in candidates if c.resource_id not in excluded]


class DiversityFilter:
    """Caps how many candidates may share a topic.

    Candidates are admitted best first; one is dropped when any of its
    topics already has ``max_per_topic`` admitted candidates. Untagged
    resources always pass. Survivors keep their input order.

    Diversity is enforced only by dropping candidates. Scores of the
    survivors are never lowered, so a kept resource ranks exactly as its
    composite score says.
    """

    name = "diversity"

    def __init__(self, max_per_topic: int = 2) -> None:
        if max_per_topic < 1:
            msg = "max_per_topic must be at least 1"
            raise ValueError(msg)
        self._max_per_topic = max_per_topic

    def filter(
        self,
        candidates: list[ScoredResource],
        context: RecommendationContext,
    ) -> list[ScoredResource]:
        topic_counts: dict[str, int] = {}
        admitted: set[str] = set()

        for candidate in sorted(candidates, key=ranking_key):
            topic_ids = candidate.resource.topic_ids
            if any(topic_counts.get(t, 0) >= self._max_per_topic for t in topic_ids):
                continue
            admitted.add(candidate.resource_id)
            for topic_id in topic_ids:
                topic_counts[topic_id] = topic_counts.get(topic_id, 0) + 1

        return [c for c in candidates if c.resource_id in admitted]


class FilterChain:
    """Applies filters in order, each receiving the previous output."""

    def __init__(self, filters: Sequence[ResourceFilter], stage: str) -> None:
        """Initialize the chain.

        Args:
            filters: Filters in application order.
            stage: Name of the pipeline stage for logging.
        """
        self._filters = list(filters)
        self._log = logger.bind(
            component="recommendation", subcomponent="filters", stage=stage
        )

    @property
    def filters(self) -> list[ResourceFilter]:
        """Filters in application order."""
        return list(self._filters)

    def apply(
        self,
        candidates: list[ScoredResource],
        context: RecommendationContext,
    ) -> list[ScoredResource]:
        """Run every filter.

        Args:
            candidates: Input candidates.
            context: Per-unit context.

        Returns:
            Candidates that passed all filters, in input order.
        """
        remaining = list(candidates)
        for resource_filter in self._filters:
            before = len(remaining)
            remaining = resource_filter.filter(remaining, context)
            self._log.debug(
                "filter_applied",
                filter=resource_filter.name,
                user_id=context.user_id,
                feed_type=context.feed_type.value,
                candidates_in=before,
                candidates_out=len(remaining),
            )
        return remaining
