"""Weighted combination of relevance signals."""

import math
import threading
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor

import structlog

from feedrec.recommendation.errors import GenerationCancelledError
from feedrec.recommendation.metrics import GenerationMetrics
from feedrec.recommendation.models import RecommendationContext, ScoredResource
from feedrec.recommendation.scorers import Scorer
from feedrec.store.models import Resource


logger = structlog.get_logger()


class CompositeScorer:
    """Runs every registered scorer and combines them into a final score.

    Scoring formula:
        final_score = sum(score_i * weight_i) / sum(weight_i)

    The sums run over scorers with positive weight whose result was valid.
    A scorer that raises or returns a non-finite or out-of-range value is
    left out for that resource only. With no positive weight left the
    final score is 0.0.
    """

    def __init__(
        self,
        scorers: Sequence[Scorer],
        max_concurrency: int = 4,
        metrics: GenerationMetrics | None = None,
    ) -> None:
        """Initialize the composite scorer.

        Args:
            scorers: Scorers in registration order.
            max_concurrency: Worker threads used by ``score_resources``.
            metrics: Optional metrics instance.
        """
        if max_concurrency < 1:
            msg = "max_concurrency must be at least 1"
            raise ValueError(msg)
        for scorer in scorers:
            if scorer.weight < 0 or not math.isfinite(scorer.weight):
                msg = f"Scorer {scorer.key} has invalid weight {scorer.weight}"
                raise ValueError(msg)

        self._scorers = list(scorers)
        self._max_concurrency = max_concurrency
        self._metrics = metrics or GenerationMetrics.get_instance()
        self._log = logger.bind(component="recommendation", subcomponent="composite")

    @property
    def scorers(self) -> list[Scorer]:
        """Registered scorers."""
        return list(self._scorers)

    def score_resource(
        self,
        resource: Resource,
        context: RecommendationContext,
    ) -> ScoredResource:
        """Score one resource with every scorer.

        Args:
            resource: Candidate to score.
            context: Per-unit context.

        Returns:
            ScoredResource with the valid signal values and final score.
        """
        scores: dict[str, float] = {}
        weighted_sum = 0.0
        total_weight = 0.0

        for scorer in self._scorers:
            try:
                value = float(scorer.score(resource, context))
            except Exception as e:  # noqa: BLE001
                self._record_anomaly(scorer, resource, context, error=str(e))
                continue

            if not math.isfinite(value) or not 0.0 <= value <= 1.0:
                self._record_anomaly(scorer, resource, context, value=value)
                continue

            scores[scorer.key] = value
            if scorer.weight > 0:
                weighted_sum += value * scorer.weight
                total_weight += scorer.weight

        final_score = weighted_sum / total_weight if total_weight > 0 else 0.0
        return ScoredResource(
            resource=resource,
            scores=scores,
            final_score=min(max(final_score, 0.0), 1.0),
        )

    def score_resources(
        self,
        resources: Sequence[Resource],
        context: RecommendationContext,
        cancel_event: threading.Event | None = None,
    ) -> list[ScoredResource]:
        """Score many resources on a bounded thread pool.

        Args:
            resources: Candidates to score.
            context: Per-unit context.
            cancel_event: Set to stop scoring early.

        Returns:
            Scored resources in input order.

        Raises:
            GenerationCancelledError: If cancellation was requested.
        """

        def _score(resource: Resource) -> ScoredResource | None:
            if cancel_event is not None and cancel_event.is_set():
                return None
            return self.score_resource(resource, context)

        if self._max_concurrency == 1 or len(resources) <= 1:
            results = [_score(r) for r in resources]
        else:
            with ThreadPoolExecutor(max_workers=self._max_concurrency) as executor:
                results = list(executor.map(_score, resources))

        if cancel_event is not None and cancel_event.is_set():
            msg = "Scoring cancelled"
            raise GenerationCancelledError(
                msg, context.user_id, context.feed_type.value
            )

        return [r for r in results if r is not None]

    def _record_anomaly(
        self,
        scorer: Scorer,
        resource: Resource,
        context: RecommendationContext,
        **details: object,
    ) -> None:
        self._metrics.record_scorer_anomaly(scorer.key)
        self._log.warning(
            "scorer_anomaly",
            scorer=scorer.key,
            resource_id=resource.id,
            user_id=context.user_id,
            feed_type=context.feed_type.value,
            **details,
        )
