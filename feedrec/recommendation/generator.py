"""Generation of one daily recommendation set per (user, feed type, date)."""

import threading
import time
import uuid
from collections.abc import Callable, Sequence
from datetime import UTC, date, datetime, timedelta
from datetime import time as dt_time

import structlog

from feedrec.config.schemas import RecommendationConfig
from feedrec.recommendation.composite import CompositeScorer
from feedrec.recommendation.errors import GenerationCancelledError, GenerationError
from feedrec.recommendation.filters import (
    DiversityFilter,
    FilterChain,
    ResourceFilter,
    SeenResourceFilter,
)
from feedrec.recommendation.metrics import GenerationMetrics
from feedrec.recommendation.models import (
    GenerationResult,
    RecommendationContext,
    ScoredResource,
)
from feedrec.recommendation.profile import UserProfileService
from feedrec.recommendation.ranker import RankedResource, Ranker
from feedrec.recommendation.scorers import Scorer, build_scorers
from feedrec.recommendation.state_machine import (
    GenerationState,
    GenerationStateMachine,
)
from feedrec.signals.protocols import SimilarityProvider
from feedrec.store.errors import UserNotFoundError
from feedrec.store.models import FeedType, Recommendation, Resource
from feedrec.store.protocols import (
    RecommendationRepository,
    ResourceRepository,
    UserRepository,
    VoteRepository,
)


logger = structlog.get_logger()


def _start_of_day(day: date) -> datetime:
    return datetime.combine(day, dt_time.min, tzinfo=UTC)


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=UTC)


class RecommendationGenerator:
    """Builds and persists the recommendation set for one unit.

    Implements a state machine flow:
        PENDING -> CANDIDATES_LOADED -> FILTERED -> SCORED -> RANKED -> PERSISTED

    A unit either replaces every row for its key or writes nothing.
    """

    def __init__(  # noqa: PLR0913
        self,
        resources: ResourceRepository,
        users: UserRepository,
        votes: VoteRepository,
        recommendations: RecommendationRepository,
        config: RecommendationConfig | None = None,
        similarity_provider: SimilarityProvider | None = None,
        scorers: Sequence[Scorer] | None = None,
        pre_filters: Sequence[ResourceFilter] | None = None,
        post_filters: Sequence[ResourceFilter] | None = None,
        metrics: GenerationMetrics | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the generator.

        Args:
            resources: Candidate source.
            users: User lookup.
            votes: Vote history source.
            recommendations: Where recommendation sets are persisted.
            config: Pipeline configuration (defaults when omitted).
            similarity_provider: Enables the similarity signal.
            scorers: Overrides the scorers built from config.
            pre_filters: Overrides the exclusion filters run before scoring.
            post_filters: Overrides the filters run after scoring.
            metrics: Optional metrics instance.
            clock: Source of ``generated_at`` timestamps.
        """
        self._resources = resources
        self._users = users
        self._votes = votes
        self._recommendations = recommendations
        self._config = config or RecommendationConfig()
        self._metrics = metrics or GenerationMetrics.get_instance()
        self._clock = clock or (lambda: datetime.now(UTC))

        if scorers is None:
            scorers = build_scorers(self._config.scoring, similarity_provider)
        self._composite = CompositeScorer(
            scorers,
            max_concurrency=self._config.generation.max_scoring_concurrency,
            metrics=self._metrics,
        )

        if pre_filters is None:
            pre_filters = [SeenResourceFilter()]
        if post_filters is None:
            post_filters = (
                [DiversityFilter(self._config.diversity.max_per_topic)]
                if self._config.diversity.enabled
                else []
            )
        self._pre_chain = FilterChain(pre_filters, stage="pre_score")
        self._post_chain = FilterChain(post_filters, stage="post_score")

        self._ranker = Ranker()
        self._profiles = UserProfileService(votes, users)
        self._log = logger.bind(component="recommendation")

    @property
    def config(self) -> RecommendationConfig:
        """Pipeline configuration in use."""
        return self._config

    def generate(
        self,
        user_id: str,
        feed_type: FeedType,
        date: date,
        cancel_event: threading.Event | None = None,
    ) -> GenerationResult:
        """Generate and persist the recommendation set for one unit.

        Args:
            user_id: User to recommend to.
            feed_type: Feed to generate.
            date: Target date.
            cancel_event: Set to abandon the unit before it persists.

        Returns:
            GenerationResult with the persisted rows.

        Raises:
            GenerationCancelledError: If cancelled; nothing was written.
            GenerationError: If any step failed; prior rows are intact.
        """
        start_ns = time.perf_counter_ns()
        state = GenerationStateMachine(user_id, feed_type.value)
        log = self._log.bind(
            user_id=user_id,
            feed_type=feed_type.value,
            date=date.isoformat(),
        )
        self._metrics.record_unit_started()
        log.info("generation_started")

        result = GenerationResult(user_id=user_id, feed_type=feed_type, date=date)

        try:
            self._check_cancelled(cancel_event, user_id, feed_type)
            if not self._users.user_exists(user_id):
                raise UserNotFoundError(user_id)

            candidates = self._load_candidates(feed_type, date)
            result.candidates_in = len(candidates)
            state.transition(GenerationState.CANDIDATES_LOADED)

            context = self._build_context(user_id, feed_type, date)
            self._check_cancelled(cancel_event, user_id, feed_type)

            eligible = self._pre_chain.apply(
                [ScoredResource(resource=r) for r in candidates], context
            )
            result.candidates_filtered = len(eligible)
            state.transition(GenerationState.FILTERED)

            scored = self._composite.score_resources(
                [c.resource for c in eligible], context, cancel_event
            )
            state.transition(GenerationState.SCORED)

            diversified = self._post_chain.apply(scored, context)
            ranked = self._ranker.rank(diversified, context.count)
            state.transition(GenerationState.RANKED)

            rows = self._to_recommendations(ranked, user_id, feed_type, date)
            self._check_cancelled(cancel_event, user_id, feed_type)
            self._recommendations.replace_recommendations(
                user_id, feed_type, date, rows
            )
            result.recommendations = rows
            state.transition(GenerationState.PERSISTED)

        except GenerationCancelledError:
            state.transition(GenerationState.FAILED)
            self._metrics.record_unit_failed(cancelled=True)
            log.warning("generation_cancelled", state=state.state.name)
            raise

        except Exception as e:
            if not state.is_terminal():
                state.transition(GenerationState.FAILED)
            self._metrics.record_unit_failed()
            log.error(
                "generation_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            msg = f"Generation failed for {user_id}/{feed_type.value}: {e}"
            raise GenerationError(msg, user_id, feed_type.value) from e

        result.duration_ms = (time.perf_counter_ns() - start_ns) / 1_000_000
        self._metrics.record_unit_succeeded(result.count, result.duration_ms)
        log.info(
            "generation_complete",
            candidates_in=result.candidates_in,
            candidates_filtered=result.candidates_filtered,
            recommendation_count=result.count,
            duration_ms=round(result.duration_ms, 2),
        )
        return result

    def _check_cancelled(
        self,
        cancel_event: threading.Event | None,
        user_id: str,
        feed_type: FeedType,
    ) -> None:
        if cancel_event is not None and cancel_event.is_set():
            msg = "Generation cancelled"
            raise GenerationCancelledError(msg, user_id, feed_type.value)

    def _load_candidates(self, feed_type: FeedType, day: date) -> list[Resource]:
        """Resources of the feed type created within the candidate window."""
        window = self._config.generation.candidate_window_days
        created_since = _start_of_day(day - timedelta(days=window))
        created_before = _start_of_day(day + timedelta(days=1))

        resources = self._resources.list_resources(feed_type, created_since)
        return [
            r
            for r in resources
            if r.feed_type == feed_type and _as_utc(r.created_at) < created_before
        ]

    def _build_context(
        self,
        user_id: str,
        feed_type: FeedType,
        day: date,
    ) -> RecommendationContext:
        votes = self._votes.get_votes_by_user(user_id)
        lookback = self._config.generation.recently_recommended_days
        recently_recommended = self._recommendations.get_recommended_resource_ids(
            user_id, feed_type, day - timedelta(days=lookback), day
        )
        return RecommendationContext(
            user_id=user_id,
            feed_type=feed_type,
            date=day,
            count=self._config.feeds.count_for(feed_type),
            seen_resource_ids=frozenset(v.resource_id for v in votes),
            recently_recommended_ids=frozenset(recently_recommended),
            profile=self._profiles.build(user_id, votes),
            votes=tuple(votes),
        )

    def _to_recommendations(
        self,
        ranked: list[RankedResource],
        user_id: str,
        feed_type: FeedType,
        day: date,
    ) -> list[Recommendation]:
        generated_at = self._clock()
        return [
            Recommendation(
                id=str(uuid.uuid4()),
                user_id=user_id,
                feed_type=feed_type,
                feed_date=day,
                resource_id=item.scored.resource_id,
                resource=item.scored.resource,
                position=item.position,
                score=item.scored.final_score,
                generated_at=generated_at,
            )
            for item in ranked
        ]
