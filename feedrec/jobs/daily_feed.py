"""Daily batch that regenerates every user's feeds with failure isolation."""

import threading
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import UTC, date, datetime

import structlog

from feedrec.recommendation.errors import GenerationCancelledError, GenerationError
from feedrec.recommendation.generator import RecommendationGenerator
from feedrec.recommendation.models import GenerationResult
from feedrec.store.models import FeedType
from feedrec.store.protocols import UserRepository


logger = structlog.get_logger()


@dataclass
class UnitOutcome:
    """Result of a single (user, feed type) unit in a batch."""

    user_id: str
    feed_type: FeedType
    result: GenerationResult | None = None
    error: str | None = None
    cancelled: bool = False

    @property
    def success(self) -> bool:
        """Check if the unit persisted its set."""
        return self.result is not None


@dataclass
class DailyFeedJobResult:
    """Result of a complete batch run."""

    run_id: str
    date: date
    started_at: datetime
    finished_at: datetime
    outcomes: list[UnitOutcome] = field(default_factory=list)

    @property
    def units_succeeded(self) -> int:
        """Units that persisted a set."""
        return sum(1 for o in self.outcomes if o.success)

    @property
    def units_failed(self) -> int:
        """Units that failed, cancellations included."""
        return sum(1 for o in self.outcomes if not o.success)

    @property
    def recommendations_written(self) -> int:
        """Total rows written by succeeded units."""
        return sum(o.result.count for o in self.outcomes if o.result is not None)

    @property
    def success(self) -> bool:
        """Check if every unit succeeded."""
        return self.units_failed == 0

    @property
    def duration_ms(self) -> float:
        """Get total duration in milliseconds."""
        return (self.finished_at - self.started_at).total_seconds() * 1000


class DailyFeedJob:
    """Runs one generation unit per (user, feed type) in parallel.

    Provides:
    - Parallel units with configurable concurrency
    - Failure isolation (one unit failing doesn't stop others)
    - Cooperative cancellation shared by every unit
    """

    def __init__(
        self,
        generator: RecommendationGenerator,
        users: UserRepository,
        run_id: str,
        max_workers: int | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the job.

        Args:
            generator: Unit generator.
            users: Source of user IDs when none are given.
            run_id: Unique run identifier.
            max_workers: Parallel units (defaults to the generator config).
            clock: Source of the current time; the default date is its UTC date.
        """
        self._generator = generator
        self._users = users
        self._run_id = run_id
        self._max_workers = max_workers or generator.config.generation.max_workers
        self._clock = clock or (lambda: datetime.now(UTC))
        self._log = logger.bind(component="jobs", run_id=run_id)

    def run(
        self,
        date: date | None = None,
        user_ids: Sequence[str] | None = None,
        feed_types: Sequence[FeedType] | None = None,
        cancel_event: threading.Event | None = None,
    ) -> DailyFeedJobResult:
        """Generate feeds for every user and feed type.

        Args:
            date: Target date (defaults to today in UTC).
            user_ids: Users to process (defaults to all users).
            feed_types: Feed types to process (defaults to all).
            cancel_event: Set to stop; unfinished units write nothing.

        Returns:
            DailyFeedJobResult with one outcome per unit, ordered by user
            then feed type.
        """
        started_at = self._clock()
        target = date or started_at.astimezone(UTC).date()
        users = list(user_ids) if user_ids is not None else self._users.list_user_ids()
        types = list(feed_types) if feed_types is not None else list(FeedType)
        units = [(u, ft) for u in users for ft in types]

        self._log.info(
            "daily_feed_job_started",
            date=target.isoformat(),
            user_count=len(users),
            unit_count=len(units),
            max_workers=self._max_workers,
        )

        outcomes: dict[tuple[str, FeedType], UnitOutcome] = {}
        cancel = cancel_event if cancel_event is not None else threading.Event()

        if self._max_workers <= 1:
            try:
                for user_id, feed_type in units:
                    outcomes[(user_id, feed_type)] = self._run_unit(
                        user_id, feed_type, target, cancel
                    )
            except BaseException:
                self._abort(cancel, completed=len(outcomes), total=len(units))
                raise
        else:
            executor = ThreadPoolExecutor(max_workers=self._max_workers)
            try:
                future_to_unit = {
                    executor.submit(
                        self._run_unit, user_id, feed_type, target, cancel
                    ): (user_id, feed_type)
                    for user_id, feed_type in units
                }

                for future in as_completed(future_to_unit):
                    user_id, feed_type = future_to_unit[future]
                    try:
                        outcomes[(user_id, feed_type)] = future.result()
                    except Exception as e:  # noqa: BLE001
                        self._log.error(
                            "unit_execution_error",
                            user_id=user_id,
                            feed_type=feed_type.value,
                            error=str(e),
                        )
                        outcomes[(user_id, feed_type)] = UnitOutcome(
                            user_id=user_id,
                            feed_type=feed_type,
                            error=f"Execution error: {e}",
                        )
            except BaseException:
                # Running units see the event before persisting; queued ones never start
                self._abort(cancel, completed=len(outcomes), total=len(units))
                executor.shutdown(wait=True, cancel_futures=True)
                raise
            executor.shutdown(wait=True)

        result = DailyFeedJobResult(
            run_id=self._run_id,
            date=target,
            started_at=started_at,
            finished_at=self._clock(),
            outcomes=[outcomes[unit] for unit in units],
        )

        self._log.info(
            "daily_feed_job_complete",
            date=target.isoformat(),
            duration_ms=round(result.duration_ms, 2),
            units_succeeded=result.units_succeeded,
            units_failed=result.units_failed,
            recommendations_written=result.recommendations_written,
        )
        return result

    def run_for_user(
        self,
        user_id: str,
        date: date | None = None,
        cancel_event: threading.Event | None = None,
    ) -> DailyFeedJobResult:
        """Generate every feed for one user.

        Args:
            user_id: User to process.
            date: Target date (defaults to today in UTC).
            cancel_event: Set to stop early.

        Returns:
            DailyFeedJobResult for that user's units.
        """
        return self.run(date=date, user_ids=[user_id], cancel_event=cancel_event)

    def _abort(self, cancel: threading.Event, completed: int, total: int) -> None:
        cancel.set()
        self._log.warning(
            "daily_feed_job_aborted",
            units_completed=completed,
            units_total=total,
        )

    def _run_unit(
        self,
        user_id: str,
        feed_type: FeedType,
        target: date,
        cancel_event: threading.Event | None,
    ) -> UnitOutcome:
        try:
            result = self._generator.generate(user_id, feed_type, target, cancel_event)
        except GenerationCancelledError as e:
            return UnitOutcome(
                user_id=user_id, feed_type=feed_type, error=str(e), cancelled=True
            )
        except GenerationError as e:
            self._log.warning(
                "unit_failed",
                user_id=user_id,
                feed_type=feed_type.value,
                error=str(e),
            )
            return UnitOutcome(user_id=user_id, feed_type=feed_type, error=str(e))
        return UnitOutcome(user_id=user_id, feed_type=feed_type, result=result)
