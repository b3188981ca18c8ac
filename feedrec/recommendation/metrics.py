"""Metrics collection for recommendation generation."""

from dataclasses import dataclass, field
from threading import Lock
from typing import ClassVar


@dataclass
class GenerationMetrics:
    """Counters for generation units and scoring.

    Attributes:
        units_started: Units that began generating.
        units_succeeded: Units that persisted a result.
        units_failed: Units that ended in FAILED, cancellations included.
        units_cancelled: Units stopped by a cancel request.
        scorer_anomalies_total: Excluded scorer results.
        scorer_anomalies_by_key: Excluded scorer results per scorer key.
        recommendations_generated: Rows produced by succeeded units.
        generation_duration_ms: Cumulative unit wall time.
    """

    units_started: int = 0
    units_succeeded: int = 0
    units_failed: int = 0
    units_cancelled: int = 0
    scorer_anomalies_total: int = 0
    scorer_anomalies_by_key: dict[str, int] = field(default_factory=dict)
    recommendations_generated: int = 0
    generation_duration_ms: float = 0.0
    _lock: Lock = field(default_factory=Lock, repr=False, compare=False)

    _instance: ClassVar["GenerationMetrics | None"] = None

    @classmethod
    def get_instance(cls) -> "GenerationMetrics":
        """Get singleton metrics instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset metrics (primarily for testing)."""
        cls._instance = None

    def record_unit_started(self) -> None:
        """Record a unit entering PENDING."""
        with self._lock:
            self.units_started += 1

    def record_unit_succeeded(self, count: int, duration_ms: float) -> None:
        """Record a persisted unit.

        Args:
            count: Rows written.
            duration_ms: Unit wall time.
        """
        with self._lock:
            self.units_succeeded += 1
            self.recommendations_generated += count
            self.generation_duration_ms += duration_ms

    def record_unit_failed(self, cancelled: bool = False) -> None:
        """Record a unit that ended in FAILED.

        Args:
            cancelled: Whether the failure was a cancellation.
        """
        with self._lock:
            self.units_failed += 1
            if cancelled:
                self.units_cancelled += 1

    def record_scorer_anomaly(self, scorer_key: str) -> None:
        """Record an excluded scorer result.

        Args:
            scorer_key: Key of the misbehaving scorer.
        """
        with self._lock:
            self.scorer_anomalies_total += 1
            self.scorer_anomalies_by_key[scorer_key] = (
                self.scorer_anomalies_by_key.get(scorer_key, 0) + 1
            )

    def to_dict(self) -> dict[str, object]:
        """Convert metrics to dictionary."""
        return {
            "units_started": self.units_started,
            "units_succeeded": self.units_succeeded,
            "units_failed": self.units_failed,
            "units_cancelled": self.units_cancelled,
            "scorer_anomalies_total": self.scorer_anomalies_total,
            "scorer_anomalies_by_key": dict(self.scorer_anomalies_by_key),
            "recommendations_generated": self.recommendations_generated,
            "generation_duration_ms": self.generation_duration_ms,
        }
