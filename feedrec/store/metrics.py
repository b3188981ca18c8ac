"""Metrics collection for the recommendation store."""

from dataclasses import dataclass, field
from threading import Lock
from typing import ClassVar


@dataclass
class StoreMetrics:
    """Metrics for store operations.

    Attributes:
        db_tx_count: Number of committed transactions.
        db_tx_failed_total: Transactions that failed to begin or were rolled back.
        db_tx_duration_ms: Cumulative transaction duration in milliseconds.
        recommendation_sets_replaced: Atomic replace operations committed.
        recommendation_rows_written: Rows inserted by replace operations.
        recommendations_pruned_total: Rows removed by retention.
    """

    db_tx_count: int = 0
    db_tx_failed_total: int = 0
    db_tx_duration_ms: float = 0.0
    recommendation_sets_replaced: int = 0
    recommendation_rows_written: int = 0
    recommendations_pruned_total: int = 0
    _lock: Lock = field(default_factory=Lock, repr=False, compare=False)

    _instance: ClassVar["StoreMetrics | None"] = None

    @classmethod
    def get_instance(cls) -> "StoreMetrics":
        """Get singleton metrics instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset metrics (primarily for testing)."""
        cls._instance = None

    def record_tx_duration(self, duration_ms: float) -> None:
        """Record a committed transaction.

        Args:
            duration_ms: Duration in milliseconds.
        """
        with self._lock:
            self.db_tx_duration_ms += duration_ms
            self.db_tx_count += 1

    def record_tx_failure(self) -> None:
        """Record a rolled back transaction."""
        with self._lock:
            self.db_tx_failed_total += 1

    def record_replace(self, rows: int) -> None:
        """Record an atomic recommendation replace.

        Args:
            rows: Number of rows written.
        """
        with self._lock:
            self.recommendation_sets_replaced += 1
            self.recommendation_rows_written += rows

    def record_recommendations_pruned(self, count: int) -> None:
        """Record pruned recommendation rows.

        Args:
            count: Number of rows pruned.
        """
        with self._lock:
            self.recommendations_pruned_total += count

    @property
    def avg_tx_duration_ms(self) -> float:
        """Average committed transaction duration in milliseconds."""
        if self.db_tx_count == 0:
            return 0.0
        return self.db_tx_duration_ms / self.db_tx_count

    def to_dict(self) -> dict[str, float | int]:
        """Convert metrics to dictionary.

        Returns:
            Dictionary of metric name to value.
        """
        return {
            "db_tx_count": self.db_tx_count,
            "db_tx_failed_total": self.db_tx_failed_total,
            "db_tx_duration_ms": self.db_tx_duration_ms,
            "recommendation_sets_replaced": self.recommendation_sets_replaced,
            "recommendation_rows_written": self.recommendation_rows_written,
            "recommendations_pruned_total": self.recommendations_pruned_total,
        }


@dataclass
class TransactionContext:
    """Context for a single transaction with timing.

    Attributes:
        tx_id: Unique transaction identifier.
        start_time_ns: Start time in nanoseconds.
        operation: The operation being performed.
        affected_rows: Rows touched so far.
    """

    tx_id: str
    start_time_ns: int
    operation: str
    affected_rows: int = field(default=0)

    def add_affected_rows(self, rows: int) -> None:
        """Add to the affected row count.

        Args:
            rows: Number of rows affected.
        """
        self.affected_rows += rows
