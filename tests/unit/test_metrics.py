"""Unit tests for store and generation metrics."""

import threading

from feedrec.recommendation.metrics import GenerationMetrics
from feedrec.store.metrics import StoreMetrics, TransactionContext


class TestStoreMetrics:
    """Tests for StoreMetrics."""

    def test_singleton_and_reset(self) -> None:
        """Test get_instance returns one instance until reset."""
        StoreMetrics.reset()
        first = StoreMetrics.get_instance()

        assert StoreMetrics.get_instance() is first
        StoreMetrics.reset()
        assert StoreMetrics.get_instance() is not first

    def test_average_duration(self) -> None:
        """Test average duration over committed transactions."""
        metrics = StoreMetrics()
        assert metrics.avg_tx_duration_ms == 0.0

        metrics.record_tx_duration(10.0)
        metrics.record_tx_duration(30.0)

        assert metrics.avg_tx_duration_ms == 20.0

    def test_to_dict(self) -> None:
        """Test replace and prune counters are exported."""
        metrics = StoreMetrics()
        metrics.record_replace(3)
        metrics.record_replace(0)
        metrics.record_recommendations_pruned(5)
        metrics.record_tx_failure()

        data = metrics.to_dict()

        assert data["recommendation_sets_replaced"] == 2
        assert data["recommendation_rows_written"] == 3
        assert data["recommendations_pruned_total"] == 5
        assert data["db_tx_failed_total"] == 1


class TestTransactionContext:
    """Tests for TransactionContext."""

    def test_add_affected_rows(self) -> None:
        """Test affected rows accumulate."""
        ctx = TransactionContext(tx_id="abc", start_time_ns=0, operation="op")
        ctx.add_affected_rows(2)
        ctx.add_affected_rows(3)

        assert ctx.affected_rows == 5


class TestGenerationMetrics:
    """Tests for GenerationMetrics."""

    def test_unit_lifecycle_counters(self) -> None:
        """Test success, failure and cancellation counts."""
        metrics = GenerationMetrics()
        for _ in range(3):
            metrics.record_unit_started()
        metrics.record_unit_succeeded(count=4, duration_ms=12.5)
        metrics.record_unit_failed()
        metrics.record_unit_failed(cancelled=True)

        data = metrics.to_dict()

        assert data["units_started"] == 3
        assert data["units_succeeded"] == 1
        assert data["units_failed"] == 2
        assert data["units_cancelled"] == 1
        assert data["recommendations_generated"] == 4

    def test_scorer_anomalies_by_key(self) -> None:
        """Test anomalies are counted per scorer key."""
        metrics = GenerationMetrics()
        metrics.record_scorer_anomaly("similarity")
        metrics.record_scorer_anomaly("similarity")
        metrics.record_scorer_anomaly("topic")

        assert metrics.scorer_anomalies_total == 3
        assert metrics.scorer_anomalies_by_key == {"similarity": 2, "topic": 1}

    def test_thread_safe_counting(self) -> None:
        """Test concurrent updates are not lost."""
        metrics = GenerationMetrics()

        def _bump() -> None:
            for _ in range(500):
                metrics.record_unit_started()

        threads = [threading.Thread(target=_bump) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert metrics.units_started == 2000
