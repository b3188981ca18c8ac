"""SQLite store for resources, users, votes, and recommendations."""

import sqlite3
import threading
import time
import uuid
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import UTC, date, datetime, timedelta
from pathlib import Path

import structlog

from feedrec.store.errors import PersistenceError, StoreConnectionError
from feedrec.store.metrics import StoreMetrics, TransactionContext
from feedrec.store.migrations import CURRENT_VERSION, MigrationManager
from feedrec.store.models import (
    FeedType,
    Recommendation,
    Resource,
    ResourceVote,
    Topic,
    User,
    VoteType,
)


logger = structlog.get_logger()


def _to_iso(value: datetime) -> str:
    """Serialize a timestamp as UTC ISO-8601 so text comparison sorts correctly."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat()


def _from_iso(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class SqliteStore:
    """SQLite implementation of every repository the pipeline consumes.

    One connection is shared across worker threads and guarded by a
    re-entrant lock. Writes run inside ``BEGIN IMMEDIATE`` transactions so
    a recommendation set is replaced as a single unit.
    """

    def __init__(
        self,
        db_path: Path | str,
        run_id: str | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            db_path: Path to SQLite database file, or ``":memory:"``.
            run_id: Optional run ID for logging context.
        """
        self._db_path = Path(db_path) if isinstance(db_path, str) else db_path
        self._run_id = run_id or str(uuid.uuid4())
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()
        self._metrics = StoreMetrics.get_instance()
        self._log = logger.bind(
            component="store",
            run_id=self._run_id,
            db_path=str(self._db_path),
        )

    @property
    def db_path(self) -> Path:
        """Get the database path."""
        return self._db_path

    @property
    def is_connected(self) -> bool:
        """Check if connected to database."""
        return self._conn is not None

    def connect(self) -> None:
        """Open the connection and apply pending migrations.

        Creates the database file and parent directories if needed.
        """
        if self._conn is not None:
            return

        in_memory = str(self._db_path) == ":memory:"
        if not in_memory:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)

        self._log.info("connecting_to_database")

        # Autocommit mode; transactions are opened explicitly
        self._conn = sqlite3.connect(
            str(self._db_path),
            check_same_thread=False,
            isolation_level=None,
        )
        self._conn.row_factory = sqlite3.Row

        if not in_memory:
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA synchronous=NORMAL")
        self._conn.execute("PRAGMA foreign_keys=ON")

        migration_mgr = MigrationManager(self._conn)
        old_version = migration_mgr.get_current_version()
        applied = migration_mgr.apply_migrations()

        self._log.info(
            "database_connected",
            old_version=old_version,
            new_version=CURRENT_VERSION,
            migrations_applied=applied,
        )

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
                self._log.info("database_closed")

    def __enter__(self) -> "SqliteStore":
        """Context manager entry."""
        self.connect()
        return self

    def __exit__(
        self,
        exc_type: type | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        """Context manager exit."""
        self.close()

    def _ensure_connected(self) -> sqlite3.Connection:
        """Return the live connection.

        Raises:
            StoreConnectionError: If not connected.
        """
        if self._conn is None:
            raise StoreConnectionError("Database not connected. Call connect() first.")
        return self._conn

    @contextmanager
    def _transaction(self, operation: str) -> Iterator[TransactionContext]:
        """Run a write transaction with timing, logging, and rollback.

        Args:
            operation: Name of the operation for logging.

        Yields:
            Transaction context with timing information.

        Raises:
            PersistenceError: If SQLite rejects any statement; the
                transaction is rolled back first.
        """
        with self._lock:
            conn = self._ensure_connected()
            tx_id = str(uuid.uuid4())[:8]
            start_ns = time.perf_counter_ns()
            ctx = TransactionContext(
                tx_id=tx_id, start_time_ns=start_ns, operation=operation
            )

            self._log.debug("transaction_started", tx_id=tx_id, op=operation)
            try:
                conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as e:
                # Nothing to roll back when the write lock was never taken
                self._metrics.record_tx_failure()
                self._log.error(
                    "transaction_failed",
                    tx_id=tx_id,
                    op=operation,
                    stage="begin",
                    error=str(e),
                )
                raise PersistenceError(operation, str(e)) from e

            try:
                yield ctx
                conn.execute("COMMIT")
            except Exception as e:
                conn.execute("ROLLBACK")
                duration_ms = (time.perf_counter_ns() - start_ns) / 1_000_000
                self._metrics.record_tx_failure()
                self._log.error(
                    "transaction_failed",
                    tx_id=tx_id,
                    op=operation,
                    error=str(e),
                    duration_ms=round(duration_ms, 2),
                )
                if isinstance(e, sqlite3.Error):
                    raise PersistenceError(operation, str(e)) from e
                raise

            duration_ms = (time.perf_counter_ns() - start_ns) / 1_000_000
            self._metrics.record_tx_duration(duration_ms)
            self._log.info(
                "transaction_complete",
                tx_id=tx_id,
                op=operation,
                affected_rows=ctx.affected_rows,
                duration_ms=round(duration_ms, 2),
            )

    def _query(self, sql: str, params: Iterable[object] = ()) -> list[sqlite3.Row]:
        with self._lock:
            conn = self._ensure_connected()
            return conn.execute(sql, tuple(params)).fetchall()

    # ===== Users and topics =====

    def upsert_topic(self, topic: Topic) -> None:
        """Insert or update a topic.

        Args:
            topic: The topic to store.
        """
        with self._transaction("upsert_topic") as ctx:
            conn = self._ensure_connected()
            self._upsert_topic_row(conn, topic)
            ctx.add_affected_rows(1)

    def upsert_user(self, user: User) -> None:
        """Insert or update a user and their interest topics.

        Args:
            user: The user to store. Interest topics must already exist.
        """
        with self._transaction("upsert_user") as ctx:
            conn = self._ensure_connected()
            conn.execute(
                """
                INSERT INTO users (user_id, email, display_name, created_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    email = excluded.email,
                    display_name = excluded.display_name
                """,
                (user.id, user.email, user.display_name, _to_iso(user.created_at)),
            )
            conn.execute("DELETE FROM user_topics WHERE user_id = ?", (user.id,))
            conn.executemany(
                "INSERT INTO user_topics (user_id, topic_id) VALUES (?, ?)",
                [(user.id, topic_id) for topic_id in user.interest_topic_ids],
            )
            ctx.add_affected_rows(1 + len(user.interest_topic_ids))

    def user_exists(self, user_id: str) -> bool:
        """Check whether a user exists.

        Args:
            user_id: The user ID to look up.

        Returns:
            True if the user exists.
        """
        rows = self._query("SELECT 1 FROM users WHERE user_id = ?", (user_id,))
        return bool(rows)

    def get_user(self, user_id: str) -> User | None:
        """Get a user by ID.

        Args:
            user_id: The user ID to look up.

        Returns:
            The User, or None if not found.
        """
        rows = self._query("SELECT * FROM users WHERE user_id = ?", (user_id,))
        if not rows:
            return None

        row = rows[0]
        topic_rows = self._query(
            "SELECT topic_id FROM user_topics WHERE user_id = ? ORDER BY topic_id",
            (user_id,),
        )
        return User(
            id=row["user_id"],
            email=row["email"],
            display_name=row["display_name"],
            created_at=datetime.fromisoformat(row["created_at"]),
            interest_topic_ids=[r["topic_id"] for r in topic_rows],
        )

    def list_user_ids(self) -> list[str]:
        """List all user IDs ordered by ID."""
        rows = self._query("SELECT user_id FROM users ORDER BY user_id")
        return [row["user_id"] for row in rows]

    # ===== Resources =====

    def upsert_resource(self, resource: Resource) -> None:
        """Insert or update a resource and its topic tags.

        Args:
            resource: The resource to store. Topics are upserted too.
        """
        with self._transaction("upsert_resource") as ctx:
            conn = self._ensure_connected()
            conn.execute(
                """
                INSERT INTO resources (
                    resource_id, title, url, description, published_date,
                    feed_type, source_id, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(resource_id) DO UPDATE SET
                    title = excluded.title,
                    url = excluded.url,
                    description = excluded.description,
                    published_date = excluded.published_date,
                    feed_type = excluded.feed_type,
                    source_id = excluded.source_id,
                    updated_at = excluded.updated_at
                """,
                (
                    resource.id,
                    resource.title,
                    resource.url,
                    resource.description,
                    _to_iso(resource.published_date)
                    if resource.published_date
                    else None,
                    resource.feed_type.value,
                    resource.source_id,
                    _to_iso(resource.created_at),
                    _to_iso(resource.updated_at),
                ),
            )
            conn.execute(
                "DELETE FROM resource_topics WHERE resource_id = ?", (resource.id,)
            )
            for topic in resource.topics:
                self._upsert_topic_row(conn, topic)
                conn.execute(
                    "INSERT INTO resource_topics (resource_id, topic_id) VALUES (?, ?)",
                    (resource.id, topic.id),
                )
            ctx.add_affected_rows(1 + len(resource.topics))

    def list_resources(
        self,
        feed_type: FeedType,
        created_since: datetime | None = None,
    ) -> list[Resource]:
        """List resources of a feed type.

        Args:
            feed_type: Feed type to list.
            created_since: Optional inclusive lower bound on ``created_at``.

        Returns:
            Resources ordered by resource ID, with topics attached.
        """
        since = _to_iso(created_since) if created_since else ""
        rows = self._query(
            """
            SELECT * FROM resources
            WHERE feed_type = ? AND created_at >= ?
            ORDER BY resource_id
            """,
            (feed_type.value, since),
        )
        topic_rows = self._query(
            """
            SELECT rt.resource_id, t.topic_id, t.name, t.slug
            FROM resource_topics rt
            JOIN topics t ON t.topic_id = rt.topic_id
            JOIN resources r ON r.resource_id = rt.resource_id
            WHERE r.feed_type = ? AND r.created_at >= ?
            ORDER BY rt.resource_id, t.topic_id
            """,
            (feed_type.value, since),
        )

        topics_by_resource: dict[str, list[Topic]] = {}
        for row in topic_rows:
            topics_by_resource.setdefault(row["resource_id"], []).append(
                Topic(id=row["topic_id"], name=row["name"], slug=row["slug"])
            )

        return [
            self._row_to_resource(row, topics_by_resource.get(row["resource_id"], []))
            for row in rows
        ]

    def _row_to_resource(self, row: sqlite3.Row, topics: list[Topic]) -> Resource:
        return Resource(
            id=row["resource_id"],
            title=row["title"],
            url=row["url"],
            description=row["description"],
            published_date=_from_iso(row["published_date"]),
            feed_type=FeedType(row["feed_type"]),
            source_id=row["source_id"],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
            topics=topics,
        )

    @staticmethod
    def _upsert_topic_row(conn: sqlite3.Connection, topic: Topic) -> None:
        conn.execute(
            """
            INSERT INTO topics (topic_id, name, slug) VALUES (?, ?, ?)
            ON CONFLICT(topic_id) DO UPDATE SET
                name = excluded.name,
                slug = excluded.slug
            """,
            (topic.id, topic.name, topic.slug),
        )

    # ===== Votes =====

    def record_vote(
        self,
        user_id: str,
        resource_id: str,
        vote_type: VoteType,
        created_at: datetime | None = None,
    ) -> None:
        """Record or change a user's vote on a resource.

        Args:
            user_id: Voting user.
            resource_id: Voted resource.
            vote_type: Upvote or downvote.
            created_at: Vote timestamp (defaults to now).
        """
        voted_at = created_at or datetime.now(UTC)
        with self._transaction("record_vote") as ctx:
            conn = self._ensure_connected()
            conn.execute(
                """
                INSERT INTO votes (user_id, resource_id, vote_type, created_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(user_id, resource_id) DO UPDATE SET
                    vote_type = excluded.vote_type
                """,
                (user_id, resource_id, vote_type.value, _to_iso(voted_at)),
            )
            ctx.add_affected_rows(1)

    def get_votes_by_user(self, user_id: str) -> list[ResourceVote]:
        """Get all votes cast by a user.

        Args:
            user_id: The voting user.

        Returns:
            Votes with the voted resource's source and topics attached,
            ordered by resource ID.
        """
        rows = self._query(
            """
            SELECT v.user_id, v.resource_id, v.vote_type, v.created_at,
                   r.source_id
            FROM votes v
            JOIN resources r ON r.resource_id = v.resource_id
            WHERE v.user_id = ?
            ORDER BY v.resource_id
            """,
            (user_id,),
        )
        topic_rows = self._query(
            """
            SELECT rt.resource_id, rt.topic_id
            FROM resource_topics rt
            JOIN votes v ON v.resource_id = rt.resource_id
            WHERE v.user_id = ?
            ORDER BY rt.resource_id, rt.topic_id
            """,
            (user_id,),
        )

        topic_ids: dict[str, list[str]] = {}
        for row in topic_rows:
            topic_ids.setdefault(row["resource_id"], []).append(row["topic_id"])

        return [
            ResourceVote(
                user_id=row["user_id"],
                resource_id=row["resource_id"],
                vote_type=VoteType(row["vote_type"]),
                created_at=datetime.fromisoformat(row["created_at"]),
                resource_source_id=row["source_id"],
                resource_topic_ids=topic_ids.get(row["resource_id"], []),
            )
            for row in rows
        ]

    # ===== Recommendations =====

    def replace_recommendations(
        self,
        user_id: str,
        feed_type: FeedType,
        feed_date: date,
        recommendations: list[Recommendation],
    ) -> int:
        """Atomically replace every row for a (user, feed type, date) key.

        The delete and all inserts share one transaction, so readers see
        either the previous set or the new one, never a mix.

        Args:
            user_id: Owner of the feed.
            feed_type: Feed type of the set.
            feed_date: Date of the set.
            recommendations: The complete new set (may be empty).

        Returns:
            Number of rows written.

        Raises:
            ValueError: If a row does not belong to the key.
            PersistenceError: If the write fails (nothing is changed).
        """
        for rec in recommendations:
            if (rec.user_id, rec.feed_type, rec.feed_date) != (
                user_id,
                feed_type,
                feed_date,
            ):
                msg = (
                    f"Recommendation {rec.id} does not belong to "
                    f"({user_id}, {feed_type.value}, {feed_date.isoformat()})"
                )
                raise ValueError(msg)

        with self._transaction("replace_recommendations") as ctx:
            conn = self._ensure_connected()
            cursor = conn.execute(
                """
                DELETE FROM recommendations
                WHERE user_id = ? AND feed_type = ? AND feed_date = ?
                """,
                (user_id, feed_type.value, feed_date.isoformat()),
            )
            ctx.add_affected_rows(max(cursor.rowcount, 0))

            conn.executemany(
                """
                INSERT INTO recommendations (
                    recommendation_id, user_id, feed_type, feed_date,
                    resource_id, resource_json, position, score, generated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        rec.id,
                        rec.user_id,
                        rec.feed_type.value,
                        rec.feed_date.isoformat(),
                        rec.resource_id,
                        rec.resource.model_dump_json(),
                        rec.position,
                        rec.score,
                        _to_iso(rec.generated_at),
                    )
                    for rec in recommendations
                ],
            )
            ctx.add_affected_rows(len(recommendations))

        self._metrics.record_replace(len(recommendations))
        return len(recommendations)

    def get_recommendations(
        self,
        user_id: str,
        feed_type: FeedType,
        feed_date: date,
    ) -> list[Recommendation]:
        """Get the rows for an exact key.

        Args:
            user_id: Owner of the feed.
            feed_type: Feed type.
            feed_date: Feed date.

        Returns:
            Rows ordered by position ascending.
        """
        rows = self._query(
            """
            SELECT * FROM recommendations
            WHERE user_id = ? AND feed_type = ? AND feed_date = ?
            ORDER BY position
            """,
            (user_id, feed_type.value, feed_date.isoformat()),
        )
        return [self._row_to_recommendation(row) for row in rows]

    def get_most_recent_date_before(
        self,
        user_id: str,
        feed_type: FeedType,
        before: date,
    ) -> date | None:
        """Get the latest date strictly before ``before`` with rows.

        Args:
            user_id: Owner of the feed.
            feed_type: Feed type.
            before: Exclusive upper bound.

        Returns:
            The fallback date, or None if no earlier data exists.
        """
        rows = self._query(
            """
            SELECT MAX(feed_date) AS latest FROM recommendations
            WHERE user_id = ? AND feed_type = ? AND feed_date < ?
            """,
            (user_id, feed_type.value, before.isoformat()),
        )
        latest = rows[0]["latest"] if rows else None
        return date.fromisoformat(latest) if latest else None

    def get_recommended_resource_ids(
        self,
        user_id: str,
        feed_type: FeedType,
        start: date,
        end: date,
    ) -> set[str]:
        """Get resource IDs recommended with a date in ``[start, end)``.

        Args:
            user_id: Owner of the feeds.
            feed_type: Feed type.
            start: Inclusive start date.
            end: Exclusive end date.

        Returns:
            Set of resource IDs.
        """
        rows = self._query(
            """
            SELECT DISTINCT resource_id FROM recommendations
            WHERE user_id = ? AND feed_type = ?
              AND feed_date >= ? AND feed_date < ?
            """,
            (user_id, feed_type.value, start.isoformat(), end.isoformat()),
        )
        return {row["resource_id"] for row in rows}

    def get_history(
        self,
        user_id: str,
        feed_type: FeedType | None = None,
        page_size: int = 30,
        page_number: int = 1,
    ) -> list[Recommendation]:
        """Get a page of past recommendations.

        Args:
            user_id: Owner of the feeds.
            feed_type: Optional feed type filter.
            page_size: Rows per page.
            page_number: 1-based page number.

        Returns:
            Rows ordered by date descending, then feed type and position.
        """
        if page_size < 1 or page_number < 1:
            msg = "page_size and page_number must be positive"
            raise ValueError(msg)

        sql = "SELECT * FROM recommendations WHERE user_id = ?"
        params: list[object] = [user_id]
        if feed_type is not None:
            sql += " AND feed_type = ?"
            params.append(feed_type.value)
        sql += " ORDER BY feed_date DESC, feed_type, position LIMIT ? OFFSET ?"
        params.extend([page_size, (page_number - 1) * page_size])

        return [self._row_to_recommendation(row) for row in self._query(sql, params)]

    def _row_to_recommendation(self, row: sqlite3.Row) -> Recommendation:
        return Recommendation(
            id=row["recommendation_id"],
            user_id=row["user_id"],
            feed_type=FeedType(row["feed_type"]),
            feed_date=date.fromisoformat(row["feed_date"]),
            resource_id=row["resource_id"],
            resource=Resource.model_validate_json(row["resource_json"]),
            position=row["position"],
            score=row["score"],
            generated_at=datetime.fromisoformat(row["generated_at"]),
        )

    # ===== Retention =====

    def prune_old_recommendations(
        self,
        days: int = 90,
        today: date | None = None,
    ) -> int:
        """Delete recommendation rows dated more than ``days`` ago.

        Args:
            days: Number of days to retain.
            today: Reference date (defaults to today in UTC).

        Returns:
            Number of rows pruned.
        """
        cutoff = (today or datetime.now(UTC).date()) - timedelta(days=days)

        with self._transaction("prune_recommendations") as ctx:
            conn = self._ensure_connected()
            cursor = conn.execute(
                "DELETE FROM recommendations WHERE feed_date < ?",
                (cutoff.isoformat(),),
            )
            pruned = cursor.rowcount
            ctx.add_affected_rows(pruned)

        self._metrics.record_recommendations_pruned(pruned)
        self._log.info("recommendations_pruned", count=pruned, days=days)
        return pruned

    # ===== Stats =====

    def get_stats(self) -> dict[str, int]:
        """Get row counts for all tables.

        Returns:
            Dictionary mapping table name to row count.
        """
        stats: dict[str, int] = {}
        for table in ("users", "topics", "resources", "votes", "recommendations"):
            rows = self._query(f"SELECT COUNT(*) FROM {table}")  # noqa: S608
            stats[table] = rows[0][0]
        return stats

    def get_schema_version(self) -> int:
        """Get current schema version."""
        with self._lock:
            return MigrationManager(self._ensure_connected()).get_current_version()
