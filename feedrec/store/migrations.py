"""SQLite schema migrations for the recommendation store."""

import sqlite3
from dataclasses import dataclass
from datetime import UTC, datetime

import structlog

from feedrec.store.errors import MigrationError


logger = structlog.get_logger()

CURRENT_VERSION = 2


@dataclass(frozen=True)
class Migration:
    """A database migration.

    Attributes:
        version: Target version after applying this migration.
        description: Human-readable description.
        up_sql: SQL to apply the migration.
        down_sql: SQL to rollback the migration.
    """

    version: int
    description: str
    up_sql: str
    down_sql: str


MIGRATIONS: list[Migration] = [
    Migration(
        version=1,
        description="Users, topics, resources and votes",
        up_sql="""
CREATE TABLE IF NOT EXISTS users (
    user_id TEXT PRIMARY KEY,
    email TEXT NOT NULL UNIQUE,
    display_name TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS topics (
    topic_id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    slug TEXT NOT NULL DEFAULT ''
);

CREATE TABLE IF NOT EXISTS user_topics (
    user_id TEXT NOT NULL REFERENCES users(user_id) ON DELETE CASCADE,
    topic_id TEXT NOT NULL REFERENCES topics(topic_id) ON DELETE CASCADE,
    PRIMARY KEY (user_id, topic_id)
);

CREATE TABLE IF NOT EXISTS resources (
    resource_id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    url TEXT NOT NULL,
    description TEXT,
    published_date TEXT,
    feed_type TEXT NOT NULL,
    source_id TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_resources_feed_type_created
    ON resources(feed_type, created_at);

CREATE TABLE IF NOT EXISTS resource_topics (
    resource_id TEXT NOT NULL REFERENCES resources(resource_id) ON DELETE CASCADE,
    topic_id TEXT NOT NULL REFERENCES topics(topic_id) ON DELETE CASCADE,
    PRIMARY KEY (resource_id, topic_id)
);

CREATE TABLE IF NOT EXISTS votes (
    user_id TEXT NOT NULL REFERENCES users(user_id) ON DELETE CASCADE,
    resource_id TEXT NOT NULL REFERENCES resources(resource_id) ON DELETE CASCADE,
    vote_type TEXT NOT NULL,
    created_at TEXT NOT NULL,
    PRIMARY KEY (user_id, resource_id)
);
""",
        down_sql="""
DROP TABLE IF EXISTS votes;
DROP TABLE IF EXISTS resource_topics;
DROP INDEX IF EXISTS idx_resources_feed_type_created;
DROP TABLE IF EXISTS resources;
DROP TABLE IF EXISTS user_topics;
DROP TABLE IF EXISTS topics;
DROP TABLE IF EXISTS users;
""",
    ),
    Migration(
        version=2,
        description="Daily recommendation rows keyed by user, feed type and date",
        up_sql="""
CREATE TABLE IF NOT EXISTS recommendations (
    recommendation_id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL REFERENCES users(user_id) ON DELETE CASCADE,
    feed_type TEXT NOT NULL,
    feed_date TEXT NOT NULL,
    resource_id TEXT NOT NULL,
    resource_json TEXT NOT NULL,
    position INTEGER NOT NULL,
    score REAL NOT NULL,
    generated_at TEXT NOT NULL,
    UNIQUE (user_id, feed_type, feed_date, resource_id),
    UNIQUE (user_id, feed_type, feed_date, position)
);
CREATE INDEX IF NOT EXISTS idx_recommendations_user_feed_date
    ON recommendations(user_id, feed_type, feed_date);
""",
        down_sql="""
DROP INDEX IF EXISTS idx_recommendations_user_feed_date;
DROP TABLE IF EXISTS recommendations;
""",
    ),
]


def get_migrations_to_apply(current_version: int) -> list[Migration]:
    """Get migrations that need to be applied.

    Args:
        current_version: The current schema version.

    Returns:
        List of migrations to apply in order.
    """
    return [m for m in MIGRATIONS if m.version > current_version]


class MigrationManager:
    """Manages SQLite schema migrations."""

    VERSION_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL,
    description TEXT
);
"""

    def __init__(self, connection: sqlite3.Connection) -> None:
        """Initialize the migration manager.

        Args:
            connection: SQLite connection to manage.
        """
        self._conn = connection
        self._log = logger.bind(component="store", operation="migration")

    def ensure_version_table(self) -> None:
        """Ensure the schema_version table exists."""
        self._conn.execute(self.VERSION_TABLE_SQL)
        self._conn.commit()

    def get_current_version(self) -> int:
        """Get the current schema version.

        Returns:
            Current version number, or 0 if no migrations applied.
        """
        self.ensure_version_table()
        cursor = self._conn.execute("SELECT MAX(version) FROM schema_version")
        row = cursor.fetchone()
        return row[0] if row[0] is not None else 0

    def apply_migrations(self) -> list[int]:
        """Apply all pending migrations.

        Returns:
            List of version numbers that were applied.

        Raises:
            MigrationError: If a migration script fails.
        """
        current = self.get_current_version()
        pending = get_migrations_to_apply(current)

        if not pending:
            self._log.info("no_migrations_pending", current_version=current)
            return []

        applied: list[int] = []

        for migration in pending:
            self._log.info(
                "applying_migration",
                version=migration.version,
                description=migration.description,
            )

            try:
                self._conn.executescript(migration.up_sql)
                self._conn.execute(
                    """
                    INSERT INTO schema_version (version, applied_at, description)
                    VALUES (?, ?, ?)
                    """,
                    (
                        migration.version,
                        datetime.now(UTC).isoformat(),
                        migration.description,
                    ),
                )
                self._conn.commit()
            except sqlite3.Error as e:
                self._log.error(
                    "migration_failed",
                    version=migration.version,
                    error=str(e),
                )
                self._conn.rollback()
                raise MigrationError(migration.version, str(e)) from e

            applied.append(migration.version)
            self._log.info("migration_applied", version=migration.version)

        return applied

    def rollback_to(self, target_version: int) -> list[int]:
        """Rollback to a specific version.

        Args:
            target_version: The version to rollback to.

        Returns:
            List of version numbers that were rolled back, newest first.

        Raises:
            ValueError: If target version is negative.
            MigrationError: If a rollback script fails.
        """
        if target_version < 0:
            msg = f"Invalid target version: {target_version}"
            raise ValueError(msg)

        current = self.get_current_version()
        rolled_back: list[int] = []

        for migration in reversed(MIGRATIONS):
            if migration.version <= target_version or migration.version > current:
                continue

            self._log.info(
                "rolling_back_migration",
                version=migration.version,
                description=migration.description,
            )

            try:
                self._conn.executescript(migration.down_sql)
                self._conn.execute(
                    "DELETE FROM schema_version WHERE version = ?",
                    (migration.version,),
                )
                self._conn.commit()
            except sqlite3.Error as e:
                self._log.error(
                    "rollback_failed",
                    version=migration.version,
                    error=str(e),
                )
                self._conn.rollback()
                raise MigrationError(migration.version, str(e)) from e

            rolled_back.append(migration.version)

        return rolled_back
