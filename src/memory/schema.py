"""SQLite schema migrations for the lesson memory store."""

import logging
import sqlite3
from contextlib import closing, contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

from src.memory.errors import StorageError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Migration:
    """One named schema step; steps apply in lexical order of `name`."""

    name: str
    up: tuple[str, ...]
    down: tuple[str, ...]


MIGRATIONS: tuple[Migration, ...] = (
    Migration(
        name="0001_memory_entries",
        up=(
            """
            CREATE TABLE IF NOT EXISTS memory_entries (
                id TEXT PRIMARY KEY,
                project_id TEXT NOT NULL,
                feature_scope TEXT NOT NULL,
                task_type TEXT NOT NULL,
                agent_id TEXT NOT NULL,
                lesson_category TEXT NOT NULL,
                content TEXT NOT NULL,
                source_refs TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
            """,
            "CREATE INDEX IF NOT EXISTS idx_memory_entries_project_created ON memory_entries(project_id, created_at DESC)",
            "CREATE INDEX IF NOT EXISTS idx_memory_entries_project_feature_task ON memory_entries(project_id, feature_scope, task_type)",
            "CREATE INDEX IF NOT EXISTS idx_memory_entries_agent_task ON memory_entries(agent_id, task_type)",
            "CREATE INDEX IF NOT EXISTS idx_memory_entries_category_created ON memory_entries(lesson_category, created_at DESC)",
        ),
        down=("DROP TABLE IF EXISTS memory_entries",),
    ),
    Migration(
        name="0002_memory_push_audit",
        up=(
            """
            CREATE TABLE IF NOT EXISTS memory_push_audit (
                id TEXT PRIMARY KEY,
                project_id TEXT NOT NULL,
                ticket_id TEXT NOT NULL,
                from_status TEXT NOT NULL,
                to_status TEXT NOT NULL,
                agent_id TEXT NOT NULL,
                memory_entry_id TEXT NOT NULL REFERENCES memory_entries(id),
                payload_json TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
            """,
            "CREATE INDEX IF NOT EXISTS idx_memory_push_audit_project_ticket ON memory_push_audit(project_id, ticket_id, created_at DESC)",
            "CREATE INDEX IF NOT EXISTS idx_memory_push_audit_agent ON memory_push_audit(agent_id, created_at DESC)",
        ),
        down=("DROP TABLE IF EXISTS memory_push_audit",),
    ),
    Migration(
        name="0003_memory_process_lessons",
        up=(
            """
            CREATE TABLE IF NOT EXISTS memory_process_lessons (
                memory_entry_id TEXT PRIMARY KEY REFERENCES memory_entries(id) ON DELETE CASCADE,
                decision_moment TEXT NOT NULL,
                assumption_made TEXT NOT NULL,
                human_reason TEXT NOT NULL,
                missed_control TEXT NOT NULL,
                next_rule TEXT NOT NULL
            )
            """,
        ),
        down=("DROP TABLE IF EXISTS memory_process_lessons",),
    ),
)


IN_MEMORY_PATH = ":memory:"


def prepare_db_path(db_path: str) -> Path:
    """
    Create parent directories for a file-backed SQLite path.

    Raises:
        StorageError: For `:memory:`, since every operation opens its own connection.
    """
    if db_path.strip() == IN_MEMORY_PATH:
        raise StorageError("In-memory SQLite is not supported; configure a database file path.")
    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


@contextmanager
def connect(db_path: str) -> Iterator[sqlite3.Connection]:
    """
    Open one SQLite transaction with foreign keys enforced.

    Commits on success, rolls back on error, and always closes the connection.
    """
    path = prepare_db_path(db_path)
    with closing(sqlite3.connect(path)) as conn:
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        with conn:
            yield conn


def _ordered_migrations() -> list[Migration]:
    return sorted(MIGRATIONS, key=lambda migration: migration.name)


def _ensure_migrations_table(conn: sqlite3.Connection) -> set[str]:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_migrations (
            name TEXT PRIMARY KEY,
            applied_at TEXT NOT NULL
        )
        """
    )
    return {row["name"] for row in conn.execute("SELECT name FROM schema_migrations")}


def init_memory_db(db_path: str) -> list[str]:
    """
    Apply pending migrations in lexical order.

    Args:
        db_path: SQLite file path.
    Returns:
        Names of the steps applied by this call (empty when up to date).
    Raises:
        StorageError: When SQLite rejects a migration statement.
    """
    applied: list[str] = []
    try:
        with connect(db_path) as conn:
            done = _ensure_migrations_table(conn)
            for migration in _ordered_migrations():
                if migration.name in done:
                    continue
                for statement in migration.up:
                    conn.execute(statement)
                conn.execute(
                    "INSERT OR IGNORE INTO schema_migrations (name, applied_at) VALUES (?, ?)",
                    (migration.name, datetime.now(timezone.utc).isoformat()),
                )
                applied.append(migration.name)
    except sqlite3.Error as exc:
        logger.exception("Failed to migrate memory schema at '%s'.", db_path)
        raise StorageError(f"Memory schema migration failed: {exc}") from exc
    if applied:
        logger.info("Applied memory migrations: %s", ", ".join(applied))
    return applied


def rollback_memory_db(db_path: str, steps: int | None = None) -> list[str]:
    """
    Revert applied migrations in reverse lexical order.

    Args:
        db_path: SQLite file path.
        steps: Number of steps to revert; None reverts all of them.
    Returns:
        Names of the reverted steps, most recent first.
    """
    reverted: list[str] = []
    try:
        with connect(db_path) as conn:
            done = _ensure_migrations_table(conn)
            pending = [m for m in reversed(_ordered_migrations()) if m.name in done]
            if steps is not None:
                pending = pending[: max(0, steps)]
            for migration in pending:
                for statement in migration.down:
                    conn.execute(statement)
                conn.execute("DELETE FROM schema_migrations WHERE name = ?", (migration.name,))
                reverted.append(migration.name)
    except sqlite3.Error as exc:
        logger.exception("Failed to roll back memory schema at '%s'.", db_path)
        raise StorageError(f"Memory schema rollback failed: {exc}") from exc
    if reverted:
        logger.info("Reverted memory migrations: %s", ", ".join(reverted))
    return reverted
