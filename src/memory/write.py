"""Write helpers for the lesson memory tables."""

import json
import logging
import sqlite3
from datetime import datetime, timezone
from typing import Any

from src.memory.errors import DuplicateId, StorageError
from src.memory.schema import connect, init_memory_db
from src.memory.types import MemoryEntry, WorkflowAudit

logger = logging.getLogger(__name__)


def utc_now_iso() -> str:
    """Return the current UTC time in the canonical stored format."""
    return format_timestamp(datetime.now(timezone.utc))


def format_timestamp(value: datetime) -> str:
    """Render an aware datetime as `YYYY-MM-DDTHH:MM:SS.mmmZ` in UTC."""
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def _json_text(value: Any) -> str:
    return json.dumps(value, ensure_ascii=True, default=str)


def _is_duplicate_error(exc: sqlite3.IntegrityError) -> bool:
    message = str(exc)
    return "UNIQUE constraint failed" in message or "PRIMARY KEY" in message


def _insert_entry_rows(conn: sqlite3.Connection, entry: MemoryEntry) -> None:
    conn.execute(
        """
        INSERT INTO memory_entries (
            id, project_id, feature_scope, task_type, agent_id,
            lesson_category, content, source_refs, created_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            entry.id,
            entry.project_id,
            entry.feature_scope,
            entry.task_type,
            entry.agent_id,
            entry.lesson_category,
            entry.content,
            _json_text(list(entry.source_refs)),
            entry.created_at,
        ),
    )
    lesson = entry.process_lesson
    if lesson is None:
        return
    conn.execute(
        """
        INSERT INTO memory_process_lessons (
            memory_entry_id, decision_moment, assumption_made,
            human_reason, missed_control, next_rule
        ) VALUES (?, ?, ?, ?, ?, ?)
        """,
        (
            entry.id,
            lesson.decision_moment,
            lesson.assumption_made,
            lesson.human_reason,
            lesson.missed_control,
            lesson.next_rule,
        ),
    )


def _insert_audit_row(conn: sqlite3.Connection, audit: WorkflowAudit) -> None:
    conn.execute(
        """
        INSERT INTO memory_push_audit (
            id, project_id, ticket_id, from_status, to_status,
            agent_id, memory_entry_id, payload_json, created_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            audit.id,
            audit.project_id,
            audit.ticket_id,
            audit.from_status,
            audit.to_status,
            audit.agent_id,
            audit.memory_entry_id,
            _json_text(audit.payload or {}),
            audit.created_at,
        ),
    )


_RECORD_KINDS = {
    "memory_entries": "memory entry",
    "memory_push_audit": "workflow audit",
}


def _duplicate_table(exc: sqlite3.IntegrityError, record_ids: dict[str, str]) -> str:
    """Return the table named in a UNIQUE failure, defaulting to the first one written."""
    message = str(exc)
    for table in record_ids:
        if f"{table}." in message:
            return table
    return next(iter(record_ids))


def _write(db_path: str, label: str, record_ids: dict[str, str], *writers) -> None:
    """
    Run row writers in one transaction, mapping SQLite failures to domain errors.

    `record_ids` maps each written table to the id inserted into it, so a
    duplicate is reported against the record that actually collided.
    """
    init_memory_db(db_path)
    try:
        with connect(db_path) as conn:
            for writer in writers:
                writer(conn)
    except sqlite3.IntegrityError as exc:
        if _is_duplicate_error(exc):
            table = _duplicate_table(exc, record_ids)
            kind = _RECORD_KINDS[table]
            logger.warning("Rejected duplicate %s id '%s'.", kind, record_ids[table])
            raise DuplicateId(record_ids[table], kind) from exc
        logger.exception("Integrity failure while writing %s.", label)
        raise StorageError(f"Failed to write {label}: {exc}") from exc
    except sqlite3.Error as exc:
        logger.exception("SQLite failure while writing %s.", label)
        raise StorageError(f"Failed to write {label}: {exc}") from exc


def insert_memory_entry(db_path: str, entry: MemoryEntry) -> MemoryEntry:
    """
    Insert one memory entry and its optional process lesson atomically.

    Args:
        db_path: SQLite path.
        entry: Normalized entry (see `src.validation.validate_memory_payload`).
    Returns:
        The persisted entry.
    Raises:
        DuplicateId: When `entry.id` already exists.
        StorageError: For any other SQLite failure.
    """
    _write(
        db_path,
        f"memory entry {entry.id}",
        {"memory_entries": entry.id},
        lambda conn: _insert_entry_rows(conn, entry),
    )
    logger.info("Recorded memory entry '%s' for project '%s'.", entry.id, entry.project_id)
    return entry


def insert_workflow_audit(db_path: str, audit: WorkflowAudit) -> WorkflowAudit:
    """Insert one workflow audit row; its memory entry must already exist."""
    _write(
        db_path,
        f"workflow audit {audit.id}",
        {"memory_push_audit": audit.id},
        lambda conn: _insert_audit_row(conn, audit),
    )
    logger.info("Recorded workflow audit '%s' for ticket '%s'.", audit.id, audit.ticket_id)
    return audit


def record_workflow_completion(
    db_path: str,
    entry: MemoryEntry,
    audit: WorkflowAudit,
) -> tuple[MemoryEntry, WorkflowAudit]:
    """
    Persist a completion memory entry and its audit in one transaction.

    Either both rows exist afterwards or neither does.

    Raises:
        DuplicateId: When the entry (or audit) id collides; nothing is written.
        StorageError: For any other SQLite failure.
    """
    _write(
        db_path,
        f"workflow completion {audit.ticket_id}",
        {"memory_entries": entry.id, "memory_push_audit": audit.id},
        lambda conn: _insert_entry_rows(conn, entry),
        lambda conn: _insert_audit_row(conn, audit),
    )
    logger.info(
        "Recorded workflow completion for ticket '%s' (%s -> %s) with memory '%s'.",
        audit.ticket_id,
        audit.from_status,
        audit.to_status,
        entry.id,
    )
    return entry, audit
