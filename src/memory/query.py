"""Read/query helpers for memory entries and workflow audits."""

import json
import logging
import sqlite3
from typing import Any

from src.memory.errors import StorageError
from src.memory.schema import connect, init_memory_db
from src.memory.types import (
    ALL_PROJECTS,
    AuditQuery,
    MemoryEntry,
    MemoryQuery,
    ProcessLesson,
    WorkflowAudit,
    is_all_projects,
)

logger = logging.getLogger(__name__)

_ENTRY_COLUMNS = """
    e.id, e.project_id, e.feature_scope, e.task_type, e.agent_id,
    e.lesson_category, e.content, e.source_refs, e.created_at,
    p.decision_moment, p.assumption_made, p.human_reason, p.missed_control, p.next_rule
"""
_PROCESS_COLUMNS = ("decision_moment", "assumption_made", "human_reason", "missed_control", "next_rule")


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _load_json(text: str | None, default: Any) -> Any:
    try:
        return json.loads(text) if text else default
    except ValueError:
        logger.exception("Failed to parse stored JSON column.")
        return default


def _row_to_entry(row: sqlite3.Row) -> MemoryEntry:
    process_lesson = None
    if row["decision_moment"] is not None:
        process_lesson = ProcessLesson(*(row[column] for column in _PROCESS_COLUMNS))
    source_refs = _load_json(row["source_refs"], [])
    return MemoryEntry(
        id=row["id"],
        project_id=row["project_id"],
        feature_scope=row["feature_scope"],
        task_type=row["task_type"],
        agent_id=row["agent_id"],
        lesson_category=row["lesson_category"],
        content=row["content"],
        source_refs=[str(ref) for ref in source_refs] if isinstance(source_refs, list) else [],
        created_at=row["created_at"],
        process_lesson=process_lesson,
    )


def _row_to_audit(row: sqlite3.Row) -> WorkflowAudit:
    payload = _load_json(row["payload_json"], {})
    return WorkflowAudit(
        id=row["id"],
        project_id=row["project_id"],
        ticket_id=row["ticket_id"],
        from_status=row["from_status"],
        to_status=row["to_status"],
        agent_id=row["agent_id"],
        memory_entry_id=row["memory_entry_id"],
        payload=payload if isinstance(payload, dict) else {},
        created_at=row["created_at"],
    )


def _fetch(db_path: str, sql: str, args: list[Any]) -> list[sqlite3.Row]:
    init_memory_db(db_path)
    try:
        with connect(db_path) as conn:
            return conn.execute(sql, tuple(args)).fetchall()
    except sqlite3.Error as exc:
        logger.exception("Memory query failed.")
        raise StorageError(f"Memory query failed: {exc}") from exc


def query_memory_entries(db_path: str, filters: MemoryQuery | None = None) -> list[MemoryEntry]:
    """
    Return entries matching every non-blank filter, newest first.

    Args:
        db_path: SQLite path.
        filters: Query filters; `project_id` "all" or blank means every project.
    Returns:
        At most `filters.limit` entries ordered by `created_at` descending.
    """
    filters = filters or MemoryQuery()
    sql = [
        f"SELECT {_ENTRY_COLUMNS} FROM memory_entries e",
        "LEFT JOIN memory_process_lessons p ON p.memory_entry_id = e.id",
        "WHERE 1 = 1",
    ]
    args: list[Any] = []
    if filters.project_id and not is_all_projects(filters.project_id):
        sql.append("AND e.project_id = ? COLLATE NOCASE")
        args.append(filters.project_id)
    for column, value in (
        ("feature_scope", filters.feature_scope),
        ("task_type", filters.task_type),
        ("agent_id", filters.agent_id),
        ("lesson_category", filters.lesson_category),
    ):
        if value:
            sql.append(f"AND e.{column} = ?")
            args.append(value)
    if filters.label:
        sql.append(
            "AND EXISTS (SELECT 1 FROM json_each(e.source_refs) r WHERE lower(r.value) = ?)"
        )
        args.append(f"label:{filters.label.strip().lower()}")
    if filters.search_query:
        searchable = ["e.content"] + [f"p.{column}" for column in _PROCESS_COLUMNS]
        pattern = f"%{_escape_like(filters.search_query)}%"
        sql.append("AND (" + " OR ".join(f"{column} LIKE ? ESCAPE '\\'" for column in searchable) + ")")
        args.extend([pattern] * len(searchable))
    sql.append("ORDER BY e.created_at DESC, e.rowid DESC LIMIT ?")
    args.append(max(1, filters.limit))
    rows = _fetch(db_path, "\n".join(sql), args)
    return [_row_to_entry(row) for row in rows]


def query_workflow_audits(db_path: str, filters: AuditQuery | None = None) -> list[WorkflowAudit]:
    """Return workflow audits matching every non-blank filter, newest first."""
    filters = filters or AuditQuery()
    sql = ["SELECT * FROM memory_push_audit WHERE 1 = 1"]
    args: list[Any] = []
    if filters.project_id and not is_all_projects(filters.project_id):
        sql.append("AND project_id = ? COLLATE NOCASE")
        args.append(filters.project_id)
    if filters.ticket_id:
        sql.append("AND ticket_id = ?")
        args.append(filters.ticket_id)
    if filters.agent_id:
        sql.append("AND agent_id = ?")
        args.append(filters.agent_id)
    sql.append("ORDER BY created_at DESC, rowid DESC LIMIT ?")
    args.append(max(1, filters.limit))
    rows = _fetch(db_path, " ".join(sql), args)
    return [_row_to_audit(row) for row in rows]


def build_project_registry(db_path: str) -> set[str]:
    """Return lower-cased project ids already stored, plus the `all` sentinel."""
    rows = _fetch(
        db_path,
        "SELECT DISTINCT project_id FROM memory_entries WHERE TRIM(project_id) <> ''",
        [],
    )
    registry = {ALL_PROJECTS}
    registry.update(str(row["project_id"]).strip().lower() for row in rows)
    return registry
