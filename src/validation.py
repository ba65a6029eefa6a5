"""
src/validation.py
Pure payload validators for memory creation, listing, workflow completion, and retrieval.
Exports: validate_memory_payload, validate_workflow_completion, validate_memory_query,
validate_audit_query, validate_retrieval_context, collect_retrieval_context
"""

import uuid
from datetime import datetime, timezone
from typing import Any

from src.common.token_matching import normalize_labels, to_label_refs, unique
from src.memory.errors import ValidationError
from src.memory.types import (
    ALL_PROJECTS,
    DEFAULT_QUERY_LIMIT,
    LESSON_CATEGORIES,
    TASK_TYPES,
    WORKFLOW_END_STATUSES,
    AuditQuery,
    MemoryEntry,
    MemoryQuery,
    ProcessLesson,
    RetrievalContext,
    WorkflowCompletion,
    is_all_projects,
)
from src.memory.write import format_timestamp, utc_now_iso
from src.shared import MAX_RETRIEVAL_LIMIT

PRIORITIES = ("P0", "P1", "P2", "P3")
MAX_LIST_LIMIT = 200
DEFAULT_RETRIEVAL_LIMIT = 10

PROCESS_LESSON_FIELDS = (
    ("decisionMoment", "decision_moment"),
    ("assumptionMade", "assumption_made"),
    ("humanReason", "human_reason"),
    ("missedControl", "missed_control"),
    ("nextRule", "next_rule"),
)


def safe_dict(value: Any) -> dict[str, Any]:
    """Return dict value or empty dict."""
    return value if isinstance(value, dict) else {}


def trimmed(value: Any) -> str:
    """Return stripped string value, or empty string for non-strings."""
    return value.strip() if isinstance(value, str) else ""


def string_list(value: Any) -> list[str]:
    """Return trimmed non-empty strings from a list; any other value is empty."""
    if not isinstance(value, (list, tuple)):
        return []
    return [item.strip() for item in value if isinstance(item, str) and item.strip()]


def _one_of(choices: tuple[str, ...]) -> str:
    return "|".join(choices)


def parse_limit(raw: Any, default: int, maximum: int, errors: list[str]) -> int:
    """Parse an integer limit within 1..maximum, appending an error when invalid."""
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return default
    message = f"limit must be an integer between 1 and {maximum}"
    if isinstance(raw, bool):
        errors.append(message)
        return default
    try:
        value = int(raw.strip()) if isinstance(raw, str) else raw
    except ValueError:
        errors.append(message)
        return default
    if not isinstance(value, int) or value <= 0 or value > maximum:
        errors.append(message)
        return default
    return value


def parse_created_at(raw: str, errors: list[str]) -> str:
    """Normalize an ISO-8601 timestamp to the stored UTC format, defaulting to now."""
    if not raw:
        return utc_now_iso()
    text = raw[:-1] + "+00:00" if raw.endswith(("Z", "z")) else raw
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        errors.append("createdAt must be an ISO-8601 timestamp")
        return ""
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return format_timestamp(parsed)


def _process_lesson(raw: Any, errors: list[str]) -> ProcessLesson | None:
    if raw is None:
        return None
    if not isinstance(raw, dict):
        errors.append("processLesson must be an object")
        return None
    values = {attr: trimmed(raw.get(key)) for key, attr in PROCESS_LESSON_FIELDS}
    if not any(values.values()):
        return None
    missing = [f"processLesson.{key} is required" for key, attr in PROCESS_LESSON_FIELDS if not values[attr]]
    if missing:
        errors.extend(missing)
        return None
    return ProcessLesson(**values)


def _memory_entry(payload: dict[str, Any], errors: list[str]) -> MemoryEntry | None:
    """Collect creation errors into `errors`; return the entry only when clean."""
    start = len(errors)
    project_id = trimmed(payload.get("projectId"))
    feature_scope = trimmed(payload.get("featureScope"))
    task_type = trimmed(payload.get("taskType")).lower()
    agent_id = trimmed(payload.get("agentId"))
    lesson_category = trimmed(payload.get("lessonCategory")).lower()
    content = trimmed(payload.get("content"))
    source_refs = string_list(payload.get("sourceRefs"))
    labels = string_list(payload.get("labels"))

    for key, value in (
        ("projectId", project_id),
        ("featureScope", feature_scope),
        ("taskType", task_type),
        ("agentId", agent_id),
        ("lessonCategory", lesson_category),
        ("content", content),
    ):
        if not value:
            errors.append(f"{key} is required")
    if project_id and is_all_projects(project_id):
        errors.append(f"projectId must not be the reserved value '{ALL_PROJECTS}'")
    if not source_refs:
        errors.append("sourceRefs must contain at least one source id")
    if task_type and task_type not in TASK_TYPES:
        errors.append(f"taskType must be one of {_one_of(TASK_TYPES)}")
    if lesson_category and lesson_category not in LESSON_CATEGORIES:
        errors.append(f"lessonCategory must be one of {_one_of(LESSON_CATEGORIES)}")
    created_at = parse_created_at(trimmed(payload.get("createdAt")), errors)
    process_lesson = _process_lesson(payload.get("processLesson"), errors)

    if len(errors) > start:
        return None
    return MemoryEntry(
        id=trimmed(payload.get("id")) or f"mem-{uuid.uuid4()}",
        project_id=project_id,
        feature_scope=feature_scope,
        task_type=task_type,
        agent_id=agent_id,
        lesson_category=lesson_category,
        content=content,
        source_refs=unique(source_refs + to_label_refs(labels)),
        created_at=created_at,
        process_lesson=process_lesson,
    )


def validate_memory_payload(payload: Any) -> MemoryEntry:
    """
    Validate and normalize a memory creation payload.

    Args:
        payload: Caller object with camelCase keys (projectId, featureScope, ...).
    Returns:
        Normalized entry with defaults applied (generated id, current createdAt).
    Raises:
        ValidationError: With every field violation found.
    """
    errors: list[str] = []
    entry = _memory_entry(safe_dict(payload), errors)
    if entry is None:
        raise ValidationError("Invalid payload", errors)
    return entry


def validate_workflow_completion(payload: Any) -> WorkflowCompletion:
    """
    Validate a ticket-finish payload and its nested memory.

    The ticket id is prepended to the memory's source refs; nested memory
    errors are reported with a `memory.` prefix.
    """
    payload = safe_dict(payload)
    project_id = trimmed(payload.get("projectId"))
    ticket_id = trimmed(payload.get("ticketId"))
    from_status = trimmed(payload.get("fromStatus"))
    to_status = trimmed(payload.get("toStatus")).lower()
    agent_id = trimmed(payload.get("agentId"))
    memory_payload = payload.get("memory")
    errors: list[str] = []

    for key, value in (
        ("projectId", project_id),
        ("ticketId", ticket_id),
        ("fromStatus", from_status),
        ("toStatus", to_status),
        ("agentId", agent_id),
    ):
        if not value:
            errors.append(f"{key} is required")
    if to_status and to_status not in WORKFLOW_END_STATUSES:
        errors.append(f"toStatus must be one of {_one_of(WORKFLOW_END_STATUSES)}")

    memory = None
    if not isinstance(memory_payload, dict):
        errors.append("memory is required")
    else:
        memory_errors: list[str] = []
        memory = _memory_entry(
            {**memory_payload, "projectId": project_id, "agentId": agent_id},
            memory_errors,
        )
        # projectId/agentId come from the transition and are reported once above.
        errors.extend(
            f"memory.{error}"
            for error in memory_errors
            if error not in ("projectId is required", "agentId is required")
        )

    if errors or memory is None:
        raise ValidationError("Invalid workflow completion payload", errors)
    memory.source_refs = unique([ticket_id] + memory.source_refs)
    return WorkflowCompletion(
        project_id=project_id,
        ticket_id=ticket_id,
        from_status=from_status,
        to_status=to_status,
        agent_id=agent_id,
        memory=memory,
    )


def validate_memory_query(query: Any) -> MemoryQuery:
    """Validate list filters; `projectId` is required ("all" means cross-project)."""
    query = safe_dict(query)
    errors: list[str] = []
    project_id = trimmed(query.get("projectId"))
    task_type = trimmed(query.get("taskType")).lower()
    lesson_category = trimmed(query.get("lessonCategory")).lower()
    if not project_id:
        errors.append("projectId is required")
    if task_type and task_type not in TASK_TYPES:
        errors.append(f"taskType must be one of {_one_of(TASK_TYPES)}")
    if lesson_category and lesson_category not in LESSON_CATEGORIES:
        errors.append(f"lessonCategory must be one of {_one_of(LESSON_CATEGORIES)}")
    limit = parse_limit(query.get("limit"), DEFAULT_QUERY_LIMIT, MAX_LIST_LIMIT, errors)
    if errors:
        raise ValidationError("Invalid memory query", errors)
    return MemoryQuery(
        project_id=project_id,
        feature_scope=trimmed(query.get("featureScope")),
        task_type=task_type,
        agent_id=trimmed(query.get("agentId")),
        lesson_category=lesson_category,
        label=trimmed(query.get("label")).lower(),
        search_query=trimmed(query.get("searchQuery")),
        limit=limit,
    )


def validate_audit_query(query: Any) -> AuditQuery:
    """Validate workflow audit list filters."""
    query = safe_dict(query)
    errors: list[str] = []
    project_id = trimmed(query.get("projectId"))
    if not project_id:
        errors.append("projectId is required")
    limit = parse_limit(query.get("limit"), DEFAULT_QUERY_LIMIT, MAX_LIST_LIMIT, errors)
    if errors:
        raise ValidationError("Invalid workflow audit query", errors)
    return AuditQuery(
        project_id=project_id,
        ticket_id=trimmed(query.get("ticketId")),
        agent_id=trimmed(query.get("agentId")),
        limit=limit,
    )


def collect_retrieval_context(
    payload: dict[str, Any],
    errors: list[str],
    default_limit: int = DEFAULT_RETRIEVAL_LIMIT,
) -> RetrievalContext:
    """Build a retrieval context, appending field errors to `errors`."""
    project_id = trimmed(payload.get("projectId"))
    task_type = trimmed(payload.get("taskType")).lower()
    priority = trimmed(payload.get("priority")).upper()
    if not project_id:
        errors.append("projectId is required")
    if task_type and task_type not in TASK_TYPES:
        errors.append(f"taskType must be one of {_one_of(TASK_TYPES)}")
    if priority and priority not in PRIORITIES:
        errors.append(f"priority must be one of {_one_of(PRIORITIES)}")
    raw_labels = payload.get("labels")
    if raw_labels is not None and not isinstance(raw_labels, (list, tuple)):
        errors.append("labels must be an array of strings")
    limit = parse_limit(payload.get("limit"), default_limit, MAX_RETRIEVAL_LIMIT, errors)
    return RetrievalContext(
        project_id=project_id,
        feature_scope=trimmed(payload.get("featureScope")),
        task_type=task_type,
        priority=priority,
        labels=normalize_labels(string_list(raw_labels)),
        search_query=trimmed(payload.get("searchQuery")),
        limit=limit,
    )


def validate_retrieval_context(payload: Any, default_limit: int = DEFAULT_RETRIEVAL_LIMIT) -> RetrievalContext:
    """Validate a retrieval request into a `RetrievalContext`."""
    errors: list[str] = []
    context = collect_retrieval_context(safe_dict(payload), errors, default_limit)
    if errors:
        raise ValidationError("Invalid retrieval context", errors)
    return context
