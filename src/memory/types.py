"""Dataclasses used by the SQLite memory layer."""

from dataclasses import dataclass, field
from typing import Any

from src.common.token_matching import parse_label_refs

TASK_TYPES = ("dev", "design", "qa", "pm", "other")
LESSON_CATEGORIES = ("success", "error", "decision", "constraint")
WORKFLOW_END_STATUSES = ("in-review", "done")
ALL_PROJECTS = "all"

DEFAULT_QUERY_LIMIT = 100


def is_all_projects(project_id: str) -> bool:
    """Return whether `project_id` is the cross-project sentinel."""
    return project_id.strip().lower() == ALL_PROJECTS


@dataclass
class ProcessLesson:
    """Structured post-mortem attached 1:1 to a memory entry."""

    decision_moment: str
    assumption_made: str
    human_reason: str
    missed_control: str
    next_rule: str

    def to_dict(self) -> dict[str, str]:
        return {
            "decisionMoment": self.decision_moment,
            "assumptionMade": self.assumption_made,
            "humanReason": self.human_reason,
            "missedControl": self.missed_control,
            "nextRule": self.next_rule,
        }


@dataclass
class MemoryEntry:
    """One recorded lesson persisted to `memory_entries`."""

    id: str
    project_id: str
    feature_scope: str
    task_type: str
    agent_id: str
    lesson_category: str
    content: str
    source_refs: list[str]
    created_at: str
    process_lesson: ProcessLesson | None = None

    @property
    def labels(self) -> list[str]:
        """Labels are always derived from `label:` source refs, never stored."""
        return parse_label_refs(self.source_refs)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "projectId": self.project_id,
            "featureScope": self.feature_scope,
            "taskType": self.task_type,
            "agentId": self.agent_id,
            "lessonCategory": self.lesson_category,
            "content": self.content,
            "sourceRefs": list(self.source_refs),
            "labels": self.labels,
            "createdAt": self.created_at,
        }
        if self.process_lesson is not None:
            data["processLesson"] = self.process_lesson.to_dict()
        return data


@dataclass
class WorkflowAudit:
    """One ticket status transition persisted to `memory_push_audit`."""

    id: str
    project_id: str
    ticket_id: str
    from_status: str
    to_status: str
    agent_id: str
    memory_entry_id: str
    payload: dict[str, Any]
    created_at: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "projectId": self.project_id,
            "ticketId": self.ticket_id,
            "fromStatus": self.from_status,
            "toStatus": self.to_status,
            "agentId": self.agent_id,
            "memoryEntryId": self.memory_entry_id,
            "payload": self.payload,
            "createdAt": self.created_at,
        }


@dataclass
class MemoryQuery:
    """AND-combined filters for `query_memory_entries`; blank values are ignored."""

    project_id: str = ""
    feature_scope: str = ""
    task_type: str = ""
    agent_id: str = ""
    lesson_category: str = ""
    label: str = ""
    search_query: str = ""
    limit: int = DEFAULT_QUERY_LIMIT


@dataclass
class AuditQuery:
    """AND-combined filters for `query_workflow_audits`."""

    project_id: str = ""
    ticket_id: str = ""
    agent_id: str = ""
    limit: int = DEFAULT_QUERY_LIMIT


@dataclass
class WorkflowCompletion:
    """Validated ticket-finish request: transition fields plus the new entry."""

    project_id: str
    ticket_id: str
    from_status: str
    to_status: str
    agent_id: str
    memory: MemoryEntry


@dataclass
class WorkflowCompletionResult:
    """Entry and audit written together by `record_workflow_completion`."""

    memory_entry: MemoryEntry
    audit: WorkflowAudit

    def to_dict(self) -> dict[str, Any]:
        return {"memoryEntry": self.memory_entry.to_dict(), "audit": self.audit.to_dict()}


@dataclass
class RetrievalContext:
    """Normalized retrieval hints; empty strings/lists mean "not provided"."""

    project_id: str
    feature_scope: str = ""
    task_type: str = ""
    priority: str = ""
    labels: list[str] = field(default_factory=list)
    search_query: str = ""
    limit: int = 10

    @property
    def cross_project(self) -> bool:
        return is_all_projects(self.project_id)
