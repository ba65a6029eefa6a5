"""
src/memory_api.py
Caller-facing memory operations: project scope check, validation, store, and engine.
Exports: MemoryApi, build_memory_api_from_env
"""

import logging
import uuid
from datetime import datetime
from typing import Any

from dotenv import load_dotenv

from src.compose.ops import (
    ComposedHandoff,
    ComposedPrompt,
    ComposedTicket,
    compose_handoff,
    compose_reference_prompt,
    compose_ticket,
)
from src.insights import MemoryInsights, aggregate_memory_insights
from src.memory.errors import NotFound
from src.memory.query import build_project_registry, query_memory_entries, query_workflow_audits
from src.memory.schema import init_memory_db
from src.memory.types import (
    ALL_PROJECTS,
    MemoryEntry,
    WorkflowAudit,
    WorkflowCompletionResult,
)
from src.memory.write import insert_memory_entry, record_workflow_completion, utc_now_iso
from src.retrieval.ranking import RetrievalResult, retrieve_memory
from src.shared import (
    DEFAULT_CANDIDATE_LIMIT,
    build_candidate_limit,
    build_compose_limit,
    build_memory_db_path,
    build_project_registry_env,
)
from src.validation import (
    safe_dict,
    validate_audit_query,
    validate_memory_payload,
    validate_memory_query,
    validate_retrieval_context,
    validate_workflow_completion,
)

logger = logging.getLogger(__name__)


class MemoryApi:
    """
    Thin caller facade over the memory store and retrieval engine.

    Args:
        db_path: SQLite path.
        project_registry: Known project ids; None accepts any project.
        candidate_limit: Maximum candidates loaded per retrieval.
        compose_limit: Default retrieval limit for composition helpers.
    """

    def __init__(
        self,
        db_path: str,
        project_registry: set[str] | None = None,
        candidate_limit: int = DEFAULT_CANDIDATE_LIMIT,
        compose_limit: int | None = None,
    ):
        self.db_path = db_path
        self.project_registry = (
            {project.strip().lower() for project in project_registry} | {ALL_PROJECTS}
            if project_registry is not None
            else None
        )
        self.candidate_limit = candidate_limit
        self.compose_limit = compose_limit

    def _require_project(self, payload: Any) -> None:
        """Raise NotFound when the payload's project is outside the registry."""
        if self.project_registry is None:
            return
        project_id = safe_dict(payload).get("projectId")
        if not isinstance(project_id, str) or not project_id.strip():
            return
        if project_id.strip().lower() not in self.project_registry:
            raise NotFound(f"Project not found: {project_id.strip()}")

    def known_projects(self) -> set[str]:
        """Return project ids present in storage (plus `all`)."""
        return build_project_registry(self.db_path)

    def post_memory(self, payload: Any) -> MemoryEntry:
        """Validate and persist one memory entry."""
        entry = validate_memory_payload(payload)
        self._require_project(payload)
        return insert_memory_entry(self.db_path, entry)

    def list_memory(self, query: Any) -> list[MemoryEntry]:
        """List entries matching validated filters, newest first."""
        filters = validate_memory_query(query)
        self._require_project(query)
        return query_memory_entries(self.db_path, filters)

    def finish_ticket(self, payload: Any) -> WorkflowCompletionResult:
        """
        Record a ticket transition: one new entry and one audit, atomically.

        Raises:
            ValidationError: Invalid transition or nested memory.
            NotFound: Unknown project.
            DuplicateId: Memory id already used; no audit is written.
        """
        completion = validate_workflow_completion(payload)
        self._require_project(payload)
        memory = completion.memory
        audit = WorkflowAudit(
            id=f"audit-{uuid.uuid4()}",
            project_id=completion.project_id,
            ticket_id=completion.ticket_id,
            from_status=completion.from_status,
            to_status=completion.to_status,
            agent_id=completion.agent_id,
            memory_entry_id=memory.id,
            payload={
                "ticketId": completion.ticket_id,
                "fromStatus": completion.from_status,
                "toStatus": completion.to_status,
                "memory": {
                    "id": memory.id,
                    "featureScope": memory.feature_scope,
                    "taskType": memory.task_type,
                    "lessonCategory": memory.lesson_category,
                    "labels": memory.labels,
                    "sourceRefs": list(memory.source_refs),
                },
            },
            created_at=utc_now_iso(),
        )
        entry, audit = record_workflow_completion(self.db_path, memory, audit)
        return WorkflowCompletionResult(memory_entry=entry, audit=audit)

    def list_workflow_audits(self, query: Any) -> list[WorkflowAudit]:
        filters = validate_audit_query(query)
        self._require_project(query)
        return query_workflow_audits(self.db_path, filters)

    def retrieve(self, payload: Any, now: datetime | None = None) -> RetrievalResult:
        """Rank memory for a retrieval context."""
        context = validate_retrieval_context(payload)
        self._require_project(payload)
        return retrieve_memory(self.db_path, context, candidate_limit=self.candidate_limit, now=now)

    def compose_ticket(self, payload: Any, now: datetime | None = None) -> ComposedTicket:
        self._require_project(payload)
        return compose_ticket(
            self.db_path,
            payload,
            default_limit=self.compose_limit,
            candidate_limit=self.candidate_limit,
            now=now,
        )

    def compose_handoff(self, payload: Any, now: datetime | None = None) -> ComposedHandoff:
        self._require_project(payload)
        return compose_handoff(
            self.db_path,
            payload,
            default_limit=self.compose_limit,
            candidate_limit=self.candidate_limit,
            now=now,
        )

    def compose_reference_prompt(self, payload: Any, now: datetime | None = None) -> ComposedPrompt:
        self._require_project(payload)
        return compose_reference_prompt(
            self.db_path,
            payload,
            default_limit=self.compose_limit,
            candidate_limit=self.candidate_limit,
            now=now,
        )

    def insights(self, query: Any) -> MemoryInsights:
        """Aggregate recurring lessons over one listing page (limit up to 200)."""
        filters = validate_memory_query(query)
        self._require_project(query)
        entries = query_memory_entries(self.db_path, filters)
        return aggregate_memory_insights(
            entries,
            project_id=filters.project_id,
            feature_scope=filters.feature_scope,
            task_type=filters.task_type,
        )


def build_memory_api_from_env() -> MemoryApi:
    """
    Build a MemoryApi from `.env`/process environment and migrate its store.

    Side effects:
        Loads `.env`, creates the SQLite file, and applies pending migrations.
    """
    load_dotenv()
    db_path = build_memory_db_path()
    init_memory_db(db_path)
    api = MemoryApi(
        db_path=db_path,
        project_registry=build_project_registry_env(),
        candidate_limit=build_candidate_limit(),
        compose_limit=build_compose_limit(),
    )
    logger.info("LessonSync memory API ready at '%s'.", db_path)
    return api
