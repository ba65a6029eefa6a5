"""
src/compose/ops.py
Ticket, handoff, and reference-prompt composition with injected memory.
Exports: compose_ticket, compose_handoff, compose_reference_prompt
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from src.compose.sections import render_memory_block
from src.memory.errors import ValidationError
from src.memory.types import RetrievalContext
from src.retrieval.ranking import RetrievalResult, retrieve_memory
from src.shared import DEFAULT_CANDIDATE_LIMIT, build_compose_limit
from src.validation import collect_retrieval_context, safe_dict, string_list, trimmed


@dataclass
class MemoryTrace:
    """Which memories influenced a generated artifact."""

    source_memory_ids: list[str] = field(default_factory=list)
    fallback_used: bool = True
    context_signals: int = 0

    @classmethod
    def from_result(cls, result: RetrievalResult) -> "MemoryTrace":
        return cls(
            source_memory_ids=[scored.entry.id for scored in result.entries],
            fallback_used=result.fallback_used,
            context_signals=result.context_signals,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "sourceMemoryIds": list(self.source_memory_ids),
            "fallbackUsed": self.fallback_used,
            "contextSignals": self.context_signals,
        }


@dataclass
class ComposedTicket:
    title: str
    ticket_id: str
    spec_markdown: str
    reference_prompt: str
    memory_trace: MemoryTrace

    def to_dict(self) -> dict[str, Any]:
        return {
            "ticket": {
                "title": self.title,
                "ticketId": self.ticket_id,
                "specMarkdown": self.spec_markdown,
                "referencePrompt": self.reference_prompt,
            },
            "memoryTrace": self.memory_trace.to_dict(),
        }


@dataclass
class ComposedHandoff:
    ticket_id: str
    handoff_markdown: str
    memory_trace: MemoryTrace

    def to_dict(self) -> dict[str, Any]:
        return {
            "ticketId": self.ticket_id,
            "handoffMarkdown": self.handoff_markdown,
            "memoryTrace": self.memory_trace.to_dict(),
        }


@dataclass
class ComposedPrompt:
    ticket_id: str
    title: str
    reference_prompt: str
    memory_trace: MemoryTrace

    def to_dict(self) -> dict[str, Any]:
        return {
            "ticketId": self.ticket_id,
            "title": self.title,
            "referencePrompt": self.reference_prompt,
            "memoryTrace": self.memory_trace.to_dict(),
        }


def _validate(
    payload: Any,
    required: tuple[str, ...],
    default_limit: int | None,
) -> tuple[dict[str, Any], RetrievalContext]:
    """Check helper-specific required fields plus the retrieval context together."""
    payload = safe_dict(payload)
    errors: list[str] = []
    for key in required:
        if not trimmed(payload.get(key)):
            errors.append(f"{key} is required")
    limit = default_limit if default_limit is not None else build_compose_limit()
    context = collect_retrieval_context(payload, errors, default_limit=limit)
    if errors:
        raise ValidationError("Invalid compose payload", errors)
    return payload, context


def _retrieve(
    db_path: str,
    context: RetrievalContext,
    candidate_limit: int,
    now: datetime | None,
) -> tuple[RetrievalResult, str]:
    result = retrieve_memory(db_path, context, candidate_limit=candidate_limit, now=now)
    return result, render_memory_block(result.entries)


def _build_reference_prompt(
    context: RetrievalContext,
    title: str,
    ticket_id: str,
    memory_block: str,
) -> str:
    return (
        f"# Reference Prompt - {ticket_id or title}\n\n"
        "## Task\n"
        f"- Ticket: {ticket_id or 'unassigned'}\n"
        f"- Title: {title}\n"
        f"- Project: {context.project_id}\n"
        f"- Feature scope: {context.feature_scope or 'unspecified'}\n"
        f"- Task type: {context.task_type or 'unspecified'}\n"
        f"- Priority: {context.priority or 'unspecified'}\n\n"
        "## Instructions\n"
        "- Apply the lessons below before changing code.\n"
        "- Cite the memory source IDs you relied on in your handoff.\n\n"
        f"{memory_block}\n"
    )


def compose_ticket(
    db_path: str,
    payload: Any,
    *,
    default_limit: int | None = None,
    candidate_limit: int = DEFAULT_CANDIDATE_LIMIT,
    now: datetime | None = None,
) -> ComposedTicket:
    """
    Build a ticket spec and its reference prompt with relevant lessons injected.

    Args:
        db_path: SQLite path.
        payload: Retrieval context fields plus `title` (required), optional
            `ticketId` and `specMarkdown`.
    Returns:
        ComposedTicket including the memory trace.
    Raises:
        ValidationError: Missing title or invalid retrieval context.
    """
    payload, context = _validate(payload, ("title",), default_limit)
    title = trimmed(payload.get("title"))
    ticket_id = trimmed(payload.get("ticketId"))
    base_spec = trimmed(payload.get("specMarkdown")) or "No base specification provided."
    result, memory_block = _retrieve(db_path, context, candidate_limit, now)
    spec_markdown = f"# {title}\n\n{base_spec}\n\n{memory_block}\n"
    return ComposedTicket(
        title=title,
        ticket_id=ticket_id,
        spec_markdown=spec_markdown,
        reference_prompt=_build_reference_prompt(context, title, ticket_id, memory_block),
        memory_trace=MemoryTrace.from_result(result),
    )


def compose_handoff(
    db_path: str,
    payload: Any,
    *,
    default_limit: int | None = None,
    candidate_limit: int = DEFAULT_CANDIDATE_LIMIT,
    now: datetime | None = None,
) -> ComposedHandoff:
    """Build handoff markdown for `ticketId` with `summary` and injected lessons."""
    payload, context = _validate(payload, ("ticketId", "summary"), default_limit)
    ticket_id = trimmed(payload.get("ticketId"))
    next_steps = string_list(payload.get("nextSteps"))
    steps_text = "\n".join(f"- {step}" for step in next_steps) or "- None recorded."
    result, memory_block = _retrieve(db_path, context, candidate_limit, now)
    handoff_markdown = (
        f"# Handoff - {ticket_id}\n\n"
        "## Summary\n"
        f"{trimmed(payload.get('summary'))}\n\n"
        "## Next Steps\n"
        f"{steps_text}\n\n"
        f"{memory_block}\n"
    )
    return ComposedHandoff(
        ticket_id=ticket_id,
        handoff_markdown=handoff_markdown,
        memory_trace=MemoryTrace.from_result(result),
    )


def compose_reference_prompt(
    db_path: str,
    payload: Any,
    *,
    default_limit: int | None = None,
    candidate_limit: int = DEFAULT_CANDIDATE_LIMIT,
    now: datetime | None = None,
) -> ComposedPrompt:
    """Build a standalone reference prompt for `ticketId`/`title`."""
    payload, context = _validate(payload, ("ticketId", "title"), default_limit)
    ticket_id = trimmed(payload.get("ticketId"))
    title = trimmed(payload.get("title"))
    result, memory_block = _retrieve(db_path, context, candidate_limit, now)
    return ComposedPrompt(
        ticket_id=ticket_id,
        title=title,
        reference_prompt=_build_reference_prompt(context, title, ticket_id, memory_block),
        memory_trace=MemoryTrace.from_result(result),
    )
