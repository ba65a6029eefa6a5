"""
src/retrieval/ranking.py
Contextual memory retrieval: candidate load, scoring, and recency fallback.
Exports: retrieve_memory, rank_candidates, count_context_signals, RetrievalResult
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from src.memory.query import query_memory_entries
from src.memory.types import MemoryEntry, MemoryQuery, RetrievalContext
from src.retrieval.scoring import ScoredMemory, parse_timestamp, score_entry
from src.shared import DEFAULT_CANDIDATE_LIMIT

logger = logging.getLogger(__name__)

LOW_CONFIDENCE_THRESHOLD = 20
FALLBACK_NO_CONTEXT = "fallback:latest-project-memory"
FALLBACK_LOW_CONTEXT = "fallback:low-context-match"


@dataclass
class RetrievalResult:
    """Ranked entries plus the metadata callers need to audit the ranking."""

    entries: list[ScoredMemory] = field(default_factory=list)
    fallback_used: bool = True
    total_candidates: int = 0
    context_signals: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "entries": [scored.to_dict() for scored in self.entries],
            "meta": {
                "fallbackUsed": self.fallback_used,
                "totalCandidates": self.total_candidates,
                "contextSignals": self.context_signals,
            },
        }


def count_context_signals(context: RetrievalContext) -> int:
    """Count non-empty context dimensions (0-5)."""
    return sum(
        1
        for present in (
            context.feature_scope,
            context.task_type,
            context.priority,
            context.search_query,
            context.labels,
        )
        if present
    )


def _by_recency(scored: list[ScoredMemory]) -> list[ScoredMemory]:
    return sorted(scored, key=lambda item: parse_timestamp(item.entry.created_at), reverse=True)


def _tag(scored: list[ScoredMemory], reason: str) -> list[ScoredMemory]:
    for item in scored:
        item.reasons.append(reason)
    return scored


def rank_candidates(
    candidates: list[MemoryEntry],
    context: RetrievalContext,
    now: datetime | None = None,
) -> RetrievalResult:
    """
    Score, order, and truncate candidates, applying the fallback policy.

    No context signals: newest first, tagged `fallback:latest-project-memory`.
    Top score below 20: newest first, tagged `fallback:low-context-match`.
    Otherwise: score descending, ties broken by newest first.
    """
    signals = count_context_signals(context)
    if not candidates:
        return RetrievalResult(entries=[], fallback_used=True, total_candidates=0, context_signals=signals)

    now = now or datetime.now(timezone.utc)
    scored = [score_entry(entry, context, now) for entry in candidates]

    if signals == 0:
        ranked = _tag(_by_recency(scored), FALLBACK_NO_CONTEXT)
        fallback_used = True
    else:
        ranked = sorted(
            scored,
            key=lambda item: (item.score, parse_timestamp(item.entry.created_at)),
            reverse=True,
        )
        fallback_used = ranked[0].score < LOW_CONFIDENCE_THRESHOLD
        if fallback_used:
            ranked = _tag(_by_recency(scored), FALLBACK_LOW_CONTEXT)

    logger.debug(
        "Ranked %d candidates for project '%s' (signals=%d, fallback=%s).",
        len(candidates),
        context.project_id,
        signals,
        fallback_used,
    )
    return RetrievalResult(
        entries=ranked[: context.limit],
        fallback_used=fallback_used,
        total_candidates=len(candidates),
        context_signals=signals,
    )


def retrieve_memory(
    db_path: str,
    context: RetrievalContext,
    *,
    candidate_limit: int = DEFAULT_CANDIDATE_LIMIT,
    now: datetime | None = None,
) -> RetrievalResult:
    """
    Load candidates for the context's project scope and rank them.

    Args:
        db_path: SQLite path.
        context: Validated retrieval context ("all" loads every project).
        candidate_limit: Maximum candidates loaded, newest first.
        now: Reference time for recency (defaults to current UTC time).
    Returns:
        RetrievalResult; an empty scope yields no entries with fallback set.
    """
    candidates = query_memory_entries(
        db_path,
        MemoryQuery(project_id=context.project_id, limit=candidate_limit),
    )
    return rank_candidates(candidates, context, now=now)
