"""Per-entry relevance scoring for contextual memory retrieval."""

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from src.common.token_matching import search_terms
from src.memory.types import MemoryEntry, RetrievalContext

BASE_SCORE = 5
FEATURE_SCOPE_EXACT = 44
FEATURE_SCOPE_PARTIAL = 15
TASK_TYPE_EXACT = 26
LABEL_MATCH = 18
SEARCH_TERM_HIT = 6
SEARCH_MAX = 18
RECENCY_MAX = 10
RECENCY_WINDOW_DAYS = 9
RECENT_DAYS = 3

PRIORITY_BOOSTS: dict[str, dict[str, int]] = {
    "P0": {"error": 22, "constraint": 20, "decision": 12, "success": 9},
    "P1": {"error": 18, "constraint": 18, "decision": 12, "success": 10},
    "P2": {"error": 12, "constraint": 12, "decision": 14, "success": 16},
    "P3": {"error": 8, "constraint": 10, "decision": 14, "success": 18},
}

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass
class ScoredMemory:
    """A candidate entry with its additive score and the reasons behind it."""

    entry: MemoryEntry
    score: int
    reasons: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {**self.entry.to_dict(), "score": self.score, "reasons": list(self.reasons)}


def parse_timestamp(value: str) -> datetime:
    """Parse a stored ISO-8601 timestamp; unparseable values map to the epoch."""
    text = (value or "").strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return _EPOCH
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def recency_boost(created_at: str, now: datetime) -> tuple[int, float]:
    """Return (boost, age_in_days); the boost never drops below 1."""
    age_days = max(0.0, (now - parse_timestamp(created_at)).total_seconds() / 86400)
    boost = max(1, _round_half_up(RECENCY_MAX - min(RECENCY_WINDOW_DAYS, age_days)))
    return boost, age_days


def score_entry(entry: MemoryEntry, context: RetrievalContext, now: datetime) -> ScoredMemory:
    """
    Score one candidate against the retrieval context.

    Args:
        entry: Candidate memory entry.
        context: Normalized retrieval context.
        now: Reference time for recency.
    Returns:
        ScoredMemory with the summed score and tagged reasons.
    """
    score = BASE_SCORE
    reasons: list[str] = []

    wanted_scope = context.feature_scope.lower()
    entry_scope = entry.feature_scope.strip().lower()
    if wanted_scope and entry_scope:
        if wanted_scope == entry_scope:
            score += FEATURE_SCOPE_EXACT
            reasons.append("feature-scope:exact")
        elif wanted_scope in entry_scope or entry_scope in wanted_scope:
            score += FEATURE_SCOPE_PARTIAL
            reasons.append("feature-scope:partial")

    if context.task_type and context.task_type == entry.task_type.lower():
        score += TASK_TYPE_EXACT
        reasons.append("task-type:exact")

    if context.labels:
        entry_labels = set(entry.labels)
        matched = [label for label in context.labels if label in entry_labels]
        if matched:
            score += LABEL_MATCH * len(matched)
            reasons.append(f"labels:matched({','.join(matched)})")

    terms = search_terms(context.search_query)
    if terms:
        content = entry.content.lower()
        hits = [term for term in terms if term in content]
        if hits:
            score += min(SEARCH_MAX, len(hits) * SEARCH_TERM_HIT)
            reasons.append(f"search:matched({','.join(hits)})")

    category = entry.lesson_category.lower()
    boost = PRIORITY_BOOSTS.get(context.priority, {}).get(category)
    if boost is not None:
        score += boost
        reasons.append(f"priority:{context.priority}->{category}")

    recency, age_days = recency_boost(entry.created_at, now)
    score += recency
    if age_days <= RECENT_DAYS:
        reasons.append("recency:recent")

    return ScoredMemory(entry=entry, score=score, reasons=reasons)
