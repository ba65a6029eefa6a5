"""
src/insights.py
Recurring-lesson aggregation over stored memory entries.
Exports: aggregate_memory_insights, LessonGroup, MemoryInsights
"""

import re
from dataclasses import dataclass, field
from typing import Any

from src.memory.types import MemoryEntry, is_all_projects
from src.retrieval.scoring import parse_timestamp

TOP_LESSONS_LIMIT = 8
RECURRING_MIN_COUNT = 2


@dataclass
class LessonGroup:
    """Entries sharing a category and a normalized content fingerprint."""

    summary: str
    category: str
    count: int = 0
    latest_at: str = ""
    source_entry_ids: list[str] = field(default_factory=list)
    source_refs: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "summary": self.summary,
            "category": self.category,
            "count": self.count,
            "latestAt": self.latest_at,
            "sourceEntryIds": list(self.source_entry_ids),
            "sourceRefs": list(self.source_refs),
        }


@dataclass
class MemoryInsights:
    total_source_entries: int
    top_lessons: list[LessonGroup]
    recurring_errors: list[LessonGroup]
    frequent_decisions: list[LessonGroup]

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalSourceEntries": self.total_source_entries,
            "topLessons": [group.to_dict() for group in self.top_lessons],
            "recurringErrors": [group.to_dict() for group in self.recurring_errors],
            "frequentDecisions": [group.to_dict() for group in self.frequent_decisions],
        }


def content_fingerprint(content: str) -> str:
    """Lower-case content with non-alphanumerics collapsed to single spaces."""
    lowered = re.sub(r"[^a-z0-9\s]", " ", (content or "").lower())
    return re.sub(r"\s+", " ", lowered).strip()


def _group_sort_key(group: LessonGroup) -> tuple[int, float, str]:
    return (-group.count, -parse_timestamp(group.latest_at).timestamp(), group.summary)


def aggregate_memory_insights(
    entries: list[MemoryEntry],
    project_id: str = "",
    feature_scope: str = "",
    task_type: str = "",
) -> MemoryInsights:
    """
    Group entries into recurring lessons.

    Args:
        entries: Entries to aggregate (typically one listing page).
        project_id: Optional project filter; "all" disables it.
        feature_scope: Optional case-insensitive feature scope filter.
        task_type: Optional case-insensitive task type filter.
    Returns:
        MemoryInsights with groups sorted by count desc, latest desc, summary asc.
    """
    project = project_id.strip().lower()
    scope = feature_scope.strip().lower()
    task = task_type.strip().lower()
    filtered = [
        entry
        for entry in entries
        if (not project or is_all_projects(project) or entry.project_id.lower() == project)
        and (not scope or entry.feature_scope.lower() == scope)
        and (not task or entry.task_type.lower() == task)
    ]

    groups: dict[str, LessonGroup] = {}
    for entry in filtered:
        fingerprint = content_fingerprint(entry.content)
        if not fingerprint:
            continue
        key = f"{entry.lesson_category.lower()}::{fingerprint}"
        group = groups.setdefault(
            key,
            LessonGroup(summary=entry.content, category=entry.lesson_category, latest_at=entry.created_at),
        )
        group.count += 1
        if entry.id not in group.source_entry_ids:
            group.source_entry_ids.append(entry.id)
        for ref in entry.source_refs:
            if ref.strip() and ref.strip() not in group.source_refs:
                group.source_refs.append(ref.strip())
        if parse_timestamp(entry.created_at) >= parse_timestamp(group.latest_at):
            group.latest_at = entry.created_at
            group.summary = entry.content

    ordered = sorted(groups.values(), key=_group_sort_key)
    return MemoryInsights(
        total_source_entries=len(filtered),
        top_lessons=ordered[:TOP_LESSONS_LIMIT],
        recurring_errors=[
            group for group in ordered if group.category.lower() == "error" and group.count >= RECURRING_MIN_COUNT
        ],
        frequent_decisions=[group for group in ordered if group.category.lower() == "decision"],
    )
