"""Markdown sections that splice retrieved lessons into generated artifacts."""

from src.common.token_matching import non_label_refs
from src.retrieval.scoring import ScoredMemory

LESSONS_HEADER = "## Lessons to avoid repeating mistakes"
PROCESS_LESSONS_HEADER = "## Human/Process Lessons"
NO_MEMORY_LINE = (
    "- No contextual memory matched. Apply safe defaults: follow existing project "
    "conventions, add regression tests, and record new lessons when done."
)

PROCESS_LESSON_LABELS = (
    ("Decision moment", "decision_moment"),
    ("Assumption made", "assumption_made"),
    ("Human reason", "human_reason"),
    ("Missed control", "missed_control"),
    ("Next rule", "next_rule"),
)


def render_lesson_line(scored: ScoredMemory) -> str:
    """Render `[id] content (score: N; sources: ...)` for one entry."""
    sources = ", ".join(non_label_refs(scored.entry.source_refs)) or "none"
    return f"- [{scored.entry.id}] {scored.entry.content} (score: {scored.score}; sources: {sources})"


def render_lessons_section(entries: list[ScoredMemory]) -> str:
    """Always present; falls back to a fixed safe-defaults line when empty."""
    lines = [LESSONS_HEADER]
    if entries:
        lines.extend(render_lesson_line(scored) for scored in entries)
    else:
        lines.append(NO_MEMORY_LINE)
    return "\n".join(lines)


def render_process_lessons_section(entries: list[ScoredMemory]) -> str:
    """Return the process-lesson section, or "" when no entry carries one."""
    with_lessons = [scored for scored in entries if scored.entry.process_lesson is not None]
    if not with_lessons:
        return ""
    lines = [PROCESS_LESSONS_HEADER]
    for scored in with_lessons:
        lesson = scored.entry.process_lesson
        lines.append(f"- [{scored.entry.id}]")
        lines.extend(f"  - {label}: {getattr(lesson, attr)}" for label, attr in PROCESS_LESSON_LABELS)
    return "\n".join(lines)


def render_source_ids_line(entries: list[ScoredMemory]) -> str:
    ids = ", ".join(scored.entry.id for scored in entries)
    return f"Memory source IDs: {ids or 'none'}"


def render_memory_block(entries: list[ScoredMemory]) -> str:
    """Lessons, optional process lessons, and the trailing source-id line."""
    parts = [render_lessons_section(entries)]
    process_section = render_process_lessons_section(entries)
    if process_section:
        parts.append(process_section)
    parts.append(render_source_ids_line(entries))
    return "\n\n".join(parts)
