"""
src/shared.py
Shared configuration helpers for the LessonSync memory service.
Exports: build_memory_db_path, build_project_registry_env, build_candidate_limit, build_compose_limit
"""

import os

DEFAULT_MEMORY_DB_PATH = "data/lessonsync.db"
DEFAULT_CANDIDATE_LIMIT = 1000
MAX_CANDIDATE_LIMIT = 1000
DEFAULT_COMPOSE_LIMIT = 5
MAX_RETRIEVAL_LIMIT = 50


def _bounded_int_env(name: str, default: int, maximum: int) -> int:
    """Parse a positive integer env var capped at `maximum`."""
    raw_value = os.getenv(name, str(default)).strip() or str(default)
    message = f"Invalid {name}: expected an integer between 1 and {maximum}."
    try:
        value = int(raw_value)
    except ValueError as exc:
        raise RuntimeError(message) from exc
    if value <= 0 or value > maximum:
        raise RuntimeError(message)
    return value


def build_memory_db_path() -> str:
    """Return configured SQLite file path for the memory store (`:memory:` is rejected)."""
    value = os.getenv("LESSONSYNC_MEMORY_DB_PATH", DEFAULT_MEMORY_DB_PATH).strip() or DEFAULT_MEMORY_DB_PATH
    if value == ":memory:":
        raise RuntimeError("Invalid LESSONSYNC_MEMORY_DB_PATH: expected a database file path, not :memory:.")
    return value


def build_project_registry_env() -> set[str] | None:
    """
    Return the project registry configured through LESSONSYNC_PROJECT_REGISTRY.

    Returns:
        Lower-cased project ids, or None when the variable is unset/blank.
    """
    raw_value = os.getenv("LESSONSYNC_PROJECT_REGISTRY", "").strip()
    if not raw_value:
        return None
    return {part.strip().lower() for part in raw_value.split(",") if part.strip()}


def build_candidate_limit() -> int:
    """Return the maximum number of candidates loaded for ranking."""
    return _bounded_int_env("LESSONSYNC_CANDIDATE_LIMIT", DEFAULT_CANDIDATE_LIMIT, MAX_CANDIDATE_LIMIT)


def build_compose_limit() -> int:
    """Return the default retrieval limit used by composition helpers."""
    return _bounded_int_env("LESSONSYNC_COMPOSE_LIMIT", DEFAULT_COMPOSE_LIMIT, MAX_RETRIEVAL_LIMIT)
