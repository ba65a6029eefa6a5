"""Shared pytest fixtures for the LessonSync test suite."""

from datetime import datetime, timezone

import pytest


@pytest.fixture(autouse=True)
def _isolated_memory_env(monkeypatch, tmp_path):
    """Point the memory store at a throwaway SQLite file for every test."""
    monkeypatch.setenv("LESSONSYNC_MEMORY_DB_PATH", str(tmp_path / "lessonsync.db"))
    monkeypatch.delenv("LESSONSYNC_PROJECT_REGISTRY", raising=False)
    monkeypatch.delenv("LESSONSYNC_CANDIDATE_LIMIT", raising=False)
    monkeypatch.delenv("LESSONSYNC_COMPOSE_LIMIT", raising=False)


@pytest.fixture
def db_path(tmp_path) -> str:
    from src.memory_store import init_memory_db

    path = str(tmp_path / "lessonsync.db")
    init_memory_db(path)
    return path


@pytest.fixture
def now() -> datetime:
    """Reference time one day after the seeded entries."""
    return datetime(2026, 2, 21, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def add_entry(db_path):
    """Validate and insert a memory payload, filling required fields with defaults."""
    from src.memory_store import insert_memory_entry
    from src.validation import validate_memory_payload

    def _add(**overrides):
        payload = {
            "projectId": "vault-2",
            "featureScope": "workflow",
            "taskType": "dev",
            "agentId": "codex-dev",
            "lessonCategory": "error",
            "content": "Default lesson content",
            "sourceRefs": ["VAULT-2-001"],
            "createdAt": "2026-02-20T09:00:00.000Z",
        }
        payload.update(overrides)
        return insert_memory_entry(db_path, validate_memory_payload(payload))

    return _add
