"""
tests/test_retrieval_ranking.py
Unit tests for src/retrieval scoring, ordering, and fallback policy.
"""

from datetime import datetime, timedelta, timezone


def _context(**overrides):
    from src.memory.types import RetrievalContext

    values = {"project_id": "vault-2"}
    values.update(overrides)
    return RetrievalContext(**values)


def _entry(**overrides):
    from src.memory.types import MemoryEntry

    values = {
        "id": "mem-1",
        "project_id": "vault-2",
        "feature_scope": "workflow",
        "task_type": "dev",
        "agent_id": "codex-dev",
        "lesson_category": "error",
        "content": "Workflow transition failed without explicit memory source refs",
        "source_refs": ["VAULT-2-004", "label:workflow", "label:api"],
        "created_at": "2026-02-20T09:00:00.000Z",
    }
    values.update(overrides)
    return MemoryEntry(**values)


def test_score_entry_sums_every_signal(now):
    from src.retrieval.scoring import score_entry

    scored = score_entry(
        _entry(),
        _context(
            feature_scope="workflow",
            task_type="dev",
            priority="P0",
            labels=["api", "workflow"],
            search_query="source refs transition",
        ),
        now,
    )

    # 5 base + 44 scope + 26 task + 36 labels + 18 search + 22 priority + 9 recency
    assert scored.score == 160
    assert scored.reasons == [
        "feature-scope:exact",
        "task-type:exact",
        "labels:matched(api,workflow)",
        "search:matched(source,refs,transition)",
        "priority:P0->error",
        "recency:recent",
    ]


def test_feature_scope_partial_match_either_direction(now):
    from src.retrieval.scoring import score_entry

    narrower = score_entry(_entry(feature_scope="workflow"), _context(feature_scope="work"), now)
    wider = score_entry(_entry(feature_scope="flow"), _context(feature_scope="Workflow"), now)

    assert "feature-scope:partial" in narrower.reasons
    assert "feature-scope:partial" in wider.reasons
    assert narrower.score == 5 + 15 + 9


def test_search_ignores_short_terms_and_caps_contribution(now):
    from src.retrieval.scoring import score_entry

    short = score_entry(_entry(content="an api to go"), _context(search_query="an to go"), now)
    capped = score_entry(
        _entry(content="alpha beta gamma delta"),
        _context(search_query="alpha beta gamma delta"),
        now,
    )

    assert short.score == 5 + 9
    assert capped.score == 5 + 18 + 9


def test_repeated_search_terms_count_once(now):
    from src.retrieval.scoring import score_entry

    scored = score_entry(_entry(content="api timeout in api client"), _context(search_query="api API api"), now)

    assert scored.score == 5 + 6 + 9
    assert "search:matched(api)" in scored.reasons


def test_priority_table_weights_errors_over_successes_at_p0(now):
    from src.retrieval.scoring import PRIORITY_BOOSTS, score_entry

    context = _context(feature_scope="workflow", priority="P0")
    error = score_entry(_entry(lesson_category="error"), context, now)
    success = score_entry(_entry(lesson_category="success"), context, now)

    assert PRIORITY_BOOSTS["P0"]["error"] == 22
    assert PRIORITY_BOOSTS["P0"]["success"] == 9
    assert error.score - success.score == 13
    assert PRIORITY_BOOSTS["P3"]["success"] > PRIORITY_BOOSTS["P3"]["error"]


def test_recency_boost_decreases_with_age_and_never_drops_below_one(now):
    from src.retrieval.scoring import recency_boost

    def boost(days):
        return recency_boost((now - timedelta(days=days)).isoformat(), now)[0]

    assert boost(0) == 10
    assert boost(4.5) == 6
    assert boost(9) == 1
    assert boost(400) == 1
    assert recency_boost((now + timedelta(days=2)).isoformat(), now)[0] == 10


def test_zero_signals_returns_latest_memory(now):
    from src.retrieval.ranking import FALLBACK_NO_CONTEXT, rank_candidates

    candidates = [
        _entry(id="mem-old", created_at="2026-02-20T09:00:00.000Z"),
        _entry(id="mem-new", created_at="2026-02-20T10:00:00.000Z"),
        _entry(id="mem-mid", created_at="2026-02-20T09:30:00.000Z"),
    ]

    result = rank_candidates(candidates, _context(limit=2), now=now)

    assert result.fallback_used is True
    assert result.context_signals == 0
    assert result.total_candidates == 3
    assert [item.entry.id for item in result.entries] == ["mem-new", "mem-mid"]
    assert all(item.reasons[-1] == FALLBACK_NO_CONTEXT for item in result.entries)


def test_exact_scope_and_task_match_ranks_first(now):
    from src.retrieval.ranking import rank_candidates

    candidates = [
        _entry(id="mem-workflow-qa", feature_scope="workflow", task_type="qa", created_at="2026-02-20T09:02:00.000Z"),
        _entry(id="mem-memory-ui", feature_scope="memory-ui", task_type="design", created_at="2026-02-20T09:01:00.000Z"),
        _entry(id="mem-workflow-dev", feature_scope="workflow", task_type="dev", created_at="2026-02-20T09:00:00.000Z"),
    ]

    result = rank_candidates(candidates, _context(feature_scope="workflow", task_type="dev"), now=now)

    assert result.fallback_used is False
    assert result.context_signals == 2
    assert [item.entry.id for item in result.entries] == ["mem-workflow-dev", "mem-workflow-qa", "mem-memory-ui"]
    assert result.entries[0].score > result.entries[1].score


def test_ties_break_by_newest_first(now):
    from src.retrieval.ranking import rank_candidates

    candidates = [
        _entry(id="mem-a", created_at="2026-02-20T09:00:00.000Z"),
        _entry(id="mem-b", created_at="2026-02-20T09:00:01.000Z"),
    ]
    result = rank_candidates(candidates, _context(feature_scope="workflow"), now=now)

    assert [item.entry.id for item in result.entries] == ["mem-b", "mem-a"]
    assert result.entries[0].score == result.entries[1].score


def test_low_confidence_top_score_falls_back_to_recency(now):
    from src.retrieval.ranking import FALLBACK_LOW_CONTEXT, rank_candidates

    old = datetime(2025, 1, 1, tzinfo=timezone.utc).isoformat()
    older = datetime(2024, 1, 1, tzinfo=timezone.utc).isoformat()
    candidates = [
        _entry(id="mem-older", content="zebra crossing notes", created_at=older),
        _entry(id="mem-old", content="unrelated", created_at=old),
    ]

    result = rank_candidates(candidates, _context(search_query="zebra"), now=now)

    # Best score is 5 + 6 + 1 = 12, below the confidence threshold.
    assert result.fallback_used is True
    assert result.context_signals == 1
    assert [item.entry.id for item in result.entries] == ["mem-old", "mem-older"]
    assert all(FALLBACK_LOW_CONTEXT in item.reasons for item in result.entries)


def test_empty_candidate_set_is_a_valid_fallback_result():
    from src.retrieval.ranking import rank_candidates

    result = rank_candidates([], _context(feature_scope="workflow"))
    assert result.entries == []
    assert result.fallback_used is True
    assert result.total_candidates == 0
    assert result.to_dict() == {
        "entries": [],
        "meta": {"fallbackUsed": True, "totalCandidates": 0, "contextSignals": 1},
    }


def test_retrieve_memory_loads_project_scope_from_store(add_entry, db_path, now):
    from src.retrieval.ranking import retrieve_memory

    add_entry(id="mem-dev-error", featureScope="workflow", labels=["api"], content="Critical API failure in workflow")
    add_entry(
        id="mem-design-success",
        featureScope="memory-ui",
        taskType="design",
        lessonCategory="success",
        content="Design refresh for memory details",
        labels=["ui", "design-system"],
        createdAt="2026-02-20T09:01:00.000Z",
    )
    add_entry(id="mem-other-project", projectId="vault-9", featureScope="memory-ui", taskType="design")

    result = retrieve_memory(
        db_path,
        _context(feature_scope="memory-ui", task_type="design", priority="P3", labels=["ui"], limit=2),
        now=now,
    )

    assert result.total_candidates == 2
    assert result.entries[0].entry.id == "mem-design-success"
    payload = result.to_dict()
    assert payload["entries"][0]["labels"] == ["ui", "design-system"]
    assert payload["meta"]["fallbackUsed"] is False


def test_retrieve_memory_cross_project_sentinel(add_entry, db_path, now):
    from src.retrieval.ranking import retrieve_memory

    add_entry(id="mem-a", projectId="vault-2")
    add_entry(id="mem-b", projectId="vault-9")

    result = retrieve_memory(db_path, _context(project_id="all", feature_scope="workflow"), now=now)

    assert result.total_candidates == 2
    assert {item.entry.id for item in result.entries} == {"mem-a", "mem-b"}


def test_retrieve_memory_respects_candidate_limit(add_entry, db_path, now):
    from src.retrieval.ranking import retrieve_memory

    add_entry(id="mem-old", createdAt="2026-02-19T09:00:00.000Z")
    add_entry(id="mem-new", createdAt="2026-02-20T09:00:00.000Z")

    result = retrieve_memory(db_path, _context(feature_scope="workflow"), candidate_limit=1, now=now)
    assert result.total_candidates == 1
    assert [item.entry.id for item in result.entries] == ["mem-new"]
