"""
tests/test_validation.py
Unit tests for src/validation.py payload normalization.
"""

import pytest


def _payload(**overrides):
    payload = {
        "projectId": " vault-2 ",
        "featureScope": "workflow",
        "taskType": "DEV",
        "agentId": "codex-dev",
        "lessonCategory": "Error",
        "content": "  Keep memory source IDs explicit.  ",
        "sourceRefs": ["VAULT-2-004", " ", "commit:abc"],
        "labels": ["Workflow", "api", "workflow"],
    }
    payload.update(overrides)
    return payload


def test_validate_memory_payload_normalizes_fields_and_labels():
    from src.validation import validate_memory_payload

    entry = validate_memory_payload(_payload())

    assert entry.id.startswith("mem-")
    assert entry.project_id == "vault-2"
    assert entry.task_type == "dev"
    assert entry.lesson_category == "error"
    assert entry.content == "Keep memory source IDs explicit."
    assert entry.source_refs == ["VAULT-2-004", "commit:abc", "label:workflow", "label:api"]
    assert entry.labels == ["workflow", "api"]
    assert entry.created_at.endswith("Z")


def test_validate_memory_payload_reports_every_violation():
    from src.memory.errors import ValidationError
    from src.validation import validate_memory_payload

    with pytest.raises(ValidationError) as exc_info:
        validate_memory_payload({"projectId": "vault-2", "taskType": "ops", "lessonCategory": "oops"})

    details = exc_info.value.details
    assert "featureScope is required" in details
    assert "agentId is required" in details
    assert "content is required" in details
    assert "sourceRefs must contain at least one source id" in details
    assert "taskType must be one of dev|design|qa|pm|other" in details
    assert "lessonCategory must be one of success|error|decision|constraint" in details


def test_labels_alone_do_not_satisfy_source_refs():
    from src.memory.errors import ValidationError
    from src.validation import validate_memory_payload

    with pytest.raises(ValidationError) as exc_info:
        validate_memory_payload(_payload(sourceRefs=[], labels=["workflow"]))
    assert exc_info.value.details == ["sourceRefs must contain at least one source id"]


def test_caller_supplied_label_ref_satisfies_source_refs():
    from src.validation import validate_memory_payload

    entry = validate_memory_payload(_payload(sourceRefs=["label:api"], labels=[]))
    assert entry.source_refs == ["label:api"]
    assert entry.labels == ["api"]


def test_source_refs_string_is_not_split_on_commas():
    from src.memory.errors import ValidationError
    from src.validation import validate_memory_payload

    with pytest.raises(ValidationError) as exc_info:
        validate_memory_payload(_payload(sourceRefs="VAULT-2-004,commit:abc"))
    assert exc_info.value.details == ["sourceRefs must contain at least one source id"]

    entry = validate_memory_payload(_payload(sourceRefs=["note: a, b"], labels=[]))
    assert entry.source_refs == ["note: a, b"]


def test_labels_derive_from_label_prefixed_source_refs():
    from src.validation import validate_memory_payload

    entry = validate_memory_payload(
        _payload(sourceRefs=["VAULT-2-004", "label:UI", "label:ui", "label:"], labels=[])
    )
    assert entry.labels == ["ui"]


def test_created_at_is_normalized_to_utc():
    from src.validation import validate_memory_payload

    entry = validate_memory_payload(_payload(createdAt="2026-02-20T11:00:00+02:00"))
    assert entry.created_at == "2026-02-20T09:00:00.000Z"


def test_created_at_rejects_garbage():
    from src.memory.errors import ValidationError
    from src.validation import validate_memory_payload

    with pytest.raises(ValidationError) as exc_info:
        validate_memory_payload(_payload(createdAt="yesterday"))
    assert "createdAt must be an ISO-8601 timestamp" in exc_info.value.details


def test_reserved_all_project_is_rejected_for_creation():
    from src.memory.errors import ValidationError
    from src.validation import validate_memory_payload

    with pytest.raises(ValidationError) as exc_info:
        validate_memory_payload(_payload(projectId="ALL"))
    assert "projectId must not be the reserved value 'all'" in exc_info.value.details


def test_process_lesson_requires_all_fields_together():
    from src.memory.errors import ValidationError
    from src.validation import validate_memory_payload

    with pytest.raises(ValidationError) as exc_info:
        validate_memory_payload(_payload(processLesson={"decisionMoment": "Merge", "nextRule": "Add check"}))
    assert exc_info.value.details == [
        "processLesson.assumptionMade is required",
        "processLesson.humanReason is required",
        "processLesson.missedControl is required",
    ]


def test_blank_process_lesson_is_treated_as_absent():
    from src.validation import validate_memory_payload

    entry = validate_memory_payload(_payload(processLesson={"decisionMoment": "  "}))
    assert entry.process_lesson is None


def test_validate_workflow_completion_prefixes_memory_errors():
    from src.memory.errors import ValidationError
    from src.validation import validate_workflow_completion

    with pytest.raises(ValidationError) as exc_info:
        validate_workflow_completion(
            {
                "projectId": "vault-2",
                "ticketId": "VAULT-2-004",
                "fromStatus": "in-progress",
                "toStatus": "done",
                "agentId": "codex-dev",
                "memory": {"featureScope": "workflow", "taskType": "dev"},
            }
        )

    assert exc_info.value.message == "Invalid workflow completion payload"
    assert exc_info.value.details == [
        "memory.lessonCategory is required",
        "memory.content is required",
        "memory.sourceRefs must contain at least one source id",
    ]


def test_validate_workflow_completion_rejects_status_and_missing_memory():
    from src.memory.errors import ValidationError
    from src.validation import validate_workflow_completion

    with pytest.raises(ValidationError) as exc_info:
        validate_workflow_completion(
            {
                "projectId": "vault-2",
                "ticketId": "VAULT-2-004",
                "fromStatus": "in-progress",
                "toStatus": "blocked",
                "agentId": "codex-dev",
            }
        )
    assert exc_info.value.details == ["toStatus must be one of in-review|done", "memory is required"]


def test_validate_workflow_completion_prepends_ticket_ref():
    from src.validation import validate_workflow_completion

    completion = validate_workflow_completion(
        {
            "projectId": "vault-2",
            "ticketId": "VAULT-2-004",
            "fromStatus": "in-progress",
            "toStatus": "In-Review",
            "agentId": "codex-dev",
            "memory": {
                "featureScope": "workflow",
                "taskType": "dev",
                "lessonCategory": "decision",
                "content": "Push memory before in-review transition.",
                "sourceRefs": ["commit:123abc", "VAULT-2-004"],
                "labels": ["workflow"],
            },
        }
    )

    assert completion.to_status == "in-review"
    assert completion.memory.project_id == "vault-2"
    assert completion.memory.agent_id == "codex-dev"
    assert completion.memory.source_refs == ["VAULT-2-004", "commit:123abc", "label:workflow"]


def test_validate_memory_query_defaults_and_limits():
    from src.memory.errors import ValidationError
    from src.validation import validate_memory_query

    query = validate_memory_query({"projectId": "all", "label": " Workflow ", "taskType": "QA"})
    assert query.limit == 100
    assert query.label == "workflow"
    assert query.task_type == "qa"
    assert validate_memory_query({"projectId": "vault-2", "limit": "200"}).limit == 200

    with pytest.raises(ValidationError) as exc_info:
        validate_memory_query({"limit": "201"})
    assert exc_info.value.details == [
        "projectId is required",
        "limit must be an integer between 1 and 200",
    ]


def test_validate_audit_query_requires_project():
    from src.memory.errors import ValidationError
    from src.validation import validate_audit_query

    assert validate_audit_query({"projectId": "vault-2", "ticketId": "VAULT-2-009"}).ticket_id == "VAULT-2-009"
    with pytest.raises(ValidationError):
        validate_audit_query({"ticketId": "VAULT-2-009"})


def test_validate_retrieval_context_normalizes_hints():
    from src.validation import validate_retrieval_context

    context = validate_retrieval_context(
        {
            "projectId": "vault-2",
            "featureScope": " workflow ",
            "taskType": "Dev",
            "priority": "p0",
            "labels": ["API", "api", " workflow "],
            "searchQuery": " source refs ",
        }
    )
    assert context.feature_scope == "workflow"
    assert context.task_type == "dev"
    assert context.priority == "P0"
    assert context.labels == ["api", "workflow"]
    assert context.search_query == "source refs"
    assert context.limit == 10


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"taskType": "invalid"}, "taskType must be one of dev|design|qa|pm|other"),
        ({"priority": "P9"}, "priority must be one of P0|P1|P2|P3"),
        ({"limit": 51}, "limit must be an integer between 1 and 50"),
        ({"limit": 0}, "limit must be an integer between 1 and 50"),
        ({"limit": True}, "limit must be an integer between 1 and 50"),
        ({"labels": 3}, "labels must be an array of strings"),
        ({"labels": "api,workflow"}, "labels must be an array of strings"),
        ({"projectId": ""}, "projectId is required"),
    ],
)
def test_validate_retrieval_context_rejects_invalid_values(overrides, message):
    from src.memory.errors import ValidationError
    from src.validation import validate_retrieval_context

    payload = {"projectId": "vault-2"}
    payload.update(overrides)
    with pytest.raises(ValidationError) as exc_info:
        validate_retrieval_context(payload)
    assert message in exc_info.value.details
