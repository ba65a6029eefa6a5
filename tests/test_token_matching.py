"""
tests/test_token_matching.py
Unit tests for src/common/token_matching.py.
"""


def test_label_refs_round_trip_through_source_refs():
    from src.common.token_matching import non_label_refs, parse_label_refs, to_label_refs

    refs = ["VAULT-2-004"] + to_label_refs([" API ", "", "workflow"])

    assert refs == ["VAULT-2-004", "label:api", "label:workflow"]
    assert parse_label_refs(refs + ["label:Api"]) == ["api", "workflow"]
    assert non_label_refs(refs) == ["VAULT-2-004"]


def test_search_terms_drop_short_and_duplicate_terms():
    from src.common.token_matching import search_terms

    assert search_terms("  Source refs  to SOURCE  ok ") == ["source", "refs"]
    assert search_terms("") == []


def test_normalize_labels_lowercases_and_dedupes():
    from src.common.token_matching import normalize_labels

    assert normalize_labels(["UI", " ui", "design-system"]) == ["ui", "design-system"]
