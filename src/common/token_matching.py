"""Label ref and search-term helpers shared by validation, store, and ranking."""

import re

LABEL_PREFIX = "label:"
MIN_SEARCH_TERM_LENGTH = 3


def unique(values: list[str]) -> list[str]:
    """Return values with duplicates removed, first occurrence wins."""
    return list(dict.fromkeys(value for value in values if value))


def to_label_refs(labels: list[str]) -> list[str]:
    """Convert label names to reserved `label:<name>` source refs."""
    return [f"{LABEL_PREFIX}{label.strip().lower()}" for label in labels if label.strip()]


def parse_label_refs(source_refs: list[str]) -> list[str]:
    """
    Derive label names from `label:`-prefixed source refs.

    Args:
        source_refs: Stored provenance refs, in order.
    Returns:
        Lower-cased, de-duplicated label names in first-seen order.
    """
    labels: list[str] = []
    for ref in source_refs:
        if not isinstance(ref, str) or not ref.startswith(LABEL_PREFIX):
            continue
        name = ref[len(LABEL_PREFIX):].strip().lower()
        if name:
            labels.append(name)
    return unique(labels)


def non_label_refs(source_refs: list[str]) -> list[str]:
    """Return provenance refs that are not reserved label refs."""
    return [ref for ref in source_refs if not ref.startswith(LABEL_PREFIX)]


def normalize_labels(values: list[str]) -> list[str]:
    """Lower-case, trim, and de-duplicate requested label names."""
    return unique([str(value).strip().lower() for value in values])


def search_terms(query: str) -> list[str]:
    """Split free text on whitespace keeping lower-cased terms of 3+ chars."""
    terms = [term.lower() for term in re.split(r"\s+", query or "") if len(term) >= MIN_SEARCH_TERM_LENGTH]
    return unique(terms)
