"""Error taxonomy shared by the memory store, validators, and callers."""


class MemoryStoreError(Exception):
    """Base class for all memory service errors."""


class ValidationError(MemoryStoreError):
    """Payload rejected; `details` carries every field-level message found."""

    def __init__(self, message: str, details: list[str] | None = None):
        super().__init__(message)
        self.message = message
        self.details = list(details or [])

    def __str__(self) -> str:
        if not self.details:
            return self.message
        return f"{self.message}: {'; '.join(self.details)}"


class NotFound(MemoryStoreError):
    """Referenced project scope is unknown to the caller's registry."""


class DuplicateId(MemoryStoreError):
    """An entry or audit with the same id already exists."""

    def __init__(self, record_id: str, kind: str = "memory entry"):
        super().__init__(f"{kind[:1].upper()}{kind[1:]} id already exists: {record_id}")
        self.record_id = record_id
        self.kind = kind


class StorageError(MemoryStoreError):
    """Underlying SQLite persistence failure."""
