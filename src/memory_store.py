"""
src/memory_store.py
Compatibility facade for LessonSync SQLite memory helpers.
Exports: init_memory_db, rollback_memory_db, insert_memory_entry, insert_workflow_audit,
record_workflow_completion, query_memory_entries, query_workflow_audits, build_project_registry
"""

from src.memory.errors import DuplicateId, MemoryStoreError, NotFound, StorageError, ValidationError
from src.memory.query import build_project_registry, query_memory_entries, query_workflow_audits
from src.memory.schema import init_memory_db, rollback_memory_db
from src.memory.types import AuditQuery, MemoryEntry, MemoryQuery, ProcessLesson, WorkflowAudit
from src.memory.write import insert_memory_entry, insert_workflow_audit, record_workflow_completion

__all__ = [
    "AuditQuery",
    "DuplicateId",
    "MemoryEntry",
    "MemoryQuery",
    "MemoryStoreError",
    "NotFound",
    "ProcessLesson",
    "StorageError",
    "ValidationError",
    "WorkflowAudit",
    "init_memory_db",
    "rollback_memory_db",
    "insert_memory_entry",
    "insert_workflow_audit",
    "record_workflow_completion",
    "query_memory_entries",
    "query_workflow_audits",
    "build_project_registry",
]
