"""Data layer: query session services and session storage."""

from .services.bulk_export_service import BulkExportService
from .services.session_registry import QuerySessionRegistry
from .repositories.session_store import SessionStore

__all__ = [
    "BulkExportService",
    "QuerySessionRegistry",
    "SessionStore",
]
