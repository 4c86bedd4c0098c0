"""Service layer for query sessions, editing and export."""

from .session_types import CommitReport, ExportProgress, ExportResult, QuerySession
from .pagination_client import PaginationClient
from .bulk_export_service import BulkExportService
from .session_registry import QuerySessionRegistry

__all__ = [
    "CommitReport",
    "ExportProgress",
    "ExportResult",
    "QuerySession",
    "PaginationClient",
    "BulkExportService",
    "QuerySessionRegistry",
]
