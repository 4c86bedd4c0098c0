"""Typed contracts for query sessions, edit commits and bulk exports."""

from __future__ import annotations

import io
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

import pandas as pd

from api.contracts import BulkJobState, FieldDescriptor, QueryOptions

from .column_normalizer import Column


@dataclass
class QuerySession:
    """One open query result set (a tab)."""

    id: str
    query_text: str
    normalized_query: str
    options: QueryOptions = field(default_factory=QueryOptions)
    object_name: Optional[str] = None
    records: List[Dict[str, Any]] = field(default_factory=list)
    columns: List[Column] = field(default_factory=list)
    total_size: int = 0
    done: bool = True
    cursor: Optional[str] = None
    field_metadata: Optional[Dict[str, FieldDescriptor]] = None
    modified_records: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    is_editable: bool = False
    loading: bool = False
    error: Optional[str] = None
    closed: bool = False
    # Bumped by every fetch; a response carrying an older value is stale.
    generation: int = 0

    @property
    def has_more(self) -> bool:
        return not self.done and self.cursor is not None

    @property
    def has_pending_edits(self) -> bool:
        return bool(self.modified_records)

    @property
    def has_results(self) -> bool:
        return bool(self.records)


class ExportEventKind(str, Enum):
    """Kinds of bulk export progress events, in emission order."""

    JOB_CREATED = "job_created"
    POLLED = "polled"
    DOWNLOADING = "downloading"
    CHUNK_RECEIVED = "chunk_received"


@dataclass(frozen=True)
class ExportProgress:
    """One bulk export progress event."""

    kind: ExportEventKind
    job_id: Optional[str] = None
    state: Optional[BulkJobState] = None
    records_processed: int = 0
    rows_downloaded: int = 0
    chunks_downloaded: int = 0


@dataclass(frozen=True)
class ExportResult:
    """Stitched CSV produced by a completed bulk export."""

    job_id: str
    csv_text: str
    row_count: int
    chunk_count: int
    filename: str

    def to_dataframe(self) -> pd.DataFrame:
        """Parse the CSV into a DataFrame (all columns as strings)."""
        if not self.csv_text.strip():
            return pd.DataFrame()
        return pd.read_csv(io.StringIO(self.csv_text), dtype=str, keep_default_na=False)


@dataclass
class CommitReport:
    """Outcome of committing a session's pending edits."""

    saved: List[str] = field(default_factory=list)
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return not self.errors

    def summary(self) -> str:
        """Human-readable failure list, one record per line."""
        return "\n".join(f"Record {record_id}: {message}" for record_id, message in self.errors.items())
