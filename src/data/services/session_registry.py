"""Query session registry: one tab per distinct query, fetched, edited and exported in place."""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import pandas as pd

from api.backend import QueryBackend
from api.contracts import FieldDescriptor, QueryOptions
from api.error_handling import QueryValidationError, SessionNotFoundError, categorize_error
from config.api import APIConfig
from config.settings import Settings
from data.repositories.session_store import SessionStore

from . import edit_tracker
from .bulk_export_service import BulkExportService, ProgressCallback, build_export_filename
from .column_normalizer import describe_columns, format_cell_value, get_value_by_path, normalize_columns
from .pagination_client import PaginationClient
from .session_types import CommitReport, ExportResult, QuerySession


def normalize_query(query_text: str) -> str:
    """Lower-case, collapse whitespace and trim; the session dedup key."""
    return " ".join(query_text.lower().split())


def tab_label(session: QuerySession, max_length: int = Settings.TAB_LABEL_MAX_LENGTH) -> str:
    """Display label of a tab: the object name, else the (truncated) query text."""
    if session.object_name:
        return session.object_name
    if len(session.query_text) <= max_length:
        return session.query_text
    return f"{session.query_text[:max_length]}{Settings.TAB_LABEL_ELLIPSIS}"


class QuerySessionRegistry:
    """Owns the open query sessions and runs every operation against them.

    Sessions are keyed by normalized query text: executing a query that is
    already open refreshes that session in place instead of opening another.
    Every fetch stamps the session with a new generation; a response that
    arrives after a newer fetch started, or after the session was closed, is
    dropped.
    """

    def __init__(
        self,
        backend: QueryBackend,
        export_service: Optional[BulkExportService] = None,
        commit_concurrency: Optional[int] = None,
        logger_obj: Optional[logging.Logger] = None,
    ):
        self.backend = backend
        self.logger = logger_obj or logging.getLogger(__name__)
        self.pagination = PaginationClient(backend, self.logger)
        self.export_service = export_service or BulkExportService(backend, logger_obj=self.logger)
        self.commit_concurrency = commit_concurrency or APIConfig.COMMIT_CONCURRENCY_LIMIT
        self.store = SessionStore(self.logger)
        self.active_session_id: Optional[str] = None
        self._tab_counter = 0
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    @property
    def sessions(self) -> List[QuerySession]:
        return list(self.store)

    @property
    def active_session(self) -> Optional[QuerySession]:
        if self.active_session_id is None:
            return None
        return self.store.get(self.active_session_id)

    def get(self, session_id: str) -> QuerySession:
        session = self.store.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def find_by_query(self, query_text: str) -> Optional[QuerySession]:
        return self.store.find_by_query(normalize_query(query_text))

    def tab_label(self, session_id: str) -> str:
        return tab_label(self.get(session_id))

    # ------------------------------------------------------------------
    # Tab lifecycle
    # ------------------------------------------------------------------

    async def execute(self, query_text: str, options: Optional[QueryOptions] = None) -> str:
        """Run a query in its session (created on first use) and return the session id."""
        text = (query_text or "").strip()
        if not text:
            raise QueryValidationError("Please enter a query")
        if not self.backend.is_authenticated:
            raise QueryValidationError("Not authenticated")

        normalized = normalize_query(text)
        async with self._lock:
            session = self.store.find_by_query(normalized)
            if session is None:
                self._tab_counter += 1
                session = QuerySession(
                    id=f"{Settings.TAB_ID_PREFIX}{self._tab_counter}",
                    query_text=text,
                    normalized_query=normalized,
                )
                self.store.insert(session)
                self.logger.info(f"Opened session {session.id}")
            else:
                session.query_text = text
                self.logger.info(f"Refreshing session {session.id} in place")
            session.options = options or QueryOptions()
            self.active_session_id = session.id

        await self._fetch(session)
        return session.id

    async def refresh(self, session_id: str) -> QuerySession:
        """Re-run a session's own query in place."""
        session = self.get(session_id)
        await self._fetch(session)
        return session

    async def close(self, session_id: str) -> None:
        """Close a session; late results for it are dropped. Unknown ids are ignored."""
        async with self._lock:
            session = self.store.remove(session_id)
            if session is None:
                self.logger.debug(f"Close ignored for unknown session {session_id}")
                return

            session.closed = True
            session.loading = False
            self.export_service.cancel(session_id)

            if self.active_session_id == session_id:
                last = self.store.last()
                self.active_session_id = last.id if last else None
            self.logger.info(f"Closed session {session_id}")

    def switch_active(self, session_id: str) -> None:
        self.get(session_id)
        self.active_session_id = session_id

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    def _is_stale(self, session: QuerySession, generation: int) -> bool:
        return session.closed or session.generation != generation or self.store.get(session.id) is not session

    async def _fetch(self, session: QuerySession) -> None:
        session.generation += 1
        generation = session.generation
        session.loading = True
        session.error = None

        try:
            page = await self.pagination.fetch_first_page(session.query_text, session.options)
            columns = normalize_columns(page.raw_columns, page.records)
            field_metadata = None
            if edit_tracker.is_edit_eligible(columns, page.object_name):
                field_metadata = await self._describe_fields(page.object_name)
        except Exception as e:
            if self._is_stale(session, generation):
                self.logger.debug(f"Dropping stale failure for session {session.id}: {e}")
                return
            self._set_error(session, e)
            return
        finally:
            if not self._is_stale(session, generation):
                session.loading = False

        if self._is_stale(session, generation):
            self.logger.debug(f"Dropping stale result for session {session.id}")
            return

        session.records = list(page.records)
        session.columns = columns
        session.total_size = page.total_size
        session.done = page.done
        session.cursor = page.cursor
        session.object_name = page.object_name
        session.field_metadata = field_metadata
        session.is_editable = edit_tracker.compute_editability(columns, page.object_name, field_metadata)
        edit_tracker.clear_all(session)

        self.logger.info(
            f"Session {session.id}: {page.total_size:,} record{'s' if page.total_size != 1 else ''}, "
            f"{len(columns)} columns, editable={session.is_editable}"
        )
        self.logger.debug(f"Session {session.id} columns: {describe_columns(columns)}")

    async def _describe_fields(self, object_name: str) -> Optional[Dict[str, FieldDescriptor]]:
        """Field metadata for edit mode; any failure just disables editing."""
        try:
            return await self.backend.describe_object_fields(object_name)
        except Exception as e:
            self.logger.warning(
                f"Field metadata for {object_name} unavailable ({categorize_error(e).value} error: {e}); "
                "editing disabled"
            )
            return None

    def _set_error(self, session: QuerySession, error: Exception) -> None:
        session.error = str(error) or error.__class__.__name__
        session.records = []
        session.columns = []
        session.total_size = 0
        session.done = True
        session.cursor = None
        session.field_metadata = None
        session.is_editable = False
        edit_tracker.clear_all(session)
        self.logger.error(f"Query failed for session {session.id}: {session.error}")

    async def load_more(self, session_id: str) -> QuerySession:
        """Append the next page to a session.

        A no-op when no more pages exist or a fetch for the session is already
        in flight. Each call takes its own generation, so a page that lands
        after a newer fetch started is dropped.
        """
        session = self.get(session_id)
        if not session.has_more:
            self.logger.debug(f"Session {session_id} has no more pages")
            return session
        if session.loading:
            self.logger.debug(f"Session {session_id} is already fetching; load_more ignored")
            return session

        session.generation += 1
        generation = session.generation
        session.loading = True
        try:
            page = await self.pagination.fetch_next_page(session.cursor)
        except Exception as e:
            if not self._is_stale(session, generation):
                session.loading = False
                self._set_error(session, e)
            return session

        if self._is_stale(session, generation):
            self.logger.debug(f"Dropping stale page for session {session_id}")
            return session

        session.records.extend(page.records)
        session.done = page.done
        session.cursor = page.cursor
        session.loading = False
        self.logger.info(f"Session {session_id}: {len(session.records):,} of {session.total_size:,} rows loaded")
        return session

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------

    def set_field(self, session_id: str, record_id: str, field_path: str, new_value: Any, original_value: Any) -> bool:
        return edit_tracker.set_field(self.get(session_id), record_id, field_path, new_value, original_value)

    def clear_field(self, session_id: str, record_id: str, field_path: str) -> None:
        edit_tracker.clear_field(self.get(session_id), record_id, field_path)

    def clear_all(self, session_id: str) -> None:
        edit_tracker.clear_all(self.get(session_id))

    async def commit_changes(self, session_id: str) -> CommitReport:
        """Submit every modified record concurrently and wait for all of them.

        Records that saved are cleared from the pending edits and merged into
        the fetched rows; failed records keep their edits and are reported.
        """
        session = self.get(session_id)
        report = CommitReport()
        if not session.modified_records or not session.object_name:
            return report

        object_name = session.object_name
        pending = {record_id: dict(fields) for record_id, fields in session.modified_records.items()}
        semaphore = asyncio.Semaphore(self.commit_concurrency)

        async def commit_record(record_id: str, fields: Dict[str, Any]) -> None:
            async with semaphore:
                await self.backend.update_record(object_name, record_id, fields)

        self.logger.info(f"Saving {len(pending)} modified records of {object_name}")
        results = await asyncio.gather(
            *(commit_record(record_id, fields) for record_id, fields in pending.items()),
            return_exceptions=True,
        )

        # Saved values merge into the current rows unless the session was closed
        closed = session.closed or self.store.get(session.id) is not session
        for (record_id, fields), result in zip(pending.items(), results):
            if isinstance(result, BaseException):
                report.errors[record_id] = str(result) or result.__class__.__name__
                self.logger.warning(f"Saving record {record_id} failed: {report.errors[record_id]}")
                continue

            report.saved.append(record_id)
            if closed:
                continue
            edit_tracker.apply_committed_values(session, record_id, fields)
            # Edits made while the save was in flight stay pending
            for field_path, value in fields.items():
                if session.modified_records.get(record_id, {}).get(field_path, object()) == value:
                    edit_tracker.clear_field(session, record_id, field_path)

        if report.success:
            self.logger.info(f"Saved {len(report.saved)} records")
        else:
            self.logger.error(f"Failed to save {len(report.errors)} of {len(pending)} records")
        return report

    # ------------------------------------------------------------------
    # Viewing and export
    # ------------------------------------------------------------------

    def filter_records(self, session_id: str, text: str) -> List[Dict[str, Any]]:
        """Rows where any formatted cell contains ``text`` (case-insensitive)."""
        session = self.get(session_id)
        needle = (text or "").strip().lower()
        if not needle:
            return list(session.records)
        return [
            record
            for record in session.records
            if any(
                needle in format_cell_value(get_value_by_path(record, col.path), col).lower()
                for col in session.columns
            )
        ]

    def to_dataframe(self, session_id: str) -> pd.DataFrame:
        """Current rows as a DataFrame with one column per display column."""
        session = self.get(session_id)
        rows = [
            [format_cell_value(get_value_by_path(record, col.path), col) for col in session.columns]
            for record in session.records
        ]
        return pd.DataFrame(rows, columns=[col.title for col in session.columns])

    def export_csv(self, session_id: str) -> str:
        """Current rows as CSV, headed by the column titles."""
        df = self.to_dataframe(session_id)
        if df.empty:
            return ""
        return df.to_csv(index=False, lineterminator="\n")

    def export_filename(self, session_id: str) -> str:
        return build_export_filename(self.get(session_id).object_name)

    async def start_export(
        self,
        session_id: str,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> ExportResult:
        """Bulk export a session's query; one export per session at a time."""
        session = self.get(session_id)
        return await self.export_service.export(session.id, session.query_text, session.options, progress_callback)

    def cancel_export(self, session_id: str) -> bool:
        return self.export_service.cancel(session_id)
