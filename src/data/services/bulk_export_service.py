"""Bulk export: create a server job, poll it to completion, stitch the CSV chunks."""

import asyncio
import csv
import io
import logging
import re
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, List, Optional, Set, Tuple, TypeVar

from api.backend import QueryBackend
from api.contracts import BulkJob, BulkJobState, QueryOptions
from api.error_handling import (
    ExportAbortedError,
    ExportError,
    ExportFailedError,
    ExportInProgressError,
    ExportTimeoutError,
    ExportTransportError,
    QueryValidationError,
    categorize_error,
)
from config.api import APIConfig
from config.settings import Settings

from .session_types import ExportEventKind, ExportProgress, ExportResult

T = TypeVar("T")

ProgressCallback = Callable[[ExportProgress], None]

_UNSET = object()
_FROM_CLAUSE = re.compile(r"\bFROM\s+(\w+)", re.IGNORECASE)


def extract_object_name(query_text: str) -> Optional[str]:
    """Best-effort name of the queried object, used only for file naming."""
    match = _FROM_CLAUSE.search(query_text)
    return match.group(1) if match else None


def build_export_filename(object_name: Optional[str], now: Optional[datetime] = None) -> str:
    """``<object>_<UTC timestamp>.csv``, e.g. ``Account_20240102T030405.csv``."""
    now = now or datetime.now(timezone.utc)
    name = object_name or Settings.EXPORT_FILENAME_FALLBACK
    return f"{name}_{now.strftime('%Y%m%dT%H%M%S')}.csv"


def normalize_locator(locator: Optional[str]) -> Optional[str]:
    """Map every "no more chunks" spelling to None."""
    if not locator or locator == APIConfig.LOCATOR_SENTINEL:
        return None
    return locator


def drop_header_line(chunk: str) -> str:
    newline_index = chunk.find("\n")
    return chunk[newline_index + 1:] if newline_index >= 0 else ""


def count_csv_rows(text: str) -> int:
    """Count CSV records, honouring quoted fields that span lines."""
    if not text:
        return 0
    return sum(1 for row in csv.reader(io.StringIO(text)) if row)


class BulkExportService:
    """Runs bulk exports, at most one per originating session.

    Each export is one ``asyncio.Task``: submit, poll every ``poll_interval``
    seconds until the job is terminal, then download chunks one locator at a
    time. Nothing is retried.
    """

    def __init__(
        self,
        backend: QueryBackend,
        poll_interval: Optional[float] = None,
        max_poll_attempts=_UNSET,
        logger_obj: Optional[logging.Logger] = None,
    ):
        self.backend = backend
        self.logger = logger_obj or logging.getLogger(__name__)
        self.poll_interval = APIConfig.BULK_POLL_INTERVAL if poll_interval is None else poll_interval
        self.max_poll_attempts = (
            APIConfig.BULK_MAX_POLL_ATTEMPTS if max_poll_attempts is _UNSET else max_poll_attempts
        )
        self._active: Dict[str, asyncio.Task] = {}
        self._job_ids: Dict[str, str] = {}
        self._background: Set[asyncio.Task] = set()

    def is_active(self, session_id: str) -> bool:
        task = self._active.get(session_id)
        return task is not None and not task.done()

    def job_id_for(self, session_id: str) -> Optional[str]:
        return self._job_ids.get(session_id)

    async def export(
        self,
        session_id: str,
        query_text: str,
        options: Optional[QueryOptions] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> ExportResult:
        """Run a bulk export of ``query_text`` on behalf of ``session_id``."""
        options = options or QueryOptions()
        query_text = (query_text or "").strip()

        if not query_text:
            raise QueryValidationError("Query text is empty")
        if options.use_tooling_api:
            raise QueryValidationError("Bulk export is not supported with the tooling API")
        if not self.backend.is_authenticated:
            raise QueryValidationError("Not authenticated")
        if self.is_active(session_id):
            raise ExportInProgressError(session_id)

        task = asyncio.ensure_future(self._run(session_id, query_text, options, progress_callback))
        self._active[session_id] = task
        try:
            return await task
        finally:
            if self._active.get(session_id) is task:
                del self._active[session_id]

    def cancel(self, session_id: str) -> bool:
        """Cancel the export running for ``session_id``. Returns False if none was running."""
        task = self._active.get(session_id)
        if task is None or task.done():
            return False
        self.logger.info(f"Cancelling bulk export for session {session_id}")
        task.cancel()
        return True

    async def _run(
        self,
        session_id: str,
        query_text: str,
        options: QueryOptions,
        progress_callback: Optional[ProgressCallback],
    ) -> ExportResult:
        def emit(event: ExportProgress) -> None:
            if progress_callback:
                progress_callback(event)

        job_id: Optional[str] = None
        try:
            job_id = await self._submit(query_text, options)
            self._job_ids[session_id] = job_id
            self.logger.info(f"Bulk export job {job_id} created for session {session_id}")
            emit(ExportProgress(kind=ExportEventKind.JOB_CREATED, job_id=job_id, state=BulkJobState.UPLOAD_COMPLETE))

            job = await self._poll_until_terminal(job_id, emit)
            if job.state == BulkJobState.FAILED:
                self.logger.error(f"Bulk export job {job_id} failed: {job.error_message}")
                raise ExportFailedError(job.error_message, job_id)
            if job.state == BulkJobState.ABORTED:
                self.logger.warning(f"Bulk export job {job_id} was aborted")
                raise ExportAbortedError(job_id)

            emit(
                ExportProgress(
                    kind=ExportEventKind.DOWNLOADING,
                    job_id=job_id,
                    state=job.state,
                    records_processed=job.records_processed,
                )
            )
            csv_text, row_count, chunk_count = await self._download(job_id, emit)

            self.logger.info(f"Bulk export job {job_id} downloaded: {row_count:,} rows in {chunk_count} chunks")
            return ExportResult(
                job_id=job_id,
                csv_text=csv_text,
                row_count=row_count,
                chunk_count=chunk_count,
                filename=build_export_filename(
                    extract_object_name(query_text) or Settings.BULK_EXPORT_FILENAME_FALLBACK
                ),
            )
        except asyncio.CancelledError:
            if job_id is not None:
                self._abort_in_background(job_id)
            raise
        finally:
            self._job_ids.pop(session_id, None)

    async def _submit(self, query_text: str, options: QueryOptions) -> str:
        """Create the server job; when cancelled mid-submit, abort the job once its id arrives."""
        submit = asyncio.ensure_future(self._call(self.backend.submit_bulk_job(query_text, options), None))
        try:
            return await asyncio.shield(submit)
        except asyncio.CancelledError:
            self._background.add(submit)
            submit.add_done_callback(self._background.discard)
            submit.add_done_callback(self._abort_when_submitted)
            raise

    def _abort_when_submitted(self, submit: asyncio.Future) -> None:
        if submit.cancelled() or submit.exception() is not None:
            return
        self.logger.info(f"Aborting bulk export job {submit.result()} created after cancellation")
        self._abort_in_background(submit.result())

    async def _poll_until_terminal(self, job_id: str, emit: Callable[[ExportProgress], None]) -> BulkJob:
        attempts = 0
        records_processed = 0
        while True:
            job = await self._call(self.backend.poll_bulk_job(job_id), job_id)
            records_processed = max(records_processed, job.records_processed)
            emit(
                ExportProgress(
                    kind=ExportEventKind.POLLED,
                    job_id=job_id,
                    state=job.state,
                    records_processed=records_processed,
                )
            )
            if job.state.is_terminal:
                return job

            attempts += 1
            if self.max_poll_attempts is not None and attempts >= self.max_poll_attempts:
                self._abort_in_background(job_id)
                raise ExportTimeoutError("export timed out", job_id)
            await asyncio.sleep(self.poll_interval)

    async def _download(self, job_id: str, emit: Callable[[ExportProgress], None]) -> Tuple[str, int, int]:
        parts: List[str] = []
        row_count = 0
        chunk_count = 0
        locator: Optional[str] = None

        while True:
            chunk = await self._call(self.backend.download_bulk_chunk(job_id, locator), job_id)
            if chunk_count == 0:
                part = chunk.csv_text
                row_count += max(count_csv_rows(part) - 1, 0)
            else:
                # Every chunk repeats the header row; keep only the first one
                part = drop_header_line(chunk.csv_text)
                row_count += count_csv_rows(part)
                if part and parts and not parts[-1].endswith("\n"):
                    parts.append("\n")
            parts.append(part)
            chunk_count += 1

            emit(
                ExportProgress(
                    kind=ExportEventKind.CHUNK_RECEIVED,
                    job_id=job_id,
                    state=BulkJobState.JOB_COMPLETE,
                    rows_downloaded=row_count,
                    chunks_downloaded=chunk_count,
                )
            )

            locator = normalize_locator(chunk.next_locator)
            if locator is None:
                return "".join(parts), row_count, chunk_count

    async def _call(self, awaitable: Awaitable[T], job_id: Optional[str]) -> T:
        """Await a collaborator call, turning transport failures into ExportTransportError."""
        try:
            return await awaitable
        except ExportError:
            raise
        except Exception as e:
            self.logger.error(f"Bulk export request failed with {categorize_error(e).value} error: {e}")
            raise ExportTransportError(f"export failed: {e}", job_id) from e

    def _abort_in_background(self, job_id: str) -> None:
        task = asyncio.ensure_future(self._abort_quietly(job_id))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _abort_quietly(self, job_id: str) -> None:
        try:
            await self.backend.abort_bulk_job(job_id)
        except Exception as e:
            self.logger.warning(f"Could not abort bulk export job {job_id}: {e}")
