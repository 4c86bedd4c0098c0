"""Abstract boundary to the remote data API.

The engine never talks HTTP itself. Everything it needs from the server goes
through a ``QueryBackend``; ``RestDataClient`` is the aiohttp implementation,
tests use in-memory fakes.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping, Optional

from .contracts import BulkChunk, BulkJob, FieldDescriptor, NextPage, QueryOptions, QueryPage


class QueryBackend(ABC):
    """Collaborator interface consumed by the query engine."""

    @property
    def is_authenticated(self) -> bool:
        """Whether requests can be issued. Backends without auth are always ready."""
        return True

    @abstractmethod
    async def run_query(self, text: str, options: QueryOptions) -> QueryPage:
        """Execute query text and return the first page with column metadata."""

    @abstractmethod
    async def continue_query(self, cursor: str) -> NextPage:
        """Fetch the page following ``cursor``."""

    @abstractmethod
    async def describe_object_fields(self, object_name: str) -> Dict[str, FieldDescriptor]:
        """Return field name -> capability descriptor for an object."""

    @abstractmethod
    async def update_record(self, object_name: str, record_id: str, field_map: Mapping[str, Any]) -> None:
        """Write ``field_map`` to one record. Raises on failure."""

    @abstractmethod
    async def submit_bulk_job(self, query_text: str, options: QueryOptions) -> str:
        """Create a bulk export job and return its id."""

    @abstractmethod
    async def poll_bulk_job(self, job_id: str) -> BulkJob:
        """Return the current status of a bulk export job."""

    @abstractmethod
    async def download_bulk_chunk(self, job_id: str, locator: Optional[str]) -> BulkChunk:
        """Download one CSV chunk; ``locator`` is None for the first chunk."""

    @abstractmethod
    async def abort_bulk_job(self, job_id: str) -> None:
        """Ask the server to abort a bulk export job."""
