"""Cursor pagination over the query collaborator."""

import logging
from typing import Optional

from api.backend import QueryBackend
from api.contracts import NextPage, QueryOptions, QueryPage
from api.error_handling import categorize_error


class PaginationClient:
    """Fetches the first page of a query and the pages after it."""

    def __init__(self, backend: QueryBackend, logger_obj: Optional[logging.Logger] = None):
        self.backend = backend
        self.logger = logger_obj or logging.getLogger(__name__)

    async def fetch_first_page(self, query: str, options: Optional[QueryOptions] = None) -> QueryPage:
        """Run the query and return the first page with its column metadata."""
        options = options or QueryOptions()
        try:
            page = await self.backend.run_query(query, options)
        except Exception as e:
            self.logger.error(f"First page fetch failed with {categorize_error(e).value} error: {e}")
            raise

        self.logger.info(
            f"Fetched {len(page.records):,} of {page.total_size:,} rows"
            f"{'' if page.done else ' (more available)'}"
        )
        return page

    async def fetch_next_page(self, cursor: str) -> NextPage:
        """Fetch the page after ``cursor``."""
        try:
            page = await self.backend.continue_query(cursor)
        except Exception as e:
            self.logger.error(f"Next page fetch failed with {categorize_error(e).value} error: {e}")
            raise

        self.logger.debug(f"Fetched {len(page.records):,} more rows (done={page.done})")
        return page
