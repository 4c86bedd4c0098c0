"""
Tests for PaginationClient first-page and cursor fetches.
"""

from unittest.mock import Mock

import pytest

from api.contracts import NextPage, QueryOptions
from api.error_handling import ApiRequestError
from data.services.pagination_client import PaginationClient

from conftest import make_page


class TestPaginationClient:
    """Test first-page and next-page fetching."""

    @pytest.mark.asyncio
    async def test_first_page_passes_options(self, fake_backend):
        fake_backend.pages["SELECT Id FROM Account"] = make_page([{"Id": "1"}], done=False, cursor="/next/1")
        options = QueryOptions(include_deleted=True)
        client = PaginationClient(fake_backend)

        page = await client.fetch_first_page("SELECT Id FROM Account", options)

        assert page.cursor == "/next/1"
        assert fake_backend.query_calls == [("SELECT Id FROM Account", options)]

    @pytest.mark.asyncio
    async def test_first_page_defaults_options(self, fake_backend):
        fake_backend.pages["SELECT Id FROM Account"] = make_page([])

        await PaginationClient(fake_backend).fetch_first_page("SELECT Id FROM Account")

        assert fake_backend.query_calls[0][1] == QueryOptions()

    @pytest.mark.asyncio
    async def test_next_page(self, fake_backend):
        fake_backend.next_pages["/next/1"] = NextPage(records=[{"Id": "2"}], done=True, cursor=None)

        page = await PaginationClient(fake_backend).fetch_next_page("/next/1")

        assert page.records == [{"Id": "2"}]
        assert fake_backend.continue_calls == ["/next/1"]

    @pytest.mark.asyncio
    async def test_errors_are_logged_and_reraised(self, fake_backend):
        """Failures are not retried; they are logged with their category and propagate."""
        fake_backend.pages["bad"] = ApiRequestError("MALFORMED_QUERY", status=400)
        logger = Mock()
        client = PaginationClient(fake_backend, logger_obj=logger)

        with pytest.raises(ApiRequestError):
            await client.fetch_first_page("bad")

        assert len(fake_backend.query_calls) == 1
        logger.error.assert_called_once()
        assert "client error" in logger.error.call_args[0][0]
