"""
Tests for logging setup and the dependency container.
"""

import logging
from logging.handlers import RotatingFileHandler

import pytest

from api.rest_client import RestDataClient
from core.dependencies import DependencyContainer
from data.services.bulk_export_service import BulkExportService
from data.services.session_registry import QuerySessionRegistry
from utils.logger_setup import setup_logging

from conftest import ACCOUNT_COLUMNS, make_page


class TestSetupLogging:
    """Test logger configuration."""

    def test_file_and_console_handlers(self, tmp_path):
        logger = setup_logging("query_engine_test_files", log_dir=tmp_path)
        try:
            assert any(isinstance(h, RotatingFileHandler) for h in logger.handlers)
            assert (tmp_path / "query_engine_test_files.log").exists()
        finally:
            for handler in list(logger.handlers):
                handler.close()
                logger.removeHandler(handler)

    def test_repeat_setup_only_updates_level(self):
        logger = setup_logging("query_engine_test_repeat", file_output=False)
        handler_count = len(logger.handlers)

        again = setup_logging("query_engine_test_repeat", log_level=logging.DEBUG, file_output=False)

        assert again is logger
        assert len(again.handlers) == handler_count
        assert again.level == logging.DEBUG

    def test_no_outputs_gets_null_handler(self):
        logger = setup_logging("query_engine_test_silent", console_output=False, file_output=False)
        assert [type(h) for h in logger.handlers] == [logging.NullHandler]


class TestDependencyContainer:
    """Test lazy service wiring."""

    def test_default_backend_is_rest_client(self):
        container = DependencyContainer("https://acme.example.invalid", "token", file_output=False)

        assert isinstance(container.backend, RestDataClient)
        assert container.backend.is_authenticated is True

    def test_services_are_shared(self, fake_backend):
        container = DependencyContainer(backend=fake_backend, file_output=False)

        registry = container.registry

        assert isinstance(registry, QuerySessionRegistry)
        assert isinstance(container.export_service, BulkExportService)
        assert registry.backend is fake_backend
        assert registry.export_service is container.export_service
        assert container.registry is registry

    def test_child_loggers(self, fake_backend):
        container = DependencyContainer(backend=fake_backend, logger_name="query_engine_test_children", file_output=False)

        assert container.get_logger() is container.logger
        assert container.get_logger("sessions").name == "query_engine_test_children.sessions"

    @pytest.mark.asyncio
    async def test_registry_runs_against_injected_backend(self, fake_backend):
        fake_backend.pages["SELECT Id FROM Account"] = make_page([{"Id": "001A"}], ACCOUNT_COLUMNS[:1], "Account")
        fake_backend.describes["Account"] = {}
        container = DependencyContainer(backend=fake_backend, file_output=False)

        session_id = await container.registry.execute("SELECT Id FROM Account")

        assert container.registry.get(session_id).records == [{"Id": "001A"}]
        await container.close()
