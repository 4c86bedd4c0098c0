"""Dependency injection container for the application."""

import logging
from typing import Optional

from api.backend import QueryBackend
from api.rest_client import RestDataClient
from config.settings import Settings
from data.services.bulk_export_service import BulkExportService
from data.services.session_registry import QuerySessionRegistry
from utils.logger_setup import setup_logging


class DependencyContainer:
    """Container for managing application dependencies.

    Services are created lazily and share one logger and one backend.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        access_token: Optional[str] = None,
        backend: Optional[QueryBackend] = None,
        logger_name: str = "query_engine",
        log_level: int = logging.INFO,
        file_output: bool = True,
    ):
        if file_output:
            Settings.ensure_directories()
        self.logger = setup_logging(logger_name, log_level=log_level, file_output=file_output)
        self.base_url = base_url
        self.access_token = access_token

        self._backend = backend
        self._export_service: Optional[BulkExportService] = None
        self._registry: Optional[QuerySessionRegistry] = None

    @property
    def backend(self) -> QueryBackend:
        """Get or create the REST backend."""
        if self._backend is None:
            self._backend = RestDataClient(self.base_url, self.access_token, logger_obj=self.get_logger("api"))
        return self._backend

    @property
    def export_service(self) -> BulkExportService:
        """Get or create the bulk export service."""
        if self._export_service is None:
            self._export_service = BulkExportService(self.backend, logger_obj=self.get_logger("export"))
        return self._export_service

    @property
    def registry(self) -> QuerySessionRegistry:
        """Get or create the query session registry."""
        if self._registry is None:
            self._registry = QuerySessionRegistry(
                self.backend,
                export_service=self.export_service,
                logger_obj=self.get_logger("sessions"),
            )
        return self._registry

    def get_logger(self, name: Optional[str] = None) -> logging.Logger:
        """Get a child of the application logger, or the application logger itself."""
        if name:
            return self.logger.getChild(name)
        return self.logger

    async def close(self) -> None:
        """Release the backend's HTTP session if the container created it."""
        if isinstance(self._backend, RestDataClient):
            await self._backend.close()
