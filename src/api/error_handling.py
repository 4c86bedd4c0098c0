"""Error taxonomy and categorization for query engine operations."""

import asyncio
import json
from enum import Enum
from typing import Optional

import aiohttp


class ErrorCategory(Enum):
    """Categories for different types of API errors."""
    NETWORK = "network"
    SERVER = "server"
    CLIENT = "client"
    TIMEOUT = "timeout"
    DATA = "data"
    UNKNOWN = "unknown"


class QueryEngineError(Exception):
    """Base class for every error raised by the query engine."""


class QueryValidationError(QueryEngineError):
    """Raised before any network call when a request cannot be issued."""


class SessionNotFoundError(QueryValidationError):
    """Raised when a session id does not name an open session."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"No open query session with id {session_id!r}")


class EditNotAllowedError(QueryValidationError):
    """Raised when an edit targets a read-only session or field."""


class ApiRequestError(QueryEngineError):
    """HTTP-level failure reported by the remote data API."""

    def __init__(self, message: str, status: Optional[int] = None):
        self.status = status
        self.message = message
        super().__init__(message)


class ExportError(QueryEngineError):
    """Base class for bulk export failures."""

    def __init__(self, message: str, job_id: Optional[str] = None):
        self.job_id = job_id
        super().__init__(message)


class ExportFailedError(ExportError):
    """The server reported the bulk job as Failed."""

    def __init__(self, server_message: Optional[str], job_id: Optional[str] = None):
        self.server_message = server_message or "Unknown error"
        super().__init__(f"export failed: {self.server_message}", job_id)


class ExportAbortedError(ExportError):
    """The server reported the bulk job as Aborted."""

    def __init__(self, job_id: Optional[str] = None):
        super().__init__("export aborted", job_id)


class ExportTransportError(ExportError):
    """A network error interrupted polling or chunk download."""


class ExportTimeoutError(ExportError):
    """The bulk job did not reach a terminal state within the poll budget."""


class ExportInProgressError(ExportError, QueryValidationError):
    """A bulk export is already running for the originating session."""

    def __init__(self, session_id: Optional[str] = None):
        self.session_id = session_id
        super().__init__("export already in progress")


def categorize_error(exception: Exception) -> ErrorCategory:
    """Categorize an exception into error types for better handling."""
    if isinstance(exception, asyncio.TimeoutError):
        return ErrorCategory.TIMEOUT
    elif isinstance(exception, aiohttp.ClientConnectorError):
        return ErrorCategory.NETWORK
    elif isinstance(exception, (aiohttp.ClientResponseError, ApiRequestError)):
        status = exception.status
        if status is None:
            return ErrorCategory.UNKNOWN
        if 400 <= status < 500:
            return ErrorCategory.CLIENT
        elif 500 <= status < 600:
            return ErrorCategory.SERVER
        else:
            return ErrorCategory.UNKNOWN
    elif isinstance(exception, aiohttp.ClientError):
        return ErrorCategory.NETWORK
    elif isinstance(exception, (json.JSONDecodeError, ValueError)):
        return ErrorCategory.DATA
    else:
        return ErrorCategory.UNKNOWN


class CircuitBreakerOpenException(QueryEngineError):
    """Exception raised when an operation is attempted while the circuit breaker is open."""
    def __init__(self, message="Circuit breaker is open and cannot accept new calls"):
        self.message = message
        super().__init__(self.message)
