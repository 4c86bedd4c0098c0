"""Remote data API boundary: collaborator interface, HTTP client and errors."""

from .backend import QueryBackend
from .circuit_breaker import CircuitBreaker
from .error_handling import ErrorCategory, QueryEngineError, categorize_error
from .rest_client import RestDataClient

__all__ = ["QueryBackend", "RestDataClient", "CircuitBreaker", "ErrorCategory", "QueryEngineError", "categorize_error"]
