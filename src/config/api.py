"""API configuration for the remote data endpoints."""

from enum import Enum
from typing import Optional


class CircuitBreakerState(Enum):
    """States for the circuit breaker pattern."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class APIConfig:
    """API configuration and settings."""

    # REST endpoint
    BASE_URL = "https://login.example.invalid"
    API_VERSION = "59.0"

    # Bulk export settings
    BULK_POLL_INTERVAL = 2
    BULK_MAX_POLL_ATTEMPTS: Optional[int] = None
    BULK_CHUNK_MAX_RECORDS = 2000
    LOCATOR_SENTINEL = "null"

    # Commit fan-out
    COMMIT_CONCURRENCY_LIMIT = 8

    # Circuit breaker settings
    CIRCUIT_BREAKER_FAILURE_THRESHOLD = 5
    CIRCUIT_BREAKER_RECOVERY_TIMEOUT = 60

    # Error bodies that are not JSON are cut to this length
    ERROR_BODY_PREVIEW_CHARS = 200

    @classmethod
    def get_data_path(cls) -> str:
        """Get the versioned REST data path."""
        return f"/services/data/v{cls.API_VERSION}"

    @classmethod
    def get_query_path(cls, use_tooling_api: bool = False, include_deleted: bool = False) -> str:
        """Get the query resource path for the given query options."""
        if use_tooling_api:
            resource = "tooling/query"
        elif include_deleted:
            resource = "queryAll"
        else:
            resource = "query"
        return f"{cls.get_data_path()}/{resource}/"

    @classmethod
    def get_describe_path(cls, object_name: str) -> str:
        """Get the describe path for an object."""
        return f"{cls.get_data_path()}/sobjects/{object_name}/describe"

    @classmethod
    def get_record_path(cls, object_name: str, record_id: str) -> str:
        """Get the path of a single record."""
        return f"{cls.get_data_path()}/sobjects/{object_name}/{record_id}"

    @classmethod
    def get_bulk_jobs_path(cls) -> str:
        """Get the bulk query jobs collection path."""
        return f"{cls.get_data_path()}/jobs/query"

    @classmethod
    def get_bulk_job_path(cls, job_id: str) -> str:
        """Get the path of one bulk query job."""
        return f"{cls.get_bulk_jobs_path()}/{job_id}"

    @classmethod
    def get_bulk_results_path(cls, job_id: str) -> str:
        """Get the results path of one bulk query job."""
        return f"{cls.get_bulk_job_path(job_id)}/results"
