"""aiohttp client for the remote REST data API."""

import json
import logging
from typing import Any, Dict, Mapping, Optional, Tuple
from urllib.parse import urlsplit

import aiohttp

from config.api import APIConfig

from .backend import QueryBackend
from .circuit_breaker import circuit_breaker_manager
from .contracts import BulkChunk, BulkJob, FieldDescriptor, NextPage, QueryOptions, QueryPage, RawColumn
from .error_handling import ApiRequestError, categorize_error

LOCATOR_HEADER = "sforce-locator"


class RestDataClient(QueryBackend):
    """Client for the query, describe, record and bulk query endpoints.

    Requests are never retried; a per-host circuit breaker stops hammering a
    host that keeps failing. No request timeout is applied.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        access_token: Optional[str] = None,
        session: Optional[aiohttp.ClientSession] = None,
        logger_obj: Optional[logging.Logger] = None,
    ):
        self.logger = logger_obj or logging.getLogger(__name__)
        self.config = APIConfig()
        self.base_url = (base_url or self.config.BASE_URL).rstrip("/")
        self.access_token = access_token
        self._session = session
        self._owns_session = session is None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.access_token)

    @property
    def host(self) -> str:
        parts = urlsplit(self.base_url)
        return f"{parts.scheme}://{parts.netloc}"

    async def __aenter__(self) -> "RestDataClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the HTTP session if this client created it."""
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        if self._owns_session:
            self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=None))
            self._owns_session = True
        return self._session

    def _headers(self, accept: str) -> Dict[str, str]:
        headers = {"Accept": accept, "Content-Type": "application/json"}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        return headers

    def _extract_error_message(self, body: str, reason: Optional[str]) -> str:
        """Pull the server's message out of an error body."""
        if body:
            try:
                payload = json.loads(body)
            except ValueError:
                # Not JSON (e.g. an HTML maintenance page)
                return body[: self.config.ERROR_BODY_PREVIEW_CHARS]
            if isinstance(payload, list):
                payload = payload[0] if payload else {}
            if isinstance(payload, dict) and payload.get("message"):
                return str(payload["message"])
        return reason or "Request failed"

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        body: Optional[Mapping[str, Any]] = None,
        accept: str = "application/json",
    ) -> Tuple[str, Dict[str, str]]:
        """Issue one request and return the body text and lower-cased headers."""
        breaker = circuit_breaker_manager.get_breaker(self.host)
        breaker.ensure_can_attempt(self.host)

        url = path if path.startswith("http") else f"{self.base_url}{path}"
        try:
            async with self._get_session().request(
                method,
                url,
                params=params,
                data=json.dumps(body) if body is not None else None,
                headers=self._headers(accept),
            ) as resp:
                text = await resp.text()
                if resp.status >= 400:
                    raise ApiRequestError(self._extract_error_message(text, resp.reason), status=resp.status)
                breaker.record_success()
                return text, {k.lower(): v for k, v in resp.headers.items()}
        except (ApiRequestError, aiohttp.ClientError) as e:
            breaker.record_exception(e)
            error_category = categorize_error(e)
            self.logger.error(f"{method} {path} failed with {error_category.value} error: {e}")
            raise

    async def _request_json(self, method: str, path: str, **kwargs) -> Any:
        text, _ = await self._request(method, path, **kwargs)
        return json.loads(text) if text else None

    async def run_query(self, text: str, options: QueryOptions) -> QueryPage:
        """Execute a query, fetching column metadata first, then the rows."""
        path = self.config.get_query_path(options.use_tooling_api, options.include_deleted)

        # Sequential on purpose: the columns call is the validation gate, so an
        # invalid query reports the error from the lightweight request.
        column_data = await self._request_json("GET", path, params={"q": text, "columns": "true"}) or {}
        query_data = await self._request_json("GET", path, params={"q": text}) or {}

        return QueryPage(
            records=query_data.get("records") or [],
            total_size=int(query_data.get("totalSize") or 0),
            done=bool(query_data.get("done", True)),
            cursor=query_data.get("nextRecordsUrl"),
            raw_columns=RawColumn.from_list(column_data.get("columnMetadata")),
            object_name=column_data.get("entityName"),
        )

    async def continue_query(self, cursor: str) -> NextPage:
        data = await self._request_json("GET", cursor) or {}
        return NextPage(
            records=data.get("records") or [],
            done=bool(data.get("done", True)),
            cursor=data.get("nextRecordsUrl"),
        )

    async def describe_object_fields(self, object_name: str) -> Dict[str, FieldDescriptor]:
        data = await self._request_json("GET", self.config.get_describe_path(object_name))
        if not data:
            raise ApiRequestError(f"No describe data returned for {object_name}")
        return {
            descriptor.name: descriptor
            for descriptor in (FieldDescriptor.from_describe(f) for f in data.get("fields", []))
        }

    async def update_record(self, object_name: str, record_id: str, field_map: Mapping[str, Any]) -> None:
        await self._request("PATCH", self.config.get_record_path(object_name, record_id), body=dict(field_map))

    async def submit_bulk_job(self, query_text: str, options: QueryOptions) -> str:
        data = await self._request_json(
            "POST",
            self.config.get_bulk_jobs_path(),
            body={"operation": "queryAll" if options.include_deleted else "query", "query": query_text},
        )
        if not data or not data.get("id"):
            raise ApiRequestError("No job data returned from bulk query API")
        self.logger.info(f"Created bulk query job {data['id']}")
        return data["id"]

    async def poll_bulk_job(self, job_id: str) -> BulkJob:
        data = await self._request_json("GET", self.config.get_bulk_job_path(job_id))
        if not data:
            raise ApiRequestError(f"No job status returned for job {job_id}")
        return BulkJob.from_dict(data)

    async def download_bulk_chunk(self, job_id: str, locator: Optional[str]) -> BulkChunk:
        params = {"maxRecords": str(self.config.BULK_CHUNK_MAX_RECORDS)}
        if locator:
            params["locator"] = locator
        text, headers = await self._request(
            "GET", self.config.get_bulk_results_path(job_id), params=params, accept="text/csv"
        )
        return BulkChunk(csv_text=text, next_locator=headers.get(LOCATOR_HEADER))

    async def abort_bulk_job(self, job_id: str) -> None:
        await self._request("PATCH", self.config.get_bulk_job_path(job_id), body={"state": "Aborted"})
        self.logger.info(f"Requested abort of bulk query job {job_id}")
