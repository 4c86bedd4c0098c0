# tests/conftest.py
import asyncio
import logging
import os
import sys
from typing import Any, Dict, List, Optional

import pytest

# 1. Make sure `src/` is on the import path:
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
sys.path.insert(0, os.path.join(ROOT, "src"))

from api.backend import QueryBackend  # noqa: E402
from api.circuit_breaker import circuit_breaker_manager  # noqa: E402
from api.contracts import (  # noqa: E402
    BulkChunk,
    BulkJob,
    BulkJobState,
    FieldDescriptor,
    NextPage,
    QueryOptions,
    QueryPage,
    RawColumn,
)


class FakeBackend(QueryBackend):
    """In-memory QueryBackend.

    Responses are looked up in plain dicts; a value that is an exception is
    raised instead of returned. ``gates`` maps query text to an asyncio.Event
    the query waits on, which lets tests control response ordering.
    """

    def __init__(self):
        self.authenticated = True
        self.pages: Dict[str, Any] = {}
        self.next_pages: Dict[str, Any] = {}
        self.describes: Dict[str, Any] = {}
        self.update_errors: Dict[str, Exception] = {}
        self.gates: Dict[str, asyncio.Event] = {}

        self.job_id = "750000000000001"
        self.submit_error: Optional[Exception] = None
        self.submit_gate: Optional[asyncio.Event] = None
        self.job_states: List[Any] = []
        self.chunks: Dict[Optional[str], Any] = {}
        self.poll_gate: Optional[asyncio.Event] = None

        self.query_calls: List[tuple] = []
        self.continue_calls: List[str] = []
        self.describe_calls: List[str] = []
        self.updates: List[tuple] = []
        self.submitted: List[tuple] = []
        self.poll_calls: List[str] = []
        self.chunk_calls: List[Optional[str]] = []
        self.aborted: List[str] = []

    @property
    def is_authenticated(self) -> bool:
        return self.authenticated

    @staticmethod
    def _resolve(value):
        if isinstance(value, Exception):
            raise value
        return value

    async def run_query(self, text: str, options: QueryOptions) -> QueryPage:
        self.query_calls.append((text, options))
        gate = self.gates.get(text)
        if gate is not None:
            await gate.wait()
        return self._resolve(self.pages[text])

    async def continue_query(self, cursor: str) -> NextPage:
        self.continue_calls.append(cursor)
        gate = self.gates.get(cursor)
        if gate is not None:
            await gate.wait()
        return self._resolve(self.next_pages[cursor])

    async def describe_object_fields(self, object_name: str) -> Dict[str, FieldDescriptor]:
        self.describe_calls.append(object_name)
        return self._resolve(self.describes[object_name])

    async def update_record(self, object_name: str, record_id: str, field_map) -> None:
        self.updates.append((object_name, record_id, dict(field_map)))
        await asyncio.sleep(0)
        if record_id in self.update_errors:
            raise self.update_errors[record_id]

    async def submit_bulk_job(self, query_text: str, options: QueryOptions) -> str:
        self.submitted.append((query_text, options))
        if self.submit_gate is not None:
            await self.submit_gate.wait()
        if self.submit_error is not None:
            raise self.submit_error
        return self.job_id

    async def poll_bulk_job(self, job_id: str) -> BulkJob:
        self.poll_calls.append(job_id)
        if self.poll_gate is not None:
            await self.poll_gate.wait()
        state = self.job_states.pop(0) if len(self.job_states) > 1 else self.job_states[0]
        if isinstance(state, Exception):
            raise state
        if isinstance(state, BulkJob):
            return state
        return BulkJob(id=job_id, state=BulkJobState(state))

    async def download_bulk_chunk(self, job_id: str, locator: Optional[str]) -> BulkChunk:
        self.chunk_calls.append(locator)
        return self._resolve(self.chunks[locator])

    async def abort_bulk_job(self, job_id: str) -> None:
        self.aborted.append(job_id)


def make_page(records, columns=None, object_name=None, done=True, cursor=None, total_size=None) -> QueryPage:
    return QueryPage(
        records=records,
        total_size=len(records) if total_size is None else total_size,
        done=done,
        cursor=cursor,
        raw_columns=RawColumn.from_list(columns),
        object_name=object_name,
    )


def account_fields() -> Dict[str, FieldDescriptor]:
    return {
        "Id": FieldDescriptor(name="Id", writable=False, type="id"),
        "Name": FieldDescriptor(name="Name", writable=True, type="string"),
        "NumberOfEmployees": FieldDescriptor(name="NumberOfEmployees", writable=True, type="int"),
        "CreatedDate": FieldDescriptor(name="CreatedDate", writable=False, type="datetime"),
    }


ACCOUNT_COLUMNS = [
    {"columnName": "Id", "displayName": "Id"},
    {"columnName": "Name", "displayName": "Name"},
    {"columnName": "NumberOfEmployees", "displayName": "NumberOfEmployees"},
]

ACCOUNT_RECORDS = [
    {"attributes": {"type": "Account"}, "Id": "001A", "Name": "Acme", "NumberOfEmployees": 10},
    {"attributes": {"type": "Account"}, "Id": "001B", "Name": "Globex", "NumberOfEmployees": None},
]


@pytest.fixture(autouse=True)
def reset_circuit_breakers():
    circuit_breaker_manager.reset()
    yield
    circuit_breaker_manager.reset()


@pytest.fixture
def mock_logger():
    return logging.getLogger("query_engine.tests")


@pytest.fixture
def fake_backend():
    return FakeBackend()


@pytest.fixture
def account_backend(fake_backend):
    """Backend answering an editable Account query."""
    fake_backend.pages["SELECT Id, Name, NumberOfEmployees FROM Account"] = make_page(
        [dict(r) for r in ACCOUNT_RECORDS], ACCOUNT_COLUMNS, object_name="Account"
    )
    fake_backend.describes["Account"] = account_fields()
    return fake_backend
