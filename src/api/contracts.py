"""Typed contracts exchanged with the remote data API."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional


@dataclass(frozen=True)
class QueryOptions:
    """Options forwarded with a query execution."""

    use_tooling_api: bool = False
    include_deleted: bool = False


@dataclass(frozen=True)
class RawColumn:
    """Column descriptor as returned by the query endpoint."""

    column_name: str
    display_name: str
    aggregate: bool = False
    join_columns: List["RawColumn"] = field(default_factory=list)
    extra: Dict[str, Any] = field(default_factory=dict)

    _KNOWN_KEYS = ("columnName", "name", "displayName", "aggregate", "joinColumns", "children")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RawColumn":
        """Build a descriptor from server JSON.

        Accepts both the ``columnName``/``displayName``/``joinColumns`` spelling
        and the shorter ``name``/``children`` one.
        """
        name = data.get("columnName") or data.get("name")
        if not name:
            raise ValueError(f"Column descriptor without a name: {dict(data)!r}")
        children = data.get("joinColumns")
        if children is None:
            children = data.get("children") or []
        return cls(
            column_name=name,
            display_name=data.get("displayName") or name,
            aggregate=bool(data.get("aggregate", False)),
            join_columns=[
                child if isinstance(child, RawColumn) else cls.from_dict(child) for child in children
            ],
            extra={k: v for k, v in data.items() if k not in cls._KNOWN_KEYS},
        )

    @classmethod
    def from_list(cls, items: Optional[List[Any]]) -> List["RawColumn"]:
        """Build descriptors from a list of dicts (or descriptors)."""
        return [item if isinstance(item, RawColumn) else cls.from_dict(item) for item in items or []]


@dataclass(frozen=True)
class FieldDescriptor:
    """Capabilities of one field of an object."""

    name: str
    writable: bool
    type: str = "string"
    label: Optional[str] = None
    calculated: bool = False
    nillable: bool = True

    @classmethod
    def from_describe(cls, data: Mapping[str, Any]) -> "FieldDescriptor":
        """Build a descriptor from one entry of an object describe ``fields`` list."""
        calculated = bool(data.get("calculated", False))
        return cls(
            name=data["name"],
            writable=bool(data.get("updateable", data.get("writable", False))) and not calculated,
            type=data.get("type") or "string",
            label=data.get("label"),
            calculated=calculated,
            nillable=bool(data.get("nillable", True)),
        )


@dataclass(frozen=True)
class QueryPage:
    """First page of a query result."""

    records: List[Dict[str, Any]]
    total_size: int
    done: bool
    cursor: Optional[str]
    raw_columns: List[RawColumn] = field(default_factory=list)
    object_name: Optional[str] = None


@dataclass(frozen=True)
class NextPage:
    """A continuation page fetched with a cursor."""

    records: List[Dict[str, Any]]
    done: bool
    cursor: Optional[str]


class BulkJobState(str, Enum):
    """Server-side lifecycle of a bulk export job."""

    CREATED = "Created"
    UPLOAD_COMPLETE = "UploadComplete"
    IN_PROGRESS = "InProgress"
    JOB_COMPLETE = "JobComplete"
    FAILED = "Failed"
    ABORTED = "Aborted"

    @property
    def is_terminal(self) -> bool:
        return self in (BulkJobState.JOB_COMPLETE, BulkJobState.FAILED, BulkJobState.ABORTED)


@dataclass(frozen=True)
class BulkJob:
    """Status snapshot of a bulk export job."""

    id: str
    state: BulkJobState
    records_processed: int = 0
    error_message: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "BulkJob":
        """Build a snapshot from the job status JSON."""
        return cls(
            id=data["id"],
            state=BulkJobState(data["state"]),
            records_processed=int(data.get("numberRecordsProcessed") or 0),
            error_message=data.get("errorMessage"),
        )


@dataclass(frozen=True)
class BulkChunk:
    """One page of bulk export CSV plus the locator of the next page."""

    csv_text: str
    next_locator: Optional[str] = None
