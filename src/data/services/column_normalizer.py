"""
Column metadata normalization.

Turns the server's possibly nested column descriptors into the flat list of
display columns a result table is rendered from. Three shapes come back from
the query endpoint:

- a plain field (``Name``) becomes a ``ScalarColumn``;
- a parent relationship (``Owner`` with child ``Name``) is a join and is
  flattened into ``JoinedScalarColumn``s addressed by dot path (``Owner.Name``);
- a child relationship query (``(SELECT Id FROM Contacts)``) comes back flagged
  as aggregate with children, and becomes one ``SubqueryColumn`` holding the
  nested result's descriptors untouched.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from api.contracts import RawColumn
from config.settings import Settings


@dataclass(frozen=True)
class ScalarColumn:
    """A top-level scalar field, or an aggregate expression such as ``COUNT(Id)``."""

    title: str
    path: str
    is_aggregate: bool = False

    is_subquery = False

    @property
    def child_columns(self) -> List[RawColumn]:
        return []


@dataclass(frozen=True)
class JoinedScalarColumn:
    """A scalar field reached through one or more parent relationships."""

    title: str
    path: str
    relationship_path: str
    is_aggregate: bool = False

    is_subquery = False

    @property
    def child_columns(self) -> List[RawColumn]:
        return []


@dataclass(frozen=True)
class SubqueryColumn:
    """A nested child result set shown as a single column."""

    title: str
    path: str
    child_columns: List[RawColumn] = field(default_factory=list)

    is_aggregate = False
    is_subquery = True


Column = Union[ScalarColumn, JoinedScalarColumn, SubqueryColumn]


def flatten_column_metadata(raw_columns: Sequence[RawColumn], prefix: str = "") -> List[Column]:
    """Flatten hierarchical column metadata into display columns."""
    columns: List[Column] = []

    for raw in raw_columns:
        path = f"{prefix}.{raw.column_name}" if prefix else raw.column_name
        # Nested titles show the full path so that Owner.Name and Name stay distinguishable
        title = path if prefix else raw.display_name

        if raw.aggregate and raw.join_columns:
            columns.append(SubqueryColumn(title=title, path=path, child_columns=list(raw.join_columns)))
        elif raw.join_columns:
            columns.extend(flatten_column_metadata(raw.join_columns, path))
        elif prefix:
            columns.append(
                JoinedScalarColumn(title=title, path=path, relationship_path=prefix, is_aggregate=raw.aggregate)
            )
        else:
            columns.append(ScalarColumn(title=title, path=path, is_aggregate=raw.aggregate))

    return columns


def extract_columns_from_record(record: Mapping[str, Any]) -> List[Column]:
    """Derive columns from a row's keys when the server sent no metadata."""
    return [
        ScalarColumn(title=key, path=key)
        for key in record.keys()
        if key not in Settings.BOOKKEEPING_KEYS
    ]


def normalize_columns(
    raw_columns: Optional[Sequence[Union[RawColumn, Mapping[str, Any]]]],
    record_sample: Optional[Sequence[Mapping[str, Any]]] = None,
) -> List[Column]:
    """Build the display schema for a result.

    Column metadata wins when present; otherwise the first row's keys are used;
    with neither, the result has no columns.
    """
    if raw_columns:
        return flatten_column_metadata(RawColumn.from_list(list(raw_columns)))
    if record_sample:
        return extract_columns_from_record(record_sample[0])
    return []


def column_paths(columns: Iterable[Column]) -> List[str]:
    return [col.path for col in columns]


def get_value_by_path(record: Optional[Mapping[str, Any]], path: str) -> Any:
    """Get a nested value from a row using a dot path such as ``Account.Owner.Name``."""
    if not path:
        return None

    value: Any = record
    for part in path.split("."):
        if value is None or not isinstance(value, Mapping):
            return None
        value = value.get(part)
    return value


def format_cell_value(value: Any, column: Optional[Column] = None) -> str:
    """Format a cell value for display and CSV export."""
    if value is None:
        return ""

    if column is not None and column.is_subquery:
        if isinstance(value, Mapping) and "records" in value:
            records = value.get("records") or []
            return f"[{value.get('totalSize') or len(records)} records]"
        if isinstance(value, list):
            return f"[{len(value)} records]"

    if isinstance(value, Mapping):
        if value.get("Name") is not None:
            return str(value["Name"])
        if value.get(Settings.ID_FIELD) is not None:
            return str(value[Settings.ID_FIELD])
        return json.dumps({k: v for k, v in value.items() if k not in Settings.BOOKKEEPING_KEYS})

    if isinstance(value, bool):
        return "true" if value else "false"

    return str(value)


def describe_columns(columns: Iterable[Column]) -> List[Dict[str, Any]]:
    """Plain-dict view of columns, for logging and serialization."""
    return [
        {
            "title": col.title,
            "path": col.path,
            "is_aggregate": col.is_aggregate,
            "is_subquery": col.is_subquery,
            "child_columns": [raw.column_name for raw in col.child_columns],
        }
        for col in columns
    ]
