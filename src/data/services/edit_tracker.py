"""Field-level edit tracking for query sessions.

Edits never touch ``session.records``; they live in
``session.modified_records`` (record id -> field path -> new value) until a
commit succeeds for that record.
"""

from typing import Any, Dict, Iterable, Mapping, Optional, Union

from api.contracts import FieldDescriptor
from api.error_handling import EditNotAllowedError
from config.settings import Settings

from .column_normalizer import Column
from .session_types import QuerySession

NUMERIC_FIELD_TYPES = ("double", "currency", "percent")


def _as_text(value: Any) -> str:
    """String form used by the change policy; matches how editable controls render values."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def is_value_changed(original_value: Any, new_value: Any) -> bool:
    """Decide whether ``new_value`` differs from ``original_value``.

    A null original only counts as changed for a non-empty new value; otherwise
    the string forms are compared, so ``5`` and ``"5"`` are equal.
    """
    if original_value is None:
        return new_value is not None and new_value != ""
    return _as_text(original_value) != _as_text(new_value)


def _check_writable(session: QuerySession, field_path: str) -> FieldDescriptor:
    if not session.is_editable or session.field_metadata is None:
        raise EditNotAllowedError(f"Session {session.id} is not editable")
    descriptor = session.field_metadata.get(field_path)
    if descriptor is None:
        raise EditNotAllowedError(f"Field {field_path!r} is not a field of {session.object_name}")
    if not descriptor.writable:
        raise EditNotAllowedError(f"Field {field_path!r} of {session.object_name} is read-only")
    return descriptor


def set_field(
    session: QuerySession,
    record_id: str,
    field_path: str,
    new_value: Any,
    original_value: Any,
) -> bool:
    """Record or drop an edit depending on whether the value changed. Returns True if changed."""
    _check_writable(session, field_path)

    if is_value_changed(original_value, new_value):
        session.modified_records.setdefault(record_id, {})[field_path] = new_value
        return True

    clear_field(session, record_id, field_path)
    return False


def clear_field(session: QuerySession, record_id: str, field_path: str) -> None:
    """Drop one pending edit; the record entry goes away with its last field."""
    record_mods = session.modified_records.get(record_id)
    if record_mods is None:
        return
    record_mods.pop(field_path, None)
    if not record_mods:
        del session.modified_records[record_id]


def clear_all(session: QuerySession) -> None:
    session.modified_records.clear()


def has_pending_edits(session: QuerySession) -> bool:
    return bool(session.modified_records)


def apply_committed_values(session: QuerySession, record_id: str, fields: Mapping[str, Any]) -> None:
    """Merge committed values into the fetched row with the given id."""
    for index, record in enumerate(session.records):
        if record.get(Settings.ID_FIELD) == record_id:
            session.records[index] = {**record, **fields}
            return


def parse_field_value(text: Optional[str], descriptor: FieldDescriptor) -> Union[str, int, float, bool, None]:
    """Convert text-control input into the value type of a field."""
    if text is None or text == "":
        return None

    if descriptor.type == "boolean":
        return text.lower() == "true"
    if descriptor.type == "int":
        try:
            return int(text.strip())
        except ValueError:
            return None
    if descriptor.type in NUMERIC_FIELD_TYPES:
        try:
            return float(text.strip())
        except ValueError:
            return None
    return text


def is_edit_eligible(columns: Iterable[Column], object_name: Optional[str]) -> bool:
    """Structural half of the editability gate, checked before field metadata is fetched."""
    columns = list(columns)
    if not any(col.path == Settings.ID_FIELD for col in columns):
        return False
    if any(col.is_aggregate for col in columns):
        return False
    return bool(object_name)


def compute_editability(
    columns: Iterable[Column],
    object_name: Optional[str],
    field_metadata: Optional[Dict[str, FieldDescriptor]],
) -> bool:
    """A result is editable only if it is structurally eligible and field metadata was obtained."""
    return field_metadata is not None and is_edit_eligible(columns, object_name)
