"""
Tests for field-level edit tracking and the editability gate.
"""

import pytest

from api.contracts import FieldDescriptor
from api.error_handling import EditNotAllowedError
from data.services import edit_tracker
from data.services.column_normalizer import ScalarColumn, SubqueryColumn
from data.services.session_types import QuerySession

from conftest import account_fields


@pytest.fixture
def session():
    return QuerySession(
        id="query-tab-1",
        query_text="SELECT Id, Name FROM Account",
        normalized_query="select id, name from account",
        object_name="Account",
        records=[{"Id": "001A", "Name": "Acme", "NumberOfEmployees": 10}],
        columns=[ScalarColumn(title="Id", path="Id"), ScalarColumn(title="Name", path="Name")],
        field_metadata=account_fields(),
        is_editable=True,
    )


class TestChangePolicy:
    """Test the value comparison used to decide whether an edit is kept."""

    @pytest.mark.parametrize(
        "original, new, changed",
        [
            (None, None, False),
            (None, "", False),
            (None, "x", True),
            ("Acme", "Acme", False),
            ("Acme", "Acme Corp", True),
            (5, "5", False),
            (5.0, "5", False),
            (True, "true", False),
            (True, False, True),
            ("x", None, True),
        ],
    )
    def test_is_value_changed(self, original, new, changed):
        assert edit_tracker.is_value_changed(original, new) is changed


class TestSetField:
    """Test recording and dropping edits."""

    def test_changed_value_is_recorded(self, session):
        assert edit_tracker.set_field(session, "001A", "Name", "Acme Corp", "Acme") is True
        assert session.modified_records == {"001A": {"Name": "Acme Corp"}}
        assert edit_tracker.has_pending_edits(session)

    def test_edit_does_not_touch_records(self, session):
        edit_tracker.set_field(session, "001A", "Name", "Acme Corp", "Acme")
        assert session.records[0]["Name"] == "Acme"

    def test_reverting_to_original_drops_the_edit(self, session):
        """Setting a field back to its original removes it, and the record with its last field."""
        edit_tracker.set_field(session, "001A", "Name", "Acme Corp", "Acme")

        assert edit_tracker.set_field(session, "001A", "Name", "Acme", "Acme") is False
        assert session.modified_records == {}

    def test_clear_field_keeps_other_fields(self, session):
        edit_tracker.set_field(session, "001A", "Name", "Acme Corp", "Acme")
        edit_tracker.set_field(session, "001A", "NumberOfEmployees", 12, 10)

        edit_tracker.clear_field(session, "001A", "Name")

        assert session.modified_records == {"001A": {"NumberOfEmployees": 12}}

    def test_clear_field_unknown_record_is_noop(self, session):
        edit_tracker.clear_field(session, "missing", "Name")
        assert session.modified_records == {}

    def test_clear_all(self, session):
        edit_tracker.set_field(session, "001A", "Name", "Acme Corp", "Acme")
        edit_tracker.clear_all(session)
        assert session.modified_records == {}

    def test_read_only_field_rejected(self, session):
        with pytest.raises(EditNotAllowedError):
            edit_tracker.set_field(session, "001A", "CreatedDate", "2024-01-01", None)
        assert session.modified_records == {}

    def test_unknown_field_rejected(self, session):
        with pytest.raises(EditNotAllowedError):
            edit_tracker.set_field(session, "001A", "Owner.Name", "Bob", "Alice")

    def test_non_editable_session_rejected(self, session):
        session.is_editable = False
        with pytest.raises(EditNotAllowedError):
            edit_tracker.set_field(session, "001A", "Name", "Acme Corp", "Acme")


class TestApplyCommittedValues:
    """Test merging committed values into fetched rows."""

    def test_merges_into_matching_row(self, session):
        edit_tracker.apply_committed_values(session, "001A", {"Name": "Acme Corp"})
        assert session.records[0] == {"Id": "001A", "Name": "Acme Corp", "NumberOfEmployees": 10}

    def test_unknown_record_is_ignored(self, session):
        edit_tracker.apply_committed_values(session, "zzz", {"Name": "X"})
        assert session.records[0]["Name"] == "Acme"


class TestParseFieldValue:
    """Test text input conversion by field type."""

    def test_empty_is_null(self):
        assert edit_tracker.parse_field_value("", FieldDescriptor(name="Name", writable=True)) is None

    def test_boolean(self):
        descriptor = FieldDescriptor(name="IsActive", writable=True, type="boolean")
        assert edit_tracker.parse_field_value("TRUE", descriptor) is True
        assert edit_tracker.parse_field_value("no", descriptor) is False

    def test_int(self):
        descriptor = FieldDescriptor(name="Count", writable=True, type="int")
        assert edit_tracker.parse_field_value(" 12 ", descriptor) == 12
        assert edit_tracker.parse_field_value("abc", descriptor) is None

    def test_numeric(self):
        descriptor = FieldDescriptor(name="Amount", writable=True, type="currency")
        assert edit_tracker.parse_field_value("12.5", descriptor) == 12.5

    def test_string_passthrough(self):
        assert edit_tracker.parse_field_value("Acme", FieldDescriptor(name="Name", writable=True)) == "Acme"


class TestEditability:
    """Test the editability gate."""

    def test_editable_when_everything_present(self, session):
        assert edit_tracker.compute_editability(session.columns, "Account", account_fields()) is True

    def test_requires_id_column(self):
        columns = [ScalarColumn(title="Name", path="Name")]
        assert edit_tracker.is_edit_eligible(columns, "Account") is False

    def test_aggregate_column_blocks_editing(self):
        columns = [ScalarColumn(title="Id", path="Id"), ScalarColumn(title="COUNT(Id)", path="expr0", is_aggregate=True)]
        assert edit_tracker.compute_editability(columns, "Account", account_fields()) is False

    def test_subquery_does_not_block_editing(self):
        columns = [ScalarColumn(title="Id", path="Id"), SubqueryColumn(title="Contacts", path="Contacts")]
        assert edit_tracker.is_edit_eligible(columns, "Account") is True

    def test_requires_object_name_and_metadata(self, session):
        assert edit_tracker.compute_editability(session.columns, None, account_fields()) is False
        assert edit_tracker.compute_editability(session.columns, "Account", None) is False
