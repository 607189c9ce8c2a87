"""Tests for the SQLAlchemy record adapter."""

from __future__ import annotations

from sqlalchemy import select

from pii_tokenizer.core.record_adapter import SQLAlchemyRecordAdapter
from tests.fixtures.models import LegacyUser, User


class TestAttributes:
    """Test column access."""

    def test_mapped_and_unmapped(self) -> None:
        adapter = SQLAlchemyRecordAdapter(User(external_id="1"))

        assert adapter.has_attribute("_email_plaintext")
        assert adapter.has_attribute("email_token")
        assert not adapter.has_attribute("email")
        assert adapter.read_raw("external_id") == "1"

    def test_dropped_plaintext_reads_none_and_ignores_writes(self) -> None:
        record = LegacyUser(external_id="1")
        adapter = SQLAlchemyRecordAdapter(record)

        adapter.write_raw("_email_plaintext", "jane@example.com")

        assert adapter.read_raw("_email_plaintext") is None
        assert "_email_plaintext" not in record.__dict__
        assert not adapter.is_dirty("_email_plaintext")


class TestLifecycle:
    """Test new-record, identity and dirty tracking."""

    def test_identity_after_flush(self, db_session) -> None:
        record = User(external_id="1")
        adapter = SQLAlchemyRecordAdapter(record)
        assert adapter.is_new_record()
        assert adapter.identity() is None

        db_session.add(record)
        db_session.flush()

        assert not adapter.is_new_record()
        assert adapter.identity() == record.id

    def test_dirty_and_previous_value(self, db_session) -> None:
        record = User(external_id="1")
        db_session.add(record)
        db_session.flush()
        adapter = SQLAlchemyRecordAdapter(record)

        assert not adapter.is_dirty("external_id")
        assert adapter.previous_value("external_id") == "1"

        record.external_id = "2"

        assert adapter.is_dirty("external_id")
        assert adapter.previous_value("external_id") == "1"

    def test_mark_modified_only_for_persistent_records(self, db_session) -> None:
        record = User(external_id="1", email_token="tok_1")
        adapter = SQLAlchemyRecordAdapter(record)
        adapter.mark_modified("email_token")
        db_session.add(record)
        db_session.flush()
        assert record not in db_session.dirty

        adapter.mark_modified("email_token")

        assert record in db_session.dirty


class TestUpdateColumns:
    """Test the out-of-flush UPDATE."""

    def test_writes_row_and_commits_values(self, db_session) -> None:
        record = User(external_id="1")
        db_session.add(record)
        db_session.flush()
        adapter = SQLAlchemyRecordAdapter(record)

        adapter.update_columns(
            db_session.connection(), {"email_token": "tok_1", "_email_plaintext": None}
        )

        assert record.email_token == "tok_1"
        assert not adapter.is_dirty("email_token")
        stored = db_session.execute(select(User.__table__.c.email_token)).scalar_one()
        assert stored == "tok_1"

    def test_unmapped_only_is_a_no_op(self, db_session, sql_statements) -> None:
        record = LegacyUser(external_id="1")
        db_session.add(record)
        db_session.flush()
        sql_statements.clear()

        SQLAlchemyRecordAdapter(record).update_columns(
            db_session.connection(), {"_email_plaintext": "x"}
        )

        assert sql_statements == []
