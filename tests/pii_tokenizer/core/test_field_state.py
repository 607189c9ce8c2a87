"""
Tests for the per-record state machine.

Verifies:
- Assignment of values and None (pending, nil flags, column writes)
- Read priority (nil, pending, plaintext, cache, decrypt, fallback)
- Promotion of pending values after a flush
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from pii_tokenizer.core.field_state import FieldStateTracker, get_state, reset_state
from pii_tokenizer.core.registry import build_config
from pii_tokenizer.lib.types import PiiType
from tests.fixtures.fakes import InMemoryRecordAdapter, PlainRecord

COLUMNS = ["_email_plaintext", "email_token"]


def make_tracker(dual_write: bool = False, read_from_token: bool | None = None):
    config = build_config(
        model_name="User",
        fields={"email": PiiType.EMAIL},
        entity_type="user_uuid",
        entity_id=lambda record: "user_1",
        dual_write=dual_write,
        read_from_token=read_from_token,
    )
    decryptor = MagicMock()
    return FieldStateTracker(config, decryptor), decryptor


def make_adapter(persisted: bool = True, **columns) -> InMemoryRecordAdapter:
    values = {name: None for name in COLUMNS}
    values.update(columns)
    return InMemoryRecordAdapter(PlainRecord(**values), COLUMNS, persisted=persisted, previous=values)


class TestAssign:
    """Test FieldStateTracker.assign()."""

    def test_value_is_pending_and_marks_token_column(self) -> None:
        tracker, _ = make_tracker()
        adapter = make_adapter(email_token="tok_old")

        tracker.assign(adapter, "email", "new@example.com")

        state = get_state(adapter.record)
        assert state.pending_override == {"email": "new@example.com"}
        assert "email_token" in adapter.modified
        assert adapter.read_raw("_email_plaintext") is None

    def test_dual_write_mirrors_plaintext(self) -> None:
        tracker, _ = make_tracker(dual_write=True)
        adapter = make_adapter()

        tracker.assign(adapter, "email", "new@example.com")

        assert adapter.read_raw("_email_plaintext") == "new@example.com"

    def test_none_sets_explicit_nil_and_zeroes_columns(self) -> None:
        tracker, _ = make_tracker(dual_write=True)
        adapter = make_adapter(email_token="tok_1", _email_plaintext="old@example.com")

        tracker.assign(adapter, "email", "pending@example.com")
        tracker.assign(adapter, "email", None)

        state = get_state(adapter.record)
        assert state.explicit_nil == {"email"}
        assert state.pending_override == {}
        assert adapter.read_raw("email_token") is None
        assert adapter.read_raw("_email_plaintext") is None

    def test_value_after_none_clears_nil_flag(self) -> None:
        tracker, _ = make_tracker()
        adapter = make_adapter()

        tracker.assign(adapter, "email", None)
        tracker.assign(adapter, "email", "back@example.com")

        state = get_state(adapter.record)
        assert state.explicit_nil == set()
        assert tracker.read(adapter, "email") == "back@example.com"


class TestRead:
    """Test FieldStateTracker.read() priority."""

    def test_explicit_nil_wins(self) -> None:
        tracker, decryptor = make_tracker()
        adapter = make_adapter(email_token="tok_1")
        tracker.assign(adapter, "email", None)

        assert tracker.read(adapter, "email") is None
        decryptor.decrypt_record.assert_not_called()

    def test_cache_hit_skips_decrypt(self) -> None:
        tracker, decryptor = make_tracker()
        adapter = make_adapter(email_token="tok_1")
        get_state(adapter.record).decryption_cache["email"] = "cached@example.com"

        assert tracker.read(adapter, "email") == "cached@example.com"
        decryptor.decrypt_record.assert_not_called()

    def test_decrypts_whole_record_once(self) -> None:
        tracker, decryptor = make_tracker()
        adapter = make_adapter(email_token="tok_1")

        def fill(target):
            state = get_state(target.record)
            state.decryption_cache["email"] = "jane@example.com"
            state.fully_decrypted = True

        decryptor.decrypt_record.side_effect = fill

        assert tracker.read(adapter, "email") == "jane@example.com"
        assert tracker.read(adapter, "email") == "jane@example.com"
        decryptor.decrypt_record.assert_called_once_with(adapter)

    def test_undecryptable_token_falls_back_to_plaintext(self) -> None:
        tracker, decryptor = make_tracker()
        adapter = make_adapter(email_token="tok_lost", _email_plaintext="legacy@example.com")

        def mark_done(target):
            get_state(target.record).fully_decrypted = True

        decryptor.decrypt_record.side_effect = mark_done

        assert tracker.read(adapter, "email") == "legacy@example.com"
        assert tracker.read(adapter, "email") == "legacy@example.com"
        decryptor.decrypt_record.assert_called_once()

    def test_blank_token_reads_plaintext_without_decrypt(self) -> None:
        tracker, decryptor = make_tracker()
        adapter = make_adapter(_email_plaintext="legacy@example.com")

        assert tracker.read(adapter, "email") == "legacy@example.com"
        decryptor.decrypt_record.assert_not_called()

    def test_plaintext_preferred_when_not_reading_from_tokens(self) -> None:
        tracker, decryptor = make_tracker(dual_write=True)
        adapter = make_adapter(email_token="tok_1", _email_plaintext="plain@example.com")

        assert tracker.read(adapter, "email") == "plain@example.com"
        decryptor.decrypt_record.assert_not_called()

    def test_read_without_decrypt(self) -> None:
        tracker, decryptor = make_tracker()
        adapter = make_adapter(email_token="tok_1")

        assert tracker.read(adapter, "email", decrypt=False) is None
        decryptor.decrypt_record.assert_not_called()


class TestRecordState:
    """Test RecordTokenizationState transitions."""

    def test_mark_flushed_promotes_pending_and_nil(self) -> None:
        record = PlainRecord()
        state = get_state(record)
        state.pending_override["email"] = "jane@example.com"
        state.explicit_nil.add("first_name")

        state.mark_flushed()

        assert state.decryption_cache == {"email": "jane@example.com", "first_name": None}
        assert state.pending_override == {}
        assert state.explicit_nil == set()

    def test_clear_cache_keeps_pending(self) -> None:
        record = PlainRecord()
        state = get_state(record)
        state.pending_override["email"] = "jane@example.com"
        state.decryption_cache["email"] = "jane@example.com"
        state.fully_decrypted = True

        state.clear_cache()

        assert state.decryption_cache == {}
        assert state.fully_decrypted is False
        assert state.pending_override == {"email": "jane@example.com"}

    def test_reset_state(self) -> None:
        record = PlainRecord()
        first = get_state(record)
        reset_state(record)
        assert get_state(record) is not first

    def test_unknown_field(self) -> None:
        tracker, _ = make_tracker()
        with pytest.raises(KeyError):
            tracker.read(make_adapter(), "phone")
