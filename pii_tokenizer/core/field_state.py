"""
Per-record tokenization state.

Every tokenizable instance carries a RecordTokenizationState in its
``__dict__`` (next to the ORM's own instance state). It lives and dies
with the instance and is reset whenever the ORM reloads the row.

Nil transitions per field:

    Unset --assign(v)--> Present --assign(None)--> ExplicitlyNil
                            ^                            |
                            +--------assign(v)-----------+

Read priority: explicit nil, pending override, plaintext (only when not
reading from tokens), decryption cache, full-record decrypt, raw plaintext.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

from pii_tokenizer.core.record_adapter import RecordAdapter
from pii_tokenizer.core.registry import JSONFieldMapping, TokenizationConfig
from pii_tokenizer.core.values import is_blank, load_json_blob

if TYPE_CHECKING:
    from pii_tokenizer.core.encryption_coordinator import DeferredTokenization

STATE_ATTR = "_pii_tokenization_state"


@dataclass
class RecordTokenizationState:
    """
    Mutable tokenization state of one record.

    Attributes:
        decryption_cache: Plaintext by field name or "<json_column>.<key>".
        explicit_nil: Fields explicitly assigned None since the last flush.
        pending_override: Values assigned since the last flush.
        fully_decrypted: A full-record decrypt already ran.
        deferred: Tokenize work waiting for the storage identifier.
        awaiting_entity: Field names and JSON columns whose tokenize work
            was held back because the entity id was blank. Their pending
            values outlive the flush so the next save retries them.
    """

    decryption_cache: dict[str, Any] = field(default_factory=dict)
    explicit_nil: set[str] = field(default_factory=set)
    pending_override: dict[str, Any] = field(default_factory=dict)
    fully_decrypted: bool = False
    deferred: DeferredTokenization | None = None
    awaiting_entity: set[str] = field(default_factory=set)

    def clear_cache(self) -> None:
        """Forget decrypted values so the next read decrypts again."""
        self.decryption_cache.clear()
        self.fully_decrypted = False

    def mark_flushed(self) -> None:
        """Promote pending values and nil flags into the cache after a save."""
        held = {
            name: value
            for name, value in self.pending_override.items()
            if name in self.awaiting_entity
        }
        for name, value in self.pending_override.items():
            if name not in held:
                self.decryption_cache[name] = value
        for name in self.explicit_nil:
            self.decryption_cache[name] = None
        self.pending_override = held
        self.explicit_nil.clear()


def get_state(record: Any) -> RecordTokenizationState:
    """Return the record's state, creating it on first use."""
    state = record.__dict__.get(STATE_ATTR)
    if state is None:
        state = RecordTokenizationState()
        record.__dict__[STATE_ATTR] = state
    return state


def reset_state(record: Any) -> None:
    """Discard the record's state (the row was reloaded)."""
    record.__dict__.pop(STATE_ATTR, None)


class RecordDecryptor(Protocol):
    def decrypt_record(self, adapter: RecordAdapter) -> None: ...


class FieldStateTracker:
    """
    Applies assignments to, and answers reads from, one model's fields.

    Args:
        config: Tokenization configuration of the model.
        decryptor: Fills the decryption cache of a whole record on demand.
    """

    def __init__(self, config: TokenizationConfig, decryptor: RecordDecryptor) -> None:
        self.config = config
        self.decryptor = decryptor

    def assign(self, adapter: RecordAdapter, name: str, value: Any) -> None:
        tokenizable = self.config.get_field(name)
        state = get_state(adapter.record)

        if value is None:
            state.explicit_nil.add(name)
            state.pending_override.pop(name, None)
            state.decryption_cache[name] = None
            adapter.write_raw(tokenizable.token_column, None)
            adapter.write_raw(tokenizable.plaintext_attr, None)
            return

        state.pending_override[name] = value
        state.explicit_nil.discard(name)
        state.decryption_cache[name] = value
        if self.config.dual_write:
            adapter.write_raw(tokenizable.plaintext_attr, value)
        adapter.mark_modified(tokenizable.token_column)

    def read(self, adapter: RecordAdapter, name: str, decrypt: bool = True) -> Any:
        tokenizable = self.config.get_field(name)
        state = get_state(adapter.record)

        if name in state.explicit_nil:
            return None
        if name in state.pending_override:
            return state.pending_override[name]

        if not self.config.read_from_token:
            plaintext = adapter.read_raw(tokenizable.plaintext_attr)
            if plaintext is not None:
                return plaintext

        if name in state.decryption_cache:
            return state.decryption_cache[name]

        if (
            decrypt
            and not state.fully_decrypted
            and not is_blank(adapter.read_raw(tokenizable.token_column))
        ):
            self.decryptor.decrypt_record(adapter)
            if name in state.decryption_cache:
                return state.decryption_cache[name]

        return adapter.read_raw(tokenizable.plaintext_attr)

    def read_json_key(self, adapter: RecordAdapter, mapping: JSONFieldMapping, key: str) -> Any:
        """
        Read one tokenized JSON key.

        Without read_from_token a key that cannot be decrypted falls back to
        the plaintext JSON column.
        """
        state = get_state(adapter.record)
        cache_key = mapping.field_key(key)
        if cache_key in state.decryption_cache:
            return state.decryption_cache[cache_key]

        tokens = load_json_blob(adapter.read_raw(mapping.token_column))
        if not state.fully_decrypted and not is_blank(tokens.get(key)):
            self.decryptor.decrypt_record(adapter)
            if cache_key in state.decryption_cache:
                return state.decryption_cache[cache_key]

        if self.config.read_from_token:
            return None
        return load_json_blob(adapter.read_raw(mapping.json_column)).get(key)

    def read_json(self, adapter: RecordAdapter, mapping: JSONFieldMapping) -> dict[str, Any]:
        """Return the decrypted JSON document: non-tokenized keys plus readable tokenized keys."""
        tokens = load_json_blob(adapter.read_raw(mapping.token_column))
        if not self.config.read_from_token:
            tokens = {**load_json_blob(adapter.read_raw(mapping.json_column)), **tokens}

        result = {key: value for key, value in tokens.items() if key not in mapping.keys}
        for key in mapping.keys:
            value = self.read_json_key(adapter, mapping, key)
            if value is not None:
                result[key] = value
        return result

    def read_many(
        self, adapter: RecordAdapter, names: Iterable[str], decrypt: bool = True
    ) -> dict[str, Any]:
        return {name: self.read(adapter, name, decrypt=decrypt) for name in names}


__all__ = [
    "STATE_ATTR",
    "FieldStateTracker",
    "RecordTokenizationState",
    "get_state",
    "reset_state",
]
