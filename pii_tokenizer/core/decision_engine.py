"""
Save-time tokenization decisions for regular fields.

For every configured field the engine decides whether the save must send
the value to the encryption service (TOKENIZE), wipe the stored token
(CLEAR), or leave the field alone (no decision).

Rules:
- New record: non-blank value -> TOKENIZE, None -> CLEAR
- Existing record: skipped when the plaintext is unchanged, nothing is
  pending and a token is already stored
- Explicit nil -> CLEAR, unless the plaintext column was repopulated in
  the meantime (the nil flag is dropped and the value is tokenized)
- Blank string -> TOKENIZE "" under dual write (written directly, no
  service call), CLEAR otherwise
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from pii_tokenizer.core.field_state import RecordTokenizationState, get_state
from pii_tokenizer.core.record_adapter import RecordAdapter
from pii_tokenizer.core.registry import TokenizableField, TokenizationConfig
from pii_tokenizer.core.values import is_blank

_MISSING = object()


class TokenizationAction(StrEnum):
    TOKENIZE = "tokenize"
    CLEAR = "clear"


@dataclass(frozen=True)
class FieldDecision:
    """What to do with one field on save."""

    field_key: str
    action: TokenizationAction
    value: Any = None

    @property
    def is_blank(self) -> bool:
        return self.action is TokenizationAction.TOKENIZE and is_blank(self.value)


class TokenizationDecisionEngine:
    """Computes the ordered field decisions of one save."""

    def __init__(self, config: TokenizationConfig) -> None:
        self.config = config

    def decide(self, adapter: RecordAdapter) -> list[FieldDecision]:
        state = get_state(adapter.record)
        is_new = adapter.is_new_record()

        decisions = []
        for tokenizable in self.config.fields:
            decision = self._decide_field(adapter, state, tokenizable, is_new)
            if decision is not None:
                decisions.append(decision)
        return decisions

    def _decide_field(
        self,
        adapter: RecordAdapter,
        state: RecordTokenizationState,
        tokenizable: TokenizableField,
        is_new: bool,
    ) -> FieldDecision | None:
        name = tokenizable.name

        if name in state.explicit_nil:
            raw = adapter.read_raw(tokenizable.plaintext_attr)
            if is_blank(raw):
                return FieldDecision(name, TokenizationAction.CLEAR)
            # Repopulated after the nil assignment (e.g. by a before_flush hook)
            state.explicit_nil.discard(name)
            return self._value_decision(name, raw)

        pending = state.pending_override.get(name, _MISSING)
        if (
            not is_new
            and pending is _MISSING
            and not adapter.is_dirty(tokenizable.plaintext_attr)
            and not is_blank(adapter.read_raw(tokenizable.token_column))
        ):
            return None

        value = pending if pending is not _MISSING else adapter.read_raw(tokenizable.plaintext_attr)
        return self._value_decision(name, value)

    def _value_decision(self, name: str, value: Any) -> FieldDecision:
        if value is None:
            return FieldDecision(name, TokenizationAction.CLEAR)
        if is_blank(value) and not self.config.dual_write:
            return FieldDecision(name, TokenizationAction.CLEAR)
        return FieldDecision(name, TokenizationAction.TOKENIZE, value)


__all__ = ["FieldDecision", "TokenizationAction", "TokenizationDecisionEngine"]
