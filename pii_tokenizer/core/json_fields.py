"""
Tokenization of keys nested inside JSON columns.

Each configured JSON column has a parallel token column holding a blob with
the same shape: tokenized keys carry tokens, every other key is a verbatim
copy of the plaintext document. The plaintext JSON column itself is never
modified.

A key is re-tokenized when its value changed since the last save or when it
has no token yet. Keys whose value became blank are dropped from the token
blob. An empty or None plaintext column clears the token column.

A column whose tokenize work was held back (blank entity id) has every
key re-tokenized on its next save.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from pii_tokenizer.core.field_state import get_state
from pii_tokenizer.core.record_adapter import RecordAdapter
from pii_tokenizer.core.registry import JSONFieldMapping, TokenizationConfig
from pii_tokenizer.core.values import is_blank, load_json_blob


@dataclass
class JsonBlobPlan:
    """
    Pending rewrite of one token blob.

    Attributes:
        mapping: The JSON column being processed.
        source: Current plaintext document.
        previous_tokens: Token blob as currently stored.
        retained: Tokens kept as-is for unchanged keys.
        to_tokenize: Values of keys that need a new token.
        cleared: Tokenized keys that became blank.
        as_string: Write the blob back as a JSON string.
    """

    mapping: JSONFieldMapping
    source: dict[str, Any]
    previous_tokens: dict[str, Any]
    retained: dict[str, Any] = field(default_factory=dict)
    to_tokenize: dict[str, Any] = field(default_factory=dict)
    cleared: list[str] = field(default_factory=list)
    as_string: bool = False

    def render(self, tokens: Mapping[str, str]) -> Any:
        """
        Build the new token blob.

        Args:
            tokens: New tokens by key. A key without a new token keeps its
                previous token, or is omitted if it never had one.

        Returns:
            None when the plaintext document is empty or missing.
        """
        if not self.source:
            return None
        blob: dict[str, Any] = {}
        for key, value in self.source.items():
            if key not in self.mapping.keys:
                blob[key] = value
            elif key in self.retained:
                blob[key] = self.retained[key]
            elif key in self.to_tokenize:
                token = tokens.get(key) or self.previous_tokens.get(key)
                if not is_blank(token):
                    blob[key] = token
        return json.dumps(blob) if self.as_string else blob


class JsonSubFieldTokenizer:
    """Plans token blob rewrites for every JSON column of a model."""

    def __init__(self, config: TokenizationConfig) -> None:
        self.config = config

    def plan(self, adapter: RecordAdapter) -> list[JsonBlobPlan]:
        plans = []
        for mapping in self.config.json_fields:
            blob_plan = self._plan_column(adapter, mapping)
            if blob_plan is not None:
                plans.append(blob_plan)
        return plans

    def _plan_column(self, adapter: RecordAdapter, mapping: JSONFieldMapping) -> JsonBlobPlan | None:
        raw = adapter.read_raw(mapping.json_column)
        source = load_json_blob(raw)
        token_raw = adapter.read_raw(mapping.token_column)
        previous_tokens = load_json_blob(token_raw)
        if not source and not previous_tokens:
            return None

        is_new = adapter.is_new_record()
        held = mapping.json_column in get_state(adapter.record).awaiting_entity
        column_dirty = is_new or held or adapter.is_dirty(mapping.json_column)
        if not column_dirty and not self._has_untokenized_keys(mapping, source, previous_tokens):
            return None

        previous_source = {} if is_new else load_json_blob(adapter.previous_value(mapping.json_column))
        blob_plan = JsonBlobPlan(
            mapping=mapping,
            source=source,
            previous_tokens=previous_tokens,
            as_string=isinstance(raw if raw is not None else token_raw, str),
        )

        for key in mapping.keys:
            value = source.get(key)
            if is_blank(value):
                if key in source or key in previous_tokens:
                    blob_plan.cleared.append(key)
                continue

            token = previous_tokens.get(key)
            key_dirty = is_new or held or (column_dirty and previous_source.get(key) != value)
            if not key_dirty and not is_blank(token):
                blob_plan.retained[key] = token
            else:
                blob_plan.to_tokenize[key] = value

        return blob_plan

    @staticmethod
    def _has_untokenized_keys(
        mapping: JSONFieldMapping, source: dict[str, Any], tokens: dict[str, Any]
    ) -> bool:
        return any(
            not is_blank(source.get(key)) and is_blank(tokens.get(key)) for key in mapping.keys
        )


__all__ = ["JsonBlobPlan", "JsonSubFieldTokenizer"]
