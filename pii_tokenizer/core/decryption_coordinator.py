"""
Batch decryption coordinator.

Fills decryption caches lazily with as few gateway round trips as possible:
one ``decrypt_batch`` per record on first access, or one per collection
when records are preloaded together. Identical tokens are requested once
and their plaintext is fanned out to every field and record sharing them.
Tokens the service does not resolve, or resolves to a blank value, are left
out of the cache.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence

from pii_tokenizer.core.field_state import RecordTokenizationState, get_state
from pii_tokenizer.core.record_adapter import RecordAdapter
from pii_tokenizer.core.registry import TokenizationConfig
from pii_tokenizer.core.values import is_blank, load_json_blob
from pii_tokenizer.services.encryption_gateway import TokenGateway

logger = logging.getLogger(__name__)

# token -> [(state, cache key), ...]
TokenTargets = dict[str, list[tuple[RecordTokenizationState, str]]]


class BatchDecryptionCoordinator:
    """
    Resolves stored tokens into decryption cache entries.

    Args:
        config: Tokenization configuration of the model.
        gateway_provider: Returns the gateway to call.
    """

    def __init__(
        self,
        config: TokenizationConfig,
        gateway_provider: Callable[[], TokenGateway],
    ) -> None:
        self.config = config
        self.gateway_provider = gateway_provider

    def decrypt_record(self, adapter: RecordAdapter) -> None:
        """Decrypt every uncached field and JSON key of one record in one call."""
        state = get_state(adapter.record)
        targets: TokenTargets = {}
        self._collect(adapter, state, None, targets)
        self._resolve(targets)
        state.fully_decrypted = True

    def decrypt_records(
        self,
        adapters: Sequence[RecordAdapter],
        fields: Iterable[str] | None = None,
    ) -> None:
        """
        Decrypt a collection of records in one call.

        Args:
            adapters: Records to decrypt.
            fields: Field names (or "<json_column>.<key>") to decrypt. All
                tokenized fields and keys when omitted.
        """
        wanted = None if fields is None else set(fields)
        targets: TokenTargets = {}
        states = []
        for adapter in adapters:
            state = get_state(adapter.record)
            states.append(state)
            self._collect(adapter, state, wanted, targets)

        self._resolve(targets)
        if wanted is None:
            for state in states:
                state.fully_decrypted = True

    def _collect(
        self,
        adapter: RecordAdapter,
        state: RecordTokenizationState,
        wanted: set[str] | None,
        targets: TokenTargets,
    ) -> None:
        def add(cache_key: str, token: object) -> None:
            if wanted is not None and cache_key not in wanted:
                return
            if cache_key in state.decryption_cache or not isinstance(token, str) or is_blank(token):
                return
            targets.setdefault(token, []).append((state, cache_key))

        for tokenizable in self.config.fields:
            name = tokenizable.name
            if name in state.explicit_nil or name in state.pending_override:
                continue
            add(name, adapter.read_raw(tokenizable.token_column))

        for mapping in self.config.json_fields:
            blob = load_json_blob(adapter.read_raw(mapping.token_column))
            for key in mapping.keys:
                add(mapping.field_key(key), blob.get(key))

    def _resolve(self, targets: TokenTargets) -> None:
        if not targets:
            return

        values = self.gateway_provider().decrypt_batch(list(targets))
        missing = 0
        for token, destinations in targets.items():
            # A blank plaintext is treated as unresolved so reads fall back
            if is_blank(values.get(token)):
                missing += 1
                continue
            for state, cache_key in destinations:
                state.decryption_cache[cache_key] = values[token]

        if missing:
            logger.debug(
                "Tokens not resolved by the encryption service",
                extra={"model": self.config.model_name, "missing": missing},
            )


__all__ = ["BatchDecryptionCoordinator"]
