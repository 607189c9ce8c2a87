"""
Batch encryption coordinator.

Turns the save-time decisions of one record (regular fields and JSON keys)
into a single ``encrypt_batch`` call and a WritePlan: the column values to
write back and the decryption cache entries they make valid.

Two-phase save:
    When the entity id cannot be resolved before the INSERT (it is blank,
    or the model sets ``entity_id_requires_identity`` and the primary key
    does not exist yet), the tokenize work is parked on the record state.
    Clears and blank writes are still applied before the INSERT; the parked
    work is run after the INSERT and written with one UPDATE that bypasses
    mapper events.

Blank entity id:
    The encryption service is never called with a blank entity id. Work
    that still has no entity id (an existing record, or a new one after its
    INSERT) is held: the columns are left untouched and the values stay
    pending on the record so that its next save tokenizes them.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from pii_tokenizer.core.decision_engine import (
    FieldDecision,
    TokenizationAction,
    TokenizationDecisionEngine,
)
from pii_tokenizer.core.field_state import RecordTokenizationState, get_state
from pii_tokenizer.core.json_fields import JsonBlobPlan, JsonSubFieldTokenizer
from pii_tokenizer.core.record_adapter import RecordAdapter
from pii_tokenizer.core.registry import TokenizationConfig
from pii_tokenizer.core.values import is_blank
from pii_tokenizer.services.encryption_gateway import TokenGateway
from pii_tokenizer.services.gateway_schemas import EncryptionRequestItem

logger = logging.getLogger(__name__)


@dataclass
class DeferredTokenization:
    """Tokenize work waiting for the record's primary key."""

    decisions: list[FieldDecision] = field(default_factory=list)
    json_plans: list[JsonBlobPlan] = field(default_factory=list)


@dataclass
class WritePlan:
    """
    Result of planning one save.

    Attributes:
        columns: Values to write, by mapped attribute name.
        cache_updates: Decryption cache entries valid once written.
        cache_evictions: Cache keys that no longer hold a value.
        deferred: Work postponed until after the INSERT, if any.
    """

    columns: dict[str, Any] = field(default_factory=dict)
    cache_updates: dict[str, Any] = field(default_factory=dict)
    cache_evictions: list[str] = field(default_factory=list)
    deferred: DeferredTokenization | None = None

    def apply_to_cache(self, state: RecordTokenizationState) -> None:
        for key in self.cache_evictions:
            state.decryption_cache.pop(key, None)
        state.decryption_cache.update(self.cache_updates)

    def apply(self, adapter: RecordAdapter) -> None:
        """Write the planned columns onto the in-memory record."""
        for name, value in self.columns.items():
            adapter.write_raw(name, value)
        self.apply_to_cache(get_state(adapter.record))


class BatchEncryptionCoordinator:
    """
    Plans and executes the tokenization of one record save.

    Args:
        config: Tokenization configuration of the model.
        gateway_provider: Returns the gateway to call (resolved per save).
    """

    def __init__(
        self,
        config: TokenizationConfig,
        gateway_provider: Callable[[], TokenGateway],
    ) -> None:
        self.config = config
        self.gateway_provider = gateway_provider
        self.decision_engine = TokenizationDecisionEngine(config)
        self.json_tokenizer = JsonSubFieldTokenizer(config)

    def plan(self, adapter: RecordAdapter) -> WritePlan:
        """Decide, call the encryption service once if needed, and return the writes."""
        decisions = self.decision_engine.decide(adapter)
        json_plans = self.json_tokenizer.plan(adapter)
        write_plan = WritePlan()

        to_tokenize = []
        for decision in decisions:
            if decision.action is TokenizationAction.CLEAR:
                self._plan_clear(write_plan, decision)
            elif decision.is_blank:
                self._plan_blank(write_plan, decision)
            else:
                to_tokenize.append(decision)

        pending_json = []
        for blob_plan in json_plans:
            if blob_plan.to_tokenize:
                pending_json.append(blob_plan)
            else:
                self._plan_json(write_plan, blob_plan, {})

        state = get_state(adapter.record)
        state.awaiting_entity.clear()
        if not to_tokenize and not pending_json:
            return write_plan

        if adapter.is_new_record() and self._must_defer(adapter):
            logger.debug(
                "Deferring tokenization until the primary key is assigned",
                extra={"model": self.config.model_name, "fields": len(to_tokenize)},
            )
            write_plan.deferred = DeferredTokenization(to_tokenize, pending_json)
            return write_plan

        if not self._has_entity_id(adapter):
            self._hold(state, to_tokenize, pending_json)
            return write_plan

        self._tokenize(write_plan, adapter, to_tokenize, pending_json)
        return write_plan

    def run_deferred(self, adapter: RecordAdapter, connection: Any) -> WritePlan | None:
        """
        Execute parked work after the INSERT and write it with one UPDATE.

        Returns:
            The executed plan (empty when the work was held), or None if
            nothing was deferred.
        """
        state = get_state(adapter.record)
        deferred: DeferredTokenization | None = state.deferred
        if deferred is None:
            return None
        state.deferred = None

        write_plan = WritePlan()
        if not self._has_entity_id(adapter):
            self._hold(state, deferred.decisions, deferred.json_plans)
            return write_plan
        self._tokenize(write_plan, adapter, deferred.decisions, deferred.json_plans)
        if write_plan.columns:
            adapter.update_columns(connection, write_plan.columns)
        write_plan.apply_to_cache(state)
        return write_plan

    # -------------------------------------------------------------------------
    # Planning helpers
    # -------------------------------------------------------------------------

    def _must_defer(self, adapter: RecordAdapter) -> bool:
        if self.config.entity_id_requires_identity and adapter.identity() is None:
            return True
        return not self._has_entity_id(adapter)

    def _has_entity_id(self, adapter: RecordAdapter) -> bool:
        entity_id = self.config.resolve_entity_id(adapter.record)
        return entity_id is not None and not is_blank(str(entity_id))

    def _hold(
        self,
        state: RecordTokenizationState,
        decisions: list[FieldDecision],
        json_plans: list[JsonBlobPlan],
    ) -> None:
        for decision in decisions:
            state.awaiting_entity.add(decision.field_key)
            state.pending_override[decision.field_key] = decision.value
        for blob_plan in json_plans:
            state.awaiting_entity.add(blob_plan.mapping.json_column)
            for key, value in blob_plan.to_tokenize.items():
                state.decryption_cache[blob_plan.mapping.field_key(key)] = value
        logger.warning(
            "Entity id is blank, tokenization held until the next save",
            extra={"model": self.config.model_name, "fields": sorted(state.awaiting_entity)},
        )

    def _plan_clear(self, write_plan: WritePlan, decision: FieldDecision) -> None:
        tokenizable = self.config.get_field(decision.field_key)
        write_plan.columns[tokenizable.token_column] = None
        write_plan.columns[tokenizable.plaintext_attr] = None
        write_plan.cache_updates[tokenizable.name] = None

    def _plan_blank(self, write_plan: WritePlan, decision: FieldDecision) -> None:
        tokenizable = self.config.get_field(decision.field_key)
        write_plan.columns[tokenizable.token_column] = ""
        write_plan.columns[tokenizable.plaintext_attr] = decision.value
        write_plan.cache_updates[tokenizable.name] = decision.value

    def _plan_json(
        self, write_plan: WritePlan, blob_plan: JsonBlobPlan, tokens: dict[str, str]
    ) -> None:
        mapping = blob_plan.mapping
        write_plan.columns[mapping.token_column] = blob_plan.render(tokens)
        for key in blob_plan.cleared:
            write_plan.cache_evictions.append(mapping.field_key(key))
        for key, token in tokens.items():
            write_plan.cache_updates[mapping.field_key(key)] = blob_plan.to_tokenize[key]

    def _tokenize(
        self,
        write_plan: WritePlan,
        adapter: RecordAdapter,
        decisions: list[FieldDecision],
        json_plans: list[JsonBlobPlan],
    ) -> None:
        entity_type = self.config.resolve_entity_type(adapter.record)
        entity_id = str(self.config.resolve_entity_id(adapter.record))

        field_items = [
            EncryptionRequestItem(
                value=decision.value,
                entity_type=entity_type,
                entity_id=entity_id,
                pii_type=self.config.get_field(decision.field_key).pii_type,
                field_name=decision.field_key,
            )
            for decision in decisions
        ]
        json_items = [
            (
                blob_plan,
                key,
                EncryptionRequestItem(
                    value=value,
                    entity_type=entity_type,
                    entity_id=entity_id,
                    pii_type=blob_plan.mapping.keys[key],
                    field_name=blob_plan.mapping.field_key(key),
                ),
            )
            for blob_plan in json_plans
            for key, value in blob_plan.to_tokenize.items()
        ]

        items = field_items + [item for _, _, item in json_items]
        tokens = self.gateway_provider().encrypt_batch(items)

        for decision, item in zip(decisions, field_items):
            token = tokens.get(item.correlation_key)
            if token is None:
                logger.debug(
                    "No token returned for field",
                    extra={"model": self.config.model_name, "field": item.field_name},
                )
                continue
            tokenizable = self.config.get_field(decision.field_key)
            write_plan.columns[tokenizable.token_column] = token
            write_plan.columns[tokenizable.plaintext_attr] = (
                decision.value if self.config.dual_write else None
            )
            write_plan.cache_updates[tokenizable.name] = decision.value

        for blob_plan in json_plans:
            key_tokens = {
                key: tokens[item.correlation_key]
                for plan, key, item in json_items
                if plan is blob_plan and item.correlation_key in tokens
            }
            self._plan_json(write_plan, blob_plan, key_tokens)


__all__ = [
    "BatchEncryptionCoordinator",
    "DeferredTokenization",
    "WritePlan",
]
