"""
Tokenizable model integration for SQLAlchemy.

Wires the tokenization engine into a declarative model: generated field
descriptors, mapper events that tokenize inside the same flush, instance
events that drop stale state on reload, and query helpers that understand
tokenized fields.

Usage:
    @tokenize_pii(
        fields={"first_name": PiiType.NAME, "email": PiiType.EMAIL},
        entity_type=EntityType.USER_UUID,
        entity_id=lambda user: f"user_{user.external_id}",
    )
    class User(Tokenizable, Base):
        __tablename__ = "users"

        id = mapped_column(Integer, primary_key=True)
        external_id = mapped_column(String(64))
        _first_name_plaintext = mapped_column("first_name", String, nullable=True)
        first_name_token = mapped_column(String, nullable=True)
        _email_plaintext = mapped_column("email", String, nullable=True)
        email_token = mapped_column(String, nullable=True)

    user = User(external_id="42", first_name="Jane")
    session.add(user)
    session.flush()               # one encrypt_batch, tokens in the INSERT
    User.pii_where(session, first_name="Jane")

Flush lifecycle:
- before_insert / before_update: decide, tokenize in one call, write columns
- after_insert: run work deferred until the primary key existed (one UPDATE)
- after_insert / after_update: promote pending values into the cache
- load / full refresh: reset per-record state
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from typing import Any, TypeVar

from sqlalchemy import event
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import Session
from sqlalchemy.sql import Select

from pii_tokenizer.core.decryption_coordinator import BatchDecryptionCoordinator
from pii_tokenizer.core.encryption_coordinator import BatchEncryptionCoordinator
from pii_tokenizer.core.field_state import FieldStateTracker, get_state, reset_state
from pii_tokenizer.core.record_adapter import SQLAlchemyRecordAdapter
from pii_tokenizer.core.registry import TokenizationConfig, build_config
from pii_tokenizer.core.search import SearchAdapter
from pii_tokenizer.lib.exceptions import ConfigurationError
from pii_tokenizer.lib.tokenized_field import (
    TOKENIZER_ATTR,
    JsonKeyDescriptor,
    TokenizedFieldDescriptor,
    tokenizer_for,
)
from pii_tokenizer.services.encryption_gateway import TokenGateway, get_encryption_gateway

logger = logging.getLogger(__name__)

T = TypeVar("T")


# =============================================================================
# Model Tokenizer
# =============================================================================


class ModelTokenizer:
    """
    Per-model facade over the tokenization engine.

    Created by ``tokenize_pii`` and stored on the model class. Owns one
    instance of each engine component, all sharing the model's config.
    """

    def __init__(
        self,
        model: type[Any],
        config: TokenizationConfig,
        gateway: TokenGateway | None = None,
    ) -> None:
        self.model = model
        self.config = config
        self._gateway = gateway
        self.decryption = BatchDecryptionCoordinator(config, self.gateway)
        self.encryption = BatchEncryptionCoordinator(config, self.gateway)
        self.tracker = FieldStateTracker(config, self.decryption)
        self.search = SearchAdapter(model, config, self.gateway)

    def gateway(self) -> TokenGateway:
        """Return the model's gateway, or the global one."""
        if self._gateway is not None:
            return self._gateway
        return get_encryption_gateway()

    @staticmethod
    def adapter(record: Any) -> SQLAlchemyRecordAdapter:
        return SQLAlchemyRecordAdapter(record)

    # -------------------------------------------------------------------------
    # Field access
    # -------------------------------------------------------------------------

    def read_field(self, record: Any, name: str) -> Any:
        return self.tracker.read(self.adapter(record), name)

    def assign_field(self, record: Any, name: str, value: Any) -> None:
        self.tracker.assign(self.adapter(record), name, value)

    def read_json_key(self, record: Any, json_column: str, key: str) -> Any:
        mapping = self.config.json_mapping(json_column)
        return self.tracker.read_json_key(self.adapter(record), mapping, key)

    # -------------------------------------------------------------------------
    # Mapper / instance events
    # -------------------------------------------------------------------------

    def before_save(self, mapper: Any, connection: Any, target: Any) -> None:
        adapter = self.adapter(target)
        plan = self.encryption.plan(adapter)
        plan.apply(adapter)
        get_state(target).deferred = plan.deferred

    def after_insert(self, mapper: Any, connection: Any, target: Any) -> None:
        self.encryption.run_deferred(self.adapter(target), connection)
        get_state(target).mark_flushed()

    def after_update(self, mapper: Any, connection: Any, target: Any) -> None:
        get_state(target).mark_flushed()

    def on_load(self, target: Any, context: Any) -> None:
        reset_state(target)

    def on_refresh(self, target: Any, context: Any, attrs: Iterable[str] | None) -> None:
        if attrs is None:
            reset_state(target)

    def register_events(self) -> None:
        """Attach the flush and reload hooks to the model (and its subclasses)."""
        for identifier in ("before_insert", "before_update"):
            event.listen(self.model, identifier, self.before_save, propagate=True)
        event.listen(self.model, "after_insert", self.after_insert, propagate=True)
        event.listen(self.model, "after_update", self.after_update, propagate=True)
        event.listen(self.model, "load", self.on_load, propagate=True)
        event.listen(self.model, "refresh", self.on_refresh, propagate=True)


# =============================================================================
# Mixin
# =============================================================================


class Tokenizable:
    """
    Mixin for declarative models whose PII fields are stored as tokens.

    Configure the model with the ``tokenize_pii`` class decorator.
    """

    # -------------------------------------------------------------------------
    # Instance API
    # -------------------------------------------------------------------------

    def tokenization_entity(self) -> tuple[str, Any]:
        """Return the (entity_type, entity_id) this record's tokens are scoped to."""
        config = tokenizer_for(type(self)).config
        return config.resolve_entity_type(self), config.resolve_entity_id(self)

    def decrypt_field(self, name: str) -> Any:
        """Return a tokenized field's value, or None if the field is not tokenized."""
        tokenizer = tokenizer_for(type(self))
        if not tokenizer.config.is_tokenized(name):
            return None
        return tokenizer.read_field(self, name)

    def decrypt_fields(self, *names: str) -> dict[str, Any]:
        """
        Decrypt several fields with at most one gateway call.

        Unknown names are ignored. Fields whose token cannot be resolved
        fall back to the stored plaintext.
        """
        tokenizer = tokenizer_for(type(self))
        wanted = [name for name in names if tokenizer.config.is_tokenized(name)]
        if not wanted:
            return {}
        adapter = tokenizer.adapter(self)
        tokenizer.decryption.decrypt_records([adapter], wanted)
        return tokenizer.tracker.read_many(adapter, wanted, decrypt=False)

    def decrypt_json_field(self, json_column: str) -> dict[str, Any]:
        """Return a JSON column with its tokenized keys decrypted."""
        tokenizer = tokenizer_for(type(self))
        try:
            mapping = tokenizer.config.json_mapping(json_column)
        except KeyError:
            return {}
        return tokenizer.tracker.read_json(tokenizer.adapter(self), mapping)

    def clear_decryption_cache(self) -> None:
        """Forget decrypted values; pending assignments are kept."""
        get_state(self).clear_cache()

    # -------------------------------------------------------------------------
    # Class API
    # -------------------------------------------------------------------------

    @classmethod
    def pii_select(cls, **criteria: Any) -> Select[Any]:
        """Build a SELECT whose criteria may name tokenized fields."""
        return tokenizer_for(cls).search.select(**criteria)

    @classmethod
    def pii_where(cls: type[T], session: Session, **criteria: Any) -> list[T]:
        """Return every record matching the criteria."""
        return tokenizer_for(cls).search.where(session, **criteria)

    @classmethod
    def pii_find_by(cls: type[T], session: Session, **criteria: Any) -> T | None:
        """Return the first record matching the criteria."""
        return tokenizer_for(cls).search.find_by(session, **criteria)

    @classmethod
    def search_by_tokenized_field(cls: type[T], session: Session, name: str, value: Any) -> T | None:
        """Return the first record whose token column holds a token for ``value``."""
        return tokenizer_for(cls).search.search_by_token(session, name, value, first=True)

    @classmethod
    def search_all_by_tokenized_field(
        cls: type[T], session: Session, name: str, value: Any
    ) -> list[T]:
        """Return every record whose token column holds a token for ``value``."""
        return tokenizer_for(cls).search.search_by_token(session, name, value, first=False)

    @classmethod
    def find_or_initialize_by(cls: type[T], session: Session, **attributes: Any) -> T:
        """Return the first match, or a new unsaved record built from the attributes."""
        found = tokenizer_for(cls).search.find_by(session, **attributes)
        if found is not None:
            return found
        return cls(**attributes)

    @classmethod
    def find_or_create_by(cls: type[T], session: Session, **attributes: Any) -> T:
        """Return the first match, or add and flush a new record built from the attributes."""
        found = tokenizer_for(cls).search.find_by(session, **attributes)
        if found is not None:
            return found
        record = cls(**attributes)
        session.add(record)
        session.flush()
        return record

    @classmethod
    def preload_decrypted(cls, records: Iterable[Any], *names: str) -> None:
        """
        Decrypt a collection of records with one gateway call.

        Args:
            records: Instances of this model.
            *names: Fields (or "<json_column>.<key>") to decrypt; all when omitted.
        """
        tokenizer = tokenizer_for(cls)
        adapters = [tokenizer.adapter(record) for record in records]
        tokenizer.decryption.decrypt_records(adapters, names or None)


# =============================================================================
# Decorator
# =============================================================================


def tokenize_pii(
    *,
    fields: Mapping[str, Any] | Iterable[str],
    entity_type: str | Callable[[Any], Any],
    entity_id: Callable[[Any], Any],
    dual_write: bool = False,
    read_from_token: bool | None = None,
    json_fields: Mapping[str, Mapping[str, Any]] | None = None,
    entity_id_requires_identity: bool = False,
    gateway: TokenGateway | None = None,
) -> Callable[[type[T]], type[T]]:
    """
    Configure PII tokenization for a declarative model.

    Args:
        fields: ``{field: pii_type}``, or a list of field names whose PII
            type defaults to the upper-cased name.
        entity_type: Entity type string, or a callable of the record.
        entity_id: Callable returning the record's entity id.
        dual_write: Keep writing plaintext alongside tokens.
        read_from_token: Prefer tokens for reads and queries
            (default: ``not dual_write``).
        json_fields: ``{json_column: {key: pii_type}}`` for JSON sub-fields.
        entity_id_requires_identity: The entity id is derived from the
            primary key; tokenize after the INSERT when it is not yet known.
        gateway: Gateway for this model (default: the global gateway).

    Raises:
        ConfigurationError: If the model or the configuration is invalid.
    """

    def decorator(cls: type[T]) -> type[T]:
        if not (isinstance(cls, type) and issubclass(cls, Tokenizable)):
            raise ConfigurationError(
                f"{getattr(cls, '__name__', cls)!r} must inherit from Tokenizable to use tokenize_pii"
            )
        mapper = sa_inspect(cls, raiseerr=False)
        if mapper is None:
            raise ConfigurationError(f"{cls.__name__} is not a mapped SQLAlchemy model")

        config = build_config(
            model_name=cls.__name__,
            fields=fields,
            entity_type=entity_type,
            entity_id=entity_id,
            dual_write=dual_write,
            read_from_token=read_from_token,
            json_fields=json_fields,
            entity_id_requires_identity=entity_id_requires_identity,
        )
        _validate_columns(cls, mapper, config)

        tokenizer = ModelTokenizer(cls, config, gateway)
        setattr(cls, TOKENIZER_ATTR, tokenizer)

        for tokenizable in config.fields:
            descriptor = TokenizedFieldDescriptor(tokenizable.name)
            setattr(cls, tokenizable.name, descriptor)
            descriptor.__set_name__(cls, tokenizable.name)
        for mapping in config.json_fields:
            for key in mapping.keys:
                accessor = f"{mapping.json_column}_{key}"
                descriptor = JsonKeyDescriptor(mapping.json_column, key)
                setattr(cls, accessor, descriptor)
                descriptor.__set_name__(cls, accessor)

        tokenizer.register_events()
        logger.debug(
            "Registered tokenized model",
            extra={
                "model": cls.__name__,
                "fields": config.field_names,
                "json_columns": [m.json_column for m in config.json_fields],
                "dual_write": config.dual_write,
            },
        )
        return cls

    return decorator


def _validate_columns(cls: type[Any], mapper: Any, config: TokenizationConfig) -> None:
    for tokenizable in config.fields:
        if mapper.has_property(tokenizable.name):
            raise ConfigurationError(
                f"{cls.__name__}.{tokenizable.name} is a mapped attribute; map the plaintext "
                f"column as '{tokenizable.plaintext_attr}' instead"
            )
        if not mapper.has_property(tokenizable.token_column):
            raise ConfigurationError(
                f"{cls.__name__} has no '{tokenizable.token_column}' column for tokenized "
                f"field '{tokenizable.name}'"
            )
    for mapping in config.json_fields:
        if not mapper.has_property(mapping.json_column):
            raise ConfigurationError(
                f"{cls.__name__} has no JSON column '{mapping.json_column}'"
            )
        if not mapper.has_property(mapping.token_column):
            raise ConfigurationError(
                f"Column '{mapping.token_column}' must exist for JSON field tokenization "
                f"of {cls.__name__}.{mapping.json_column}"
            )


__all__ = ["ModelTokenizer", "Tokenizable", "tokenize_pii"]
