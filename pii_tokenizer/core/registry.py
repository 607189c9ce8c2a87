"""
Tokenizable field registry.

Immutable per-model configuration built once by ``tokenize_pii`` and handed
to every engine component:
- TokenizableField: one plain field backed by a token column
- JSONFieldMapping: tokenized keys inside one JSON column
- DualWriteMode: write-back and read-priority policy
- TokenizationConfig: the complete model configuration

Usage:
    config = build_config(
        model_name="User",
        fields={"first_name": PiiType.NAME, "email": PiiType.EMAIL},
        entity_type=EntityType.USER_UUID,
        entity_id=lambda user: f"user_{user.external_id}",
    )
    config.get_field("email").token_column  # "email_token"
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from pii_tokenizer.lib.exceptions import ConfigurationError

EntityTypeResolver = str | Callable[[Any], Any]
EntityIdResolver = Callable[[Any], Any]


@dataclass(frozen=True)
class TokenizableField:
    """
    A plain model field whose value is stored as a token.

    Attributes:
        name: Public attribute name exposed by the model.
        pii_type: PII type sent to the encryption service.
        token_column: Mapped attribute holding the token.
        plaintext_attr: Mapped attribute holding the plaintext column
            (may be absent on models whose plaintext column was dropped).
    """

    name: str
    pii_type: str
    token_column: str = ""
    plaintext_attr: str = ""

    def __post_init__(self) -> None:
        if not self.token_column:
            object.__setattr__(self, "token_column", f"{self.name}_token")
        if not self.plaintext_attr:
            object.__setattr__(self, "plaintext_attr", f"_{self.name}_plaintext")


@dataclass(frozen=True)
class JSONFieldMapping:
    """
    Tokenized keys inside one JSON column.

    Attributes:
        json_column: Mapped attribute holding the plaintext JSON.
        keys: Mapping of tokenized key to PII type. Other keys of the blob
            are preserved verbatim.
        token_column: Mapped attribute holding the parallel token blob.
    """

    json_column: str
    keys: Mapping[str, str] = field(default_factory=dict)
    token_column: str = ""

    def __post_init__(self) -> None:
        if not self.token_column:
            object.__setattr__(self, "token_column", f"{self.json_column}_token")

    def field_key(self, key: str) -> str:
        """Cache key of one tokenized JSON key."""
        return f"{self.json_column}.{key}"


@dataclass(frozen=True)
class DualWriteMode:
    """
    Storage policy during a plaintext-to-token migration.

    Attributes:
        dual_write: Persist plaintext alongside tokens.
        read_from_token: Prefer token-derived values for reads and queries.
    """

    dual_write: bool = False
    read_from_token: bool = True

    @classmethod
    def build(cls, dual_write: bool, read_from_token: bool | None = None) -> DualWriteMode:
        """Resolve read_from_token to its default (not dual_write) when unset."""
        if read_from_token is None:
            read_from_token = not dual_write
        return cls(dual_write=bool(dual_write), read_from_token=bool(read_from_token))


@dataclass(frozen=True)
class TokenizationConfig:
    """Complete, immutable tokenization configuration of one model."""

    model_name: str
    fields: tuple[TokenizableField, ...]
    entity_type: EntityTypeResolver
    entity_id: EntityIdResolver
    mode: DualWriteMode = field(default_factory=DualWriteMode)
    json_fields: tuple[JSONFieldMapping, ...] = ()
    entity_id_requires_identity: bool = False

    @property
    def dual_write(self) -> bool:
        return self.mode.dual_write

    @property
    def read_from_token(self) -> bool:
        return self.mode.read_from_token

    @property
    def field_names(self) -> list[str]:
        return [f.name for f in self.fields]

    def get_field(self, name: str) -> TokenizableField:
        """Return the configured field or raise KeyError."""
        for tokenizable in self.fields:
            if tokenizable.name == name:
                return tokenizable
        raise KeyError(name)

    def is_tokenized(self, name: str) -> bool:
        return any(f.name == name for f in self.fields)

    def json_mapping(self, json_column: str) -> JSONFieldMapping:
        """Return the mapping of a JSON column or raise KeyError."""
        for mapping in self.json_fields:
            if mapping.json_column == json_column:
                return mapping
        raise KeyError(json_column)

    def resolve_entity_type(self, record: Any) -> str:
        if callable(self.entity_type):
            return str(self.entity_type(record))
        return str(self.entity_type)

    def resolve_entity_id(self, record: Any) -> Any:
        return self.entity_id(record)


# =============================================================================
# Builder
# =============================================================================


def normalize_fields(fields: Mapping[str, Any] | Iterable[str]) -> tuple[TokenizableField, ...]:
    """
    Normalize ``fields`` given as a name->pii_type mapping or a list of names.

    A list defaults each field's PII type to its upper-cased name.

    Raises:
        ConfigurationError: If a field has no PII type.
    """
    if isinstance(fields, str):
        fields = [fields]
    if isinstance(fields, Mapping):
        pairs = [(str(name), pii_type) for name, pii_type in fields.items()]
    else:
        pairs = [(str(name), str(name).upper()) for name in fields]

    normalized = []
    for name, pii_type in pairs:
        if pii_type is None or str(pii_type).strip() == "":
            raise ConfigurationError(f"Missing PII type for field '{name}'")
        normalized.append(TokenizableField(name=name, pii_type=str(pii_type)))
    return tuple(normalized)


def normalize_json_fields(
    json_fields: Mapping[str, Mapping[str, Any]] | None,
) -> tuple[JSONFieldMapping, ...]:
    """
    Normalize ``{json_column: {key: pii_type}}``.

    Raises:
        ConfigurationError: If a column is not mapped to a dict of keys, or a
            key has a blank PII type.
    """
    if not json_fields:
        return ()

    mappings = []
    for json_column, keys in json_fields.items():
        if not isinstance(keys, Mapping):
            raise ConfigurationError(
                "Invalid format for JSON field tokenization, expected "
                "{json_column: {key: pii_type}}"
            )
        normalized_keys: dict[str, str] = {}
        for key, pii_type in keys.items():
            if pii_type is None or str(pii_type).strip() == "":
                raise ConfigurationError(
                    f"Missing PII type for key '{key}'. "
                    "Each key must have an explicitly defined PII type."
                )
            normalized_keys[str(key)] = str(pii_type)
        mappings.append(JSONFieldMapping(json_column=str(json_column), keys=normalized_keys))
    return tuple(mappings)


def build_config(
    model_name: str,
    fields: Mapping[str, Any] | Iterable[str],
    entity_type: EntityTypeResolver,
    entity_id: EntityIdResolver,
    dual_write: bool = False,
    read_from_token: bool | None = None,
    json_fields: Mapping[str, Mapping[str, Any]] | None = None,
    entity_id_requires_identity: bool = False,
) -> TokenizationConfig:
    """Validate the decorator arguments and build a TokenizationConfig."""
    if entity_type is None or (isinstance(entity_type, str) and not entity_type.strip()):
        raise ConfigurationError(f"{model_name}: entity_type is required")
    if not callable(entity_id):
        raise ConfigurationError(f"{model_name}: entity_id must be a callable of the record")

    normalized_fields = normalize_fields(fields)
    normalized_json = normalize_json_fields(json_fields)
    if not normalized_fields and not normalized_json:
        raise ConfigurationError(f"{model_name}: no fields configured for tokenization")

    return TokenizationConfig(
        model_name=model_name,
        fields=normalized_fields,
        entity_type=entity_type,
        entity_id=entity_id,
        mode=DualWriteMode.build(dual_write, read_from_token),
        json_fields=normalized_json,
        entity_id_requires_identity=entity_id_requires_identity,
    )


__all__ = [
    "DualWriteMode",
    "JSONFieldMapping",
    "TokenizableField",
    "TokenizationConfig",
    "build_config",
    "normalize_fields",
    "normalize_json_fields",
]
