"""
Wire schemas for the encryption service API.

Defines the request/response bodies of the three token endpoints and the
in-process request item the engine batches before calling the service.

Endpoints:
- POST {prefix}/tokens/bulk: list[TokenizeRequest] -> TokenListResponse
- GET {prefix}/tokens/decrypt?tokens[]=...: -> TokenListResponse
- POST {prefix}/tokens/search: SearchRequest -> TokenListResponse
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


def correlation_key(entity_type: Any, entity_id: Any, pii_type: Any, value: Any) -> str:
    """
    Build the key correlating a bulk-tokenize response item to its request.

    The service echoes entity_type upper-cased, so the key does too. Two
    fields with identical type, id, pii type and value share a key.
    """
    return f"{str(entity_type).upper()}:{entity_id}:{pii_type}:{value}"


@dataclass(frozen=True)
class EncryptionRequestItem:
    """
    One value to tokenize within a batch.

    Attributes:
        value: Plaintext to tokenize.
        entity_type: Entity type resolved for the record.
        entity_id: Entity id resolved for the record.
        pii_type: PII type configured for the field or JSON key.
        field_name: Field name, or "<json_column>.<key>" for JSON keys.
    """

    value: Any
    entity_type: str
    entity_id: str
    pii_type: str
    field_name: str

    @property
    def correlation_key(self) -> str:
        """Key under which the service's token for this item is expected."""
        return correlation_key(self.entity_type, self.entity_id, self.pii_type, self.value)

    def to_request(self) -> TokenizeRequest:
        """Convert to the wire representation."""
        return TokenizeRequest(
            entity_type=str(self.entity_type),
            entity_id=str(self.entity_id),
            pii_type=str(self.pii_type),
            pii_field=str(self.value),
        )


class TokenizeRequest(BaseModel):
    """Request body item for the bulk tokenize endpoint."""

    entity_type: str
    entity_id: str
    pii_type: str
    pii_field: str


class SearchRequest(BaseModel):
    """Request body for the token search endpoint."""

    pii_field: str


class TokenRecord(BaseModel):
    """
    Response item shared by all token endpoints.

    Bulk tokenize answers carry the request echo plus ``token``; decrypt and
    search answers carry ``token`` and ``decrypted_value``. Unknown keys such
    as ``created_at`` are ignored.
    """

    model_config = ConfigDict(extra="ignore")

    token: str | None = None
    entity_type: str | None = None
    entity_id: str | None = None
    pii_type: str | None = None
    pii_field: str | None = None
    decrypted_value: str | None = None

    @field_validator(
        "entity_type", "entity_id", "pii_type", "pii_field", "decrypted_value", mode="before"
    )
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        return str(value)


class TokenListResponse(BaseModel):
    """Envelope returned by the token endpoints."""

    model_config = ConfigDict(extra="ignore")

    data: list[TokenRecord] = Field(default_factory=list)


__all__ = [
    "EncryptionRequestItem",
    "SearchRequest",
    "TokenListResponse",
    "TokenRecord",
    "TokenizeRequest",
    "correlation_key",
]
