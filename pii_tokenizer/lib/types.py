"""
PII and entity type constants.

PII types tag the kind of sensitive data sent to the encryption service for
each field; entity types scope tokens to a logical business entity. Both
sets are conventions shared with the encryption service, not a closed list:
models may configure custom string types.
"""

from __future__ import annotations

from enum import StrEnum


class PiiType(StrEnum):
    """Predefined PII types to keep tokenization consistent across models."""

    EMAIL = "EMAIL"
    PHONE = "PHONE"
    NAME = "NAME"
    URL = "URL"

    @classmethod
    def all(cls) -> list[str]:
        """Return every predefined PII type value."""
        return [member.value for member in cls]

    @classmethod
    def supported(cls, pii_type: str) -> bool:
        """Check whether a PII type (case-insensitive) is predefined."""
        return str(pii_type).upper() in cls.all()


class EntityType(StrEnum):
    """Predefined entity types."""

    USER_UUID = "USER_UUID"
    PROFILE_UUID = "PROFILE_UUID"

    @classmethod
    def all(cls) -> list[str]:
        """Return every predefined entity type value."""
        return [member.value for member in cls]

    @classmethod
    def supported(cls, entity_type: str) -> bool:
        """Check whether an entity type is predefined (exact match)."""
        return entity_type in cls.all()


__all__ = ["EntityType", "PiiType"]
