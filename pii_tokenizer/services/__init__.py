"""
Services for the PII tokenizer.

Services:
    - EncryptionGateway: HTTP client for the encryption service token API
    - Wire schemas: request/response models of the token endpoints
"""

from .encryption_gateway import (
    EncryptionGateway,
    TokenGateway,
    get_encryption_gateway,
    reset_encryption_gateway,
    set_encryption_gateway,
)
from .gateway_schemas import EncryptionRequestItem, correlation_key

__all__ = [
    "EncryptionGateway",
    "EncryptionRequestItem",
    "TokenGateway",
    "correlation_key",
    "get_encryption_gateway",
    "reset_encryption_gateway",
    "set_encryption_gateway",
]
