"""
Lib package for the PII tokenizer.

Contains shared utilities:
- config.py: Encryption service settings (env + programmatic overrides)
- exceptions.py: Exception hierarchy
- logging.py: structlog configuration and PII redaction for log output
- types.py: PII and entity type constants
- tokenized_field.py: Descriptors generated for tokenized fields
"""

from pii_tokenizer.lib.config import (
    TokenizerSettings,
    configure,
    get_settings,
    reset,
)
from pii_tokenizer.lib.exceptions import (
    ConfigurationError,
    EncryptionServiceError,
    GatewayError,
    PiiTokenizerError,
    TransportError,
)
from pii_tokenizer.lib.logging import setup_logging
from pii_tokenizer.lib.tokenized_field import JsonKeyDescriptor, TokenizedFieldDescriptor
from pii_tokenizer.lib.types import EntityType, PiiType

__all__ = [
    # Config
    "TokenizerSettings",
    "configure",
    "get_settings",
    "reset",
    # Exceptions
    "PiiTokenizerError",
    "ConfigurationError",
    "EncryptionServiceError",
    "GatewayError",
    "TransportError",
    # Logging
    "setup_logging",
    # Field Descriptors
    "TokenizedFieldDescriptor",
    "JsonKeyDescriptor",
    # Types
    "PiiType",
    "EntityType",
]
