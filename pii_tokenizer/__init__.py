"""
PII tokenizer.

Keeps sensitive model fields stored as opaque tokens issued by an external
encryption service while application code keeps reading and writing plain
values.

Usage:
    from pii_tokenizer import EntityType, PiiType, Tokenizable, tokenize_pii

Packages:
    - lib: settings, exceptions, logging, type constants, field descriptors
    - services: encryption service gateway and wire schemas
    - core: decision, batching, caching and search engine
    - models: SQLAlchemy integration (Tokenizable, tokenize_pii)
"""

from pii_tokenizer.lib.config import configure, get_settings
from pii_tokenizer.lib.exceptions import (
    ConfigurationError,
    EncryptionServiceError,
    GatewayError,
    PiiTokenizerError,
    TransportError,
)
from pii_tokenizer.lib.types import EntityType, PiiType
from pii_tokenizer.models.tokenizable import Tokenizable, tokenize_pii
from pii_tokenizer.services.encryption_gateway import (
    EncryptionGateway,
    get_encryption_gateway,
    reset_encryption_gateway,
    set_encryption_gateway,
)

__version__ = "0.1.0"

__all__ = [
    "ConfigurationError",
    "EncryptionGateway",
    "EncryptionServiceError",
    "EntityType",
    "GatewayError",
    "PiiTokenizerError",
    "PiiType",
    "Tokenizable",
    "TransportError",
    "configure",
    "get_encryption_gateway",
    "get_settings",
    "reset_encryption_gateway",
    "set_encryption_gateway",
    "tokenize_pii",
]
