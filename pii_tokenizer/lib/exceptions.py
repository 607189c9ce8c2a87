"""
Exception hierarchy for the PII tokenizer.

Provides structured exception types for each failure class of the
tokenization engine:
- Configuration of tokenized models and of the gateway client
- Transport failures talking to the encryption service
- Non-success answers from the encryption service

All exceptions inherit from PiiTokenizerError, enabling a catch-all for
tokenizer errors while keeping the ability to catch specific error types.

Partial gateway results and malformed JSON inside tokenized JSON columns
are deliberately NOT represented here: both are handled locally and never
raised.
"""

from __future__ import annotations


class PiiTokenizerError(Exception):
    """Base exception for all PII tokenizer errors."""


class ConfigurationError(PiiTokenizerError):
    """Invalid tokenization setup: missing URL, pii type, or token column."""


class EncryptionServiceError(PiiTokenizerError):
    """Base class for failures of the external encryption service."""


class TransportError(EncryptionServiceError):
    """Connection refused, DNS failure, or timeout while calling the service."""


class GatewayError(EncryptionServiceError):
    """The encryption service answered with an error status or an unreadable body."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)
