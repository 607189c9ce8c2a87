"""
Encryption service gateway for the PII tokenizer.

Thin synchronous client for the external encryption service. It performs
no cryptography and no retries: every call is one blocking HTTP request
bounded by the configured timeouts, and every failure propagates.

Usage:
    from pii_tokenizer.services.encryption_gateway import get_encryption_gateway

    gateway = get_encryption_gateway()
    tokens = gateway.encrypt_batch(items)       # {correlation_key: token}
    values = gateway.decrypt_batch(["tok_1"])   # {token: plaintext}
    matches = gateway.search_tokens("jane@x.com")  # [token, ...]

Logging:
    Requests and responses are logged at DEBUG with `pii_field`, `value`
    and `decrypted_value` replaced by "REDACTED".
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Sequence
from typing import Any, Protocol

import httpx
from pydantic import ValidationError

from pii_tokenizer.lib.config import TokenizerSettings, get_settings
from pii_tokenizer.lib.exceptions import GatewayError, TransportError
from pii_tokenizer.lib.logging import redact_payload
from pii_tokenizer.services.gateway_schemas import (
    EncryptionRequestItem,
    SearchRequest,
    TokenListResponse,
    TokenRecord,
    correlation_key,
)

logger = logging.getLogger(__name__)


class TokenGateway(Protocol):
    """Operations the tokenization engine needs from the encryption service."""

    def encrypt_batch(self, items: Sequence[EncryptionRequestItem]) -> dict[str, str]: ...

    def decrypt_batch(self, tokens: str | Iterable[str] | None) -> dict[str, str]: ...

    def search_tokens(self, value: Any) -> list[str]: ...


# =============================================================================
# Log Sanitization
# =============================================================================


def sanitize_response_for_logging(body: str) -> str:
    """Return a response body with PII values redacted, as a JSON string."""
    try:
        parsed = json.loads(body)
    except (TypeError, ValueError):
        return "Non-JSON response"
    return json.dumps(redact_payload(parsed))


# =============================================================================
# Gateway
# =============================================================================


class EncryptionGateway:
    """
    HTTP client for the encryption service token API.

    Args:
        settings: Connection settings. Defaults to the global settings.
        transport: Optional httpx transport (used by tests to mock the service).

    Raises:
        ConfigurationError: If no encryption service URL is configured.
    """

    def __init__(
        self,
        settings: TokenizerSettings | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        base_url = self._settings.require_url()
        prefix = self._settings.api_prefix.strip("/")
        self._prefix = f"/{prefix}" if prefix else ""
        self._client = httpx.Client(
            base_url=base_url,
            timeout=httpx.Timeout(self._settings.timeout, connect=self._settings.open_timeout),
            headers={"Accept": "application/json"},
            transport=transport,
        )

    @property
    def base_url(self) -> str:
        """Return the service base URL."""
        return str(self._client.base_url)

    def close(self) -> None:
        """Close the underlying HTTP connection pool."""
        self._client.close()

    def __enter__(self) -> EncryptionGateway:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def encrypt_batch(self, items: Sequence[EncryptionRequestItem]) -> dict[str, str]:
        """
        Tokenize a batch of values in one request.

        Args:
            items: Values to tokenize with their entity scope and PII type.

        Returns:
            Mapping of correlation key (ENTITY_TYPE:entity_id:pii_type:value)
            to token. Items the service did not tokenize are absent.
        """
        if not items:
            return {}

        payload = [item.to_request().model_dump() for item in items]
        response = self._send("POST", "/tokens/bulk", json_body=payload)

        result: dict[str, str] = {}
        for record in self._parse_records(response):
            if not record.token:
                continue
            key = correlation_key(
                record.entity_type, record.entity_id, record.pii_type, record.pii_field
            )
            result[key] = record.token
        return result

    def decrypt_batch(self, tokens: str | Iterable[str] | None) -> dict[str, str]:
        """
        Resolve tokens back to plaintext in one request.

        Args:
            tokens: A token, or an iterable of tokens. Blank entries are ignored.

        Returns:
            Mapping of token to plaintext. Unknown tokens are absent.
        """
        if tokens is None:
            return {}
        if isinstance(tokens, str):
            tokens = [tokens]
        unique = list(dict.fromkeys(token for token in tokens if token))
        if not unique:
            return {}

        response = self._send("GET", "/tokens/decrypt", params={"tokens[]": unique})

        return {
            record.token: record.decrypted_value
            for record in self._parse_records(response)
            if record.token and record.decrypted_value is not None
        }

    def search_tokens(self, value: Any) -> list[str]:
        """
        Find every token whose plaintext equals the given value.

        Args:
            value: Plaintext to search for. None and "" return no tokens.

        Returns:
            Matching tokens (possibly empty).
        """
        if value is None or value == "":
            return []

        body = SearchRequest(pii_field=str(value)).model_dump()
        response = self._send("POST", "/tokens/search", json_body=body)
        return [record.token for record in self._parse_records(response) if record.token]

    # -------------------------------------------------------------------------
    # Transport helpers
    # -------------------------------------------------------------------------

    def _send(
        self,
        method: str,
        path: str,
        json_body: Any = None,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        url = f"{self._prefix}{path}"
        logger.debug(
            "REQUEST: %s %s %s",
            method,
            url,
            redact_payload(json_body if json_body is not None else params),
        )
        try:
            response = self._client.request(method, url, json=json_body, params=params)
        except httpx.TransportError as e:
            logger.error(
                "Encryption service unreachable",
                extra={"method": method, "path": url, "error": type(e).__name__},
            )
            raise TransportError(f"Failed to connect to encryption service: {e}") from e

        logger.debug(
            "RESPONSE: %s %s", response.status_code, sanitize_response_for_logging(response.text)
        )

        if response.is_error:
            raise GatewayError(self._error_message(response), status_code=response.status_code)
        return response

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        detail = response.text
        try:
            body = response.json()
        except ValueError:
            pass
        else:
            if isinstance(body, dict) and body.get("error"):
                detail = str(body["error"])
        return f"Encryption service error (HTTP {response.status_code}): {detail}"

    @staticmethod
    def _parse_records(response: httpx.Response) -> list[TokenRecord]:
        try:
            body = response.json()
        except ValueError as e:
            raise GatewayError(
                f"Encryption service error (HTTP {response.status_code}): Non-JSON response",
                status_code=response.status_code,
            ) from e

        if isinstance(body, list):
            body = {"data": body}
        try:
            return TokenListResponse.model_validate(body).data
        except ValidationError as e:
            raise GatewayError(
                f"Encryption service error (HTTP {response.status_code}): unexpected response shape",
                status_code=response.status_code,
            ) from e


# =============================================================================
# Convenience Functions
# =============================================================================

# Global gateway instance (lazy initialization)
_gateway: TokenGateway | None = None


def get_encryption_gateway() -> TokenGateway:
    """Get the global gateway instance, creating it from settings on first use."""
    global _gateway
    if _gateway is None:
        _gateway = EncryptionGateway()
    return _gateway


def set_encryption_gateway(gateway: TokenGateway | None) -> None:
    """Install a gateway as the global instance (None restores lazy creation)."""
    global _gateway
    _gateway = gateway


def reset_encryption_gateway() -> None:
    """Close and drop the global gateway so the next use rebuilds it."""
    global _gateway
    if isinstance(_gateway, EncryptionGateway):
        _gateway.close()
    _gateway = None


__all__ = [
    "EncryptionGateway",
    "TokenGateway",
    "get_encryption_gateway",
    "reset_encryption_gateway",
    "sanitize_response_for_logging",
    "set_encryption_gateway",
]
