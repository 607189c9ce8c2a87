"""
Runtime settings for the PII tokenizer.

Settings are read from the environment on first use and can be overridden
programmatically at application startup:

    from pii_tokenizer.lib.config import configure

    configure(encryption_service_url="https://tokens.internal", timeout=5)

Environment variables:
- ENCRYPTION_SERVICE_URL: Base URL of the encryption service (required
  before the first gateway call)
- PII_TOKENIZER_API_PREFIX: Path prefix of the token API (default /api/v1)
- PII_TOKENIZER_TIMEOUT: Total request timeout in seconds (default 10)
- PII_TOKENIZER_OPEN_TIMEOUT: Connect timeout in seconds (default 2)
"""

from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass
from typing import Any

from pii_tokenizer.lib.exceptions import ConfigurationError

DEFAULT_API_PREFIX = "/api/v1"
DEFAULT_TIMEOUT = 10.0
DEFAULT_OPEN_TIMEOUT = 2.0


@dataclass(frozen=True)
class TokenizerSettings:
    """
    Connection settings for the encryption service.

    Attributes:
        encryption_service_url: Base URL of the encryption service.
        api_prefix: Path prefix prepended to every token endpoint.
        timeout: Total per-request timeout in seconds.
        open_timeout: Connect timeout in seconds.
    """

    encryption_service_url: str | None = None
    api_prefix: str = DEFAULT_API_PREFIX
    timeout: float = DEFAULT_TIMEOUT
    open_timeout: float = DEFAULT_OPEN_TIMEOUT

    @classmethod
    def from_env(cls) -> TokenizerSettings:
        """Build settings from environment variables."""
        return cls(
            encryption_service_url=os.environ.get("ENCRYPTION_SERVICE_URL") or None,
            api_prefix=os.environ.get("PII_TOKENIZER_API_PREFIX", DEFAULT_API_PREFIX),
            timeout=_float_env("PII_TOKENIZER_TIMEOUT", DEFAULT_TIMEOUT),
            open_timeout=_float_env("PII_TOKENIZER_OPEN_TIMEOUT", DEFAULT_OPEN_TIMEOUT),
        )

    def require_url(self) -> str:
        """Return the service URL or raise if it has not been configured."""
        if not self.encryption_service_url:
            raise ConfigurationError(
                "Encryption service URL must be configured "
                "(set ENCRYPTION_SERVICE_URL or call configure())"
            )
        return self.encryption_service_url


def _float_env(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from e


# Global settings instance (lazy initialization)
_settings: TokenizerSettings | None = None


def get_settings() -> TokenizerSettings:
    """Get the global settings, loading them from the environment on first use."""
    global _settings
    if _settings is None:
        _settings = TokenizerSettings.from_env()
    return _settings


def configure(**overrides: Any) -> TokenizerSettings:
    """
    Override individual settings on top of the current ones.

    Args:
        **overrides: Field names of TokenizerSettings and their new values.

    Returns:
        The new global settings.

    Raises:
        ConfigurationError: If an unknown setting name is given.
    """
    global _settings
    known = {f.name for f in dataclasses.fields(TokenizerSettings)}
    unknown = set(overrides) - known
    if unknown:
        raise ConfigurationError(f"Unknown tokenizer settings: {sorted(unknown)}")
    _settings = dataclasses.replace(get_settings(), **overrides)
    return _settings


def reset() -> None:
    """Drop programmatic overrides; the next access re-reads the environment."""
    global _settings
    _settings = None


__all__ = [
    "DEFAULT_API_PREFIX",
    "DEFAULT_OPEN_TIMEOUT",
    "DEFAULT_TIMEOUT",
    "TokenizerSettings",
    "configure",
    "get_settings",
    "reset",
]
