"""
Logging for the PII tokenizer.

Package modules log through ``logging.getLogger(__name__)``. Host
applications that want structured output call ``setup_logging()`` once;
it routes those stdlib records through structlog, rendering JSON lines by
default and a console format when PII_TOKENIZER_DEV_MODE=1.

Plaintext PII must never reach a log line. Payload keys that may carry it
(``pii_field``, ``value``, ``decrypted_value``) are replaced by "REDACTED",
both by the gateway before it logs request/response bodies and by the
``redact_pii`` processor for values passed as ``extra`` fields.

Usage:
    from pii_tokenizer.lib.logging import setup_logging

    setup_logging(level="debug")
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import MutableMapping
from typing import Any

import structlog

REDACTED = "REDACTED"
SENSITIVE_KEYS = frozenset({"pii_field", "value", "decrypted_value"})

# Transport loggers print full request URLs, and decrypt URLs carry tokens
TRANSPORT_LOGGERS = ("httpx", "httpcore")


def redact_payload(data: Any) -> Any:
    """Return a copy of a JSON-like payload with sensitive keys redacted."""
    if isinstance(data, dict):
        return {
            key: REDACTED if key in SENSITIVE_KEYS else redact_payload(value)
            for key, value in data.items()
        }
    if isinstance(data, list):
        return [redact_payload(item) for item in data]
    return data


def redact_pii(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """structlog processor: redact sensitive keys of the event dict."""
    for key in SENSITIVE_KEYS & event_dict.keys():
        event_dict[key] = REDACTED
    return event_dict


def _pre_chain() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.ExtraAdder(),
        redact_pii,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]


def setup_logging(level: str | None = None, json_output: bool | None = None) -> None:
    """
    Install a structlog-formatted root handler.

    Args:
        level: Root level name. Defaults to LOG_LEVEL, then INFO.
        json_output: Render JSON lines. Defaults to true unless
            PII_TOKENIZER_DEV_MODE=1.
    """
    if json_output is None:
        json_output = os.environ.get("PII_TOKENIZER_DEV_MODE") != "1"
    level_name = (level or os.environ.get("LOG_LEVEL") or "INFO").upper()

    renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
    )
    pre_chain = _pre_chain()

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(getattr(logging, level_name, logging.INFO))

    for name in TRANSPORT_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


__all__ = [
    "REDACTED",
    "SENSITIVE_KEYS",
    "redact_payload",
    "redact_pii",
    "setup_logging",
]
