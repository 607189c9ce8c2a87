"""Tests for structlog configuration."""

from __future__ import annotations

import json
import logging

import pytest
import structlog

from pii_tokenizer.lib.logging import redact_payload, redact_pii, setup_logging


@pytest.fixture()
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)
    structlog.reset_defaults()


class TestSetupLogging:
    """Test setup_logging()."""

    def test_json_renderer_in_production(
        self, monkeypatch: pytest.MonkeyPatch, restore_root_logger: logging.Logger
    ) -> None:
        monkeypatch.delenv("PII_TOKENIZER_DEV_MODE", raising=False)
        setup_logging()

        (handler,) = restore_root_logger.handlers
        assert isinstance(handler.formatter, structlog.stdlib.ProcessorFormatter)
        assert isinstance(handler.formatter.processors[-1], structlog.processors.JSONRenderer)

    def test_console_renderer_in_dev_mode(
        self, monkeypatch: pytest.MonkeyPatch, restore_root_logger: logging.Logger
    ) -> None:
        monkeypatch.setenv("PII_TOKENIZER_DEV_MODE", "1")
        setup_logging()

        (handler,) = restore_root_logger.handlers
        assert isinstance(handler.formatter.processors[-1], structlog.dev.ConsoleRenderer)

    def test_level_from_argument_and_env(
        self, monkeypatch: pytest.MonkeyPatch, restore_root_logger: logging.Logger
    ) -> None:
        monkeypatch.setenv("LOG_LEVEL", "warning")
        setup_logging()
        assert restore_root_logger.level == logging.WARNING

        setup_logging(level="debug")
        assert restore_root_logger.level == logging.DEBUG

    def test_quiets_transport_loggers(self, restore_root_logger: logging.Logger) -> None:
        setup_logging(level="debug")
        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("httpcore").level == logging.WARNING

    def test_json_output_argument_overrides_dev_mode(
        self, monkeypatch: pytest.MonkeyPatch, restore_root_logger: logging.Logger
    ) -> None:
        monkeypatch.setenv("PII_TOKENIZER_DEV_MODE", "1")
        setup_logging(json_output=True)

        (handler,) = restore_root_logger.handlers
        assert isinstance(handler.formatter.processors[-1], structlog.processors.JSONRenderer)

    def test_extra_fields_are_redacted(
        self, restore_root_logger: logging.Logger, capsys: pytest.CaptureFixture[str]
    ) -> None:
        setup_logging(level="info", json_output=True)

        logging.getLogger("pii_tokenizer.test").info(
            "Tokenized", extra={"pii_field": "jane@example.com", "model": "User"}
        )

        line = json.loads(capsys.readouterr().err.strip().splitlines()[-1])
        assert line["event"] == "Tokenized"
        assert line["pii_field"] == "REDACTED"
        assert line["model"] == "User"


class TestRedaction:
    """Test the redaction helpers."""

    def test_redact_payload(self) -> None:
        payload = {"pii_field": "x", "value": "y", "nested": [{"decrypted_value": "z", "token": "t"}]}

        assert redact_payload(payload) == {
            "pii_field": "REDACTED",
            "value": "REDACTED",
            "nested": [{"decrypted_value": "REDACTED", "token": "t"}],
        }
        assert payload["pii_field"] == "x"

    def test_redact_pii_processor(self) -> None:
        event = {"event": "saved", "value": "secret", "field": "email"}

        assert redact_pii(None, "info", event) == {
            "event": "saved",
            "value": "REDACTED",
            "field": "email",
        }
