"""Tests for structlog configuration."""
import logging

import structlog

from docqa.logging_config import configure_logging


def test_configure_logging_renders_json(caplog):
    caplog.set_level(logging.INFO)
    try:
        configure_logging("INFO")
        structlog.get_logger("docqa.test").info("document_ingested", chunks_created=3)
    finally:
        structlog.reset_defaults()

    assert '"event": "document_ingested"' in caplog.text
    assert '"chunks_created": 3' in caplog.text
    assert '"level": "info"' in caplog.text
