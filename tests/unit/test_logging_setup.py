"""Unit tests for logging configuration."""
from __future__ import annotations

import logging

from lending_core.logging_setup import LOG_FORMAT, configure_logging


class TestConfigureLogging:
    def test_sets_info_level(self) -> None:
        configure_logging("INFO")
        assert logging.getLogger().level == logging.INFO

    def test_sets_debug_level(self) -> None:
        configure_logging("debug")
        assert logging.getLogger().level == logging.DEBUG

    def test_silences_aiohttp(self) -> None:
        configure_logging("DEBUG")
        assert logging.getLogger("aiohttp").level == logging.WARNING

    def test_invalid_level_defaults_to_info(self) -> None:
        configure_logging("NONEXISTENT")
        assert logging.getLogger().level == logging.INFO

    def test_replaces_existing_handlers(self) -> None:
        configure_logging("INFO")
        configure_logging("WARNING")
        root = logging.getLogger()
        formatted = [h for h in root.handlers if h.formatter and h.formatter._fmt == LOG_FORMAT]
        assert len(formatted) == 1
        assert root.level == logging.WARNING

    def test_library_loggers_propagate_to_root(self) -> None:
        configure_logging("DEBUG")
        ledger_logger = logging.getLogger("lending_core.services.position_ledger")
        assert ledger_logger.getEffectiveLevel() == logging.DEBUG
