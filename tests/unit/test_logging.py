"""Unit tests for admission logging configuration."""

import logging
import os
import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest

from admission.logging import get_logger, mask_email, sanitize_for_log, setup_logging


@pytest.mark.unit
class TestSetupLogging:
    """Tests for setup_logging function."""

    def test_creates_log_directory(self) -> None:
        """Log directory is created if it doesn't exist."""
        with tempfile.TemporaryDirectory() as tmpdir:
            log_dir = Path(tmpdir) / "nested" / "logs"
            setup_logging(log_dir=log_dir, console=False)

            assert log_dir.exists()

    def test_writes_to_log_file(self) -> None:
        """Log messages are written to the file."""
        with tempfile.TemporaryDirectory() as tmpdir:
            logger = setup_logging(log_dir=tmpdir, console=False)
            logger.info("test message 123")

            content = (Path(tmpdir) / "admission.log").read_text()
            assert "test message 123" in content

    def test_log_format_includes_component_name(self) -> None:
        """Log entries include level and the component logger name."""
        with tempfile.TemporaryDirectory() as tmpdir:
            setup_logging(log_dir=tmpdir, console=False)
            logging.getLogger("admission.engine.orchestrator").info("component test")

            content = (Path(tmpdir) / "admission.log").read_text()
            assert " | INFO" in content
            assert "admission.engine.orchestrator" in content

    def test_log_level_configurable(self) -> None:
        """Log level filters messages appropriately."""
        with tempfile.TemporaryDirectory() as tmpdir:
            setup_logging(log_dir=tmpdir, level="WARNING", console=False)
            logger = logging.getLogger("admission")
            logger.info("should not appear")
            logger.warning("should appear")

            content = (Path(tmpdir) / "admission.log").read_text()
            assert "should not appear" not in content
            assert "should appear" in content

    @patch.dict(os.environ, {"ADMISSION_LOG_LEVEL": "DEBUG"})
    def test_log_level_from_env(self) -> None:
        """Log level can be set via environment variable."""
        with tempfile.TemporaryDirectory() as tmpdir:
            logger = setup_logging(log_dir=tmpdir, console=False)

            assert logger.level == logging.DEBUG

    def test_log_dir_from_env(self) -> None:
        """Log directory can be set via environment variable."""
        with (
            tempfile.TemporaryDirectory() as tmpdir,
            patch.dict(os.environ, {"ADMISSION_LOG_DIR": tmpdir}),
        ):
            setup_logging(console=False)

            assert (Path(tmpdir) / "admission.log").exists()

    def test_no_duplicate_handlers_on_repeated_setup(self) -> None:
        """Repeated setup_logging calls don't add duplicate handlers."""
        with tempfile.TemporaryDirectory() as tmpdir:
            setup_logging(log_dir=tmpdir, console=False)
            setup_logging(log_dir=tmpdir, console=False)

            assert len(logging.getLogger("admission").handlers) == 1

    def test_rotation_configured(self) -> None:
        """RotatingFileHandler is configured with correct max size."""
        with tempfile.TemporaryDirectory() as tmpdir:
            setup_logging(log_dir=tmpdir, max_bytes=1024, backup_count=3, console=False)

            handlers = [
                h for h in logging.getLogger("admission").handlers if hasattr(h, "maxBytes")
            ]
            assert len(handlers) == 1
            assert handlers[0].maxBytes == 1024
            assert handlers[0].backupCount == 3


@pytest.mark.unit
class TestGetLogger:
    """Tests for get_logger function."""

    def test_get_logger_prefixes_admission(self) -> None:
        assert get_logger("engine").name == "admission.engine"

    def test_get_logger_no_double_prefix(self) -> None:
        assert get_logger("admission.store").name == "admission.store"


@pytest.mark.unit
class TestSanitize:
    """Tests for contact-detail redaction."""

    def test_mask_email_keeps_first_letter_and_domain(self) -> None:
        assert mask_email("alice.smith@example.com") == "a***@example.com"

    def test_redacts_phone_numbers(self) -> None:
        result = sanitize_for_log("call +91 98765 43210 today")
        assert "98765" not in result
        assert "[PHONE]" in result

    def test_safe_text_unchanged(self) -> None:
        text = "Registration abc123 moved to confirmed"
        assert sanitize_for_log(text) == text
