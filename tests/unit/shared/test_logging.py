"""Unit tests for bosbase_installer.shared.logging module."""

import json
import logging

from bosbase_installer.shared.logging import configure_logging, get_logger


class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_level(self):
        """Test the root logger level follows the option."""
        configure_logging("debug")

        assert logging.getLogger().level == logging.DEBUG

    def test_unknown_level_falls_back_to_info(self):
        """Test an unknown level name means info."""
        configure_logging("verbose")

        assert logging.getLogger().level == logging.INFO

    def test_json_to_file(self, tmp_path):
        """Test JSON events are written to the log file."""
        log_file = tmp_path / "install.log"
        configure_logging("info", log_file=log_file, json_output=True)

        get_logger("bosbase_installer.test").info("stage.begin", stage="Detecting platform")
        for handler in logging.getLogger().handlers:
            handler.flush()

        event = json.loads(log_file.read_text().splitlines()[-1])
        assert event["event"] == "stage.begin"
        assert event["stage"] == "Detecting platform"
        assert event["level"] == "info"
