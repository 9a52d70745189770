"""
Unit tests for logging setup and environment settings.
"""

import logging
import pytest
from logging.handlers import RotatingFileHandler

from config.settings import AppConfig, HealthCheckFilter, setup_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    for handler in root.handlers[:]:
        handler.close()
        root.removeHandler(handler)
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


def make_record(message):
    return logging.LogRecord("uvicorn.access", logging.INFO, __file__, 1, message, None, None)


class TestHealthCheckFilter:

    def test_successful_health_check_dropped(self):
        assert not HealthCheckFilter().filter(make_record('127.0.0.1:5000 - "GET /health HTTP/1.1" 200'))

    def test_other_requests_kept(self):
        assert HealthCheckFilter().filter(make_record('127.0.0.1:5000 - "GET /json HTTP/1.1" 200'))
        assert HealthCheckFilter().filter(make_record('127.0.0.1:5000 - "GET /health HTTP/1.1" 500'))


class TestSetupLogging:

    def test_level_and_single_console_handler(self, restore_root_logger):
        setup_logging("DEBUG")
        setup_logging("DEBUG")

        assert restore_root_logger.level == logging.DEBUG
        assert len(restore_root_logger.handlers) == 1

    def test_log_file(self, restore_root_logger, tmp_path):
        log_file = tmp_path / "logs" / "dockcup.log"

        setup_logging("INFO", str(log_file))
        logging.getLogger("dockcup.test").info("hello")

        assert any(isinstance(h, RotatingFileHandler) for h in restore_root_logger.handlers)
        assert log_file.exists()

    def test_unknown_level_falls_back_to_info(self, restore_root_logger):
        setup_logging("chatty")

        assert restore_root_logger.level == logging.INFO


class TestAppConfig:

    def test_defaults_are_valid(self):
        assert AppConfig.validate()

    def test_invalid_port(self, monkeypatch):
        monkeypatch.setattr(AppConfig, "PORT", 70000)

        with pytest.raises(ValueError, match="Invalid port"):
            AppConfig.validate()
