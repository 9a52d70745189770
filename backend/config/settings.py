"""
Configuration Management for dockcup
Centralizes environment-based settings and logging setup
"""

import os
import logging
from logging.handlers import RotatingFileHandler
from typing import Optional


LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


class HealthCheckFilter(logging.Filter):
    """Filter out successful health check requests to reduce log noise"""
    def filter(self, record: logging.LogRecord) -> bool:
        # uvicorn access log format: 'IP:PORT - "METHOD /path HTTP/1.1" STATUS'
        message = record.getMessage()
        if '/health' in message and '200' in message:
            return False
        return True


def setup_logging(level: str = 'INFO', log_file: Optional[str] = None):
    """
    Configure application logging.

    Args:
        level: Root log level name (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional path for a rotating log file
    """
    root_logger = logging.getLogger()

    # Close and clear existing handlers so repeated setup does not duplicate output
    for handler in root_logger.handlers[:]:
        handler.close()
        root_logger.removeHandler(handler)

    log_level = getattr(logging, level.upper(), logging.INFO)
    root_logger.setLevel(log_level)
    formatter = logging.Formatter(LOG_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, mode=0o700, exist_ok=True)
        # Max 10MB per file, keep 5 backups
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=10*1024*1024,
            backupCount=5,
            encoding='utf-8'
        )
        file_handler.setLevel(log_level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    # urllib3 and the docker SDK are chatty at DEBUG
    logging.getLogger('urllib3').setLevel(max(log_level, logging.INFO))
    logging.getLogger('docker').setLevel(max(log_level, logging.INFO))

    uvicorn_access = logging.getLogger("uvicorn.access")
    uvicorn_access.addFilter(HealthCheckFilter())


class AppConfig:
    """Process-level settings from environment variables"""

    # Server settings
    HOST = os.getenv('DOCKCUP_HOST', '0.0.0.0')
    PORT = int(os.getenv('DOCKCUP_PORT', 8000))

    # Config file with registry credentials and checker tuning
    CONFIG_PATH = os.getenv('DOCKCUP_CONFIG_PATH', '')

    # Docker socket (path or URL); empty = Docker SDK defaults
    SOCKET = os.getenv('DOCKCUP_SOCKET', '')

    # Logging
    LOG_LEVEL = os.getenv('DOCKCUP_LOG_LEVEL', 'INFO')
    LOG_FILE = os.getenv('DOCKCUP_LOG_FILE', '')

    @classmethod
    def validate(cls):
        """Validate configuration"""
        if cls.PORT < 1 or cls.PORT > 65535:
            raise ValueError(f"Invalid port: {cls.PORT}")

        if cls.LOG_LEVEL.upper() not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
            raise ValueError(f"Invalid log level: {cls.LOG_LEVEL}")

        return True
