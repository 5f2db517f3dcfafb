"""Centralized logging configuration with environment variable support."""

import os
import logging
import sys
from pythonjsonlogger import jsonlogger


SERVICE_NAME = "fieldtrack-backend"

# Emits on every sample; kept quieter than the rest unless asked for
TRACKING_LOGGER = "fieldtrack.services.tracking_loop"


class LoggingConfig:
    """Centralized logging configuration."""

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
    LOG_FORMAT = os.environ.get("LOG_FORMAT", "json").lower()
    LOG_MASK_SENSITIVE = os.environ.get("LOG_MASK_SENSITIVE", "true").lower() == "true"
    LOG_SLOW_OPERATION_THRESHOLD_MS = int(os.environ.get("LOG_SLOW_OPERATION_THRESHOLD_MS", "1000"))
    LOG_TRACKING_LEVEL = os.environ.get("LOG_TRACKING_LEVEL", "WARNING").upper()
    LOG_COORDINATE_PRECISION = int(os.environ.get("LOG_COORDINATE_PRECISION", "2"))

    _configured = False

    @classmethod
    def level(cls, name: str) -> int:
        return getattr(logging, name, logging.INFO)

    @classmethod
    def build_formatter(cls) -> logging.Formatter:
        if cls.LOG_FORMAT == "json":
            return jsonlogger.JsonFormatter(
                "%(timestamp)s %(levelname)s %(name)s %(message)s",
                static_fields={"service": SERVICE_NAME},
            )
        return logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    @classmethod
    def setup_logging(cls) -> None:
        """Configure logging based on environment variables."""
        root_logger = logging.getLogger()
        root_logger.setLevel(cls.level(cls.LOG_LEVEL))
        root_logger.handlers.clear()

        # stdout for serverless
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(cls.level(cls.LOG_LEVEL))
        handler.setFormatter(cls.build_formatter())
        root_logger.addHandler(handler)

        logging.getLogger(TRACKING_LOGGER).setLevel(cls.level(cls.LOG_TRACKING_LEVEL))
        for noisy in ("httpx", "httpcore", "supabase", "postgrest"):
            logging.getLogger(noisy).setLevel(logging.WARNING)
        cls._configured = True

    @classmethod
    def ensure_configured(cls) -> None:
        """Configure logging once per process (serverless cold start)."""
        if not cls._configured:
            cls.setup_logging()


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance with the given name."""
    return logging.getLogger(name)
