"""Structured logging with correlation IDs, timing, and worker/location masking."""

import logging
import time
import uuid
import re
import hashlib
from contextvars import ContextVar
from typing import Any, Optional, Dict
from contextlib import contextmanager
from datetime import datetime, timezone

from fieldtrack.utils.logging_config import LoggingConfig, get_logger


_correlation_id_var: ContextVar[Optional[str]] = ContextVar('correlation_id', default=None)

_EMAIL_RE = re.compile(r'[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}', re.IGNORECASE)
_PHONE_RE = re.compile(r'\b\+?\d[\d\s().-]{7,}\b')
_SECRET_RE = re.compile(r'(?i)(api[_-]?key|token|secret|password|auth)[\s:=]+([A-Za-z0-9_-]{20,})')
# "51.507412, -0.127812" style pairs pasted into activity messages
_LATLON_RE = re.compile(r'(-?\d{1,3}\.\d{3,})\s*,\s*(-?\d{1,3}\.\d{3,})')


def generate_correlation_id() -> str:
    return f"req_{uuid.uuid4().hex[:12]}"


def get_correlation_id() -> Optional[str]:
    return _correlation_id_var.get()


@contextmanager
def correlation_context(correlation_id: Optional[str] = None):
    """Bind a correlation ID for the duration of a request or tracking tick."""
    token = _correlation_id_var.set(correlation_id or generate_correlation_id())
    try:
        yield _correlation_id_var.get()
    finally:
        _correlation_id_var.reset(token)


def mask_coordinate(value: Optional[float]) -> Optional[float]:
    """Round a coordinate to LOG_COORDINATE_PRECISION decimals."""
    if value is None or not LoggingConfig.LOG_MASK_SENSITIVE:
        return value
    return round(value, LoggingConfig.LOG_COORDINATE_PRECISION)


def mask_point(point: Any) -> Optional[Dict[str, Optional[float]]]:
    """Log-safe form of anything with latitude/longitude attributes."""
    if point is None:
        return None
    return {
        "lat": mask_coordinate(point.latitude),
        "lng": mask_coordinate(point.longitude),
    }


def mask_sensitive_data(text: str) -> str:
    """Redact emails, phone numbers, secrets and precise coordinates in free text."""
    if not text or not LoggingConfig.LOG_MASK_SENSITIVE:
        return text

    text = _EMAIL_RE.sub('[REDACTED_EMAIL]', text)
    text = _LATLON_RE.sub(
        lambda m: f"{mask_coordinate(float(m.group(1)))}, {mask_coordinate(float(m.group(2)))}",
        text,
    )
    text = _PHONE_RE.sub('[REDACTED_PHONE]', text)
    return _SECRET_RE.sub(r'\1=[REDACTED]', text)


def mask_user_id(user_id: str) -> str:
    """First 4 chars plus a short hash; short IDs pass through."""
    if not LoggingConfig.LOG_MASK_SENSITIVE or not user_id:
        return user_id

    if len(user_id) > 12:
        hashed = hashlib.sha256(user_id.encode()).hexdigest()[:8]
        return f"{user_id[:4]}...{hashed}"
    return user_id


def sanitize_message_text(text: str, max_length: int = 500) -> Optional[str]:
    """Truncate and mask an activity message for logging."""
    if not text:
        return None

    if len(text) > max_length:
        text = text[:max_length] + "..."

    return mask_sensitive_data(text)


class StructuredLogger:
    """Logger wrapper that turns keyword arguments into structured fields.

    ``bind`` returns a child carrying fixed fields, e.g. the masked worker ID
    of a tracking loop, so every line it emits can be filtered per worker.
    """

    def __init__(self, logger: logging.Logger, bound: Optional[Dict[str, Any]] = None):
        self.logger = logger
        self.bound = dict(bound or {})

    def bind(self, **fields: Any) -> "StructuredLogger":
        return StructuredLogger(self.logger, {**self.bound, **fields})

    def _get_extra(self, **kwargs: Any) -> Dict[str, Any]:
        extra = {"timestamp": datetime.now(timezone.utc).isoformat()}

        correlation_id = get_correlation_id()
        if correlation_id:
            extra["correlation_id"] = correlation_id

        extra.update(self.bound)
        extra.update(kwargs)
        return extra

    def debug(self, message: str, **kwargs: Any) -> None:
        self.logger.debug(message, extra=self._get_extra(**kwargs))

    def info(self, message: str, **kwargs: Any) -> None:
        self.logger.info(message, extra=self._get_extra(**kwargs))

    def warning(self, message: str, **kwargs: Any) -> None:
        self.logger.warning(message, extra=self._get_extra(**kwargs))

    def error(self, message: str, exc_info: bool = False, **kwargs: Any) -> None:
        self.logger.error(message, extra=self._get_extra(**kwargs), exc_info=exc_info)


def get_structured_logger(name: str) -> StructuredLogger:
    return StructuredLogger(get_logger(name))


@contextmanager
def log_timing(operation_name: str, logger: Optional[StructuredLogger] = None, **context: Any):
    """Time a block; warn when it exceeds LOG_SLOW_OPERATION_THRESHOLD_MS."""
    if logger is None:
        logger = get_structured_logger(__name__)

    start_time = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = round((time.perf_counter() - start_time) * 1000, 2)
        logger.debug(f"Completed {operation_name}", operation=operation_name, processing_time_ms=elapsed_ms, **context)

        threshold = LoggingConfig.LOG_SLOW_OPERATION_THRESHOLD_MS
        if elapsed_ms > threshold:
            logger.warning(
                f"Slow operation detected: {operation_name}",
                operation=operation_name,
                processing_time_ms=elapsed_ms,
                threshold_ms=threshold,
                **context
            )
