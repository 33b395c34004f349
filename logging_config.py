"""Centralized logging configuration.

This module provides:
- PlainFormatter for human-readable stderr output
- JSONFormatter for structured logging (one JSON object per line)
- setup_logging() to configure the root logger once at startup
"""

import json
import logging
import os
import re
import sys
from typing import Optional


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def __init__(self, service_name: str = None):
        super().__init__()
        self.service_name = service_name or "oauth-strategies"

    def format(self, record: logging.LogRecord) -> str:
        # Extract tag from message if present: [TAG] message
        tag = None
        message = record.getMessage()
        tag_match = re.match(r'\[([A-Z0-9_]+)\]\s*(.*)', message)
        if tag_match:
            tag = tag_match.group(1)
            message = tag_match.group(2)

        # Build structured log entry
        log_entry = {
            "service": self.service_name,
            "time": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "tag": tag,
            "message": message,
            "module": record.module,
            "extra": {
                "function": record.funcName,
                "line": record.lineno,
            }
        }

        # Add exception info if present
        if record.exc_info:
            log_entry["extra"]["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry)


class PlainFormatter(logging.Formatter):
    """Plain text formatter for stderr output (local debugging)."""

    def __init__(self):
        super().__init__(
            fmt='%(asctime)s [%(levelname)s] %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )


def setup_logging(
    service_name: str = None,
    json_output: Optional[bool] = None,
    level: Optional[str] = None,
) -> logging.Logger:
    """Configure the root logger.

    Args:
        service_name: Name attached to structured log entries.
        json_output: Emit JSON lines instead of plain text. Defaults to the
            LOG_FORMAT environment variable ("json" or "plain").
        level: Log level name. Defaults to LOG_LEVEL or INFO.

    Returns:
        Configured root logger.
    """
    service_name = service_name or os.getenv("SERVICE_NAME", "oauth-strategies")
    if json_output is None:
        json_output = os.getenv("LOG_FORMAT", "plain").lower() == "json"
    level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()

    # Get root logger and clear existing handlers
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(level)
    if json_output:
        stderr_handler.setFormatter(JSONFormatter(service_name))
    else:
        stderr_handler.setFormatter(PlainFormatter())
    root_logger.addHandler(stderr_handler)

    # Suppress noisy HTTP client logs (token and discovery requests use httpx)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info(f"[STARTUP] Logging configured for {service_name} (format: {'json' if json_output else 'plain'})")

    return root_logger
