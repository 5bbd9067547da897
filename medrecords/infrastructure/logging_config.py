"""Structured logging configuration.

This module provides structured logging with JSON formatting for unattended
runs (scheduled imports, log shipping) and human-readable formatting for
interactive use.

Security Impact:
    - Secrets are held as SecretStr and never reach a log record
    - Structured format lets override and ambiguity warnings be monitored
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional, TextIO

# Third-party loggers that are noisy at INFO
QUIET_LOGGERS = ("httpx", "httpcore")


class StructuredFormatter(logging.Formatter):
    """Structured JSON formatter: one JSON object per log line."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, "extra_fields"):
            log_data.update(record.extra_fields)

        return json.dumps(log_data, ensure_ascii=False, default=str)


def setup_logging(use_json: bool = False, log_level: str = "INFO", stream: Optional[TextIO] = None) -> None:
    """Setup application logging.

    Parameters:
        use_json: Use JSON formatting
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        stream: Output stream (defaults to stderr so CLI output stays clean)
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setLevel(level)

    if use_json:
        formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

    handler.setFormatter(formatter)
    root_logger.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    # ambiguity warnings issued through warnings.warn also reach the log
    logging.captureWarnings(True)
