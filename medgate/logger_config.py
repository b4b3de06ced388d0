"""
Logging Configuration

JSON or coloured-text logging for the gating service. The audit trail gets its
own logger (and, with file logging on, its own rotating file) so that security
events survive independently of application log retention.
"""

import logging
import logging.handlers
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from pythonjsonlogger import jsonlogger

AUDIT_LOGGER_NAME = "medgate.audit"
AUDIT_FALLBACK_LOGGER_NAME = "medgate.audit.fallback"

# Request-scoped fields copied into JSON records when passed via ``extra=``
CONTEXT_FIELDS = ("user_id", "session_id", "step_id", "ip_address")

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
TEXT_FORMAT_VERBOSE = "%(asctime)s - %(name)s - %(levelname)s - %(module)s:%(funcName)s:%(lineno)d - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class CustomJSONFormatter(jsonlogger.JsonFormatter):
    """JSON formatter adding timestamp, level, source location and request context"""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)

        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["location"] = f"{record.module}:{record.funcName}:{record.lineno}"

        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_record[field] = value

        log_record["application"] = "medgate"
        log_record["environment"] = os.getenv("ENVIRONMENT", "development")


class ColoredFormatter(logging.Formatter):
    """Colored console formatter for local development"""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record):
        original = record.levelname
        color = self.COLORS.get(original)
        if color:
            record.levelname = f"{color}{original}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = original


def _formatter(log_format: str, verbose: bool = False, colored: bool = False) -> logging.Formatter:
    if log_format == "json":
        return CustomJSONFormatter("%(timestamp)s %(level)s %(name)s %(message)s")
    pattern = TEXT_FORMAT_VERBOSE if verbose else TEXT_FORMAT
    if colored:
        return ColoredFormatter(pattern, datefmt=DATE_FORMAT)
    return logging.Formatter(pattern, datefmt=DATE_FORMAT)


def _rotating_handler(path: str, level: int, max_bytes: int, backup_count: int) -> logging.Handler:
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")
    handler.setLevel(level)
    return handler


def setup_logging(
    log_level: str = "INFO",
    log_file: str = "medgate.log",
    log_format: str = "json",
    max_bytes: int = 10485760,  # 10MB
    backup_count: int = 5,
    enable_console: bool = True,
    enable_file: bool = True,
    audit_log_file: Optional[str] = None,
) -> logging.Logger:
    """
    Setup logging for the gating service

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Path to the application log; errors also go to ``<name>_errors.log``
        log_format: Format type ('json' or 'text')
        max_bytes: Maximum log file size before rotation
        backup_count: Number of backup files to keep
        enable_console: Enable console logging
        enable_file: Enable file logging
        audit_log_file: Path of the audit trail file; defaults to ``<name>_audit.log``

    Returns:
        Configured root logger
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, log_level.upper()))
    root.handlers = []

    if enable_console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logging.INFO)
        console_handler.setFormatter(_formatter(log_format, colored=True))
        root.addHandler(console_handler)

    audit_logger = logging.getLogger(AUDIT_LOGGER_NAME)
    audit_logger.handlers = []
    audit_logger.setLevel(logging.INFO)

    if enable_file:
        file_handler = _rotating_handler(log_file, logging.DEBUG, max_bytes, backup_count)
        file_handler.setFormatter(_formatter(log_format, verbose=True))
        root.addHandler(file_handler)

        error_handler = _rotating_handler(
            log_file.replace(".log", "_errors.log"), logging.ERROR, max_bytes, backup_count
        )
        error_handler.setFormatter(_formatter(log_format, verbose=True))
        root.addHandler(error_handler)

        # Audit lines are already JSON documents
        audit_handler = _rotating_handler(
            audit_log_file or log_file.replace(".log", "_audit.log"), logging.INFO, max_bytes, backup_count
        )
        audit_handler.setFormatter(logging.Formatter("%(message)s"))
        audit_logger.addHandler(audit_handler)

    # Suppress noisy third-party loggers
    logging.getLogger("mysql.connector").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    root.info(f"Logging initialized: level={log_level}, format={log_format}, file={log_file if enable_file else None}")

    return root


def setup_logging_from_settings(settings) -> logging.Logger:
    """Configure logging from a Settings instance"""
    return setup_logging(
        log_level=settings.LOG_LEVEL,
        log_file=settings.LOG_FILE,
        log_format=settings.LOG_FORMAT,
        max_bytes=settings.LOG_MAX_BYTES,
        backup_count=settings.LOG_BACKUP_COUNT,
        enable_file=settings.ENABLE_FILE_LOGS,
        audit_log_file=settings.AUDIT_LOG_FILE,
    )
