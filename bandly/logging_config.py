"""
BandLy client - Centralized Logging Configuration
Supports plain text (terminal) and JSON structured logging
"""

import logging
import sys
import json
import traceback
from datetime import datetime, timezone
from pathlib import Path
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, Optional
from contextvars import ContextVar


# Context variables for tracing
session_id_var: ContextVar[str] = ContextVar('session_id', default='')
user_email_var: ContextVar[str] = ContextVar('user_email', default='')


def get_session_id() -> str:
    """Get current analytics session ID from context"""
    return session_id_var.get() or ''


def set_session_id(session_id: str) -> None:
    """Set analytics session ID in context"""
    session_id_var.set(session_id)


def get_user_email() -> str:
    """Get current user email from context"""
    return user_email_var.get() or ''


def set_user_email(email: str) -> None:
    """Set current user email in context"""
    user_email_var.set(email)


_RESERVED_ATTRS = {
    'name', 'msg', 'args', 'created', 'filename', 'funcName',
    'levelname', 'levelno', 'lineno', 'module', 'msecs',
    'pathname', 'process', 'processName', 'relativeCreated',
    'stack_info', 'exc_info', 'exc_text', 'thread', 'threadName',
    'message', 'taskName', 'session_id', 'user_email',
}


class JSONFormatter(logging.Formatter):
    """
    JSON formatter for structured logging
    One object per line, easy to ship to a log aggregator
    """

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

        session_id = get_session_id()
        if session_id:
            log_data["session_id"] = session_id

        user_email = get_user_email()
        if user_email:
            log_data["user_email"] = user_email

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": traceback.format_exception(*record.exc_info) if record.exc_info[0] else None
            }

        # Add extra fields from record
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith('_'):
                log_data[key] = value

        return json.dumps(log_data, default=str)


class ContextualFormatter(logging.Formatter):
    """
    Readable formatter that includes the session id and user email
    """

    def format(self, record: logging.LogRecord) -> str:
        record.session_id = get_session_id() or '-'
        record.user_email = get_user_email() or '-'

        return super().format(record)


class BandlyLogger(logging.Logger):
    """
    Custom logger with convenience methods for structured logging
    """

    def log_request(self, method: str, path: str, status_code: int,
                    duration_ms: float, **kwargs) -> None:
        """Log HTTP request details"""
        self.debug(
            f"HTTP {method} {path} - {status_code} ({duration_ms:.2f}ms)",
            extra={
                "event_type": "http_request",
                "http_method": method,
                "http_path": path,
                "http_status": status_code,
                "duration_ms": duration_ms,
                **kwargs
            }
        )

    def log_auth_event(self, event: str, success: bool, user_email: str = None,
                       reason: str = None, **kwargs) -> None:
        """Log authentication events"""
        level = logging.INFO if success else logging.WARNING
        self.log(
            level,
            f"Auth {event}: {'success' if success else 'failed'}" +
            (f" - {user_email}" if user_email else "") +
            (f" - {reason}" if reason else ""),
            extra={
                "event_type": "auth",
                "auth_event": event,
                "auth_success": success,
                "failure_reason": reason,
                **kwargs
            }
        )

    def log_error_with_context(self, error: Exception, context: str = None,
                               **kwargs) -> None:
        """Log error with full context"""
        self.error(
            f"Error in {context}: {type(error).__name__}: {str(error)}",
            exc_info=True,
            extra={
                "event_type": "error",
                "error_type": type(error).__name__,
                "error_message": str(error),
                "error_context": context,
                **kwargs
            }
        )


def get_logger(name: str) -> BandlyLogger:
    """Get a logger under the bandly hierarchy that has the BandlyLogger helpers"""
    logging.setLoggerClass(BandlyLogger)
    logger = logging.getLogger(name)
    if not isinstance(logger, BandlyLogger):
        logger.__class__ = BandlyLogger
    return logger


def setup_logging(level: str = "WARNING", log_file: Optional[str] = None,
                  json_logs: bool = False) -> BandlyLogger:
    """Configure the root 'bandly' logger"""

    logger = get_logger("bandly")
    logger.setLevel(getattr(logging, level.upper(), logging.WARNING))

    # Clear existing handlers
    logger.handlers.clear()

    if json_logs:
        formatter: logging.Formatter = JSONFormatter()
        file_formatter: logging.Formatter = formatter
    else:
        detailed_format = (
            "%(asctime)s | %(levelname)-8s | "
            "[%(session_id)s] [%(user_email)s] | "
            "%(name)s:%(funcName)s:%(lineno)d | %(message)s"
        )
        simple_format = "%(levelname)-8s | %(message)s"
        formatter = ContextualFormatter(simple_format)
        file_formatter = ContextualFormatter(detailed_format)

    # Console goes to stderr so command output stays clean
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        path = Path(log_file).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            path,
            maxBytes=5242880,  # 5MB
            backupCount=3
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(file_formatter)
        logger.addHandler(file_handler)
        # File handler gets everything, console stays at the configured level
        console_handler.setLevel(logger.level)
        logger.setLevel(logging.DEBUG)

    # Suppress noisy loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    logger.debug(
        "Logging initialized",
        extra={"log_level": level, "json_logging": json_logs}
    )

    return logger


__all__ = [
    'setup_logging',
    'get_logger',
    'get_session_id',
    'set_session_id',
    'get_user_email',
    'set_user_email',
    'BandlyLogger',
    'JSONFormatter',
    'ContextualFormatter',
]
