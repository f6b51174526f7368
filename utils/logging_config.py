"""
Structured logging configuration and utilities
"""

import logging
import logging.handlers
import json
import traceback
from datetime import datetime
from pathlib import Path
from typing import Optional
from contextlib import contextmanager
import streamlit as st

from config.app_config import AppConfig, get_config


_RESERVED_RECORD_FIELDS = {
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname',
    'filename', 'module', 'lineno', 'funcName', 'created',
    'msecs', 'relativeCreated', 'thread', 'threadName',
    'processName', 'process', 'getMessage', 'exc_info',
    'exc_text', 'stack_info', 'taskName'
}


class StructuredFormatter(logging.Formatter):
    """
    Custom formatter that outputs structured JSON logs
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as structured JSON"""

        log_data = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        # Add exception information if present
        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": traceback.format_exception(*record.exc_info)
            }

        # Add extra fields from record
        extra_fields = {
            key: value for key, value in record.__dict__.items()
            if key not in _RESERVED_RECORD_FIELDS
        }

        if extra_fields:
            log_data["extra"] = extra_fields

        return json.dumps(log_data, ensure_ascii=False, default=str)


class StreamlitLogHandler(logging.Handler):
    """
    Log handler that surfaces warnings and errors in the Streamlit page
    """

    def emit(self, record: logging.LogRecord):
        try:
            if record.levelno >= logging.ERROR:
                st.error(record.getMessage())
            elif record.levelno >= logging.WARNING:
                st.warning(record.getMessage())
            else:
                st.caption(record.getMessage())
        except Exception:
            self.handleError(record)


def setup_logging(config: Optional[AppConfig] = None) -> logging.Logger:
    """
    Set up structured logging for the application

    Returns:
        logging.Logger: Configured root logger
    """
    config = config or get_config()
    level = getattr(logging, config.logging.level.upper(), logging.INFO)

    if config.logging.enable_file_logging:
        Path(config.logging.log_file).parent.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)

    if config.debug:
        # Human-readable format for development
        console_handler.setFormatter(logging.Formatter(
            config.logging.format + ' [%(filename)s:%(lineno)d]'
        ))
    else:
        console_handler.setFormatter(StructuredFormatter())

    root_logger.addHandler(console_handler)

    if config.logging.enable_file_logging:
        file_handler = logging.handlers.RotatingFileHandler(
            config.logging.log_file,
            maxBytes=10*1024*1024,  # 10MB
            backupCount=5
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(StructuredFormatter())
        root_logger.addHandler(file_handler)

    if config.debug and config.environment == "development":
        streamlit_handler = StreamlitLogHandler()
        streamlit_handler.setLevel(logging.WARNING)
        root_logger.addHandler(streamlit_handler)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)

    return root_logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger with the specified name

    Args:
        name: Logger name (typically __name__)

    Returns:
        logging.Logger: Configured logger
    """
    return logging.getLogger(name)


@contextmanager
def log_execution_time(logger: logging.Logger, operation: str, **extra_fields):
    """
    Context manager to log execution time of operations

    Args:
        logger: Logger instance
        operation: Description of the operation
        **extra_fields: Additional fields to include in log
    """
    start_time = datetime.now()

    try:
        logger.debug(f"Starting {operation}", extra={
            "operation": operation,
            **extra_fields
        })

        yield

        duration = (datetime.now() - start_time).total_seconds()
        logger.debug(f"Completed {operation}", extra={
            "operation": operation,
            "duration_seconds": duration,
            "status": "success",
            **extra_fields
        })

    except Exception as e:
        duration = (datetime.now() - start_time).total_seconds()
        logger.warning(f"Failed {operation}: {e}", extra={
            "operation": operation,
            "duration_seconds": duration,
            "status": "error",
            "error_type": type(e).__name__,
            **extra_fields
        })
        raise


def log_conversation_event(logger: logging.Logger, event_type: str, conversation_id: Optional[str], **details):
    """
    Log conversation-related events

    Args:
        logger: Logger instance
        event_type: Type of event (e.g., "created", "loaded", "deleted")
        conversation_id: Conversation identifier
        **details: Additional event details
    """
    logger.info(f"Conversation {event_type}: {conversation_id}", extra={
        "event_type": "conversation_event",
        "conversation_event_type": event_type,
        "conversation_id": conversation_id,
        **details
    })


_logger_setup = False


def initialize_logging(config: Optional[AppConfig] = None) -> logging.Logger:
    """Configure logging once per process"""
    global _logger_setup

    if not _logger_setup:
        setup_logging(config)
        _logger_setup = True

    return logging.getLogger()
