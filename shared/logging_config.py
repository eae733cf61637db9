# shared/logging_config.py
"""
Centralized logging configuration for the payment reconciler
Provides structured logging with correlation IDs
"""

import os
import json
import uuid
from contextvars import ContextVar
from typing import Any, Dict, Optional
from datetime import datetime, timezone
import logging
import logging.config
from fastapi import Request

# Correlation ID shared across async operations of one request
_correlation_id: ContextVar[Optional[str]] = ContextVar('correlation_id', default=None)

# LogRecord attributes that are not user supplied extras
_RESERVED_ATTRS = frozenset(vars(logging.LogRecord('', 0, '', 0, '', (), None))) | {'message', 'asctime'}

_SENSITIVE_FIELDS = (
    'password', 'secret', 'token', 'authorization',
    'client_secret', 'refresh_token', 'access_token', 'api_key'
)


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging"""

    def format(self, record):
        """Format log record as JSON"""
        log_entry = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno
        }

        # Add correlation ID if available
        correlation_id = get_correlation_id()
        if correlation_id:
            log_entry['correlation_id'] = correlation_id

        # Add extra fields
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith('_'):
                log_entry[key] = value

        # Add exception info if present
        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def setup_logging_config():
    """Setup centralized logging configuration"""
    log_level = os.getenv('LOG_LEVEL', 'INFO').upper()
    log_format = os.getenv('LOG_FORMAT', 'json')  # json or text

    if log_format == 'json':
        formatter_config = {
            '()': JSONFormatter
        }
    else:
        formatter_config = {
            'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        }

    config = {
        'version': 1,
        'disable_existing_loggers': False,
        'formatters': {
            'default': formatter_config
        },
        'handlers': {
            'console': {
                'class': 'logging.StreamHandler',
                'level': log_level,
                'formatter': 'default',
                'stream': 'ext://sys.stdout'
            }
        },
        'root': {
            'level': log_level,
            'handlers': ['console']
        },
        'loggers': {
            'uvicorn': {
                'level': 'INFO',
                'handlers': ['console'],
                'propagate': False
            },
            'uvicorn.access': {
                'level': 'WARNING',
                'handlers': ['console'],
                'propagate': False
            },
            'httpx': {
                'level': 'WARNING'
            }
        }
    }

    logging.config.dictConfig(config)


def get_logger(name: str) -> logging.Logger:
    """
    Get configured logger instance

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured logger
    """
    return logging.getLogger(name)


def sanitize_log_data(data: Dict[str, Any]) -> Dict[str, Any]:
    """Remove sensitive information from log data"""
    sanitized = dict(data)
    for key in sanitized:
        if any(field in key.lower() for field in _SENSITIVE_FIELDS):
            sanitized[key] = "***REDACTED***"
    return sanitized


def set_correlation_id(correlation_id: str = None) -> str:
    """
    Set correlation ID for current request

    Args:
        correlation_id: Correlation ID to set (generates if None)

    Returns:
        The correlation ID that was set
    """
    if not correlation_id:
        correlation_id = str(uuid.uuid4())
    _correlation_id.set(correlation_id)
    return correlation_id


def get_correlation_id() -> Optional[str]:
    """Get correlation ID for current request"""
    return _correlation_id.get()


def clear_correlation_id():
    """Clear correlation ID for current context"""
    _correlation_id.set(None)


async def correlation_id_middleware(request: Request, call_next):
    """
    FastAPI middleware to handle correlation IDs

    Args:
        request: FastAPI request
        call_next: Next middleware/endpoint

    Returns:
        Response with correlation ID header
    """
    correlation_id = set_correlation_id(request.headers.get('X-Correlation-ID'))

    try:
        response = await call_next(request)
        response.headers['X-Correlation-ID'] = correlation_id
        return response

    finally:
        clear_correlation_id()

# Initialize logging on module import
setup_logging_config()
