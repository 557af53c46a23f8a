"""
Structured JSON logging for the shipment tracking service.

Every record carries the service identity and, while a request is being
handled, the request id, correlation id and authenticated user id taken
from context variables set by ``RequestLoggingMiddleware`` and the GraphQL
context getter.
"""

import json
import logging
import logging.handlers
import re
import sys
import time
import traceback
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

request_id_var: ContextVar[Optional[str]] = ContextVar('request_id', default=None)
correlation_id_var: ContextVar[Optional[str]] = ContextVar('correlation_id', default=None)
user_id_var: ContextVar[Optional[str]] = ContextVar('user_id', default=None)

_service = {"name": "shiptrack", "environment": "development", "version": "1.0.0"}


class StructuredFormatter(logging.Formatter):
    """JSON formatter, one object per line."""

    def format(self, record: logging.LogRecord) -> str:
        log_obj: Dict[str, Any] = {
            "@timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": _service["name"],
            "environment": _service["environment"],
            "version": _service["version"],
        }

        trace_context = _trace_context()
        if trace_context:
            log_obj["trace"] = trace_context

        log_obj["location"] = {
            "file": record.pathname,
            "line": record.lineno,
            "function": record.funcName,
        }

        if record.exc_info and record.exc_info[0] is not None:
            log_obj["error"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "stacktrace": traceback.format_exception(*record.exc_info),
            }

        if hasattr(record, 'extra_fields'):
            log_obj["custom"] = record.extra_fields

        if hasattr(record, 'duration_ms'):
            log_obj["performance"] = {"duration_ms": record.duration_ms}

        return json.dumps(log_obj, default=str)


def _trace_context() -> Optional[Dict[str, str]]:
    context = {
        "request_id": request_id_var.get(),
        "correlation_id": correlation_id_var.get(),
        "user_id": user_id_var.get(),
    }
    context = {k: v for k, v in context.items() if v}
    return context or None


class SecurityFilter(logging.Filter):
    """Redact values that follow sensitive keys in the rendered message."""

    SENSITIVE_FIELDS = ('password', 'token', 'secret', 'authorization', 'cookie')
    _pattern = re.compile(
        r"(?i)\b(%s)(\w*)(['\"]?\s*[:=]\s*['\"]?)([^\s,'\"}]+)" % "|".join(SENSITIVE_FIELDS)
    )

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = self._pattern.sub(r"\1\2\3***REDACTED***", message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def setup_logging(
    service_name: str,
    level: str = "INFO",
    environment: str = "development",
    version: str = "1.0.0",
    log_file: Optional[str] = None,
) -> None:
    """
    Install the JSON handler on the root logger.

    Args:
        service_name: Name reported in every record
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        environment: Deployment environment label
        version: Service version label
        log_file: Optional path for a rotating file handler
    """
    _service.update(name=service_name, environment=environment, version=version)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    root_logger.handlers = []

    formatter = StructuredFormatter()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(SecurityFilter())
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=10485760,  # 10MB
            backupCount=5
        )
        file_handler.setFormatter(formatter)
        file_handler.addFilter(SecurityFilter())
        root_logger.addHandler(file_handler)

    logging.getLogger('uvicorn.access').setLevel(logging.WARNING)
    logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)

    root_logger.info(
        "Logging initialized",
        extra={'extra_fields': {'service': service_name, 'level': level}}
    )


class LoggerAdapter(logging.LoggerAdapter):
    """Adapter that folds keyword context into ``extra_fields``."""

    def process(self, msg, kwargs):
        fields = kwargs.pop('fields', None)
        if fields:
            extra = kwargs.setdefault('extra', {})
            extra.setdefault('extra_fields', {}).update(fields)
        return msg, kwargs


def get_logger(name: str) -> LoggerAdapter:
    return LoggerAdapter(logging.getLogger(name), {})


def set_request_context(
    request_id: Optional[str] = None,
    correlation_id: Optional[str] = None,
    user_id: Optional[str] = None
) -> None:
    if request_id:
        request_id_var.set(request_id)
    if correlation_id:
        correlation_id_var.set(correlation_id)
    if user_id:
        user_id_var.set(user_id)


def generate_request_id() -> str:
    return str(uuid.uuid4())


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Log every request with its duration and echo the request id back
    in the ``X-Request-ID`` response header.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get('X-Request-ID') or generate_request_id()
        tokens = [
            request_id_var.set(request_id),
            correlation_id_var.set(request.headers.get('X-Correlation-ID')),
            user_id_var.set(None),
        ]
        logger = get_logger(__name__)
        start_time = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            logger.error(
                f"Request failed: {request.method} {request.url.path}",
                exc_info=True,
                fields={
                    'method': request.method,
                    'path': request.url.path,
                    'duration_ms': (time.perf_counter() - start_time) * 1000,
                },
            )
            raise
        else:
            logger.info(
                f"Request completed: {request.method} {request.url.path}",
                fields={
                    'method': request.method,
                    'path': request.url.path,
                    'status_code': response.status_code,
                    'duration_ms': (time.perf_counter() - start_time) * 1000,
                },
            )
            response.headers['X-Request-ID'] = request_id
            return response
        finally:
            for var, token in zip((request_id_var, correlation_id_var, user_id_var), tokens):
                var.reset(token)
