"""Logging and health plumbing used by the app assembly."""

from .health import HealthStatus, ServiceHealth
from .logging_config import RequestLoggingMiddleware, get_logger, setup_logging

__all__ = ["HealthStatus", "ServiceHealth", "RequestLoggingMiddleware", "get_logger", "setup_logging"]
