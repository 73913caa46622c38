import asyncio
import logging
import os
import sys
import time
import traceback
from contextvars import ContextVar
from datetime import datetime, timezone
from functools import wraps
from logging.handlers import RotatingFileHandler, TimedRotatingFileHandler
from typing import Any, Dict, Optional

from pythonjsonlogger import jsonlogger

from loginguard.config import settings

# Context variables for request tracking
request_id: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
actor_id: ContextVar[Optional[str]] = ContextVar("actor_id", default=None)

SERVICE_NAME = "loginguard-risk-engine"


class ContextualJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter that includes request context"""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)

        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["environment"] = settings.ENVIRONMENT
        log_record["service"] = SERVICE_NAME

        if request_id.get():
            log_record["request_id"] = request_id.get()
        if actor_id.get():
            log_record["actor_id"] = actor_id.get()

        if record.exc_info:
            log_record["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": traceback.format_exception(*record.exc_info),
            }

        if hasattr(record, "extra_fields"):
            log_record.update(record.extra_fields)


_configured = False


def configure_logging(force: bool = False) -> logging.Logger:
    """Install JSON handlers on the root logger once per process"""
    global _configured
    root_logger = logging.getLogger()
    if _configured and not force:
        return root_logger

    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    formatter = ContextualJsonFormatter(
        "%(asctime)s %(levelname)s %(name)s %(funcName)s:%(lineno)d %(message)s"
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler.setLevel(level)
    root_logger.addHandler(console_handler)

    if settings.LOG_TO_FILE:
        _setup_file_handlers(formatter)

    # Reduce sqlalchemy noise outside debugging sessions
    if not settings.DEBUG:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
        logging.getLogger("sqlalchemy.pool").setLevel(logging.WARNING)

    _configured = True
    return root_logger


def _setup_file_handlers(formatter):
    os.makedirs(settings.LOG_DIR, exist_ok=True)
    root_logger = logging.getLogger()

    app_handler = RotatingFileHandler(
        os.path.join(settings.LOG_DIR, "app.log"), maxBytes=10_000_000, backupCount=10
    )
    app_handler.setFormatter(formatter)
    app_handler.setLevel(logging.INFO)
    root_logger.addHandler(app_handler)

    error_handler = TimedRotatingFileHandler(
        os.path.join(settings.LOG_DIR, "error.log"),
        when="midnight",
        interval=1,
        backupCount=30,
    )
    error_handler.setFormatter(formatter)
    error_handler.setLevel(logging.ERROR)
    root_logger.addHandler(error_handler)

    # Security and audit trails are kept longer
    for name, backups in (("security", 90), ("audit", 365)):
        handler = TimedRotatingFileHandler(
            os.path.join(settings.LOG_DIR, f"{name}.log"),
            when="midnight",
            interval=1,
            backupCount=backups,
        )
        handler.setFormatter(formatter)
        named_logger = logging.getLogger(name)
        named_logger.addHandler(handler)
        named_logger.setLevel(logging.INFO)

    for name in ("performance", "access"):
        handler = RotatingFileHandler(
            os.path.join(settings.LOG_DIR, f"{name}.log"),
            maxBytes=5_000_000,
            backupCount=5,
        )
        handler.setFormatter(formatter)
        named_logger = logging.getLogger(name)
        named_logger.addHandler(handler)
        named_logger.setLevel(logging.INFO)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance. Use __name__ as the name parameter."""
    return logging.getLogger(name)


def log_function_call(include_result: bool = False, level: str = "DEBUG"):
    """
    Decorator to log start, end and failure of a coroutine or function.

    Arguments are never logged; fingerprints and tokens travel through them.
    """

    def decorator(func):
        logger = get_logger(func.__module__)
        log_level = getattr(logging, level.upper())

        def _finish(log_data, start_time, result=None):
            log_data.update(
                {
                    "action": "function_end",
                    "execution_time_seconds": round(time.time() - start_time, 4),
                    "status": "success",
                }
            )
            if include_result and result is not None:
                log_data["result_preview"] = str(result)[:200]
            logger.log(
                log_level, f"Completed {func.__name__}", extra={"extra_fields": log_data}
            )

        def _fail(log_data, start_time, e):
            log_data.update(
                {
                    "action": "function_error",
                    "execution_time_seconds": round(time.time() - start_time, 4),
                    "status": "error",
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                }
            )
            logger.error(
                f"Error in {func.__name__}: {str(e)}",
                extra={"extra_fields": log_data},
                exc_info=True,
            )

        @wraps(func)
        async def async_wrapper(*args, **kwargs):
            log_data = {"function": func.__name__, "action": "function_start"}
            start_time = time.time()
            logger.log(
                log_level, f"Starting {func.__name__}", extra={"extra_fields": log_data}
            )
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                _fail(log_data, start_time, e)
                raise
            _finish(log_data, start_time, result)
            return result

        @wraps(func)
        def sync_wrapper(*args, **kwargs):
            log_data = {"function": func.__name__, "action": "function_start"}
            start_time = time.time()
            logger.log(
                log_level, f"Starting {func.__name__}", extra={"extra_fields": log_data}
            )
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                _fail(log_data, start_time, e)
                raise
            _finish(log_data, start_time, result)
            return result

        return async_wrapper if asyncio.iscoroutinefunction(func) else sync_wrapper

    return decorator


# Security-specific logging functions
def log_security_event(
    event_type: str,
    user_id: Optional[str] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    severity: str = "medium",
):
    """Log security-related events"""
    security_logger = logging.getLogger("security")

    log_data = {
        "event_type": event_type,
        "ip_address": ip_address,
        "user_agent": user_agent,
        "severity": severity,
    }
    if user_id:
        log_data["target_user_id"] = user_id
    if details:
        log_data.update(details)

    security_logger.info(
        f"Security event: {event_type}", extra={"extra_fields": log_data}
    )


def log_audit_event(
    action: str,
    resource_type: str,
    resource_id: Optional[str] = None,
    old_values: Optional[Dict[str, Any]] = None,
    new_values: Optional[Dict[str, Any]] = None,
    actor: Optional[str] = None,
) -> None:
    """Log an attributable administrative change"""
    audit_logger = logging.getLogger("audit")
    log_data = {
        "action": action,
        "resource_type": resource_type,
        "resource_id": resource_id,
        "old_values": old_values,
        "new_values": new_values,
        "actor": actor,
        "occurred_at": datetime.now(timezone.utc).isoformat(),
    }
    audit_logger.info(f"Audit event: {action}", extra={"extra_fields": log_data})


def log_performance_metric(
    operation: str,
    duration_seconds: float,
    additional_metrics: Optional[Dict[str, Any]] = None,
):
    """Log performance metrics"""
    perf_logger = logging.getLogger("performance")

    log_data = {
        "operation": operation,
        "duration_seconds": round(duration_seconds, 4),
        "performance_category": "slow" if duration_seconds > 1.0 else "normal",
    }
    if additional_metrics:
        log_data.update(additional_metrics)

    perf_logger.info(
        f"Performance metric: {operation}", extra={"extra_fields": log_data}
    )


def log_api_access(
    method: str,
    path: str,
    status_code: int,
    response_time: float,
    ip_address: Optional[str] = None,
):
    """Log API access"""
    access_logger = logging.getLogger("access")

    log_data = {
        "http_method": method,
        "path": path,
        "status_code": status_code,
        "response_time_seconds": round(response_time, 4),
        "ip_address": ip_address,
    }
    access_logger.info(
        f"{method} {path} - {status_code}", extra={"extra_fields": log_data}
    )


class LogContext:
    """Context manager for setting request context"""

    def __init__(self, req_id: str = None, actor: str = None):
        self.request_id = req_id
        self.actor = actor
        self.tokens = []

    def __enter__(self):
        if self.request_id:
            self.tokens.append(request_id.set(self.request_id))
        if self.actor:
            self.tokens.append(actor_id.set(self.actor))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        for token in reversed(self.tokens):
            token.var.reset(token)
