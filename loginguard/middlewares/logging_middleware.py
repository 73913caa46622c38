import time
import uuid
from typing import Callable

from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from loginguard.utils.ip_address_finder import get_client_ip
from loginguard.utils.logging_config import (
    LogContext,
    get_logger,
    log_api_access,
    log_performance_metric,
    log_security_event,
)

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware to handle request/response logging and context management
    """

    def __init__(self, app: FastAPI, log_requests: bool = True):
        super().__init__(app)
        self.log_requests = log_requests

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        client_ip = get_client_ip(request)
        path = str(request.url.path)

        with LogContext(req_id=request_id):
            start_time = time.time()

            if self.log_requests:
                logger.debug(
                    f"Incoming request: {request.method} {path}",
                    extra={
                        "extra_fields": {
                            "http_method": request.method,
                            "path": path,
                            "client_ip": client_ip,
                            "action": "request_received",
                        }
                    },
                )

            try:
                response = await call_next(request)
            except Exception as e:
                logger.error(
                    f"Request failed: {request.method} {path}",
                    extra={
                        "extra_fields": {
                            "http_method": request.method,
                            "path": path,
                            "error_type": type(e).__name__,
                            "error_message": str(e),
                            "response_time_seconds": round(time.time() - start_time, 4),
                            "client_ip": client_ip,
                            "action": "request_failed",
                        }
                    },
                    exc_info=True,
                )
                raise

            response_time = time.time() - start_time
            log_api_access(
                method=request.method,
                path=path,
                status_code=response.status_code,
                response_time=response_time,
                ip_address=client_ip,
            )

            if response_time > 1.0:
                log_performance_metric(
                    operation=f"{request.method} {path}",
                    duration_seconds=response_time,
                    additional_metrics={"status_code": response.status_code},
                )

            # Admin surface probing
            if response.status_code in (401, 403) and "/admin/" in path:
                log_security_event(
                    event_type="unauthorized_access_attempt",
                    ip_address=client_ip,
                    user_agent=request.headers.get("user-agent"),
                    details={"path": path, "method": request.method},
                )

            response.headers[REQUEST_ID_HEADER] = request_id
            return response
