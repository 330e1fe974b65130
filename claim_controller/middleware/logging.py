"""Logging middleware for request/response tracking."""

import time
import uuid
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from claim_controller.core.logging import logger
from claim_controller.core.metrics import request_latency


class LoggingMiddleware(BaseHTTPMiddleware):
    """Log every request and record its latency."""

    async def dispatch(self, request: Request, call_next):
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id

        start_time = time.time()
        extra = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "action": "http_request",
        }

        try:
            response = await call_next(request)
        except Exception as e:
            latency = time.time() - start_time
            request_latency.labels(method=request.method, endpoint=request.url.path, status="500").observe(latency)
            logger.error(
                f"{request.method} {request.url.path} - Exception: {e}",
                extra={**extra, "outcome": "error", "error": str(e), "latency_ms": int(latency * 1000)},
            )
            raise

        latency = time.time() - start_time
        # Label by route template, not raw path
        route = request.scope.get("route")
        endpoint = getattr(route, "path", request.url.path)
        request_latency.labels(
            method=request.method, endpoint=endpoint, status=str(response.status_code)
        ).observe(latency)

        logger.info(
            f"{request.method} {request.url.path} - {response.status_code}",
            extra={
                **extra,
                "outcome": "success" if response.status_code < 400 else "failure",
                "status_code": response.status_code,
                "latency_ms": int(latency * 1000),
            },
        )

        response.headers["X-Request-ID"] = request_id
        return response
