"""API middleware: correlation ID, audit trail."""

import logging
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from billing_pipeline.core.context import correlation_id_ctx

logger = logging.getLogger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"
OPERATOR_HEADER = "X-Operator-ID"


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Generate or preserve correlation ID; attach to request.state, response header, and logging context."""

    async def dispatch(self, request: Request, call_next) -> Response:
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
        request.state.correlation_id = correlation_id
        token = correlation_id_ctx.set(correlation_id)
        try:
            response = await call_next(request)
        finally:
            correlation_id_ctx.reset(token)
        response.headers[CORRELATION_HEADER] = correlation_id
        return response


class AuditTriggerMiddleware(BaseHTTPMiddleware):
    """After response: log who called which admin operation and how it ended."""

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)
        logger.info(
            "request_audit",
            extra={
                "correlation_id": getattr(request.state, "correlation_id", None),
                "operator_id": request.headers.get(OPERATOR_HEADER),
                "path": request.url.path,
                "method": request.method,
                "status_code": response.status_code,
            },
        )
        return response
