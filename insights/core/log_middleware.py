"""
Request context middleware.

Binds request_id / correlation_id for every request. Requests that enqueue
pipeline work (POST under /api/analysis) also get a job_id, which the
orchestrator and summary scheduler reuse for the queued job, so the request
log line and the worker's log lines share one id. A feedback item id in the
path is bound as feedback_id.
"""
from __future__ import annotations

import logging
import re
import time
import uuid
from contextvars import Token
from typing import List, Tuple

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from insights.core.structured_logging import (
    correlation_id_var,
    feedback_id_var,
    job_id_var,
    request_id_var,
)

logger = logging.getLogger(__name__)

ENQUEUE_PREFIX = "/api/analysis/"
_FEEDBACK_PATH = re.compile(r"^/api/analysis/feedback/(?P<item_id>[^/]+)$")


def new_job_id() -> str:
    return uuid.uuid4().hex[:12]


class CorrelationMiddleware(BaseHTTPMiddleware):
    """Bind request, correlation and (for enqueues) job context for every request."""

    async def dispatch(self, request: Request, call_next) -> Response:
        req_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        corr_id = request.headers.get("x-correlation-id") or uuid.uuid4().hex
        path = request.url.path

        tokens: List[Tuple[object, Token]] = [
            (request_id_var, request_id_var.set(req_id)),
            (correlation_id_var, correlation_id_var.set(corr_id)),
        ]

        job_id = None
        if request.method == "POST" and path.startswith(ENQUEUE_PREFIX):
            job_id = request.headers.get("x-job-id") or new_job_id()
            tokens.append((job_id_var, job_id_var.set(job_id)))

        match = _FEEDBACK_PATH.match(path)
        if match:
            tokens.append((feedback_id_var, feedback_id_var.set(match.group("item_id"))))

        start = time.perf_counter()
        response = None
        try:
            response = await call_next(request)
        finally:
            logger.info(
                "request_completed",
                extra={
                    "http.method": request.method,
                    "http.path": path,
                    "http.status_code": response.status_code if response else None,
                    "duration_ms": round((time.perf_counter() - start) * 1000, 2),
                },
            )
            for var, token in reversed(tokens):
                var.reset(token)

        response.headers["x-request-id"] = req_id
        response.headers["x-correlation-id"] = corr_id
        if job_id:
            response.headers["x-job-id"] = job_id
        return response
