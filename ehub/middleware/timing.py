"""
Request timing middleware.

Stamps every request with an id and measures its duration:

    X-Request-ID            echoed from the client when well-formed, else generated
    X-Request-Duration-Ms   wall time spent in the app

Workflow writes (POST/PUT) are logged at INFO so assignment, work-log and
revenue activity is traceable per request; reads log at DEBUG.  Anything
slower than SLOW_REQUEST_MS is a WARNING.
"""

import logging
import re
import time
import uuid

from flask import Flask, g, request

logger = logging.getLogger(__name__)

_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9._-]{1,64}$")
_WRITE_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})

DEFAULT_SLOW_REQUEST_MS = 1000


def _incoming_request_id() -> str:
    supplied = request.headers.get("X-Request-ID", "")
    if _REQUEST_ID_RE.match(supplied):
        return supplied
    return uuid.uuid4().hex[:12]


def init_request_timing(app: Flask):
    """Register before/after hooks for request ids and timing."""
    slow_ms = app.config.get("SLOW_REQUEST_MS", DEFAULT_SLOW_REQUEST_MS)

    @app.before_request
    def _start_timer():
        g.request_start = time.perf_counter()
        g.request_id = _incoming_request_id()

    @app.after_request
    def _log_request(response):
        start = getattr(g, "request_start", None)
        if start is None:
            return response

        duration_ms = (time.perf_counter() - start) * 1000
        response.headers["X-Request-Duration-Ms"] = f"{duration_ms:.1f}"
        response.headers["X-Request-ID"] = g.request_id

        if request.path.startswith("/api/v1/health"):
            return response

        view_args = request.view_args or {}
        extra = {
            "method": request.method,
            "path": request.path,
            "status": response.status_code,
            "duration_ms": duration_ms,
            "remote_addr": request.remote_addr,
            "project_id": view_args.get("project_id"),
            "assignment_id": view_args.get("assignment_id"),
        }
        args = (request.method, request.path, response.status_code, duration_ms)
        if duration_ms > slow_ms:
            logger.warning("Slow request: %s %s %d (%.0fms)", *args, extra=extra)
        elif response.status_code >= 500:
            logger.error("Server error: %s %s %d (%.0fms)", *args, extra=extra)
        elif request.method in _WRITE_METHODS:
            logger.info("Workflow write: %s %s %d (%.0fms)", *args, extra=extra)
        else:
            logger.debug("Request: %s %s %d (%.0fms)", *args, extra=extra)

        return response
