"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in ehub/__init__.py with no default limits;
this module applies limits per route category.

Usage:
    from ehub.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

from flask import g, request as flask_request

logger = logging.getLogger(__name__)

WRITE_LIMIT = "60/minute"
READ_LIMIT = "200/minute"


def rate_limit_key():
    """Rate limit key: authenticated user id if available, else remote IP."""
    user_id = getattr(g, "current_user_id", None)
    if user_id:
        return f"user:{user_id}"
    return flask_request.remote_addr or "unknown"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per user, falling back to remote IP):
        - Workflow endpoints:      60/minute
        - Notification endpoints:  200/minute (polled by the dashboard)
        - Health check:            exempt

    Rate limiting is disabled in testing mode.
    """

    if app.config.get("TESTING") or not app.config.get("RATELIMIT_ENABLED", True):
        app.logger.info("Rate limiter disabled")
        return

    for bp_name in ("projects", "assignments"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(WRITE_LIMIT, key_func=rate_limit_key)(bp)

    bp = app.blueprints.get("notifications")
    if bp:
        limiter.limit(READ_LIMIT, key_func=rate_limit_key)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured: workflow %s, notifications %s", WRITE_LIMIT, READ_LIMIT,
    )
