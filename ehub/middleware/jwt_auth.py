"""
JWT Auth Middleware: parses the bearer token and sets ``g.current_user_id``.

Every ``/api/v1/*`` route except health requires a valid access token.
Missing, expired or invalid tokens are answered with 401 before the view
runs.  Roles are never taken from the token; services load the user row.
"""

import logging

import jwt as pyjwt
from flask import g, request

from ehub.services.jwt_service import decode_access_token
from ehub.utils.errors import E, api_error

logger = logging.getLogger(__name__)

# Paths that skip JWT auth entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/health",
)


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.current_user_id = None

        path = request.path
        if not path.startswith("/api/v1/") or request.method == "OPTIONS":
            return None
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                return None

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return api_error(E.UNAUTHORIZED, "Missing bearer token")

        token = auth_header[7:]  # Strip "Bearer "
        try:
            payload = decode_access_token(token)
        except pyjwt.ExpiredSignatureError:
            return api_error(E.UNAUTHORIZED, "Token expired")
        except pyjwt.InvalidTokenError as exc:
            logger.info("Rejected bearer token on %s: %s", path, exc)
            return api_error(E.UNAUTHORIZED, "Invalid token")

        g.current_user_id = int(payload["sub"])
        return None
