"""
JWT Service: access-token verification.

Tokens are issued by the identity service; this module only verifies them.
``generate_access_token`` exists for tooling and tests that need a token
signed with the same secret.

Algorithm: HS256

Token payload (access):
{
    "sub": "<user_id>",
    "role": "supervisor",
    "type": "access",
    "iat": <issued_at>,
    "exp": <expires_at>,
    "jti": <unique_id>
}
"""

import uuid
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app


# ─── Defaults ────────────────────────────────────────────────
DEFAULT_ACCESS_EXPIRES = 900       # 15 minutes
ALGORITHM = "HS256"


def _get_secret():
    """Get the JWT secret key from app config."""
    return current_app.config.get("JWT_SECRET_KEY") or current_app.config["SECRET_KEY"]


def _get_access_expires():
    return current_app.config.get("JWT_ACCESS_EXPIRES", DEFAULT_ACCESS_EXPIRES)


def generate_access_token(user_id: int, role: str | None = None) -> str:
    """Generate a short-lived access token (``sub`` is the user id as a string)."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "type": "access",
        "iat": now,
        "exp": now + timedelta(seconds=_get_access_expires()),
        "jti": str(uuid.uuid4()),
    }
    if role is not None:
        payload["role"] = role
    return jwt.encode(payload, _get_secret(), algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict:
    """
    Decode and verify an access token.

    Returns the payload dict on success.
    Raises jwt.InvalidTokenError (or a subclass such as ExpiredSignatureError)
    on failure, including a wrong token type or a non-numeric subject.
    """
    payload = jwt.decode(token, _get_secret(), algorithms=[ALGORITHM])
    if payload.get("type") != "access":
        raise jwt.InvalidTokenError(f"Expected access token, got {payload.get('type')}")
    if not str(payload.get("sub", "")).isdigit():
        raise jwt.InvalidTokenError("Token subject is not a user id")
    return payload
