"""
Ehub PMS
Blueprint helpers shared by the API blueprints.
"""

import logging

from flask import g, request
from werkzeug.exceptions import HTTPException

from ehub.core.exceptions import (
    AuthorizationError,
    ConcurrencyError,
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    OverAllocationError,
    ValidationError,
)
from ehub.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def pagination_params(default_limit=50, max_limit=200):
    """Read limit/offset query params.

    Query params:
        limit : max items (default 50, capped at max_limit)
        offset: starting position (default 0)

    Returns:
        (limit, offset)
    """
    try:
        limit = min(int(request.args.get("limit", default_limit)), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    return limit, offset


def current_user_id():
    """Acting user id, set by the JWT middleware."""
    return g.current_user_id


def json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def register_error_handlers(bp):
    """Map service exceptions onto HTTP responses for ``bp``."""

    @bp.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        return api_error(E.VALIDATION_INVALID, str(error), details=error.details)

    @bp.errorhandler(OverAllocationError)
    def _handle_over_allocation(error: OverAllocationError):
        return api_error(
            E.OVER_ALLOCATION, str(error),
            details={
                "field": error.field,
                "ceiling": float(error.ceiling),
                "requested": float(error.requested),
                "excess": float(error.excess),
            },
        )

    @bp.errorhandler(AuthorizationError)
    def _handle_forbidden(error: AuthorizationError):
        return api_error(E.FORBIDDEN, str(error))

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        return api_error(E.NOT_FOUND, str(error))

    @bp.errorhandler(InvalidTransitionError)
    def _handle_invalid_transition(error: InvalidTransitionError):
        details = {}
        if error.current_status:
            details["current_status"] = error.current_status
        if error.target_status:
            details["target_status"] = error.target_status
        return api_error(E.CONFLICT_STATE, str(error), details=details)

    @bp.errorhandler(ConflictError)
    def _handle_conflict(error: ConflictError):
        return api_error(E.CONFLICT_DUPLICATE, str(error), details={"field": error.field})

    @bp.errorhandler(ConcurrencyError)
    def _handle_concurrency(error: ConcurrencyError):
        return api_error(E.CONFLICT_CONCURRENT, str(error))

    @bp.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        if isinstance(error, HTTPException):
            return error
        logger.exception("Unexpected error in %s endpoint=%s", bp.name, request.endpoint)
        return api_error(E.INTERNAL, "Internal server error")

    return bp
