# Overview: Request decorators and error mapping for API routes.

from functools import wraps

from flask import current_app, g, jsonify, request

from .extensions import db
from .services.errors import (
    InvariantViolation,
    NotFoundError,
    OperationError,
)
from .services.tenant_service import TenantAccessError, bind_tenant


def require_tenant(f):
    """
    Resolve the tenant for this request and inject it as `scope`.

    MULTI-TENANT: The upstream auth layer sets the tenant header (default
    X-Tenant-Id) after authenticating the caller. The view receives a
    TenantScope keyword argument; nothing tenant-related is stored in g.

    Sets g.actor_user_id from the optional actor header for attribution.

    SECURITY: Returns 401 if the header is missing or malformed, or names
    an unknown or inactive organization.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw_tenant = request.headers.get(current_app.config["TENANT_HEADER"])
        if not raw_tenant:
            return jsonify({"error": "Tenant context required"}), 401

        try:
            scope = bind_tenant(raw_tenant)
        except TenantAccessError as e:
            current_app.logger.warning("Tenant resolution failed for %s: %s", request.path, e)
            return jsonify({"error": str(e)}), 401

        # Every transaction of this request runs with the tenant bound
        scope.activate()

        raw_actor = request.headers.get(current_app.config["ACTOR_HEADER"])
        try:
            g.actor_user_id = int(raw_actor) if raw_actor else None
        except ValueError:
            return jsonify({"error": "Invalid actor header"}), 400

        return f(*args, scope=scope, **kwargs)

    return decorated_function


def error_response(e: OperationError):
    """
    Map a service error to a JSON response.

    - NotFoundError: 404
    - InvariantViolation: 409 (body carries `retryable`)
    - other PreconditionError / ValidationError: 400
    - any other retryable OperationError: 409
    """
    if isinstance(e, NotFoundError):
        status = 404
    elif isinstance(e, InvariantViolation) or e.retryable:
        status = 409
    else:
        status = 400
    return jsonify(e.to_dict()), status


def internal_error(action: str):
    db.session.rollback()
    current_app.logger.exception("Failed to %s", action)
    return jsonify({"error": "Internal server error"}), 500
