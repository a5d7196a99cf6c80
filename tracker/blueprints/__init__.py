"""
Shared blueprint plumbing — actor resolution, role gates, error mapping.

The upstream authentication layer sets a trusted ``X-User-Id`` header; it
is read once per request into ``g.actor_id``. Handlers gate mutations with
``require_project_role`` / ``require_organization_role`` (both consult
``ROLE_POLICY``), then call a service. Service exceptions are mapped to
HTTP responses app-wide here, so no route catches them itself.
"""

import logging

from flask import abort, g, request

from tracker.core.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from tracker.models import db
from tracker.models.project import Project
from tracker.services.membership_service import get_organization_or_404, get_role
from tracker.services.permission import ROLE_POLICY
from tracker.utils.errors import E, api_error

logger = logging.getLogger(__name__)

ACTOR_HEADER = "X-User-Id"


# ── Actor ─────────────────────────────────────────────────────────────────

def init_actor_context(app):
    """Resolve ``g.actor_id`` from the trusted header before anything else runs."""

    @app.before_request
    def _load_actor():
        raw = request.headers.get(ACTOR_HEADER)
        try:
            g.actor_id = int(raw) if raw else None
        except ValueError:
            g.actor_id = None


def current_actor() -> int:
    """The acting user's id; aborts with 401 when the request carries none."""
    actor_id = getattr(g, "actor_id", None)
    if actor_id is None:
        abort(401)
    return actor_id


def json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


# ── Role gates ────────────────────────────────────────────────────────────

def require_project_role(project_id: int, required_role: str) -> tuple[int, str]:
    """Check the actor's project role; returns ``(actor_id, role)``."""
    actor_id = current_actor()
    if not db.session.get(Project, project_id):
        raise NotFoundError("Project", project_id)
    role = get_role(actor_id, project_id=project_id)
    ROLE_POLICY.require(role, required_role, actor_id=actor_id)
    return actor_id, role


def require_organization_role(organization_id: int, required_role: str) -> tuple[int, str]:
    """Check the actor's organization role; returns ``(actor_id, role)``."""
    actor_id = current_actor()
    get_organization_or_404(organization_id)
    role = get_role(actor_id, organization_id=organization_id)
    ROLE_POLICY.require(role, required_role, actor_id=actor_id)
    return actor_id, role


# ── Error mapping ─────────────────────────────────────────────────────────

def register_error_handlers(app):
    """Map the exception taxonomy to HTTP statuses for every blueprint."""

    @app.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        return api_error(E.VALIDATION_INVALID, error.message, details=error.details)

    @app.errorhandler(ConflictError)
    def _handle_conflict(error: ConflictError):
        return api_error(E.CONFLICT_DUPLICATE, error.message)

    @app.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        return api_error(E.NOT_FOUND, str(error))

    @app.errorhandler(AuthorizationError)
    def _handle_forbidden(error: AuthorizationError):
        logger.info("Forbidden: actor=%s needs %s", error.actor_id, error.required_role)
        return api_error(E.FORBIDDEN, error.message)

    @app.errorhandler(401)
    def _unauthorized(e):
        return api_error(E.UNAUTHORIZED, f"{ACTOR_HEADER} header is required")

    @app.errorhandler(404)
    def _not_found(e):
        return {"error": "Not found", "path": request.path}, 404

    @app.errorhandler(405)
    def _method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(429)
    def _rate_limited(e):
        return api_error(E.RATE_LIMITED, "Too many requests", details={"retry_after": e.description})

    @app.errorhandler(500)
    def _server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return api_error(E.INTERNAL, "Internal server error")
