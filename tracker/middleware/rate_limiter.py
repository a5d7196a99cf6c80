"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter. The Limiter
instance is created in tracker/__init__.py with no default limits; this
module applies limits per route category, keyed by actor when the request
carries one and by remote IP otherwise.

Usage:
    from tracker.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

from flask import g, request as flask_request

logger = logging.getLogger(__name__)

SETTINGS_LIMIT = "60/minute"
TASK_LIMIT = "200/minute"


def rate_limit_key():
    """Actor id when known, else remote IP."""
    actor_id = getattr(g, "actor_id", None)
    if actor_id is not None:
        return f"actor:{actor_id}"
    return flask_request.remote_addr or "unknown"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits:
        - Settings endpoints (fields, workflows, organizations, projects,
          invites, templates): 60/minute
        - Task endpoints: 200/minute
        - Health check: unlimited (app route, outside every blueprint)

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    for bp_name in ("fields", "workflows", "organizations", "projects", "invites", "templates"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(SETTINGS_LIMIT, key_func=rate_limit_key)(bp)

    bp = app.blueprints.get("tasks")
    if bp:
        limiter.limit(TASK_LIMIT, key_func=rate_limit_key)(bp)

    app.logger.info("Rate limiter configured — settings: %s, tasks: %s", SETTINGS_LIMIT, TASK_LIMIT)
