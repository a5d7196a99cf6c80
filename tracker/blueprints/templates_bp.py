"""
Project templates.

Blueprint: templates_bp
Prefix: /api/v1

Endpoints:
  GET     /templates                           -- Any authenticated actor
  GET     /templates/<template_id>             -- With states, workflows, task types, fields
  DELETE  /templates/<template_id>             -- Creator only
  POST    /projects/<project_id>/template      -- Save a project's configuration (admin)

Projects are created from a template through POST /projects with ``template_id``.
"""

import logging

from flask import Blueprint, jsonify

from tracker.blueprints import current_actor, json_body, require_project_role
from tracker.core.exceptions import AuthorizationError
from tracker.services import template_service

logger = logging.getLogger(__name__)

templates_bp = Blueprint("templates", __name__, url_prefix="/api/v1")


@templates_bp.route("/templates", methods=["GET"])
def list_templates_route():
    current_actor()
    return jsonify({"templates": template_service.list_templates()}), 200


@templates_bp.route("/templates/<int:template_id>", methods=["GET"])
def get_template_route(template_id):
    current_actor()
    return jsonify(template_service.get_template(template_id)), 200


@templates_bp.route("/templates/<int:template_id>", methods=["DELETE"])
def delete_template_route(template_id):
    actor_id = current_actor()
    template = template_service.get_template_or_404(template_id)
    if template.created_by != actor_id:
        raise AuthorizationError("Only the template's creator can delete it", actor_id=actor_id)
    template_service.delete_template(template_id)
    return "", 204


@templates_bp.route("/projects/<int:project_id>/template", methods=["POST"])
def save_as_template_route(project_id):
    actor_id, _ = require_project_role(project_id, "admin")
    data = json_body()
    template = template_service.create_template_from_project(
        project_id,
        data.get("name"),
        description=data.get("description"),
        icon=data.get("icon"),
        created_by=actor_id,
    )
    return jsonify(template), 201
