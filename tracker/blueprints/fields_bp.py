"""
Custom field definitions and their assignment to task types.

Blueprint: fields_bp
Prefix: /api/v1

Endpoints:
  GET/POST        /projects/<project_id>/fields               -- List/define fields
  GET/PUT/DELETE  /fields/<field_id>                          -- Single definition
  GET             /task-types/<task_type_id>/fields           -- Assigned fields, form order
  POST/DELETE     /task-types/<task_type_id>/fields/<field_id> -- Assign/unassign

Reads need project membership; mutations need admin.
"""

import logging

from flask import Blueprint, jsonify

from tracker.blueprints import json_body, require_project_role
from tracker.services import field_registry

logger = logging.getLogger(__name__)

fields_bp = Blueprint("fields", __name__, url_prefix="/api/v1")


def _field_project(field_id: int) -> int:
    return field_registry.get_field_or_404(field_id).project_id


def _task_type_project(task_type_id: int) -> int:
    return field_registry.get_task_type_or_404(task_type_id).project_id


@fields_bp.route("/projects/<int:project_id>/fields", methods=["GET"])
def list_fields_route(project_id):
    require_project_role(project_id, "member")
    fields = field_registry.list_fields(project_id)
    return jsonify({"fields": fields, "total": len(fields)}), 200


@fields_bp.route("/projects/<int:project_id>/fields", methods=["POST"])
def define_field_route(project_id):
    require_project_role(project_id, "admin")
    data = json_body()
    field = field_registry.define_field(
        project_id=project_id,
        name=data.get("name"),
        input_type=data.get("input_type", "text"),
        is_required=data.get("is_required", False),
        options=data.get("options"),
        default_value=data.get("default_value"),
    )
    return jsonify(field), 201


@fields_bp.route("/fields/<int:field_id>", methods=["GET"])
def get_field_route(field_id):
    require_project_role(_field_project(field_id), "member")
    return jsonify(field_registry.get_field(field_id)), 200


@fields_bp.route("/fields/<int:field_id>", methods=["PUT"])
def update_field_route(field_id):
    require_project_role(_field_project(field_id), "admin")
    return jsonify(field_registry.update_field(field_id, json_body())), 200


@fields_bp.route("/fields/<int:field_id>", methods=["DELETE"])
def delete_field_route(field_id):
    require_project_role(_field_project(field_id), "admin")
    field_registry.delete_field(field_id)
    return "", 204


@fields_bp.route("/task-types/<int:task_type_id>/fields", methods=["GET"])
def task_type_fields_route(task_type_id):
    require_project_role(_task_type_project(task_type_id), "member")
    return jsonify({"fields": field_registry.fields_for_task_type(task_type_id)}), 200


@fields_bp.route("/task-types/<int:task_type_id>/fields/<int:field_id>", methods=["POST"])
def assign_field_route(task_type_id, field_id):
    require_project_role(_task_type_project(task_type_id), "admin")
    return jsonify(field_registry.assign_field_to_task_type(task_type_id, field_id)), 200


@fields_bp.route("/task-types/<int:task_type_id>/fields/<int:field_id>", methods=["DELETE"])
def unassign_field_route(task_type_id, field_id):
    require_project_role(_task_type_project(task_type_id), "admin")
    removed = field_registry.unassign_field_from_task_type(task_type_id, field_id)
    return jsonify({"removed": removed}), 200
