"""
Tasks and their custom field values.

Blueprint: tasks_bp
Prefix: /api/v1

Endpoints:
  GET/POST        /projects/<project_id>/tasks        -- List (filters: state_id, task_type_id, assignee_id) / create
  GET/PUT/DELETE  /tasks/<task_id>                    -- PUT accepts ?partial=true
  PUT             /tasks/<task_id>/field-values       -- Partial field value update

Reads and writes need project membership.
"""

import logging

from flask import Blueprint, jsonify, request

from tracker.blueprints import json_body, require_project_role
from tracker.services import task_service

logger = logging.getLogger(__name__)

tasks_bp = Blueprint("tasks", __name__, url_prefix="/api/v1")


def _task_project(task_id: int) -> int:
    return task_service.get_task_or_404(task_id).project_id


@tasks_bp.route("/projects/<int:project_id>/tasks", methods=["GET"])
def list_tasks_route(project_id):
    require_project_role(project_id, "member")
    tasks = task_service.list_tasks(
        project_id,
        state_id=request.args.get("state_id", type=int),
        task_type_id=request.args.get("task_type_id", type=int),
        assignee_id=request.args.get("assignee_id", type=int),
    )
    return jsonify({"tasks": tasks, "total": len(tasks)}), 200


@tasks_bp.route("/projects/<int:project_id>/tasks", methods=["POST"])
def create_task_route(project_id):
    actor_id, _ = require_project_role(project_id, "member")
    data = json_body()
    task = task_service.create_task(
        project_id=project_id,
        owner_id=actor_id,
        title=data.get("title"),
        task_type_id=data.get("task_type_id"),
        state_id=data.get("state_id"),
        assignee_id=data.get("assignee_id"),
        description=data.get("description"),
        field_values=data.get("field_values"),
    )
    return jsonify(task), 201


@tasks_bp.route("/tasks/<int:task_id>", methods=["GET"])
def get_task_route(task_id):
    require_project_role(_task_project(task_id), "member")
    return jsonify(task_service.get_task(task_id)), 200


@tasks_bp.route("/tasks/<int:task_id>", methods=["PUT"])
def update_task_route(task_id):
    require_project_role(_task_project(task_id), "member")
    partial = request.args.get("partial", "false").lower() == "true"
    result = task_service.update_task(task_id, json_body(), apply_partial=partial)
    return jsonify(result), 200


@tasks_bp.route("/tasks/<int:task_id>", methods=["DELETE"])
def delete_task_route(task_id):
    require_project_role(_task_project(task_id), "member")
    task_service.delete_task(task_id)
    return "", 204


@tasks_bp.route("/tasks/<int:task_id>/field-values", methods=["PUT"])
def set_field_values_route(task_id):
    require_project_role(_task_project(task_id), "member")
    values = json_body().get("field_values") or []
    return jsonify(task_service.set_task_field_values(task_id, values)), 200
