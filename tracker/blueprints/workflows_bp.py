"""
Workflow configuration: states, workflows, transitions and task types.

Blueprint: workflows_bp
Prefix: /api/v1

Endpoints:
  GET/POST        /projects/<project_id>/states
  PUT/DELETE      /states/<state_id>
  GET/POST        /projects/<project_id>/workflows
  GET/DELETE      /workflows/<workflow_id>
  PUT             /workflows/<workflow_id>/steps
  POST            /workflows/<workflow_id>/transitions          -- from_state_id null = any state
  POST            /workflows/<workflow_id>/transitions/seed
  DELETE          /transitions/<transition_id>
  GET             /workflows/<workflow_id>/next-states?current_state_id=
  GET/POST        /projects/<project_id>/task-types
  PUT             /task-types/<task_type_id>/workflow
  GET             /tasks/<task_id>/next-states
"""

import logging

from flask import Blueprint, jsonify, request

from tracker.blueprints import json_body, require_project_role
from tracker.core.exceptions import NotFoundError
from tracker.models import db
from tracker.models.workflow import WorkflowTransition
from tracker.services import workflow_service
from tracker.services.task_service import get_task_or_404

logger = logging.getLogger(__name__)

workflows_bp = Blueprint("workflows", __name__, url_prefix="/api/v1")


def _workflow_project(workflow_id: int) -> int:
    return workflow_service.get_workflow_or_404(workflow_id).project_id


# ── States ────────────────────────────────────────────────────────────────

@workflows_bp.route("/projects/<int:project_id>/states", methods=["GET"])
def list_states_route(project_id):
    require_project_role(project_id, "member")
    states = [s.to_dict() for s in workflow_service.list_states(project_id)]
    return jsonify({"states": states}), 200


@workflows_bp.route("/projects/<int:project_id>/states", methods=["POST"])
def create_state_route(project_id):
    require_project_role(project_id, "admin")
    data = json_body()
    state = workflow_service.create_state(project_id, data.get("name"), data.get("position"))
    return jsonify(state), 201


@workflows_bp.route("/states/<int:state_id>", methods=["PUT"])
def update_state_route(state_id):
    require_project_role(workflow_service.get_state_or_404(state_id).project_id, "admin")
    return jsonify(workflow_service.update_state(state_id, json_body())), 200


@workflows_bp.route("/states/<int:state_id>", methods=["DELETE"])
def delete_state_route(state_id):
    require_project_role(workflow_service.get_state_or_404(state_id).project_id, "admin")
    workflow_service.delete_state(state_id)
    return "", 204


# ── Workflows ─────────────────────────────────────────────────────────────

@workflows_bp.route("/projects/<int:project_id>/workflows", methods=["GET"])
def list_workflows_route(project_id):
    require_project_role(project_id, "member")
    return jsonify({"workflows": workflow_service.list_workflows(project_id)}), 200


@workflows_bp.route("/projects/<int:project_id>/workflows", methods=["POST"])
def create_workflow_route(project_id):
    require_project_role(project_id, "admin")
    data = json_body()
    workflow = workflow_service.create_workflow(project_id, data.get("name"), data.get("state_ids") or [])
    if data.get("seed_transitions"):
        workflow_service.seed_linear_transitions(workflow["id"])
        workflow = workflow_service.get_workflow(workflow["id"])
    return jsonify(workflow), 201


@workflows_bp.route("/workflows/<int:workflow_id>", methods=["GET"])
def get_workflow_route(workflow_id):
    require_project_role(_workflow_project(workflow_id), "member")
    return jsonify(workflow_service.get_workflow(workflow_id)), 200


@workflows_bp.route("/workflows/<int:workflow_id>", methods=["DELETE"])
def delete_workflow_route(workflow_id):
    require_project_role(_workflow_project(workflow_id), "admin")
    workflow_service.delete_workflow(workflow_id)
    return "", 204


@workflows_bp.route("/workflows/<int:workflow_id>/steps", methods=["PUT"])
def set_steps_route(workflow_id):
    require_project_role(_workflow_project(workflow_id), "admin")
    state_ids = json_body().get("state_ids") or []
    return jsonify(workflow_service.set_workflow_steps(workflow_id, state_ids)), 200


# ── Transitions ───────────────────────────────────────────────────────────

@workflows_bp.route("/workflows/<int:workflow_id>/transitions", methods=["POST"])
def add_transition_route(workflow_id):
    require_project_role(_workflow_project(workflow_id), "admin")
    data = json_body()
    transition = workflow_service.add_transition(
        workflow_id, data.get("from_state_id"), data.get("to_state_id")
    )
    return jsonify(transition), 201


@workflows_bp.route("/workflows/<int:workflow_id>/transitions/seed", methods=["POST"])
def seed_transitions_route(workflow_id):
    require_project_role(_workflow_project(workflow_id), "admin")
    targets = json_body().get("any_state_targets", workflow_service.DEFAULT_ANY_STATE_TARGETS)
    created = workflow_service.seed_linear_transitions(workflow_id, targets)
    return jsonify({"created": created}), 201


@workflows_bp.route("/transitions/<int:transition_id>", methods=["DELETE"])
def remove_transition_route(transition_id):
    transition = db.session.get(WorkflowTransition, transition_id)
    if not transition:
        raise NotFoundError("WorkflowTransition", transition_id)
    require_project_role(_workflow_project(transition.workflow_id), "admin")
    workflow_service.remove_transition(transition_id)
    return "", 204


@workflows_bp.route("/workflows/<int:workflow_id>/next-states", methods=["GET"])
def workflow_next_states_route(workflow_id):
    require_project_role(_workflow_project(workflow_id), "member")
    current = request.args.get("current_state_id", type=int)
    return jsonify({"states": workflow_service.next_valid_states(workflow_id, current)}), 200


# ── Task types ────────────────────────────────────────────────────────────

@workflows_bp.route("/projects/<int:project_id>/task-types", methods=["GET"])
def list_task_types_route(project_id):
    require_project_role(project_id, "member")
    return jsonify({"task_types": workflow_service.list_task_types(project_id)}), 200


@workflows_bp.route("/projects/<int:project_id>/task-types", methods=["POST"])
def create_task_type_route(project_id):
    require_project_role(project_id, "admin")
    data = json_body()
    task_type = workflow_service.create_task_type(project_id, data.get("name"), data.get("workflow_id"))
    return jsonify(task_type), 201


@workflows_bp.route("/task-types/<int:task_type_id>/workflow", methods=["PUT"])
def set_task_type_workflow_route(task_type_id):
    task_type = workflow_service.get_task_type_or_404(task_type_id)
    require_project_role(task_type.project_id, "admin")
    workflow_id = json_body().get("workflow_id")
    return jsonify(workflow_service.set_task_type_workflow(task_type_id, workflow_id)), 200


@workflows_bp.route("/tasks/<int:task_id>/next-states", methods=["GET"])
def task_next_states_route(task_id):
    require_project_role(get_task_or_404(task_id).project_id, "member")
    return jsonify({"states": workflow_service.next_valid_states_for_task(task_id)}), 200
