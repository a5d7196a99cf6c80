"""
Projects and project membership.

Blueprint: projects_bp
Prefix: /api/v1

Endpoints:
  GET/POST        /projects                                 -- Actor's projects / create (actor becomes owner;
                                                              optional template_id)
  GET/PUT/DELETE  /projects/<project_id>
  GET/POST        /projects/<project_id>/members
  PUT/DELETE      /projects/<project_id>/members/<user_id>
"""

import logging

from flask import Blueprint, jsonify

from tracker.blueprints import (
    current_actor,
    json_body,
    require_organization_role,
    require_project_role,
)
from tracker.core.exceptions import NotFoundError
from tracker.services import membership_service, project_service, template_service
from tracker.services.permission import ROLE_POLICY

logger = logging.getLogger(__name__)

projects_bp = Blueprint("projects", __name__, url_prefix="/api/v1")


def _target_role(project_id: int, user_id: int) -> str:
    role = membership_service.get_role(user_id, project_id=project_id)
    if role is None:
        raise NotFoundError("Project membership", f"{project_id}/{user_id}")
    return role


@projects_bp.route("/projects", methods=["GET"])
def list_projects_route():
    actor_id = current_actor()
    return jsonify({"projects": project_service.list_projects_for_user(actor_id)}), 200


@projects_bp.route("/projects", methods=["POST"])
def create_project_route():
    actor_id = current_actor()
    data = json_body()
    organization_id = data.get("organization_id")
    if organization_id is not None:
        require_organization_role(organization_id, "member")
    template_id = data.get("template_id")
    if template_id is not None:
        project = template_service.create_project_from_template(
            actor_id, data.get("name"), template_id,
            organization_id=organization_id, description=data.get("description"),
        )
    else:
        project = project_service.create_project(
            actor_id, data.get("name"), organization_id=organization_id, description=data.get("description")
        )
    return jsonify(project), 201


@projects_bp.route("/projects/<int:project_id>", methods=["GET"])
def get_project_route(project_id):
    require_project_role(project_id, "member")
    return jsonify(project_service.get_project(project_id)), 200


@projects_bp.route("/projects/<int:project_id>", methods=["PUT"])
def update_project_route(project_id):
    require_project_role(project_id, "admin")
    return jsonify(project_service.update_project(project_id, json_body())), 200


@projects_bp.route("/projects/<int:project_id>", methods=["DELETE"])
def delete_project_route(project_id):
    require_project_role(project_id, "owner")
    project_service.delete_project(project_id)
    return "", 204


@projects_bp.route("/projects/<int:project_id>/members", methods=["GET"])
def list_members_route(project_id):
    require_project_role(project_id, "member")
    return jsonify({"members": membership_service.list_project_members(project_id)}), 200


@projects_bp.route("/projects/<int:project_id>/members", methods=["POST"])
def add_member_route(project_id):
    actor_id, actor_role = require_project_role(project_id, "admin")
    data = json_body()
    user_id = data.get("user_id")
    role = data.get("role", "member")
    ROLE_POLICY.check_member_change(actor_id, actor_role, user_id, None, new_role=role)
    member = membership_service.add_project_member(project_id, user_id, role=role, added_by=actor_id)
    return jsonify(member), 201


@projects_bp.route("/projects/<int:project_id>/members/<int:user_id>", methods=["PUT"])
def change_member_role_route(project_id, user_id):
    actor_id, actor_role = require_project_role(project_id, "member")
    new_role = json_body().get("role")
    ROLE_POLICY.check_member_change(
        actor_id, actor_role, user_id, _target_role(project_id, user_id), new_role=new_role
    )
    member = membership_service.change_role(user_id, new_role, project_id=project_id)
    return jsonify(member), 200


@projects_bp.route("/projects/<int:project_id>/members/<int:user_id>", methods=["DELETE"])
def remove_member_route(project_id, user_id):
    actor_id, actor_role = require_project_role(project_id, "member")
    ROLE_POLICY.check_member_change(actor_id, actor_role, user_id, _target_role(project_id, user_id))
    membership_service.remove_member(user_id, project_id=project_id)
    return "", 204
