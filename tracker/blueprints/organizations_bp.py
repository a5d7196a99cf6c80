"""
Organizations and organization membership.

Blueprint: organizations_bp
Prefix: /api/v1

Endpoints:
  POST            /organizations                              -- Create; actor becomes owner
  GET/PUT/DELETE  /organizations/<organization_id>            -- DELETE deactivates
  POST            /organizations/<organization_id>/members    -- Add a user
  PUT/DELETE      /organizations/<organization_id>/members/<user_id>
  GET             /users/me/organization
"""

import logging

from flask import Blueprint, jsonify

from tracker.blueprints import current_actor, json_body, require_organization_role
from tracker.core.exceptions import NotFoundError
from tracker.services import membership_service
from tracker.services.permission import ROLE_POLICY

logger = logging.getLogger(__name__)

organizations_bp = Blueprint("organizations", __name__, url_prefix="/api/v1")

_ORG_ATTRS = ("description", "domain", "website_url", "billing_email", "timezone")


def _target_role(organization_id: int, user_id: int) -> str:
    role = membership_service.get_role(user_id, organization_id=organization_id)
    if role is None:
        raise NotFoundError("Organization membership", f"{organization_id}/{user_id}")
    return role


@organizations_bp.route("/organizations", methods=["POST"])
def create_organization_route():
    actor_id = current_actor()
    data = json_body()
    org = membership_service.create_organization(
        actor_id,
        data.get("name"),
        data.get("slug"),
        **{k: data[k] for k in _ORG_ATTRS if k in data},
    )
    return jsonify(org), 201


@organizations_bp.route("/organizations/<int:organization_id>", methods=["GET"])
def get_organization_route(organization_id):
    require_organization_role(organization_id, "readonly")
    return jsonify(membership_service.get_organization_with_members(organization_id)), 200


@organizations_bp.route("/organizations/<int:organization_id>", methods=["PUT"])
def update_organization_route(organization_id):
    require_organization_role(organization_id, "admin")
    return jsonify(membership_service.update_organization(organization_id, json_body())), 200


@organizations_bp.route("/organizations/<int:organization_id>", methods=["DELETE"])
def deactivate_organization_route(organization_id):
    require_organization_role(organization_id, "owner")
    return jsonify(membership_service.deactivate_organization(organization_id)), 200


@organizations_bp.route("/organizations/<int:organization_id>/members", methods=["POST"])
def add_member_route(organization_id):
    actor_id, actor_role = require_organization_role(organization_id, "admin")
    data = json_body()
    user_id = data.get("user_id")
    role = data.get("role", "member")
    ROLE_POLICY.check_member_change(actor_id, actor_role, user_id, None, new_role=role)
    member = membership_service.add_user_to_organization(
        user_id, organization_id, role=role, invited_by=actor_id
    )
    return jsonify(member), 201


@organizations_bp.route("/organizations/<int:organization_id>/members/<int:user_id>", methods=["PUT"])
def change_member_role_route(organization_id, user_id):
    actor_id, actor_role = require_organization_role(organization_id, "readonly")
    new_role = json_body().get("role")
    ROLE_POLICY.check_member_change(
        actor_id, actor_role, user_id, _target_role(organization_id, user_id), new_role=new_role
    )
    member = membership_service.change_role(user_id, new_role, organization_id=organization_id)
    return jsonify(member), 200


@organizations_bp.route("/organizations/<int:organization_id>/members/<int:user_id>", methods=["DELETE"])
def remove_member_route(organization_id, user_id):
    actor_id, actor_role = require_organization_role(organization_id, "readonly")
    ROLE_POLICY.check_member_change(actor_id, actor_role, user_id, _target_role(organization_id, user_id))
    membership_service.remove_member(user_id, organization_id=organization_id)
    return "", 204


@organizations_bp.route("/users/me/organization", methods=["GET"])
def my_organization_route():
    actor_id = current_actor()
    return jsonify({"organization": membership_service.get_organization_for_user(actor_id)}), 200
