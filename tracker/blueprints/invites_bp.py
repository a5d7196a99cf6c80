"""
Project invites.

Blueprint: invites_bp
Prefix: /api/v1

Endpoints:
  GET/POST  /projects/<project_id>/invites      -- List / issue (admin); POST returns the token
  DELETE    /invites/<invite_id>                -- Revoke (admin of the invite's project)
  POST      /invites/<token>/accept             -- Invitee joins the project
  POST      /invites/<token>/decline
"""

import logging

from flask import Blueprint, jsonify, request

from tracker.blueprints import current_actor, json_body, require_project_role
from tracker.services import invite_service
from tracker.services.permission import ROLE_POLICY

logger = logging.getLogger(__name__)

invites_bp = Blueprint("invites", __name__, url_prefix="/api/v1")


@invites_bp.route("/projects/<int:project_id>/invites", methods=["GET"])
def list_invites_route(project_id):
    require_project_role(project_id, "admin")
    invites = invite_service.list_invites(project_id, status=request.args.get("status"))
    return jsonify({"invites": invites}), 200


@invites_bp.route("/projects/<int:project_id>/invites", methods=["POST"])
def create_invite_route(project_id):
    actor_id, actor_role = require_project_role(project_id, "admin")
    data = json_body()
    role = data.get("role", "member")
    ROLE_POLICY.check_member_change(actor_id, actor_role, None, None, new_role=role)
    invite = invite_service.create_invite(project_id, actor_id, data.get("email"), role=role)
    return jsonify(invite), 201


@invites_bp.route("/invites/<int:invite_id>", methods=["DELETE"])
def revoke_invite_route(invite_id):
    invite = invite_service.get_invite_or_404(invite_id)
    require_project_role(invite.project_id, "admin")
    invite_service.revoke_invite(invite_id)
    return "", 204


@invites_bp.route("/invites/<token>/accept", methods=["POST"])
def accept_invite_route(token):
    member = invite_service.accept_invite(token, current_actor())
    return jsonify(member), 201


@invites_bp.route("/invites/<token>/decline", methods=["POST"])
def decline_invite_route(token):
    return jsonify(invite_service.decline_invite(token, current_actor())), 200
