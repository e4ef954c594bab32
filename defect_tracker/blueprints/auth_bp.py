"""
Auth Blueprint — account registration and JWT login.

  POST /api/v1/auth/register    — username + password (+ role) → user + access token
  POST /api/v1/auth/login       — username + password → access token
  GET  /api/v1/auth/me          — current identity
"""

from flask import Blueprint, jsonify

from defect_tracker.blueprints import json_body
from defect_tracker.middleware.jwt_auth import current_identity, require_auth
from defect_tracker.middleware.logging_config import request_logger
from defect_tracker.services import auth_service
from defect_tracker.services.jwt_service import token_response
from defect_tracker.utils.helpers import db_commit_or_error

auth_bp = Blueprint("auth", __name__, url_prefix="/api/v1/auth")


@auth_bp.route("/register", methods=["POST"])
def register():
    """
    Body: { "username": "...", "password": "...", "role": "engineer" }

    An unknown or missing role registers the account as an observer.
    """
    data = json_body()
    user = auth_service.register(
        data.get("username"), data.get("password"), data.get("role"),
        log=request_logger(),
    )
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"user": user.to_dict(), **token_response(user.id, user.role)}), 201


@auth_bp.route("/login", methods=["POST"])
def login():
    """
    Body: { "username": "...", "password": "..." }
    """
    data = json_body()
    user, tokens = auth_service.login(data.get("username"), data.get("password"),
                                      log=request_logger())
    return jsonify({"user": user.to_dict(), **tokens}), 200


@auth_bp.route("/me", methods=["GET"])
@require_auth
def me():
    return jsonify(current_identity()), 200
