from __future__ import annotations

from flask import Blueprint, request, jsonify, g, current_app

from models.schemas.user import (
    PasswordChangeSchema,
    ProfileUpdateSchema,
    RoleUpdateSchema,
    UserOutSchema,
)
from services.errors import ValidationError
from utils.decorators import jwt_required, roles_required

bp = Blueprint("users", __name__)

profile_update_schema = ProfileUpdateSchema()
password_change_schema = PasswordChangeSchema()
role_update_schema = RoleUpdateSchema()
user_out_schema = UserOutSchema()


def _service():
    return current_app.extensions["session_service"]


@bp.get("/users/me")
@jwt_required()
def me():
    """
    Get current user info.
    ---
    tags:
      - Users
    security:
      - Bearer: []
    responses:
      200:
        description: OK
      401:
        description: Unauthorized
    """
    return jsonify({"success": True, "data": user_out_schema.dump(g.current_user)}), 200


@bp.patch("/users/me")
@jwt_required()
def update_me():
    """
    Update name and/or email of the current user.
    ---
    tags:
      - Users
    security:
      - Bearer: []
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             name: { type: string }
             email: { type: string }
    responses:
      200: { description: OK }
      400: { description: Email already in use }
    """
    payload = request.get_json(silent=True) or {}
    data = profile_update_schema.load(payload)
    user = _service().update_profile(g.auth.id, name=data.get("name"), email=data.get("email"))
    return jsonify(
        {
            "success": True,
            "message": "Profile updated successfully",
            "data": user_out_schema.dump(user),
        }
    ), 200


@bp.put("/users/me/password")
@jwt_required()
def change_password():
    """
    Change the current user's password.
    ---
    tags:
      - Users
    security:
      - Bearer: []
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             currentPassword: { type: string }
             newPassword: { type: string }
             confirmPassword: { type: string }
    responses:
      200: { description: OK }
      400: { description: Validation error }
      401: { description: Current password is incorrect }
    """
    payload = request.get_json(silent=True) or {}
    data = password_change_schema.load(payload)
    confirm = data.get("confirmPassword")
    if confirm is not None and confirm != data["newPassword"]:
        raise ValidationError("New passwords do not match")
    _service().change_password(g.auth.id, data["currentPassword"], data["newPassword"])
    return jsonify({"success": True, "message": "Password updated successfully"}), 200


@bp.put("/users/<user_id>/role")
@jwt_required()
@roles_required("admin")
def set_role(user_id: str):
    """
    Admin-only: set the role of a user.
    Body: { "role": "admin" }
    ---
    tags:
      - Users
    security:
      - Bearer: []
    consumes:
      - application/json
    parameters:
      -  in: path
         name: user_id
         type: string
         required: true
      -  in: body
         name: body
         schema:
           type: object
           properties:
             role: { type: string }
    responses:
      200: { description: OK }
      403: { description: Insufficient role }
      404: { description: User not found }
    """
    payload = request.get_json(silent=True) or {}
    data = role_update_schema.load(payload)
    user = _service().set_role(user_id, data["role"])
    return jsonify({"success": True, "data": user_out_schema.dump(user)}), 200
