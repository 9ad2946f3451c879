"""
Authentication blueprint:
- POST /auth/register
- POST /auth/login
- POST /auth/refresh
- POST /auth/logout

The implementation:
- Uses argon2 for password hashing (via utils.security)
- Issues short-lived access tokens and rotating refresh tokens (JWTs, one secret per kind)
- Returns the access token in the body; the refresh token only travels in an HTTP-only cookie
- Keeps exactly one refresh record per user so login/refresh overwrite and logout revokes it
"""
from __future__ import annotations

import logging

from flask import Blueprint, request, jsonify, g, current_app

from models.schemas.user import RegisterSchema, LoginSchema, UserOutSchema
from services.errors import InvalidRefreshToken
from utils.decorators import jwt_required

logger = logging.getLogger(__name__)

bp = Blueprint("auth", __name__, url_prefix="/auth")

register_schema = RegisterSchema()
login_schema = LoginSchema()
user_out_schema = UserOutSchema()


def _service():
    return current_app.extensions["session_service"]


def _session_response(result, message: str, status: int):
    resp = jsonify(
        {
            "success": True,
            "message": message,
            "data": {
                "accessToken": result.access_token,
                "user": user_out_schema.dump(result.user),
            },
        }
    )
    resp.status_code = status
    cfg = current_app.config
    resp.set_cookie(
        cfg["REFRESH_COOKIE_NAME"],
        result.refresh_token,
        max_age=int(cfg["REFRESH_TOKEN_EXPIRES"].total_seconds()),
        httponly=True,
        secure=cfg["REFRESH_COOKIE_SECURE"],
        samesite=cfg["REFRESH_COOKIE_SAMESITE"],
        path="/",
    )
    return resp


@bp.post("/register")
def register():
    """
    Register a new user and start a session.
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      - in: body
        name: body
        schema:
          type: object
          required: [email, password, name]
          properties:
            email: { type: string, format: email }
            password: { type: string, minLength: 8 }
            name: { type: string }
    responses:
      201:
        description: Created; refresh token set as HTTP-only cookie
      400:
        description: Validation error or email already in use
      422:
        description: Malformed payload
    """
    payload = request.get_json(silent=True) or {}
    data = register_schema.load(payload)
    result = _service().register(data["email"], data["password"], data["name"])
    return _session_response(result, "User registered successfully", 201)


@bp.post("/login")
def login():
    """
    Login: returns an access token, sets the refresh token cookie
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           required: [email, password]
           properties:
             email: { type: string }
             password: { type: string }
    responses:
      200:
        description: OK
      401:
        description: Invalid credentials
    """
    payload = request.get_json(silent=True) or {}
    data = login_schema.load(payload)
    result = _service().login(data["email"], data["password"])
    return _session_response(result, "Login successful", 200)


@bp.post("/refresh")
def refresh():
    """
    Exchange the refresh token for a new token pair (rotation).
    The token is read from the cookie, or from { "refreshToken": "<token>" } as fallback.
    ---
    tags:
      - Auth
    parameters:
      -  in: body
         name: body
         required: false
         schema:
           type: object
           properties:
             refreshToken: { type: string }
    responses:
      200:
        description: Tokens refreshed; cookie rotated
      401:
        description: Missing, invalid or expired refresh token
    """
    token = request.cookies.get(current_app.config["REFRESH_COOKIE_NAME"])
    if not token:
        payload = request.get_json(silent=True)
        if isinstance(payload, dict):
            token = payload.get("refreshToken")
    if not token or not isinstance(token, str):
        raise InvalidRefreshToken("Refresh token is required")
    result = _service().refresh(token)
    return _session_response(result, "Tokens refreshed successfully", 200)


@bp.post("/logout")
@jwt_required()
def logout():
    """
    Logout: revokes the refresh record and clears the cookie
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    responses:
      200:
        description: Logged out
      401:
        description: Unauthorized
    """
    user_id = g.auth.id
    _service().logout(user_id)
    resp = jsonify({"success": True, "message": "Logged out successfully"})
    resp.delete_cookie(
        current_app.config["REFRESH_COOKIE_NAME"],
        path="/",
        httponly=True,
        secure=current_app.config["REFRESH_COOKIE_SECURE"],
        samesite=current_app.config["REFRESH_COOKIE_SAMESITE"],
    )
    return resp, 200
