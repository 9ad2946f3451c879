"""
Inbound auth gate.

jwt_required() verifies the bearer access token and loads the user for every
request; roles_required() only inspects what jwt_required() attached.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import wraps

from flask import current_app, g, request

from models.user import User
from services.errors import (
    Forbidden,
    InvalidAccessToken,
    MissingToken,
    TokenError,
    Unauthorized,
    UserNotFound,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthContext:
    id: str
    email: str
    role: str


def extract_bearer_token(header: str | None) -> str:
    if not header or not header.startswith("Bearer "):
        raise MissingToken()
    token = header.split(" ", 1)[1].strip()
    if not token:
        raise MissingToken()
    return token


def check_role(context: AuthContext | None, *roles: str) -> AuthContext:
    """Pure role check against an already-verified context."""
    if context is None:
        raise Unauthorized()
    if context.role not in roles:
        raise Forbidden()
    return context


def jwt_required():
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            token = extract_bearer_token(request.headers.get("Authorization"))
            service = current_app.extensions["session_service"]
            try:
                payload = service.verify_access_token(token)
            except TokenError as e:
                logger.warning("Access token rejected: %s", e.code)
                if current_app.config.get("APP_ENV") == "prod":
                    raise InvalidAccessToken() from e
                raise InvalidAccessToken(f"{InvalidAccessToken.message}: {e.message}") from e

            # Tokens outlive deleted users, so the user must be re-read every time
            user = service.storage.get(User, payload.subject_id)
            if not user:
                raise UserNotFound()
            g.current_user = user
            g.auth = AuthContext(id=user.id, email=user.email, role=user.role)
            return fn(*args, **kwargs)

        return wrapper

    return decorator


def roles_required(*roles: str):
    """
    Allow access if the authenticated user holds ANY of the given roles.
    Stack below jwt_required(); this does not verify tokens itself.
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            check_role(getattr(g, "auth", None), *roles)
            return fn(*args, **kwargs)

        return wrapper

    return decorator
