"""
Domain errors for the session core.

Each error carries the HTTP status, a stable machine code and a message that is
safe to show to clients. Anything more specific belongs in the server log.
"""
from __future__ import annotations


class AuthError(Exception):
    status = 500
    code = "INTERNAL_ERROR"
    message = "An unexpected error occurred"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)
        if message:
            self.message = message


class ValidationError(AuthError):
    status = 400
    code = "VALIDATION_ERROR"
    message = "Invalid input"


class DuplicateEmail(AuthError):
    status = 400
    code = "DUPLICATE_EMAIL"
    message = "Email already in use"


class InvalidCredentials(AuthError):
    status = 401
    code = "INVALID_CREDENTIALS"
    message = "Invalid credentials"


class MissingToken(AuthError):
    status = 401
    code = "MISSING_TOKEN"
    message = "Access token is required"


class InvalidAccessToken(AuthError):
    status = 401
    code = "INVALID_ACCESS_TOKEN"
    message = "Invalid or expired access token"


class InvalidRefreshToken(AuthError):
    status = 401
    code = "INVALID_REFRESH_TOKEN"
    message = "Invalid refresh token"


class InvalidOrExpiredRefreshToken(AuthError):
    status = 401
    code = "INVALID_OR_EXPIRED_REFRESH_TOKEN"
    message = "Invalid or expired refresh token"


class Unauthorized(AuthError):
    status = 401
    code = "UNAUTHORIZED"
    message = "Authentication required"


class Forbidden(AuthError):
    status = 403
    code = "FORBIDDEN"
    message = "Insufficient role"


class UserNotFound(AuthError):
    status = 404
    code = "USER_NOT_FOUND"
    message = "User not found"


class RegistrationFailed(AuthError):
    status = 500
    code = "REGISTRATION_FAILED"
    message = "Registration failed"


class Unexpected(AuthError):
    status = 500
    code = "INTERNAL_ERROR"
    message = "An unexpected error occurred"


# Token codec failures


class TokenError(AuthError):
    status = 401
    code = "INVALID_TOKEN"
    message = "Invalid token"


class InvalidSignature(TokenError):
    code = "INVALID_SIGNATURE"
    message = "Invalid token signature"


class TokenExpired(TokenError):
    code = "TOKEN_EXPIRED"
    message = "Token expired"


class WrongKind(TokenError):
    code = "WRONG_TOKEN_KIND"
    message = "Wrong token type"
