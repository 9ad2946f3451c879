"""
Session lifecycle: register, login, refresh rotation, logout, access verification.

Per user the session moves Anonymous -> Authenticated -> Revoked. The only
server-side session state is the user's refresh record; access tokens are
verified statelessly and are not revocable before they expire.
"""
from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from functools import cached_property

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from models.user import User
from services.errors import (
    DuplicateEmail,
    InvalidCredentials,
    InvalidOrExpiredRefreshToken,
    InvalidRefreshToken,
    RegistrationFailed,
    TokenError,
    Unexpected,
    UserNotFound,
    ValidationError,
)
from utils.security import (
    ACCESS,
    REFRESH,
    TokenCodec,
    TokenPayload,
    hash_password,
    make_password_hasher,
    token_digest,
    utcnow,
    verify_password,
)

logger = logging.getLogger(__name__)


@dataclass
class AuthResult:
    access_token: str
    refresh_token: str
    user: User


def normalize_email(email) -> str:
    if not isinstance(email, str):
        return ""
    return email.strip().lower()


def _is_email_conflict(err: IntegrityError) -> bool:
    message = str(getattr(err, "orig", err)).lower()
    return "email" in message and ("unique" in message or "duplicate" in message)


class SessionService:
    def __init__(self, storage, codec: TokenCodec, password_min_length: int = 8,
                 allowed_roles=("user", "admin"), hasher=None):
        self.storage = storage
        self.codec = codec
        self.password_min_length = password_min_length
        self.allowed_roles = tuple(allowed_roles)
        self.hasher = hasher or make_password_hasher()

    @classmethod
    def from_config(cls, storage, config) -> "SessionService":
        return cls(
            storage,
            TokenCodec.from_config(config),
            password_min_length=config.get("PASSWORD_MIN_LENGTH", 8),
            allowed_roles=config.get("ALLOWED_ROLES", ("user", "admin")),
            hasher=make_password_hasher(config.get("ARGON2_TIME_COST")),
        )

    # -- lifecycle -------------------------------------------------------

    def register(self, email, password, name) -> AuthResult:
        email = normalize_email(email)
        if not email:
            raise ValidationError("Email is required")
        self._check_password(password)
        if not isinstance(name, str) or not name.strip():
            raise ValidationError("Name is required")

        logger.info("Registering new user")
        user = User(
            email=email,
            name=name.strip(),
            password_hash=hash_password(password, self.hasher),
        )
        try:
            self.storage.new(user)
            self.storage.flush()
            result = self._start_session(user)
            self.storage.save()
        except IntegrityError as err:
            self.storage.rollback()
            if _is_email_conflict(err):
                logger.warning("Registration rejected: email already in use")
                raise DuplicateEmail() from err
            logger.exception("Registration failed on integrity error")
            raise RegistrationFailed() from err
        except SQLAlchemyError as err:
            self.storage.rollback()
            logger.exception("Registration failed")
            raise RegistrationFailed() from err

        logger.info("User registered: %s", user.id)
        return result

    def login(self, email, password) -> AuthResult:
        email = normalize_email(email)
        if not email or not isinstance(password, str) or not password:
            raise InvalidCredentials()

        user = self.storage.get_user_by_email(email)
        # Unknown email and wrong password must look the same to the caller, timing included
        password_hash = user.password_hash if user is not None else self._dummy_hash
        matched = verify_password(password, password_hash, self.hasher)
        if user is None or not matched:
            logger.warning("Login failed for %s", user.id if user else "unknown user")
            raise InvalidCredentials()

        try:
            result = self._start_session(user)
            self.storage.save()
        except SQLAlchemyError as err:
            self.storage.rollback()
            logger.exception("Login failed to persist session for %s", user.id)
            raise Unexpected() from err
        logger.info("User logged in: %s", user.id)
        return result

    def refresh(self, presented_refresh_token) -> AuthResult:
        if not presented_refresh_token:
            raise InvalidRefreshToken("Refresh token is required")
        try:
            payload = self.codec.verify(presented_refresh_token, REFRESH)
        except TokenError as err:
            logger.warning("Refresh rejected at codec stage: %s", err.code)
            raise InvalidRefreshToken() from err

        now = utcnow()
        presented_hash = token_digest(presented_refresh_token)
        record = self.storage.get_refresh_token(payload.subject_id)
        if (
            record is None
            or record.token_hash != presented_hash
            or record.is_revoked
            or record.expires_at <= now
        ):
            logger.warning("Refresh rejected for %s: no matching active record", payload.subject_id)
            raise InvalidOrExpiredRefreshToken()

        user = self.storage.get(User, payload.subject_id)
        if user is None:
            raise InvalidOrExpiredRefreshToken()

        access_token, refresh_token = self._issue_pair(user)
        try:
            rotated = self.storage.rotate_refresh_token(
                user.id,
                presented_hash,
                token_digest(refresh_token),
                now + self.codec.ttl(REFRESH),
                now,
            )
            self.storage.save()
        except SQLAlchemyError as err:
            self.storage.rollback()
            logger.exception("Refresh failed to persist rotation for %s", user.id)
            raise Unexpected() from err
        if not rotated:
            # Another refresh with the same token won the race
            logger.warning("Refresh lost rotation race for %s", user.id)
            raise InvalidOrExpiredRefreshToken()

        logger.info("Tokens refreshed for %s", user.id)
        return AuthResult(access_token, refresh_token, user)

    def logout(self, user_id) -> None:
        try:
            self.storage.revoke_refresh_token(user_id)
            self.storage.save()
        except SQLAlchemyError as err:
            self.storage.rollback()
            logger.exception("Logout failed to revoke session for %s", user_id)
            raise Unexpected() from err
        logger.info("User logged out: %s", user_id)

    def verify_access_token(self, token) -> TokenPayload:
        return self.codec.verify(token, ACCESS)

    # -- account maintenance ---------------------------------------------

    def get_user(self, user_id) -> User:
        user = self.storage.get(User, user_id)
        if user is None:
            raise UserNotFound()
        return user

    def change_password(self, user_id, current_password, new_password) -> None:
        user = self.get_user(user_id)
        if not verify_password(current_password or "", user.password_hash, self.hasher):
            raise InvalidCredentials("Current password is incorrect")
        self._check_password(new_password)
        if verify_password(new_password, user.password_hash, self.hasher):
            raise ValidationError("New password must be different from current password")

        user.password_hash = hash_password(new_password, self.hasher)
        self.storage.new(user)
        self.storage.save()
        logger.info("Password changed for %s", user.id)

    def update_profile(self, user_id, name=None, email=None) -> User:
        user = self.get_user(user_id)
        # Validate everything before touching the tracked instance
        if name is not None:
            name = name.strip() if isinstance(name, str) else ""
            if not name:
                raise ValidationError("Name cannot be empty")
        if email is not None:
            email = normalize_email(email)
            if not email:
                raise ValidationError("Email cannot be empty")

        if name is not None:
            user.name = name
        if email is not None:
            user.email = email
        try:
            self.storage.new(user)
            self.storage.save()
        except IntegrityError as err:
            self.storage.rollback()
            if _is_email_conflict(err):
                raise DuplicateEmail() from err
            raise
        return user

    def set_role(self, user_id, role) -> User:
        if role not in self.allowed_roles:
            raise ValidationError(f"Role must be one of: {', '.join(self.allowed_roles)}")
        user = self.get_user(user_id)
        user.role = role
        self.storage.new(user)
        self.storage.save()
        logger.info("Role of %s set to %s", user.id, role)
        return user

    # -- internals -------------------------------------------------------

    @cached_property
    def _dummy_hash(self) -> str:
        """Hash of a random secret, verified against when the email is unknown."""
        return hash_password(secrets.token_urlsafe(16), self.hasher)

    def _check_password(self, password) -> None:
        if not isinstance(password, str) or len(password) < self.password_min_length:
            raise ValidationError(
                f"Password is required and must be at least {self.password_min_length} characters"
            )

    def _issue_pair(self, user: User) -> tuple[str, str]:
        return (
            self.codec.issue(user.id, user.email, ACCESS),
            self.codec.issue(user.id, user.email, REFRESH),
        )

    def _start_session(self, user: User) -> AuthResult:
        """Issue a token pair and overwrite the user's refresh record (no commit)."""
        access_token, refresh_token = self._issue_pair(user)
        self.storage.upsert_refresh_token(
            user.id,
            token_digest(refresh_token),
            utcnow() + self.codec.ttl(REFRESH),
        )
        return AuthResult(access_token, refresh_token, user)
