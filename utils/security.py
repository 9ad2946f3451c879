"""
security helpers:
- Argon2 password hashing via argon2-cffi
- Access/refresh token codec via PyJWT, one secret per token kind
- SHA-256 digests for storing refresh tokens at rest
"""
from __future__ import annotations

import hashlib
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping

import jwt
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

from services.errors import InvalidSignature, TokenExpired, WrongKind

ACCESS = "access"
REFRESH = "refresh"
TOKEN_KINDS = (ACCESS, REFRESH)

ph = PasswordHasher()


def make_password_hasher(time_cost: int | None = None) -> PasswordHasher:
    """Build a hasher with a configured cost, falling back to argon2 defaults."""
    if not time_cost:
        return ph
    return PasswordHasher(time_cost=time_cost)


def hash_password(password: str, hasher: PasswordHasher | None = None) -> str:
    """Hash a plaintext password using Argon2
    """
    return (hasher or ph).hash(password)


def verify_password(password: str, password_hash: str, hasher: PasswordHasher | None = None) -> bool:
    """ Verify a plaintext password using argon2
    """
    try:
        return (hasher or ph).verify(password_hash, password)
    except (VerificationError, InvalidHashError):
        return False


def generate_jti() -> str:
    """Generate a unique JTI (JWT ID).
    """
    return str(uuid.uuid4())


def token_digest(token: str) -> str:
    """SHA-256 hex digest of a token, the form refresh tokens are stored in."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def utcnow() -> datetime:
    """Naive UTC now, matching how timestamps are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass(frozen=True)
class TokenPayload:
    subject_id: str
    subject_email: str
    kind: str
    expires_at: datetime
    token_id: str | None = None


class TokenCodec:
    """
    Signs and verifies compact JWTs for access and refresh tokens.

    Each kind has its own secret and TTL, so a token of one kind never verifies
    as the other. Issuing is pure: no storage, no clock other than `now`.
    """

    def __init__(
        self,
        access_secret: str,
        refresh_secret: str,
        algorithm: str = "HS256",
        access_ttl: timedelta = timedelta(minutes=15),
        refresh_ttl: timedelta = timedelta(days=7),
        issuer: str = "storefront-auth",
        leeway: int = 0,
    ):
        self._secrets = {ACCESS: access_secret, REFRESH: refresh_secret}
        self._ttls = {ACCESS: access_ttl, REFRESH: refresh_ttl}
        self.algorithm = algorithm
        self.issuer = issuer
        self.leeway = leeway

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "TokenCodec":
        return cls(
            access_secret=config["JWT_ACCESS_SECRET"],
            refresh_secret=config["JWT_REFRESH_SECRET"],
            algorithm=config.get("JWT_ALGORITHM", "HS256"),
            access_ttl=config.get("ACCESS_TOKEN_EXPIRES", timedelta(minutes=15)),
            refresh_ttl=config.get("REFRESH_TOKEN_EXPIRES", timedelta(days=7)),
            issuer=config.get("JWT_ISSUER", "storefront-auth"),
            leeway=config.get("JWT_LEEWAY_SECONDS", 0),
        )

    def ttl(self, kind: str) -> timedelta:
        return self._ttls[_check_kind(kind)]

    def issue(self, subject_id: str, subject_email: str, kind: str, now: datetime | None = None) -> str:
        kind = _check_kind(kind)
        issued_at = now or utcnow()
        expires_at = issued_at + self._ttls[kind]
        payload = {
            "iss": self.issuer,
            "sub": str(subject_id),
            "email": subject_email,
            "type": kind,
            "iat": _epoch(issued_at),
            "exp": _epoch(expires_at),
            "jti": generate_jti(),
        }
        return jwt.encode(payload, self._secrets[kind], algorithm=self.algorithm)

    def verify(self, token: str, kind: str) -> TokenPayload:
        """
        Decode and validate a token of the expected kind.
        Raises InvalidSignature, TokenExpired or WrongKind.
        """
        kind = _check_kind(kind)
        try:
            decoded = jwt.decode(
                token,
                self._secrets[kind],
                algorithms=[self.algorithm],
                issuer=self.issuer,
                leeway=self.leeway,
                options={"require": ["exp", "sub", "type"]},
            )
        except jwt.ExpiredSignatureError as exc:
            raise TokenExpired() from exc
        except jwt.InvalidSignatureError as exc:
            if self._signed_as_other_kind(token, kind):
                raise WrongKind() from exc
            raise InvalidSignature() from exc
        except jwt.InvalidTokenError as exc:
            raise InvalidSignature(f"Invalid token: {exc}") from exc

        # Only reachable with identical secrets; the claim still decides
        if decoded.get("type") != kind:
            raise WrongKind()
        return TokenPayload(
            subject_id=decoded["sub"],
            subject_email=decoded.get("email"),
            kind=decoded["type"],
            expires_at=datetime.fromtimestamp(decoded["exp"], timezone.utc).replace(tzinfo=None),
            token_id=decoded.get("jti"),
        )

    def _signed_as_other_kind(self, token: str, kind: str) -> bool:
        other = REFRESH if kind == ACCESS else ACCESS
        try:
            decoded = jwt.decode(
                token,
                self._secrets[other],
                algorithms=[self.algorithm],
                options={"verify_exp": False, "verify_iss": False},
            )
        except jwt.InvalidTokenError:
            return False
        return decoded.get("type") == other


def _check_kind(kind: str) -> str:
    if kind not in TOKEN_KINDS:
        raise ValueError(f"Unknown token kind: {kind!r}")
    return kind


def _epoch(moment: datetime) -> int:
    return int(moment.replace(tzinfo=timezone.utc).timestamp())
