"""
RefreshToken model: the single current refresh token of a user.
Fields:
- user_id (String(36)) - FK to users.id, unique: one logical row per user
- token_hash - SHA-256 digest of the current refresh token
- expires_at - absolute expiry (issue time + refresh TTL), naive UTC
- is_revoked (bool) - set on logout, cleared by the next login
A new login or refresh overwrites the row, so earlier tokens stop matching.
"""
from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from models.base_model import BaseModel, Base


class RefreshToken(BaseModel, Base):
    __tablename__ = "refresh_tokens"

    user_id = Column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True, index=True
    )
    token_hash = Column(String(64), nullable=False)
    expires_at = Column(DateTime, nullable=False)
    is_revoked = Column(Boolean, default=False, nullable=False)

    user = relationship("User", back_populates="refresh_token")

    def __repr__(self):
        return f"<RefreshToken user_id={self.user_id} revoked={self.is_revoked}>"
