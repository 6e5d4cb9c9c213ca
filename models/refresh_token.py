"""
RefreshToken model: one row per issued refresh token.

Fields:
- token_hash: SHA-256 hex digest of the signed token (the token itself is never stored)
- user_id: owning account
- issued_at, expires_at
- revoked / revoked_at
- replaced_by: digest of the successor when the token was rotated out

Rows are kept after revocation as an audit trail; prune() removes them once
they are past the retention window.
"""
from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Index

from models.base_model import BaseModel, Base, utcnow


class RefreshToken(BaseModel, Base):
    __tablename__ = "refresh_tokens"
    __table_args__ = (
        Index("ix_refresh_tokens_user_revoked", "user_id", "revoked"),
    )

    token_hash = Column(String(64), nullable=False, unique=True)
    user_id = Column(String(36), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False)
    issued_at = Column(DateTime, default=utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)
    revoked = Column(Boolean, default=False, nullable=False)
    revoked_at = Column(DateTime, nullable=True)
    replaced_by = Column(String(64), nullable=True)

    def __repr__(self):
        return f"<RefreshToken user_id={self.user_id} revoked={self.revoked}>"
