from sqlalchemy import Column, String, Index, text
from sqlalchemy.orm import relationship

from models.base_model import Base, BaseModel, SoftDeleteMixin

ROLES = ("admin", "user")


class Account(SoftDeleteMixin, BaseModel, Base):
    __tablename__ = "accounts"
    __table_args__ = (
        # One live account per normalized email; soft-deleted rows don't count
        Index(
            "uq_accounts_email_live",
            "email",
            unique=True,
            sqlite_where=text("deleted_at IS NULL"),
            postgresql_where=text("deleted_at IS NULL"),
        ),
        Index("ix_accounts_role_created", "role", "created_at"),
    )

    email = Column(String(255), nullable=False)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(16), nullable=False, default="user")

    profile = relationship(
        "Profile",
        back_populates="account",
        uselist=False,
        passive_deletes=True,
    )

    def __repr__(self):
        return f"<Account id={self.id} role={self.role}>"
