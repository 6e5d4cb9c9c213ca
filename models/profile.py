from sqlalchemy import Column, String, Integer, Float, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from models.base_model import Base, utcnow


class Profile(Base):
    """Display and academic attributes, one per account (same id)."""

    __tablename__ = "profiles"

    id = Column(String(36), ForeignKey("accounts.id", ondelete="CASCADE"), primary_key=True)
    email = Column(String(255), nullable=True)
    full_name = Column(String(255), nullable=True)
    phone = Column(String(32), nullable=True)
    gender = Column(String(32), nullable=True)
    avatar_url = Column(String(512), nullable=False, default="")
    role = Column(String(16), nullable=False, default="student")  # student | admin
    student_id = Column(String(64), nullable=True, unique=True)
    department = Column(String(128), nullable=True, index=True)
    batch = Column(String(64), nullable=True)
    program = Column(String(128), nullable=True)
    current_trimester = Column(String(64), nullable=True)
    completed_credits = Column(Integer, nullable=False, default=0)
    cgpa = Column(Float, nullable=True)
    trimester_credits = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    account = relationship("Account", back_populates="profile")

    def __repr__(self):
        return f"<Profile id={self.id}>"
