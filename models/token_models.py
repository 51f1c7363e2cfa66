from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import String, Text, DateTime, func, ForeignKey, Index
from typing import Optional
from uuid import UUID
from datetime import datetime
import uuid

from models.users_models import Base, User


class SessionBlocklist(Base):
    """Session tokens revoked before their natural expiry (sign-out)."""

    __tablename__ = "session_blocklist"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid.uuid4, index=True, nullable=False)
    jti: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    user_id: Mapped[Optional[UUID]] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True, nullable=False)
    revoked_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    user: Mapped[Optional[User]] = relationship("User")

    __table_args__ = (
        Index("idx_session_blocklist_expires_at", "expires_at"),
    )

    def __repr__(self) -> str:
        return f"<SessionBlocklist(jti='{self.jti}', reason='{self.reason}')>"
