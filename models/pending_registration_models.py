from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, DateTime, ForeignKey, Index
from datetime import datetime
from uuid import UUID

from models.users_models import Base


class PendingRegistration(Base):
    """Registration waiting for its first OTP to be verified.

    Keyed by the identifier the user chose to verify (email or canonical
    phone). Deleted when verification succeeds; once expired it is discarded
    together with the unverified user it points to.
    """

    __tablename__ = "pending_registrations"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    identifier: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    user_id: Mapped[UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    email: Mapped[str] = mapped_column(String(255), nullable=False)
    username: Mapped[str] = mapped_column(String(100), nullable=False)
    phone_number: Mapped[str] = mapped_column(String(20), nullable=False)
    verification_method: Mapped[str] = mapped_column(String(10), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("idx_pending_registration_expires_at", "expires_at"),
    )

    def __repr__(self) -> str:
        return f"<PendingRegistration(identifier='{self.identifier}', method='{self.verification_method}')>"
