from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from datetime import datetime
from sqlalchemy import String, Boolean, DateTime, func
from typing import Optional
from uuid import UUID
from enum import Enum
import uuid


class VerificationMethod(str, Enum):
    """Channel used to deliver and check one-time passcodes."""
    EMAIL = "email"
    PHONE = "phone"


class Base(DeclarativeBase):
    pass


class User(Base):
    """Account record. Holds identity, verification flags and OTP state."""

    __tablename__ = "users"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid.uuid4, index=True, nullable=False)
    email: Mapped[str] = mapped_column(
        String(255),
        index=True,
        unique=True,
        nullable=False
    )
    username: Mapped[str] = mapped_column(String(100), index=True, unique=True, nullable=False)
    # Canonical "+<country><number>" form. Rows written before the
    # canonicalization rule may lack the leading plus.
    phone_number: Mapped[str] = mapped_column(String(20), index=True, unique=True, nullable=False)

    verified_email: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    verified_phone: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Only populated for the email path; SMS codes live with the provider.
    otp_secret: Mapped[Optional[str]] = mapped_column(String(6), nullable=True)
    otp_expiry: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    preferred_mfa: Mapped[VerificationMethod] = mapped_column(
        String(10), default=VerificationMethod.EMAIL, nullable=False
    )
    profile_image_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, username='{self.username}', email='{self.email}')>"

    def __str__(self) -> str:
        return self.username or self.email

    @property
    def is_verified(self) -> bool:
        """True once either identifier has been proven."""
        return bool(self.verified_email or self.verified_phone)
