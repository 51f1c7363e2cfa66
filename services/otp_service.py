from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID
import logging
import os
import secrets

from dotenv import load_dotenv
from fastapi import Depends
from sqlalchemy import update
from sqlalchemy.orm import Session

from database import get_db
from models.users_models import User
from utils.identifiers import IdentifierKind

load_dotenv()

logger = logging.getLogger(__name__)

# One window for every issuance path (registration and send-otp)
OTP_EXPIRE_MINUTES = int(os.getenv("OTP_EXPIRE_MINUTES", "10"))
OTP_LENGTH = 6


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; every stored value is UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def generate_otp() -> str:
    """6-digit numeric code, uniform over [100000, 999999]."""
    low = 10 ** (OTP_LENGTH - 1)
    return str(low + secrets.randbelow(9 * low))


def is_pending(user: User, now: Optional[datetime] = None) -> bool:
    """A verification is pending only while ``otp_expiry`` lies in the future."""
    expiry = as_utc(user.otp_expiry)
    return expiry is not None and expiry > (now or utcnow())


class OtpService:
    """Issues, stores and consumes OTP state on the user record."""

    def __init__(self, db: Session, ttl_minutes: int = OTP_EXPIRE_MINUTES):
        self.db = db
        self.ttl = timedelta(minutes=ttl_minutes)

    @property
    def ttl_minutes(self) -> int:
        return int(self.ttl.total_seconds() // 60)

    def persist(self, user: User, code: str) -> User:
        """Store a locally generated code (email path)."""
        user.otp_secret = code
        user.otp_expiry = utcnow() + self.ttl
        self.db.commit()
        self.db.refresh(user)
        return user

    def open_window(self, user: User) -> User:
        """Mark a provider-owned code as pending (phone path). No code is stored."""
        user.otp_secret = None
        user.otp_expiry = utcnow() + self.ttl
        self.db.commit()
        self.db.refresh(user)
        return user

    def consume(self, user_id: UUID, observed_expiry: datetime, kind: IdentifierKind) -> bool:
        """Clear OTP state and set the verified flag for ``kind``.

        The update only applies while ``otp_expiry`` still holds the value the
        caller read, so at most one concurrent verification can consume a code.
        Returns True when this call won.
        """
        values = {"otp_secret": None, "otp_expiry": utcnow()}
        if kind == IdentifierKind.EMAIL:
            values["verified_email"] = True
        else:
            values["verified_phone"] = True

        result = self.db.execute(
            update(User)
            .where(User.id == user_id, User.otp_expiry == observed_expiry)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()

        if result.rowcount != 1:
            logger.info("OTP for user %s was already consumed", user_id)
            return False
        return True


def get_otp_service(db: Session = Depends(get_db)) -> OtpService:
    return OtpService(db)
