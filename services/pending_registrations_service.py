from datetime import timedelta
from typing import Optional
import logging

from fastapi import Depends
from sqlalchemy import delete, or_, select
from sqlalchemy.orm import Session

from database import get_db
from models.pending_registration_models import PendingRegistration
from models.users_models import User
from services.otp_service import OTP_EXPIRE_MINUTES, as_utc, utcnow

logger = logging.getLogger(__name__)


class PendingRegistrationService:
    """Registrations keyed by the identifier chosen for verification."""

    def __init__(self, db: Session, ttl_minutes: int = OTP_EXPIRE_MINUTES):
        self.db = db
        self.ttl = timedelta(minutes=ttl_minutes)

    def put(self, identifier: str, user: User, verification_method: str) -> PendingRegistration:
        now = utcnow()
        pending = PendingRegistration(
            identifier=identifier,
            user_id=user.id,
            email=user.email,
            username=user.username,
            phone_number=user.phone_number,
            verification_method=verification_method,
            created_at=now,
            expires_at=now + self.ttl,
        )
        self.db.add(pending)
        self.db.commit()
        self.db.refresh(pending)
        return pending

    def get(self, identifier: str) -> Optional[PendingRegistration]:
        pending = self.db.scalars(
            select(PendingRegistration).where(PendingRegistration.identifier == identifier)
        ).first()
        if pending and as_utc(pending.expires_at) <= utcnow():
            return None
        return pending

    def promote(self, user: User) -> bool:
        """Drop the pending entry of a user whose verification succeeded."""
        result = self.db.execute(
            delete(PendingRegistration).where(PendingRegistration.user_id == user.id)
        )
        self.db.commit()
        if result.rowcount:
            logger.info("Registration for user %s completed", user.id)
        return bool(result.rowcount)

    def discard(self, identifier: str) -> None:
        self.db.execute(delete(PendingRegistration).where(PendingRegistration.identifier == identifier))
        self.db.commit()

    def purge_expired(self) -> int:
        """Delete expired registrations along with their never-verified users.

        A user whose OTP window was reopened by send-otp is kept, together
        with its registration, until that window closes too.
        """
        now = utcnow()
        expired = self.db.scalars(
            select(PendingRegistration).where(PendingRegistration.expires_at <= now)
        ).all()
        if not expired:
            return 0

        stale_user_ids = self.db.scalars(
            select(User.id).where(
                User.id.in_([pending.user_id for pending in expired]),
                User.verified_email.is_(False),
                User.verified_phone.is_(False),
                or_(User.otp_expiry.is_(None), User.otp_expiry <= now),
            )
        ).all()
        if not stale_user_ids:
            return 0

        self.db.execute(
            delete(PendingRegistration).where(PendingRegistration.user_id.in_(stale_user_ids))
        )
        self.db.execute(delete(User).where(User.id.in_(stale_user_ids)))
        self.db.commit()
        logger.info("Purged %d expired pending registrations", len(stale_user_ids))
        return len(stale_user_ids)


def get_pending_registration_service(db: Session = Depends(get_db)) -> PendingRegistrationService:
    return PendingRegistrationService(db)
