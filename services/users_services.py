from fastapi import Depends
from database import get_db
from models.users_models import User
from sqlalchemy import select
from sqlalchemy.orm import Session
from uuid import UUID
from typing import Optional
from dotenv import load_dotenv
import logging
import os

from services.otp_service import utcnow
from utils.identifiers import Identifier, IdentifierKind, legacy_phone_variants

load_dotenv()

logger = logging.getLogger(__name__)

# Rows written before phone canonicalization was enforced are only reachable
# through the alternate-format search. Turn off once they are migrated.
LEGACY_PHONE_FALLBACK = os.getenv("LEGACY_PHONE_FALLBACK", "true").lower() in ("1", "true", "yes")


class UserService:
    """Service class for user lookups, creation and identifier resolution"""

    def __init__(self, db: Session, legacy_phone_fallback: bool = LEGACY_PHONE_FALLBACK):
        self.db = db
        self.legacy_phone_fallback = legacy_phone_fallback

    # ==================== USER METHODS ====================

    def create_user(self, user: User) -> User:
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)
        return user

    def get_user(self, user_id: UUID) -> Optional[User]:
        return self.db.query(User).filter(User.id == user_id).first()

    def get_user_by_email(self, email: str) -> Optional[User]:
        return self.db.query(User).filter(User.email == email).first()

    def get_user_by_username(self, username: str) -> Optional[User]:
        return self.db.query(User).filter(User.username == username).first()

    def get_user_by_phone_number(self, phone_number: str) -> Optional[User]:
        return self.db.query(User).filter(User.phone_number == phone_number).first()

    def delete_user(self, user: User) -> User:
        self.db.delete(user)
        self.db.commit()
        return user

    # ==================== IDENTIFIER RESOLUTION ====================

    def find_by_identifier(self, identifier: Identifier, pending_only: bool = False) -> Optional[User]:
        """Resolve a classified identifier to a user.

        Emails match exactly. Phones match the canonical form first and, when
        the legacy fallback is enabled, the alternate stored formats derived
        from the raw input. ``pending_only`` restricts the search to users
        with an open OTP window.
        """
        if identifier.kind == IdentifierKind.EMAIL:
            stmt = select(User).where(User.email == identifier.canonical)
        else:
            stmt = select(User).where(User.phone_number == identifier.canonical)
        if pending_only:
            stmt = stmt.where(User.otp_expiry > utcnow())

        user = self.db.scalars(stmt).first()
        if user or identifier.kind == IdentifierKind.EMAIL or not self.legacy_phone_fallback:
            return user

        return self._find_by_legacy_phone(identifier, pending_only)

    def _find_by_legacy_phone(self, identifier: Identifier, pending_only: bool) -> Optional[User]:
        variants = legacy_phone_variants(identifier.raw)
        if not variants:
            return None

        logger.debug("Trying alternative phone formats: %s", variants)
        stmt = select(User).where(User.phone_number.in_(variants))
        if pending_only:
            stmt = stmt.where(User.otp_expiry > utcnow())

        by_phone = {user.phone_number: user for user in self.db.scalars(stmt)}
        for variant in variants:
            if variant in by_phone:
                logger.info("Matched user %s through legacy phone format", by_phone[variant].id)
                return by_phone[variant]
        return None


# ==================== DEPENDENCY INJECTION ====================

def get_user_service(db: Session = Depends(get_db)) -> UserService:
    """Dependency injection for UserService"""
    return UserService(db)
