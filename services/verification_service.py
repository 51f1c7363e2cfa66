from enum import Enum
from typing import Optional
import logging

from fastapi import Depends
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from database import get_db
from exceptions import (
    ConflictError,
    DispatchError,
    NotFoundError,
    ProviderError,
    ValidationError,
    VerificationError,
    VerificationFailure,
)
from models.users_models import User, VerificationMethod
from services.dispatch_service import CheckOutcome, VerificationDispatcher, get_verification_dispatcher
from services.otp_service import OtpService
from services.pending_registrations_service import PendingRegistrationService
from services.users_services import UserService
from utils.identifiers import Identifier, IdentifierKind, canonicalize_phone, classify

logger = logging.getLogger(__name__)


class VerificationState(str, Enum):
    AWAITING_IDENTIFIER = "awaiting_identifier"
    CODE_SENT = "code_sent"
    VERIFIED = "verified"
    EXPIRED = "expired"
    REJECTED = "rejected"


def _method_kind(method: str) -> IdentifierKind:
    return IdentifierKind.EMAIL if method == VerificationMethod.EMAIL.value else IdentifierKind.PHONE


class VerificationService:
    """Registration, code issuance and the OTP verification state machine."""

    def __init__(
        self,
        user_service: UserService,
        otp_service: OtpService,
        pending_registrations: PendingRegistrationService,
        dispatcher: VerificationDispatcher,
    ):
        self.user_service = user_service
        self.otp_service = otp_service
        self.pending_registrations = pending_registrations
        self.dispatcher = dispatcher

    # ==================== REGISTRATION ====================

    async def register(
        self,
        email: Optional[str],
        username: Optional[str],
        phone_number: Optional[str],
        verification_method: Optional[str],
    ) -> tuple[User, str]:
        """Create an unverified user and send the first code.

        Returns the user and the identifier the code was sent to.
        """
        if not email or not username or not phone_number:
            raise ValidationError("Email, username, and phone number are required")
        if verification_method not in (VerificationMethod.EMAIL.value, VerificationMethod.PHONE.value):
            raise ValidationError("Valid verification method (email or phone) is required")
        email_identifier = classify(email)
        if not email_identifier.is_email:
            raise ValidationError("A valid email address is required")
        email = email_identifier.canonical

        self.pending_registrations.purge_expired()

        normalized_phone = canonicalize_phone(phone_number)
        if self.user_service.get_user_by_email(email):
            raise ConflictError("Email is already taken")
        if self.user_service.get_user_by_username(username):
            raise ConflictError("Username is already taken")
        if self.user_service.get_user_by_phone_number(normalized_phone):
            raise ConflictError("Phone number is already registered")

        try:
            user = self.user_service.create_user(User(
                email=email,
                username=username,
                phone_number=normalized_phone,
                verified_email=False,
                verified_phone=False,
                preferred_mfa=verification_method,
            ))
        except IntegrityError:
            # Lost a race against a concurrent registration
            self.user_service.db.rollback()
            raise ConflictError("An account with these details already exists")

        identifier = email if verification_method == VerificationMethod.EMAIL.value else normalized_phone
        self.pending_registrations.put(identifier, user, verification_method)

        try:
            await self.dispatcher.send_code(user, _method_kind(verification_method))
        except DispatchError as e:
            logger.error("Sending registration code for user %s failed: %s", user.id, e.message)
            self.pending_registrations.discard(identifier)
            self.user_service.delete_user(user)
            raise ProviderError(f"Failed to send verification code: {e.message}")

        logger.info("Registered user %s, code sent via %s", user.id, verification_method)
        return user, identifier

    # ==================== SEND OTP ====================

    async def send_otp(self, raw_identifier: Optional[str], method: Optional[str] = None) -> tuple[User, Identifier]:
        """Send a fresh code to an existing account over the identifier's channel."""
        if not raw_identifier:
            raise ValidationError("Email or phone number is required")

        identifier = classify(raw_identifier)
        if method is not None and method != identifier.kind.value:
            raise ValidationError("Verification method does not match the identifier")

        logger.debug("Looking for user with %s: %s", identifier.kind.value, identifier.canonical)
        user = self.user_service.find_by_identifier(identifier)
        if not user:
            logger.info("No user for %s identifier %s", identifier.kind.value, identifier.canonical)
            raise NotFoundError("No account found with this information")

        try:
            await self.dispatcher.send_code(user, identifier.kind)
        except DispatchError as e:
            logger.error("Sending code to user %s failed: %s", user.id, e.message)
            raise ProviderError(f"Failed to send verification code: {e.message}")

        logger.info("State %s for user %s", VerificationState.CODE_SENT.value, user.id)
        return user, identifier

    # ==================== VERIFY ====================

    async def verify(self, raw_identifier: Optional[str], code: Optional[str]) -> User:
        """Check ``code`` for the user behind ``raw_identifier``.

        Succeeds at most once per issued code: consumption is conditional on
        the OTP window observed at lookup time.
        """
        if not raw_identifier or not code:
            raise ValidationError("Identifier and verification code are required")

        identifier = classify(raw_identifier)
        logger.debug("Processing verification for %s: %s", identifier.kind.value, identifier.canonical)

        user = self.user_service.find_by_identifier(identifier, pending_only=True)
        if not user:
            logger.info("State %s for %s", VerificationState.EXPIRED.value, identifier.canonical)
            raise VerificationError(VerificationFailure.NO_PENDING_VERIFICATION)

        user_id = user.id
        observed_expiry = user.otp_expiry

        try:
            outcome = await self.dispatcher.check_code(user, identifier.kind, code)
        except DispatchError as e:
            logger.error("Verification check for user %s failed: %s", user_id, e.message)
            raise VerificationError(VerificationFailure.PROVIDER_FAILURE, e.message)

        if outcome != CheckOutcome.APPROVED:
            logger.info("State %s for user %s", VerificationState.REJECTED.value, user_id)
            raise VerificationError(VerificationFailure.INVALID_CODE)

        if not self.otp_service.consume(user_id, observed_expiry, identifier.kind):
            raise VerificationError(VerificationFailure.NO_PENDING_VERIFICATION)

        user = self.user_service.get_user(user_id)
        self.pending_registrations.promote(user)
        logger.info("State %s for user %s", VerificationState.VERIFIED.value, user_id)
        return user


def get_verification_service(
    db: Session = Depends(get_db),
    dispatcher: VerificationDispatcher = Depends(get_verification_dispatcher),
) -> VerificationService:
    return VerificationService(
        UserService(db),
        OtpService(db),
        PendingRegistrationService(db),
        dispatcher,
    )
