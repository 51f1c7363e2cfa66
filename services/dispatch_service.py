from enum import Enum
import hmac
import logging

from fastapi import Depends
from sqlalchemy.orm import Session

from database import get_db
from exceptions import DispatchError
from models.users_models import User
from services.otp_service import OtpService, generate_otp, is_pending
from utils.email_utils import EmailProvider, get_email_provider, send_verification_email
from utils.identifiers import IdentifierKind, canonicalize_phone
from utils.twilio_utils import SmsVerificationProvider, get_sms_provider

logger = logging.getLogger(__name__)


class CheckOutcome(str, Enum):
    APPROVED = "approved"
    REJECTED = "rejected"


class VerificationDispatcher:
    """Routes code delivery and checking to the channel of the identifier.

    Phone codes are generated and checked by the SMS provider and never seen
    locally. Email codes are generated here, stored on the user and checked
    against the stored value.
    """

    def __init__(self, otp_service: OtpService, sms_provider: SmsVerificationProvider, email_provider: EmailProvider):
        self.otp_service = otp_service
        self.sms_provider = sms_provider
        self.email_provider = email_provider

    async def send_code(self, user: User, kind: IdentifierKind) -> None:
        if kind == IdentifierKind.PHONE:
            await self._send_sms_code(user)
        else:
            await self._send_email_code(user)

    async def check_code(self, user: User, kind: IdentifierKind, code: str) -> CheckOutcome:
        if kind == IdentifierKind.PHONE:
            result = await self.sms_provider.check_verification(canonicalize_phone(user.phone_number), code)
            return CheckOutcome.APPROVED if result.status == "approved" else CheckOutcome.REJECTED

        if not is_pending(user) or user.otp_secret is None:
            return CheckOutcome.REJECTED
        if hmac.compare_digest(user.otp_secret.encode(), str(code).encode()):
            return CheckOutcome.APPROVED
        return CheckOutcome.REJECTED

    # ==================== CHANNELS ====================

    async def _send_sms_code(self, user: User) -> None:
        result = await self.sms_provider.start_verification(canonicalize_phone(user.phone_number), "sms")
        if result.status != "pending":
            raise DispatchError(f"Unexpected verification status: {result.status}", provider="sms")
        self.otp_service.open_window(user)
        logger.info("SMS verification started for user %s", user.id)

    async def _send_email_code(self, user: User) -> None:
        code = generate_otp()
        self.otp_service.persist(user, code)
        result = await send_verification_email(
            self.email_provider, user.email, code, self.otp_service.ttl_minutes
        )
        if not result.success:
            raise DispatchError(result.error or "Failed to send verification email", provider="email")
        logger.info("Verification email sent to user %s (%s)", user.id, result.message_id)


def get_verification_dispatcher(
    db: Session = Depends(get_db),
    sms_provider: SmsVerificationProvider = Depends(get_sms_provider),
    email_provider: EmailProvider = Depends(get_email_provider),
) -> VerificationDispatcher:
    return VerificationDispatcher(OtpService(db), sms_provider, email_provider)
