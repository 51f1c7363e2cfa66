from dataclasses import dataclass
from typing import Optional, Protocol
import asyncio
import logging
import os

import aiohttp
from dotenv import load_dotenv
from twilio.base.exceptions import TwilioRestException
from twilio.http.async_http_client import AsyncTwilioHttpClient
from twilio.rest import Client

from exceptions import DispatchError

load_dotenv()

logger = logging.getLogger(__name__)

TWILIO_ACCOUNT_SID = os.getenv("TWILIO_ACCOUNT_SID")
TWILIO_AUTH_TOKEN = os.getenv("TWILIO_AUTH_TOKEN")
TWILIO_VERIFY_SERVICE_SID = os.getenv("TWILIO_VERIFY_SERVICE_SID")
PROVIDER_TIMEOUT_SECONDS = float(os.getenv("PROVIDER_TIMEOUT_SECONDS", "10"))

# Twilio Verify error codes worth a readable log line
TWILIO_ERROR_HINTS = {
    60200: "Invalid parameter. Check phone number format.",
    60203: "Max send attempts reached. Try again later.",
    60212: "Invalid phone number.",
}


@dataclass
class VerificationStatus:
    status: str
    sid: Optional[str] = None


class SmsVerificationProvider(Protocol):
    async def start_verification(self, destination: str, channel: str = "sms") -> VerificationStatus:
        ...

    async def check_verification(self, destination: str, code: str) -> VerificationStatus:
        ...


class TwilioVerifyProvider:
    """Twilio Verify: Twilio generates, delivers and checks the code."""

    name = "twilio"

    def __init__(
        self,
        account_sid: Optional[str] = TWILIO_ACCOUNT_SID,
        auth_token: Optional[str] = TWILIO_AUTH_TOKEN,
        service_sid: Optional[str] = TWILIO_VERIFY_SERVICE_SID,
        timeout: float = PROVIDER_TIMEOUT_SECONDS,
    ):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.service_sid = service_sid
        self.timeout = timeout

    @property
    def is_configured(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.service_sid)

    async def _call(self, operation: str, make_request):
        if not self.is_configured:
            logger.warning("Twilio is not configured; cannot %s", operation)
            raise DispatchError("SMS verification service not configured", provider=self.name)

        http_client = AsyncTwilioHttpClient(timeout=self.timeout)
        client = Client(self.account_sid, self.auth_token, http_client=http_client)
        service = client.verify.v2.services(self.service_sid)
        try:
            return await asyncio.wait_for(make_request(service), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error("Twilio %s timed out after %ss", operation, self.timeout)
            raise DispatchError("SMS verification service timed out", provider=self.name)
        except aiohttp.ClientError as e:
            logger.error("Twilio %s request failed: %s", operation, e)
            raise DispatchError(str(e) or "SMS verification service unavailable", provider=self.name)
        finally:
            await http_client.close()

    async def start_verification(self, destination: str, channel: str = "sms") -> VerificationStatus:
        logger.info("Starting Twilio verification to %s via %s", destination, channel)
        try:
            verification = await self._call(
                "start verification",
                lambda service: service.verifications.create_async(to=destination, channel=channel),
            )
        except TwilioRestException as e:
            logger.error(
                "Twilio error code %s (status %s): %s",
                e.code, e.status, TWILIO_ERROR_HINTS.get(e.code, e.msg),
            )
            raise DispatchError(e.msg or "Failed to send verification code", provider=self.name)

        logger.info("Verification status: %s", verification.status)
        return VerificationStatus(status=verification.status, sid=verification.sid)

    async def check_verification(self, destination: str, code: str) -> VerificationStatus:
        try:
            check = await self._call(
                "check verification",
                lambda service: service.verification_checks.create_async(to=destination, code=code),
            )
        except TwilioRestException as e:
            # 404: the verification expired, was already approved or never existed
            if e.status == 404:
                logger.info("No open Twilio verification for %s", destination)
                return VerificationStatus(status="not_found")
            logger.error("Twilio verification check error %s: %s", e.code, e.msg)
            raise DispatchError(e.msg or "Failed to check verification code", provider=self.name)

        logger.info("SMS verification result: %s", check.status)
        return VerificationStatus(status=check.status, sid=check.sid)


def get_sms_provider() -> SmsVerificationProvider:
    return TwilioVerifyProvider()
