from dataclasses import dataclass
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import Optional, Protocol
import asyncio
import logging
import smtplib
import ssl
import os

import certifi
import httpx
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

EMAIL_BACKEND = os.getenv("EMAIL_BACKEND", "resend")
EMAIL_FROM = os.getenv("EMAIL_FROM", "GunEvent <notifications@gunevent.app>")
PROVIDER_TIMEOUT_SECONDS = float(os.getenv("PROVIDER_TIMEOUT_SECONDS", "10"))

# Resend HTTP API
RESEND_API_KEY = os.getenv("RESEND_API_KEY")
RESEND_API_URL = os.getenv("RESEND_API_URL", "https://api.resend.com/emails")

# SMTP settings (example with Gmail SMTP)
SMTP_SERVER = os.getenv("SMTP_SERVER")
SMTP_PORT = os.getenv("SMTP_PORT")
SMTP_USER = os.getenv("SMTP_USER")
SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
SMTP_REPLY_TO = os.getenv("SMTP_REPLY_TO")


@dataclass
class EmailSendResult:
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


class EmailProvider(Protocol):
    async def send_email(self, to: str, subject: str, html: str, text: Optional[str] = None) -> EmailSendResult:
        ...


class ResendEmailProvider:
    """Transactional email through the Resend HTTP API."""

    def __init__(
        self,
        api_key: Optional[str] = RESEND_API_KEY,
        from_email: str = EMAIL_FROM,
        timeout: float = PROVIDER_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.from_email = from_email
        self.timeout = timeout
        self.transport = transport

    async def send_email(self, to: str, subject: str, html: str, text: Optional[str] = None) -> EmailSendResult:
        if not self.api_key:
            logger.error("RESEND_API_KEY is not set")
            return EmailSendResult(success=False, error="Email service not configured")

        payload = {"from": self.from_email, "to": [to], "subject": subject, "html": html}
        if text:
            payload["text"] = text

        logger.info("Sending email from %s to %s", self.from_email, to)
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(
                    RESEND_API_URL,
                    json=payload,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                )
        except httpx.HTTPError as e:
            logger.error("Email request to Resend failed: %s", e)
            return EmailSendResult(success=False, error=str(e) or e.__class__.__name__)

        if response.is_error:
            try:
                error = response.json().get("message") or response.text
            except ValueError:
                error = response.text
            logger.error("Resend rejected email (%s): %s", response.status_code, error)
            return EmailSendResult(success=False, error=error)

        message_id = response.json().get("id")
        logger.info("Email sent successfully: %s", message_id)
        return EmailSendResult(success=True, message_id=message_id)


class SmtpEmailProvider:
    """Plain SMTP with STARTTLS. The blocking exchange runs in a worker thread."""

    def __init__(
        self,
        server: Optional[str] = SMTP_SERVER,
        port: Optional[str] = SMTP_PORT,
        user: Optional[str] = SMTP_USER,
        password: Optional[str] = SMTP_PASSWORD,
        reply_to: Optional[str] = SMTP_REPLY_TO,
        timeout: float = PROVIDER_TIMEOUT_SECONDS,
    ):
        self.server = server
        self.port = int(port) if port else 587
        self.user = user
        self.password = password
        self.reply_to = reply_to
        self.timeout = timeout

    def _send(self, to: str, subject: str, html: str, text: Optional[str]) -> None:
        # Create the email content (plain + HTML alternative)
        message = MIMEMultipart("alternative")
        message["From"] = self.user
        message["To"] = to
        message["Subject"] = subject
        if self.reply_to:
            message["Reply-To"] = self.reply_to

        if text:
            message.attach(MIMEText(text, "plain"))
        message.attach(MIMEText(html, "html"))

        context = ssl.create_default_context(cafile=certifi.where())
        with smtplib.SMTP(self.server, self.port, timeout=self.timeout) as server:
            server.starttls(context=context)
            server.login(self.user, self.password)
            server.sendmail(self.user, to, message.as_string())

    async def send_email(self, to: str, subject: str, html: str, text: Optional[str] = None) -> EmailSendResult:
        if not self.server or not self.user:
            logger.error("SMTP_SERVER / SMTP_USER are not set")
            return EmailSendResult(success=False, error="Email service not configured")

        try:
            await asyncio.to_thread(self._send, to, subject, html, text)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("SMTP delivery to %s failed: %s", to, e)
            return EmailSendResult(success=False, error=str(e))
        return EmailSendResult(success=True)


def get_email_provider() -> EmailProvider:
    if EMAIL_BACKEND == "smtp":
        return SmtpEmailProvider()
    return ResendEmailProvider()


# ==================== VERIFICATION EMAIL ====================

def render_verification_email(code: str, expire_minutes: int) -> tuple[str, str, str]:
    """Return ``(subject, html, text)`` for an OTP email."""
    subject = "Your GunEvent Verification Code"

    try:
        base_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
        template_path = os.path.join(base_dir, "static", "template", "otp-code.html")
        with open(template_path, "r", encoding="utf-8") as f:
            html_template = f.read()
        html = html_template.replace("{{ code }}", code).replace("{{ minutes }}", str(expire_minutes))
    except OSError:
        # Fallback minimal HTML if template missing/unreadable
        html = (
            f"<html><body>"
            f"<h2>Your Verification Code</h2>"
            f"<p style=\"font-size: 24px; letter-spacing: 5px;\"><b>{code}</b></p>"
            f"<p>This code will expire in {expire_minutes} minutes.</p>"
            f"</body></html>"
        )

    text = (
        f"Your Verification Code: {code}\n\n"
        f"This code will expire in {expire_minutes} minutes.\n\n"
        f"If you didn't request this code, you can safely ignore this email."
    )
    return subject, html, text


async def send_verification_email(
    provider: EmailProvider, to: str, code: str, expire_minutes: int
) -> EmailSendResult:
    subject, html, text = render_verification_email(code, expire_minutes)
    return await provider.send_email(to=to, subject=subject, html=html, text=text)
