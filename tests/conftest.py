import asyncio
import os
import re

# Must be set before the app modules read their configuration
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["ENVIRONMENT"] = "test"

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from starlette.testclient import TestClient

from database import get_db
from exceptions import DispatchError
from models.users_models import Base, User
from services.dispatch_service import VerificationDispatcher
from services.otp_service import OtpService
from services.pending_registrations_service import PendingRegistrationService
from services.users_services import UserService
from services.verification_service import VerificationService
from utils.email_utils import EmailSendResult, get_email_provider
from utils.twilio_utils import VerificationStatus, get_sms_provider


class FakeSmsProvider:
    """Stands in for Twilio Verify. Every started verification gets ``code``."""

    def __init__(self, code: str = "123456"):
        self.code = code
        self.started = []
        self.checked = []
        self.open = {}
        self.start_error = None
        self.check_error = None

    async def start_verification(self, destination, channel="sms"):
        if self.start_error:
            raise DispatchError(self.start_error, provider="fake-sms")
        self.started.append((destination, channel))
        self.open[destination] = self.code
        return VerificationStatus(status="pending", sid="VE0001")

    async def check_verification(self, destination, code):
        self.checked.append((destination, code))
        # Yield so concurrent checks interleave
        await asyncio.sleep(0)
        if self.check_error:
            raise DispatchError(self.check_error, provider="fake-sms")
        if self.open.get(destination) == code:
            return VerificationStatus(status="approved", sid="VE0001")
        return VerificationStatus(status="pending", sid="VE0001")


class FakeEmailProvider:
    def __init__(self):
        self.sent = []
        self.error = None

    async def send_email(self, to, subject, html, text=None):
        if self.error:
            return EmailSendResult(success=False, error=self.error)
        self.sent.append({"to": to, "subject": subject, "html": html, "text": text})
        return EmailSendResult(success=True, message_id=f"msg_{len(self.sent)}")

    def last_code(self) -> str:
        return re.search(r"\b(\d{6})\b", self.sent[-1]["text"]).group(1)


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'test.db'}",
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def sms():
    return FakeSmsProvider()


@pytest.fixture
def email():
    return FakeEmailProvider()


@pytest.fixture
def build_service(sms, email):
    def build(session):
        dispatcher = VerificationDispatcher(OtpService(session), sms, email)
        return VerificationService(
            UserService(session),
            OtpService(session),
            PendingRegistrationService(session),
            dispatcher,
        )
    return build


@pytest.fixture
def service(db, build_service):
    return build_service(db)


@pytest.fixture
def make_user(db):
    def make(**fields):
        values = {
            "email": "a@x.com",
            "username": "alice",
            "phone_number": "+15551234567",
        }
        values.update(fields)
        user = User(**values)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
    return make


@pytest.fixture
def client(session_factory, sms, email):
    from main import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_sms_provider] = lambda: sms
    app.dependency_overrides[get_email_provider] = lambda: email
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
