from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional
import logging
import os
import uuid

import jwt
from jwt.exceptions import InvalidTokenError
from dotenv import load_dotenv

from fastapi import Depends, Response
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from database import get_db
from exceptions import ForbiddenError, UnauthorizedError
from models.token_models import SessionBlocklist
from models.users_models import User


load_dotenv()

logger = logging.getLogger(__name__)

SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")
SESSION_ALGORITHM = os.getenv("SESSION_ALGORITHM", "HS256")
SESSION_MAX_AGE_DAYS = int(os.getenv("SESSION_MAX_AGE_DAYS", "30"))
SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "session-token")
LOGIN_FLAG_COOKIE_NAME = "auth-login-pending"
LOGIN_FLAG_MAX_AGE_SECONDS = 60
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")

if SECRET_KEY == "dev-secret-key" and ENVIRONMENT == "production":
    logger.warning("SECRET_KEY is not set; session tokens are signed with the development key")


class SessionToken(BaseModel):
    """Claims carried by the session cookie. ``id`` and ``sub`` are both the user id."""

    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = None
    email: Optional[str] = None
    picture: Optional[str] = None
    sub: str
    id: str
    username: Optional[str] = None
    phone_number: Optional[str] = Field(default=None, alias="phoneNumber")
    iat: int
    exp: int
    jti: str

    def claims(self) -> dict:
        return self.model_dump(by_alias=True)

    @property
    def expires_at(self) -> datetime:
        return datetime.fromtimestamp(self.exp, tz=timezone.utc)


UserShape = dict
Authorize = Callable[[dict], Awaitable[Optional[UserShape]]]


def user_shape(user: User) -> UserShape:
    """The user object a credentials provider hands to the token builder."""
    return {
        "id": str(user.id),
        "email": user.email,
        "username": user.username,
        "phoneNumber": user.phone_number,
    }


class CredentialsProvider:
    """Pluggable sign-in: ``authorize`` returns a user shape or None."""

    def __init__(self, id: str, name: str, authorize: Authorize):
        self.id = id
        self.name = name
        self.authorize = authorize


class SessionService:
    def __init__(self, db: Session):
        self.db = db
        self.secret = SECRET_KEY
        self.algorithm = SESSION_ALGORITHM
        self.max_age = timedelta(days=SESSION_MAX_AGE_DAYS)

    # ==================== TOKEN CREATION ====================
    def issue(self, shape: UserShape) -> SessionToken:
        now = datetime.now(timezone.utc)
        issued_at = int(now.timestamp())
        return SessionToken(
            name=shape.get("username"),
            email=shape.get("email"),
            picture=None,
            sub=shape["id"],
            id=shape["id"],
            username=shape.get("username"),
            phone_number=shape.get("phoneNumber"),
            iat=issued_at,
            exp=issued_at + int(self.max_age.total_seconds()),
            jti=uuid.uuid4().hex,
        )

    def encode(self, token: SessionToken) -> str:
        return jwt.encode(token.claims(), self.secret, algorithm=self.algorithm)

    def decode(self, raw: str) -> SessionToken:
        try:
            payload = jwt.decode(raw, self.secret, algorithms=[self.algorithm])
        except InvalidTokenError:
            raise UnauthorizedError("Invalid session")
        token = SessionToken.model_validate(payload)
        if self.is_revoked(token.jti):
            raise UnauthorizedError("Session revoked")
        return token

    # ==================== SIGN-IN PATHS ====================
    async def sign_in(self, provider: CredentialsProvider, credentials: dict) -> SessionToken:
        """Primary path: run the provider's ``authorize`` and derive the token from its result."""
        shape = await provider.authorize(credentials)
        if not shape:
            logger.info("Provider %s rejected credentials", provider.id)
            raise UnauthorizedError("Invalid credentials")
        return self.issue(shape)

    def direct_login(self, user: User) -> SessionToken:
        """Secondary path for users who already proved an identifier."""
        if not user.is_verified:
            raise ForbiddenError("User is not verified")
        logger.info("Direct login for user %s", user.id)
        return self.issue(user_shape(user))

    # ==================== REVOCATION ====================
    def is_revoked(self, jti: str) -> bool:
        return (
            self.db.query(SessionBlocklist)
            .filter(SessionBlocklist.jti == jti)
            .first()
            is not None
        )

    def revoke(self, token: SessionToken, reason: Optional[str] = None) -> SessionBlocklist:
        existing = self.db.query(SessionBlocklist).filter(SessionBlocklist.jti == token.jti).first()
        if existing:
            return existing

        entry = SessionBlocklist(
            jti=token.jti,
            user_id=uuid.UUID(token.id),
            expires_at=token.expires_at,
            reason=reason,
        )
        self.db.add(entry)
        self.db.commit()
        self.db.refresh(entry)
        return entry


def get_session_service(db: Session = Depends(get_db)) -> SessionService:
    return SessionService(db)


# ==================== COOKIE HELPERS ====================
def set_session_cookies(response: Response, encoded: str) -> None:
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=encoded,
        httponly=True,
        secure=ENVIRONMENT == "production",
        samesite="lax",
        path="/",
        max_age=SESSION_MAX_AGE_DAYS * 24 * 60 * 60,
    )
    # Lets client code notice a fresh login without reading the session cookie
    response.set_cookie(
        key=LOGIN_FLAG_COOKIE_NAME,
        value="true",
        path="/",
        max_age=LOGIN_FLAG_MAX_AGE_SECONDS,
    )


def clear_session_cookies(response: Response) -> None:
    response.delete_cookie(SESSION_COOKIE_NAME, path="/")
    response.delete_cookie(LOGIN_FLAG_COOKIE_NAME, path="/")
