from fastapi import APIRouter, Depends, Request, Response, status
from uuid import UUID
import logging

from exceptions import AuthError, NotFoundError, UnauthorizedError, ValidationError, error_response
from schemas.auth_schemas import (
    DirectLoginRequest,
    LoginResponse,
    OtpCredentials,
    RegisterRequest,
    RegisterResponse,
    SendOtpRequest,
    SendOtpResponse,
    SessionResponse,
    SessionUser,
    VerifyRequest,
    VerifyResponse,
)
from schemas.users_schemas import UserPublic, UserResponse
from services.session_service import (
    SESSION_COOKIE_NAME,
    CredentialsProvider,
    SessionService,
    clear_session_cookies,
    get_session_service,
    set_session_cookies,
    user_shape,
)
from services.users_services import UserService, get_user_service
from services.verification_service import VerificationService, get_verification_service

logger = logging.getLogger(__name__)

auth_router = APIRouter(prefix="/auth", tags=["auth"])


def otp_credentials_provider(verification_service: VerificationService) -> CredentialsProvider:
    """Credentials provider that signs users in with an identifier and an OTP."""

    async def authorize(credentials: dict):
        identifier = credentials.get("identifier")
        otp = credentials.get("otp")
        if not identifier or not otp:
            logger.info("Missing credentials")
            return None
        try:
            user = await verification_service.verify(identifier, otp)
        except AuthError as e:
            logger.info("OTP sign-in rejected: %s", e.message)
            return None
        return user_shape(user)

    return CredentialsProvider(id="otp", name="OTP", authorize=authorize)


# ==================== REGISTRATION & OTP ====================

@auth_router.post("/register", status_code=status.HTTP_201_CREATED, response_model=RegisterResponse)
async def register(
    body: RegisterRequest,
    verification_service: VerificationService = Depends(get_verification_service),
):
    try:
        user, identifier = await verification_service.register(
            email=body.email,
            username=body.username,
            phone_number=body.phone_number,
            verification_method=body.verification_method,
        )
    except AuthError as e:
        return error_response(e)

    return RegisterResponse(
        message=f"Verification code sent to your {body.verification_method}",
        identifier=identifier,
        email=user.email,
        phone_number=user.phone_number,
        method=body.verification_method,
    )


@auth_router.post("/send-otp", response_model=SendOtpResponse)
async def send_otp(
    body: SendOtpRequest,
    verification_service: VerificationService = Depends(get_verification_service),
):
    try:
        user, identifier = await verification_service.send_otp(body.identifier, body.method)
    except AuthError as e:
        return error_response(e)

    method = identifier.kind.value
    return SendOtpResponse(
        message=f"Verification code sent to your {method}",
        method=method,
        identifier=user.email if identifier.is_email else user.phone_number,
    )


@auth_router.post("/verify", response_model=VerifyResponse)
async def verify(
    body: VerifyRequest,
    response: Response,
    verification_service: VerificationService = Depends(get_verification_service),
    session_service: SessionService = Depends(get_session_service),
):
    try:
        user = await verification_service.verify(body.identifier, body.code)
    except AuthError as e:
        return error_response(e)

    token = session_service.issue(user_shape(user))
    set_session_cookies(response, session_service.encode(token))
    return VerifyResponse(message="Verification successful", user=UserResponse.model_validate(user))


# ==================== SESSION ====================

@auth_router.post("/callback/otp", response_model=LoginResponse)
async def sign_in_with_otp(
    body: OtpCredentials,
    response: Response,
    verification_service: VerificationService = Depends(get_verification_service),
    session_service: SessionService = Depends(get_session_service),
):
    provider = otp_credentials_provider(verification_service)
    try:
        token = await session_service.sign_in(provider, body.model_dump())
    except AuthError as e:
        return error_response(e)

    set_session_cookies(response, session_service.encode(token))
    return LoginResponse(user=UserPublic(id=token.id, email=token.email, username=token.username))


@auth_router.post("/direct-login", response_model=LoginResponse)
async def direct_login(
    body: DirectLoginRequest,
    response: Response,
    user_service: UserService = Depends(get_user_service),
    session_service: SessionService = Depends(get_session_service),
):
    try:
        if not body.user_id:
            raise ValidationError("User ID is required")
        try:
            user_id = UUID(body.user_id)
        except ValueError:
            raise NotFoundError("User not found")
        user = user_service.get_user(user_id)
        if user is None:
            raise NotFoundError("User not found")
        token = session_service.direct_login(user)
    except AuthError as e:
        return error_response(e)

    set_session_cookies(response, session_service.encode(token))
    return LoginResponse(user=UserPublic.model_validate(user))


@auth_router.get("/session")
async def get_session(request: Request, session_service: SessionService = Depends(get_session_service)):
    raw = request.cookies.get(SESSION_COOKIE_NAME)
    if not raw:
        return {}
    try:
        token = session_service.decode(raw)
    except UnauthorizedError:
        return {}

    return SessionResponse(
        user=SessionUser(
            id=token.id,
            name=token.name,
            email=token.email,
            image=token.picture,
            username=token.username,
            phone_number=token.phone_number,
        ),
        expires=token.expires_at.isoformat(),
    ).model_dump(by_alias=True)


@auth_router.post("/signout")
async def sign_out(
    request: Request,
    response: Response,
    session_service: SessionService = Depends(get_session_service),
):
    raw = request.cookies.get(SESSION_COOKIE_NAME)
    if raw:
        try:
            token = session_service.decode(raw)
            session_service.revoke(token, reason="signout")
        except UnauthorizedError as e:
            logger.debug("Nothing to revoke on sign-out: %s", e.message)
    clear_session_cookies(response)
    return {"success": True}
