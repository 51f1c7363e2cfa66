from enum import Enum
from fastapi import status
from fastapi.responses import JSONResponse


class AuthError(Exception):
    """Base error for the auth flow. ``message`` is safe to show clients."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(AuthError):
    status_code = status.HTTP_400_BAD_REQUEST


class UnauthorizedError(AuthError):
    status_code = status.HTTP_401_UNAUTHORIZED


class ForbiddenError(AuthError):
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(AuthError):
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(AuthError):
    status_code = status.HTTP_409_CONFLICT


class ProviderError(AuthError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class InternalError(AuthError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str = "An unexpected error occurred"):
        super().__init__(message)


class DispatchError(Exception):
    """An SMS or email provider call failed. Carries the provider's message."""

    def __init__(self, message: str, provider: str | None = None):
        super().__init__(message)
        self.message = message
        self.provider = provider


class VerificationFailure(str, Enum):
    NO_PENDING_VERIFICATION = "no_pending_verification"
    INVALID_CODE = "invalid_code"
    PROVIDER_FAILURE = "provider_failure"


_VERIFICATION_MESSAGES = {
    VerificationFailure.NO_PENDING_VERIFICATION: "No pending verification found or verification expired",
    VerificationFailure.INVALID_CODE: "Invalid verification code",
    VerificationFailure.PROVIDER_FAILURE: "Verification failed",
}

_VERIFICATION_STATUS = {
    VerificationFailure.NO_PENDING_VERIFICATION: status.HTTP_400_BAD_REQUEST,
    VerificationFailure.INVALID_CODE: status.HTTP_400_BAD_REQUEST,
    VerificationFailure.PROVIDER_FAILURE: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


class VerificationError(AuthError):
    """A ``verify`` attempt did not succeed. ``reason`` says why."""

    def __init__(self, reason: VerificationFailure, detail: str | None = None):
        message = _VERIFICATION_MESSAGES[reason]
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message, _VERIFICATION_STATUS[reason])
        self.reason = reason


def error_response(error: AuthError) -> JSONResponse:
    return JSONResponse(status_code=error.status_code, content={"error": error.message})
