from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from schemas.users_schemas import UserPublic, UserResponse


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Request fields are optional so missing values come back as 400 {error}
# from the service layer rather than as a 422.

class RegisterRequest(CamelModel):
    email: str | None = None
    username: str | None = None
    phone_number: str | None = None
    verification_method: str | None = None


class SendOtpRequest(CamelModel):
    identifier: str | None = None
    method: str | None = None


class VerifyRequest(CamelModel):
    identifier: str | None = None
    code: str | None = None


class DirectLoginRequest(CamelModel):
    user_id: str | None = None


class OtpCredentials(CamelModel):
    identifier: str | None = None
    otp: str | None = None


class RegisterResponse(CamelModel):
    success: bool = True
    message: str
    identifier: str
    email: str
    phone_number: str
    method: str


class SendOtpResponse(CamelModel):
    success: bool = True
    message: str
    method: str
    identifier: str


class VerifyResponse(CamelModel):
    success: bool = True
    message: str
    user: UserResponse


class LoginResponse(CamelModel):
    success: bool = True
    user: UserPublic


class SessionUser(CamelModel):
    id: str
    name: str | None = None
    email: str | None = None
    image: str | None = None
    username: str | None = None
    phone_number: str | None = None


class SessionResponse(CamelModel):
    user: SessionUser
    expires: str
