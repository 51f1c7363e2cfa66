from fastapi import Depends, Request
from services.session_service import SESSION_COOKIE_NAME, SessionService, SessionToken, get_session_service
from services.users_services import UserService, get_user_service
from exceptions import UnauthorizedError
from models.users_models import User
from typing import Annotated
from uuid import UUID


async def get_current_session(
    request: Request,
    session_service: SessionService = Depends(get_session_service),
) -> SessionToken:
    raw = request.cookies.get(SESSION_COOKIE_NAME)
    if not raw:
        raise UnauthorizedError("Unauthorized")
    return session_service.decode(raw)


async def get_current_user(
    token: Annotated[SessionToken, Depends(get_current_session)],
    user_service: UserService = Depends(get_user_service),
) -> User:
    user = user_service.get_user(UUID(token.sub))
    if user is None:
        raise UnauthorizedError("Invalid session subject")
    return user
