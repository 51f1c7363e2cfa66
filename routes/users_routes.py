from fastapi import Depends, APIRouter
from typing import Annotated
from dependencies import get_current_user
from exceptions import NotFoundError
from schemas.users_schemas import UserPublic, UserResponse
from services.users_services import UserService, get_user_service
from uuid import UUID
from models.users_models import User

users_router = APIRouter(prefix="/users", tags=["users"])

@users_router.get("/me", response_model=UserResponse)
async def read_users_me(
    current_user: Annotated[User, Depends(get_current_user)],
):
    return current_user

@users_router.get("/{user_id}", response_model=UserPublic)
async def get_user(
    user_id: UUID,
    user_service: UserService = Depends(get_user_service),
):
    # Public profile, no session required
    user = user_service.get_user(user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user
