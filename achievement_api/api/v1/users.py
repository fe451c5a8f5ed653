# achievement_api/api/v1/users.py
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from achievement_api.core.database import get_db
from achievement_api.core.deps import get_actor
from achievement_api.schemas.common import ok
from achievement_api.schemas.user import RoleChange, UserCreate, UserUpdate
from achievement_api.services.authorization import Actor
from achievement_api.services.user_service import UserService

router = APIRouter(prefix="/users", tags=["Users"])


def get_user_service(db: AsyncSession = Depends(get_db)) -> UserService:
    return UserService(db)


@router.get("")
async def list_users(actor: Actor = Depends(get_actor), service: UserService = Depends(get_user_service)):
    return ok(await service.list_users(actor))


@router.post("", status_code=201)
async def create_user(
    payload: UserCreate,
    actor: Actor = Depends(get_actor),
    service: UserService = Depends(get_user_service),
):
    """Create a user, optionally with a student or advisor profile"""
    return ok(await service.create_user(actor, payload), "user created")


@router.get("/{user_id}")
async def get_user(user_id: str, actor: Actor = Depends(get_actor), service: UserService = Depends(get_user_service)):
    return ok(await service.get_user(actor, user_id))


@router.put("/{user_id}")
async def update_user(
    user_id: str,
    payload: UserUpdate,
    actor: Actor = Depends(get_actor),
    service: UserService = Depends(get_user_service),
):
    return ok(await service.update_user(actor, user_id, payload), "user updated")


@router.delete("/{user_id}")
async def deactivate_user(
    user_id: str,
    actor: Actor = Depends(get_actor),
    service: UserService = Depends(get_user_service),
):
    """Users are deactivated, never removed"""
    return ok(await service.deactivate(actor, user_id), "user deactivated")


@router.put("/{user_id}/role")
async def change_role(
    user_id: str,
    payload: RoleChange,
    actor: Actor = Depends(get_actor),
    service: UserService = Depends(get_user_service),
):
    return ok(await service.change_role(actor, user_id, payload.role), "role updated")
