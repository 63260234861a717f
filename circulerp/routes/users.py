from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from circulerp.database import get_db
from circulerp.middleware.auth import get_current_user
from circulerp.middleware.authorization import require_roles
from circulerp.models.user import User
from circulerp.schemas.auth import UserCreate, UserResponse, UserUpdate
from circulerp.schemas.common import MessageResponse
from circulerp.services.auth_service import hash_password

logger = structlog.get_logger()
router = APIRouter()


async def _get_user_or_404(db: AsyncSession, user_id: int) -> User:
    user = await db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@router.get("", response_model=list[UserResponse])
async def list_users(
    current_user: dict = Depends(get_current_user),
    _auth: None = Depends(require_roles("admin")),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(select(User).order_by(User.username))
    return [UserResponse.model_validate(u) for u in result.scalars().all()]


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    body: UserCreate,
    current_user: dict = Depends(get_current_user),
    _auth: None = Depends(require_roles("admin")),
    db: AsyncSession = Depends(get_db),
):
    existing = await db.execute(select(User.id).where(User.username == body.username))
    if existing.scalar() is not None:
        raise HTTPException(status_code=409, detail="Username already exists")

    user = User(
        username=body.username,
        password_hash=hash_password(body.password),
        display_name=body.display_name or body.username,
        role=body.role,
        email=body.email or None,
        notify_on_changes=body.notify_on_changes,
    )
    db.add(user)
    await db.flush()
    await db.refresh(user)

    logger.info("user_created", user_id=user.id, role=user.role, by=current_user["user_id"])
    return UserResponse.model_validate(user)


@router.put("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: int,
    body: UserUpdate,
    current_user: dict = Depends(get_current_user),
    _auth: None = Depends(require_roles("admin")),
    db: AsyncSession = Depends(get_db),
):
    user = await _get_user_or_404(db, user_id)

    update_data = body.model_dump(exclude_unset=True)
    password = update_data.pop("password", None)
    if password:
        user.password_hash = hash_password(password)
    for field, value in update_data.items():
        if field in ("display_name", "role", "notify_on_changes") and value is None:
            continue
        setattr(user, field, value)

    await db.flush()
    await db.refresh(user)
    logger.info("user_updated", user_id=user.id, fields=sorted(body.model_fields_set))
    return UserResponse.model_validate(user)


@router.delete("/{user_id}", response_model=MessageResponse)
async def delete_user(
    user_id: int,
    current_user: dict = Depends(get_current_user),
    _auth: None = Depends(require_roles("admin")),
    db: AsyncSession = Depends(get_db),
):
    if user_id == current_user["user_id"]:
        raise HTTPException(status_code=400, detail="Cannot delete your own account")

    user = await _get_user_or_404(db, user_id)
    await db.delete(user)
    await db.flush()

    logger.info("user_deleted", user_id=user_id, by=current_user["user_id"])
    return MessageResponse(message="User deleted")
