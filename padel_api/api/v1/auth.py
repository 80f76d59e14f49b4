import logging

from fastapi import APIRouter, Depends
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from padel_api.core.deps import get_current_user
from padel_api.core.errors import (
    AuthenticationError, ConflictError, PermissionDeniedError, ValidationError,
)
from padel_api.core.security import (
    create_access_token, create_refresh_token,
    decode_token, hash_password, verify_password,
)
from padel_api.core.timeutils import utcnow
from padel_api.db.session import get_db
from padel_api.models.user import User, UserRole
from padel_api.schemas.auth import (
    LoginRequest, PushTokenRequest, RefreshRequest, RegisterRequest,
    TokenResponse, UserRead, UserUpdate,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/auth", tags=["auth"])


def _tokens_for(user: User) -> TokenResponse:
    role = user.role.value
    return TokenResponse(
        access_token=create_access_token(user.id, role),
        refresh_token=create_refresh_token(user.id, role),
    )


async def _save_profile(db: AsyncSession, user: User, changes: dict) -> User:
    for field, value in changes.items():
        setattr(user, field, value)
    user.updated_at = utcnow()
    await db.commit()
    await db.refresh(user)
    return user


@router.post("/register", response_model=UserRead, status_code=201)
async def register(payload: RegisterRequest, db: AsyncSession = Depends(get_db)):
    # self-registration always yields a member; managers are promoted by a super admin
    email = payload.email.lower()
    taken = await db.scalar(select(func.count(User.id)).where(User.email == email))
    if taken:
        raise ConflictError("Email already registered")

    account = User(
        email=email,
        hashed_password=hash_password(payload.password),
        role=UserRole.member,
        name=payload.name,
        phone=payload.phone,
    )
    db.add(account)
    try:
        await db.commit()
    except IntegrityError:
        # lost a race with a concurrent sign-up for the same address
        await db.rollback()
        raise ConflictError("Email already registered")
    await db.refresh(account)
    logger.info("Registered user id=%d", account.id)
    return account


@router.post("/login", response_model=TokenResponse)
async def login(payload: LoginRequest, db: AsyncSession = Depends(get_db)):
    account = await db.scalar(select(User).where(User.email == payload.email.lower()))
    if account is None or not verify_password(payload.password, account.hashed_password):
        logger.info("Failed login for %s", payload.email.lower())
        raise AuthenticationError("Invalid email or password")
    if not account.is_active:
        raise PermissionDeniedError("Account disabled", details={"user_id": account.id})
    return _tokens_for(account)


@router.post("/refresh", response_model=TokenResponse)
async def refresh(payload: RefreshRequest, db: AsyncSession = Depends(get_db)):
    claims = decode_token(payload.refresh_token) or {}
    if claims.get("type") != "refresh":
        raise AuthenticationError("Invalid refresh token")
    account = await db.get(User, int(claims["sub"]))
    if account is None or not account.is_active:
        raise AuthenticationError("User not found")
    return _tokens_for(account)


@router.get("/me", response_model=UserRead)
async def me(user: User = Depends(get_current_user)):
    return user


@router.patch("/me", response_model=UserRead)
async def update_me(
    payload: UserUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Partial profile update; omitted fields keep their value."""
    changes = payload.model_dump(exclude_unset=True)
    if not changes:
        raise ValidationError("No fields provided to update")
    return await _save_profile(db, current_user, changes)


@router.post("/push-token", response_model=UserRead)
async def save_push_token(
    payload: PushTokenRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    user = await _save_profile(db, current_user, {"push_token": payload.push_token})
    logger.info("Push token saved for user id=%d", user.id)
    return user
