import logging
import uuid
from fastapi import APIRouter, Depends, status, Request
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from musiccollab.db.session import get_db
from musiccollab.db.redis import RedisService
from musiccollab.core.dependencies import get_current_user, get_profile_store, get_redis_service
from musiccollab.core.middleware import get_client_ip
from musiccollab.core.errors import RateLimited, Unauthenticated, ValidationFailed
from musiccollab.core.security import (
    get_password_hash,
    verify_password,
    create_access_token,
    create_refresh_token,
    verify_refresh_token,
)
from musiccollab.models.user import User, Profile, Skill, utcnow
from musiccollab.schemas.user import (
    UserRegister,
    UserLogin,
    TokenResponse,
    RefreshTokenRequest,
    AuthResponse,
    ProfileResponse,
)
from musiccollab.services.profile_store import ProfileStore


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])


async def issue_tokens(user_id: str, redis: RedisService) -> TokenResponse:
    access_token = create_access_token(data={"sub": user_id})
    refresh_token = create_refresh_token(data={"sub": user_id})

    # Store refresh token in Redis
    await redis.store_refresh_token(user_id, refresh_token)

    return TokenResponse(access_token=access_token, refresh_token=refresh_token)


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(
    user_data: UserRegister,
    request: Request,
    db: AsyncSession = Depends(get_db),
    store: ProfileStore = Depends(get_profile_store),
    redis: RedisService = Depends(get_redis_service),
):
    """
    Register a new musician: creates the account and its profile.
    Rate limited: 3 registrations per hour per IP.
    """
    client_ip = get_client_ip(request)
    is_allowed, _, reset_seconds = await redis.check_register_rate_limit(client_ip)

    if not is_allowed:
        raise RateLimited(
            f"Too many registration attempts. Try again in {reset_seconds // 60} minutes."
        )

    # Check if user already exists
    result = await db.execute(select(User).where(User.email == user_data.email))
    if result.scalar_one_or_none():
        raise ValidationFailed("User already exists with this email.")

    user = User(
        id=uuid.uuid4(),
        email=user_data.email,
        password_hash=get_password_hash(user_data.password),
    )
    profile = Profile(
        id=user.id,
        user=user,
        name=user_data.name,
        age=user_data.age,
        bio=user_data.bio,
        city=user_data.location.city,
        state=user_data.location.state,
        country=user_data.location.country,
        genres=user_data.genres,
        looking_for=user_data.looking_for,
        social_links=user_data.social_links.model_dump(),
        music_links=user_data.music_links.model_dump(),
        profile_pictures=[],
        skills=[
            Skill(position=index, **skill.model_dump())
            for index, skill in enumerate(user_data.skills)
        ],
    )
    db.add(user)
    await store.create(profile)
    await db.commit()

    logger.info("Registered user %s", user.id)

    tokens = await issue_tokens(str(user.id), redis)
    return AuthResponse(**tokens.model_dump(), user=ProfileResponse.from_user(user))


@router.post("/login", response_model=AuthResponse)
async def login(
    login_data: UserLogin,
    request: Request,
    db: AsyncSession = Depends(get_db),
    redis: RedisService = Depends(get_redis_service),
):
    """
    Login with email and password.
    Returns access and refresh tokens.
    Rate limited: 5 attempts per 15 minutes per email/IP.
    """
    is_allowed, remaining, reset_seconds = await redis.check_login_rate_limit(login_data.email)

    if not is_allowed:
        raise RateLimited(f"Too many login attempts. Try again in {reset_seconds // 60} minutes.")

    # Also check by IP to prevent distributed attacks
    client_ip = get_client_ip(request)
    ip_allowed, _, ip_reset = await redis.check_login_rate_limit(f"ip:{client_ip}")

    if not ip_allowed:
        raise RateLimited(
            f"Too many login attempts from this IP. Try again in {ip_reset // 60} minutes."
        )

    result = await db.execute(select(User).where(User.email == login_data.email))
    user = result.scalar_one_or_none()

    if not user or not verify_password(login_data.password, user.password_hash):
        raise Unauthenticated(f"Invalid credentials. {remaining} attempts remaining.")

    # Reset rate limits on successful login
    await redis.reset_rate_limit(login_data.email, "login")
    await redis.reset_rate_limit(f"ip:{client_ip}", "login")

    # Update last seen
    user.profile.last_seen_at = utcnow()
    await db.commit()

    tokens = await issue_tokens(str(user.id), redis)
    return AuthResponse(**tokens.model_dump(), user=ProfileResponse.from_user(user))


@router.post("/refresh", response_model=TokenResponse)
async def refresh_token(
    token_data: RefreshTokenRequest,
    redis: RedisService = Depends(get_redis_service),
):
    """
    Refresh access token using refresh token.
    """
    token_payload = verify_refresh_token(token_data.refresh_token)
    user_id = str(token_payload.user_id)

    # Check if refresh token is still valid in Redis
    stored_token = await redis.get_refresh_token(user_id)
    if stored_token != token_data.refresh_token:
        raise Unauthenticated("Invalid refresh token.")

    # Rotate: the old refresh token stops working
    return await issue_tokens(user_id, redis)


@router.post("/logout")
async def logout(
    current_user: User = Depends(get_current_user),
    redis: RedisService = Depends(get_redis_service),
):
    """
    Logout user by invalidating refresh token.
    """
    await redis.delete_refresh_token(str(current_user.id))
    return {"message": "Logged out successfully"}


@router.get("/me", response_model=ProfileResponse)
async def get_current_user_info(
    current_user: User = Depends(get_current_user),
):
    """
    Get current user information.
    """
    return ProfileResponse.from_user(current_user)
