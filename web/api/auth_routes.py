"""Auth API routes: login, current user, user management."""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.orm import selectinload

import config
from gamerun.models import Profile, Team, User
from gamerun.models.base import async_session_factory
from web.auth import (
    create_access_token,
    get_current_user,
    get_user_by_username,
    hash_password,
    is_admin,
    require_admin_user,
    require_user,
    verify_password,
)

logger = logging.getLogger("gamerun.api")

router = APIRouter(prefix="/api/auth", tags=["auth"])


class LoginRequest(BaseModel):
    username: str
    password: str


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    username: str
    profile_id: Optional[int] = None
    is_admin: bool = False
    is_approved: bool = False


class UserResponse(BaseModel):
    username: str
    profile_id: Optional[int] = None
    name: Optional[str] = None
    is_admin: bool = False
    is_approved: bool = False


class CreateUserRequest(BaseModel):
    username: str
    password: str
    name: str
    email: Optional[str] = None
    is_admin: bool = False


class UpdateUserRequest(BaseModel):
    password: Optional[str] = None
    name: Optional[str] = None


def _user_response(user: User) -> UserResponse:
    p = user.profile
    return UserResponse(
        username=user.username,
        profile_id=p.id if p else None,
        name=p.name if p else None,
        is_admin=bool(p and p.is_admin),
        is_approved=bool(p and p.is_approved),
    )


def _login_response(user: User) -> LoginResponse:
    p = user.profile
    return LoginResponse(
        access_token=create_access_token(user.username),
        username=user.username,
        profile_id=p.id if p else None,
        is_admin=is_admin(user),
        is_approved=bool(p and p.is_approved),
    )


@router.post("/login", response_model=LoginResponse)
async def login(body: LoginRequest):
    """Authenticate and return JWT."""
    user = await get_user_by_username(body.username)
    if not user:
        # Bootstrap: if INITIAL_ADMIN_PASSWORD is set and matches, create admin with an approved profile
        if (
            config.INITIAL_ADMIN_PASSWORD
            and body.username == config.INITIAL_ADMIN_USERNAME
            and body.password == config.INITIAL_ADMIN_PASSWORD
        ):
            async with async_session_factory() as session:
                user = User(
                    username=config.INITIAL_ADMIN_USERNAME,
                    password_hash=hash_password(config.INITIAL_ADMIN_PASSWORD),
                )
                user.profile = Profile(name=config.INITIAL_ADMIN_USERNAME, is_admin=True, is_approved=True)
                session.add(user)
                await session.commit()
            logger.info("Initial admin %s created", user.username)
            return _login_response(user)
        raise HTTPException(status_code=401, detail="Invalid username or password")
    if not verify_password(body.password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid username or password")
    return _login_response(user)


@router.get("/me", response_model=UserResponse)
async def get_me(user: User = Depends(require_user)):
    """Get current authenticated user."""
    return _user_response(user)


@router.get("/me/optional")
async def get_me_optional(user: Optional[User] = Depends(get_current_user)):
    """Get current user if logged in, else null. For frontend auth check."""
    if not user:
        return None
    return _user_response(user)


@router.get("/users", response_model=list[UserResponse])
async def list_users(admin: User = Depends(require_admin_user)):
    """List all users (admin only)."""
    async with async_session_factory() as session:
        result = await session.execute(
            select(User).order_by(User.username).options(selectinload(User.profile))
        )
        return [_user_response(u) for u in result.scalars().all()]


@router.post("/users", response_model=UserResponse)
async def create_user(body: CreateUserRequest, admin: User = Depends(require_admin_user)):
    """Create a new user with an approved profile (admin only)."""
    if not body.name.strip():
        raise HTTPException(400, "Name is required")
    async with async_session_factory() as session:
        existing = await session.execute(select(User).where(User.username == body.username))
        if existing.scalar_one_or_none():
            raise HTTPException(400, "Username already exists")
        user = User(
            username=body.username,
            password_hash=hash_password(body.password),
        )
        user.profile = Profile(
            name=body.name.strip(),
            email=body.email,
            is_admin=body.is_admin,
            is_approved=True,
        )
        session.add(user)
        await session.commit()
        logger.info("User %s created by %s", user.username, admin.username)
        return _user_response(user)


@router.patch("/users/{username}")
async def update_user(username: str, body: UpdateUserRequest, admin: User = Depends(require_admin_user)):
    """Update user password or display name (admin only)."""
    async with async_session_factory() as session:
        result = await session.execute(
            select(User).where(User.username == username).options(selectinload(User.profile))
        )
        user = result.scalar_one_or_none()
        if not user:
            raise HTTPException(404, "User not found")
        if body.password is not None:
            user.password_hash = hash_password(body.password)
        if body.name is not None and user.profile:
            if not body.name.strip():
                raise HTTPException(400, "Name is required")
            user.profile.name = body.name.strip()
        await session.commit()
        return {"ok": True}


@router.delete("/users/{username}")
async def delete_user(username: str, admin: User = Depends(require_admin_user)):
    """Delete a user and its profile (admin only). Cannot delete self or a team leader."""
    if username == admin.username:
        raise HTTPException(400, "Cannot delete your own account")
    async with async_session_factory() as session:
        result = await session.execute(
            select(User).where(User.username == username).options(selectinload(User.profile))
        )
        user = result.scalar_one_or_none()
        if not user:
            raise HTTPException(404, "User not found")
        if user.profile:
            led = await session.execute(select(Team.name).where(Team.leader_id == user.profile.id))
            teams = led.scalars().all()
            if teams:
                raise HTTPException(409, f"User leads team(s) {', '.join(teams)}; delete those teams first")
        await session.delete(user)
        await session.commit()
        logger.info("User %s deleted by %s", username, admin.username)
        return {"ok": True}
