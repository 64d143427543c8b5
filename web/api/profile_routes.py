"""API routes for member profiles: self-service edits, completeness and admin management."""
from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict

from gamerun.models import User
from gamerun.models.base import async_session_factory
from gamerun.services import profiles as profile_service
from gamerun.services.errors import NotFound
from web.auth import require_admin_user, require_leader_user, require_user

router = APIRouter(prefix="/api/profiles", tags=["profiles"])


class ProfileResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: Optional[str]
    avatar_url: Optional[str]
    status: Optional[str]
    role: Optional[str]
    is_admin: bool
    is_approved: bool
    is_leader: bool
    nickname: Optional[str]
    shirt_size: Optional[str]
    birth_date: Optional[date]
    cpf: Optional[str]
    rg: Optional[str]
    gender: Optional[str]
    phone: Optional[str]
    whatsapp_number: Optional[str]
    profession: Optional[str]
    naturalidade: Optional[str]
    nome_mae: Optional[str]
    nome_pai: Optional[str]
    blood_type: Optional[str]
    is_blood_donor: bool
    last_blood_donation: Optional[date]
    address_street: Optional[str]
    address_number: Optional[str]
    address_district: Optional[str]
    address_city: Optional[str]
    address_state: Optional[str]
    address_zip: Optional[str]
    created_at: Optional[datetime] = None


class ProfileUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    avatar_url: Optional[str] = None
    nickname: Optional[str] = None
    shirt_size: Optional[str] = None
    birth_date: Optional[date] = None
    cpf: Optional[str] = None
    rg: Optional[str] = None
    gender: Optional[str] = None
    phone: Optional[str] = None
    whatsapp_number: Optional[str] = None
    profession: Optional[str] = None
    naturalidade: Optional[str] = None
    nome_mae: Optional[str] = None
    nome_pai: Optional[str] = None
    blood_type: Optional[str] = None
    is_blood_donor: Optional[bool] = None
    last_blood_donation: Optional[date] = None
    address_street: Optional[str] = None
    address_number: Optional[str] = None
    address_district: Optional[str] = None
    address_city: Optional[str] = None
    address_state: Optional[str] = None
    address_zip: Optional[str] = None


class AdminProfileUpdate(ProfileUpdate):
    status: Optional[str] = None
    role: Optional[str] = None
    is_admin: Optional[bool] = None
    is_leader: Optional[bool] = None
    is_approved: Optional[bool] = None


def _own_profile_id(user: User) -> int:
    if not user.profile:
        raise NotFound("Profile not found")
    return user.profile.id


@router.get("/me", response_model=ProfileResponse)
async def get_my_profile(user: User = Depends(require_user)):
    async with async_session_factory() as session:
        return await profile_service.get_profile(session, _own_profile_id(user))


@router.patch("/me", response_model=ProfileResponse)
async def update_my_profile(body: ProfileUpdate, user: User = Depends(require_user)):
    """Members edit their personal data; status, role and flags are admin-only."""
    async with async_session_factory() as session:
        profile = await profile_service.get_profile(session, _own_profile_id(user))
        return await profile_service.update_own_profile(session, profile, body.model_dump(exclude_unset=True))


@router.get("/me/incomplete")
async def my_incomplete_fields(user: User = Depends(require_user)):
    """Labels of required fields still empty on the caller's profile."""
    async with async_session_factory() as session:
        profile = await profile_service.get_profile(session, _own_profile_id(user))
        missing = profile_service.compute_incomplete_fields(profile)
        return {"complete": not missing, "missing": missing}


@router.get("/stats")
async def leadership_stats(user: User = Depends(require_leader_user)):
    """Counts per role and status plus blood donor availability."""
    async with async_session_factory() as session:
        profiles = await profile_service.all_profiles(session)
        return profile_service.leadership_stats(profiles, date.today())


@router.get("", response_model=list[ProfileResponse])
async def list_profiles(
    search: Optional[str] = None,
    status: Optional[str] = None,
    role: Optional[str] = None,
    blood_donors_only: bool = False,
    available_to_donate: bool = False,
    user: User = Depends(require_leader_user),
):
    async with async_session_factory() as session:
        return await profile_service.list_profiles(
            session,
            date.today(),
            search=search,
            status=status,
            role=role,
            blood_donors_only=blood_donors_only,
            available_to_donate=available_to_donate,
        )


@router.get("/{profile_id}", response_model=ProfileResponse)
async def get_profile(profile_id: int, admin: User = Depends(require_admin_user)):
    async with async_session_factory() as session:
        return await profile_service.get_profile(session, profile_id)


@router.patch("/{profile_id}", response_model=ProfileResponse)
async def admin_update_profile(profile_id: int, body: AdminProfileUpdate, admin: User = Depends(require_admin_user)):
    async with async_session_factory() as session:
        return await profile_service.admin_update_profile(session, profile_id, body.model_dump(exclude_unset=True))


@router.post("/{profile_id}/approve", response_model=ProfileResponse)
async def approve_profile(profile_id: int, admin: User = Depends(require_admin_user)):
    async with async_session_factory() as session:
        return await profile_service.approve_profile(session, profile_id)
