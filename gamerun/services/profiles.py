"""Member profiles: completeness, blood donor availability, leadership statistics and edits."""
from __future__ import annotations

import calendar
import logging
from datetime import date
from typing import Any, Iterable, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from gamerun.models import Profile
from gamerun.services.errors import NotFound, WorkflowError

logger = logging.getLogger("gamerun.profiles")

# (field, label shown to the member). last_blood_donation is only required for donors.
REQUIRED_FIELDS = [
    ("nickname", "Apelido"),
    ("status", "Status"),
    ("role", "Função"),
    ("shirt_size", "Tamanho da Camisa"),
    ("birth_date", "Data de Nascimento"),
    ("cpf", "CPF"),
    ("rg", "RG"),
    ("gender", "Gênero"),
    ("phone", "Telefone"),
    ("whatsapp_number", "WhatsApp"),
    ("profession", "Profissão"),
    ("naturalidade", "Naturalidade"),
    ("nome_mae", "Nome da Mãe"),
    ("nome_pai", "Nome do Pai"),
    ("blood_type", "Tipo Sanguíneo"),
    ("address_street", "Rua"),
    ("address_number", "Número"),
    ("address_district", "Bairro"),
    ("address_city", "Cidade"),
    ("address_state", "Estado"),
    ("address_zip", "CEP"),
    ("last_blood_donation", "Última Doação"),
]

SELF_EDITABLE_FIELDS = (
    "name", "email", "avatar_url", "nickname", "shirt_size", "birth_date", "cpf", "rg", "gender",
    "phone", "whatsapp_number", "profession", "naturalidade", "nome_mae", "nome_pai", "blood_type",
    "is_blood_donor", "last_blood_donation", "address_street", "address_number", "address_district",
    "address_city", "address_state", "address_zip",
)
ADMIN_FIELDS = ("status", "role", "is_admin", "is_leader", "is_approved")

DONATION_INTERVAL_MONTHS = 3


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def compute_incomplete_fields(profile: Any) -> list[str]:
    """Labels of required fields that are empty on the profile."""
    missing = []
    for name, label in REQUIRED_FIELDS:
        if name == "last_blood_donation" and not getattr(profile, "is_blood_donor", False):
            continue
        if _is_empty(getattr(profile, name, None)):
            missing.append(label)
    return missing


def months_before(day: date, months: int) -> date:
    index = day.year * 12 + (day.month - 1) - months
    year, month = index // 12, index % 12 + 1
    return date(year, month, min(day.day, calendar.monthrange(year, month)[1]))


def can_donate_blood(last_donation: Optional[date], today: date) -> bool:
    """True with no recorded donation or when the last one is at least three months old."""
    if last_donation is None:
        return True
    return last_donation <= months_before(today, DONATION_INTERVAL_MONTHS)


def leadership_stats(profiles: Iterable[Any], today: date) -> dict[str, Any]:
    stats: dict[str, Any] = {
        "total": 0,
        "by_role": {},
        "by_status": {},
        "donors": {"non_donors": 0, "donors": 0, "can_donate": 0},
    }
    for p in profiles:
        stats["total"] += 1
        if p.role:
            stats["by_role"][p.role] = stats["by_role"].get(p.role, 0) + 1
        if p.status:
            stats["by_status"][p.status] = stats["by_status"].get(p.status, 0) + 1
        if p.is_blood_donor:
            stats["donors"]["donors"] += 1
            if can_donate_blood(p.last_blood_donation, today):
                stats["donors"]["can_donate"] += 1
        else:
            stats["donors"]["non_donors"] += 1
    return stats


async def get_profile(session: AsyncSession, profile_id: int) -> Profile:
    profile = await session.get(Profile, profile_id)
    if not profile:
        raise NotFound("Profile not found")
    return profile


async def list_profiles(
    session: AsyncSession,
    today: date,
    search: Optional[str] = None,
    status: Optional[str] = None,
    role: Optional[str] = None,
    blood_donors_only: bool = False,
    available_to_donate: bool = False,
) -> list[Profile]:
    query = select(Profile).order_by(Profile.name)
    if search:
        term = f"%{search.strip().lower()}%"
        query = query.where(
            or_(func.lower(Profile.name).like(term), func.lower(Profile.nickname).like(term))
        )
    if status:
        query = query.where(Profile.status == status)
    if role:
        query = query.where(Profile.role == role)
    if blood_donors_only or available_to_donate:
        query = query.where(Profile.is_blood_donor == True)  # noqa: E712
    profiles = list((await session.execute(query)).scalars().all())
    if available_to_donate:
        profiles = [p for p in profiles if can_donate_blood(p.last_blood_donation, today)]
    return profiles


async def all_profiles(session: AsyncSession) -> list[Profile]:
    return list((await session.execute(select(Profile).order_by(Profile.name))).scalars().all())


def _apply(profile: Profile, fields: dict[str, Any], allowed: tuple[str, ...]) -> list[str]:
    changed = []
    for key, value in fields.items():
        if key not in allowed:
            continue
        if isinstance(value, str):
            value = value.strip() or None
        setattr(profile, key, value)
        changed.append(key)
    if "name" in changed and not profile.name:
        raise WorkflowError("Name is required")
    if profile.last_blood_donation and profile.last_blood_donation > date.today():
        raise WorkflowError("Last blood donation cannot be in the future")
    return changed


async def update_own_profile(session: AsyncSession, profile: Profile, fields: dict[str, Any]) -> Profile:
    changed = _apply(profile, fields, SELF_EDITABLE_FIELDS)
    await session.commit()
    logger.info("Profile %s updated by its owner: %s", profile.id, ", ".join(sorted(changed)))
    return profile


async def admin_update_profile(session: AsyncSession, profile_id: int, fields: dict[str, Any]) -> Profile:
    profile = await get_profile(session, profile_id)
    changed = _apply(profile, fields, ADMIN_FIELDS + SELF_EDITABLE_FIELDS)
    await session.commit()
    logger.info("Profile %s updated by admin: %s", profile_id, ", ".join(sorted(changed)))
    return profile


async def approve_profile(session: AsyncSession, profile_id: int) -> Profile:
    profile = await get_profile(session, profile_id)
    profile.is_approved = True
    await session.commit()
    logger.info("Profile %s approved", profile_id)
    return profile
