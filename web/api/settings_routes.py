"""Option lists managed by admins (statuses, roles, payment methods, game types) and WhatsApp status."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from gamerun.models import ChargeAssignment, GameType, MemberRole, MemberStatus, PaymentMethod
from gamerun.models.base import async_session_factory
from gamerun.services.errors import Conflict, NotFound, WorkflowError
from gamerun.services.whatsapp import WhatsAppService
from web.api.utils import get_whatsapp_service
from web.auth import require_admin_user, require_user

logger = logging.getLogger("gamerun.api")

router = APIRouter(prefix="/api/settings", tags=["settings"])

OPTION_MODELS = {
    "statuses": MemberStatus,
    "roles": MemberRole,
    "payment-methods": PaymentMethod,
    "game-types": GameType,
}


class OptionCreate(BaseModel):
    name: str
    description: str | None = None
    active: bool = True


class OptionUpdate(BaseModel):
    name: str | None = None
    description: str | None = None
    active: bool | None = None


def _model_for(kind: str):
    model = OPTION_MODELS.get(kind)
    if model is None:
        raise NotFound(f"Unknown settings list: {kind}")
    return model


def _option_dict(row) -> dict:
    return {
        "id": row.id,
        "name": row.name,
        "description": getattr(row, "description", None),
        "active": getattr(row, "active", True),
    }


def _apply(row, values: dict) -> None:
    if "name" in values:
        name = (values["name"] or "").strip()
        if not name:
            raise WorkflowError("Name is required")
        row.name = name
    for key in ("description", "active"):
        if key in values and hasattr(row, key) and values[key] is not None:
            setattr(row, key, values[key])


@router.get("/whatsapp/status")
async def whatsapp_status(
    admin=Depends(require_admin_user), whatsapp: WhatsAppService = Depends(get_whatsapp_service)
):
    """Connection state of the WhatsApp API (connected, connecting, disconnected)."""
    return await whatsapp.get_status()


@router.get("/{kind}")
async def list_options(kind: str, active_only: bool = False, user=Depends(require_user)):
    model = _model_for(kind)
    async with async_session_factory() as session:
        q = select(model).order_by(model.name)
        if active_only and hasattr(model, "active"):
            q = q.where(model.active == True)  # noqa: E712
        result = await session.execute(q)
        return [_option_dict(row) for row in result.scalars().all()]


@router.post("/{kind}")
async def create_option(kind: str, body: OptionCreate, admin=Depends(require_admin_user)):
    model = _model_for(kind)
    async with async_session_factory() as session:
        row = model(name="")
        _apply(row, body.model_dump())
        session.add(row)
        try:
            await session.commit()
        except IntegrityError:
            await session.rollback()
            raise Conflict(f"{row.name} already exists")
        await session.refresh(row)
        logger.info("Option %s added to %s", row.name, kind)
        return _option_dict(row)


@router.patch("/{kind}/{option_id}")
async def update_option(kind: str, option_id: int, body: OptionUpdate, admin=Depends(require_admin_user)):
    model = _model_for(kind)
    async with async_session_factory() as session:
        row = await session.get(model, option_id)
        if not row:
            raise NotFound("Option not found")
        _apply(row, body.model_dump(exclude_unset=True))
        try:
            await session.commit()
        except IntegrityError:
            await session.rollback()
            raise Conflict(f"{body.name} already exists")
        return _option_dict(row)


@router.delete("/{kind}/{option_id}")
async def delete_option(kind: str, option_id: int, admin=Depends(require_admin_user)):
    model = _model_for(kind)
    async with async_session_factory() as session:
        row = await session.get(model, option_id)
        if not row:
            raise NotFound("Option not found")
        if model is PaymentMethod:
            used = await session.execute(
                select(func.count())
                .select_from(ChargeAssignment)
                .where(ChargeAssignment.payment_method_id == option_id)
            )
            if used.scalar_one():
                raise Conflict(f"{row.name} is used by recorded payments; deactivate it instead")
        name = row.name
        await session.delete(row)
        await session.commit()
        logger.info("Option %s removed from %s", name, kind)
        return {"ok": True, "deleted": name}
