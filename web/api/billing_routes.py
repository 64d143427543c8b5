"""API routes for charges (cobranças), payments, installments and reminders."""
from __future__ import annotations

from dataclasses import asdict
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from gamerun.models import Profile, User
from gamerun.models.base import async_session_factory
from gamerun.services import billing
from gamerun.services.whatsapp import WhatsAppService
from web.api.utils import get_whatsapp_service, member_display_name
from web.auth import require_admin_user, require_member

router = APIRouter(prefix="/api/charges", tags=["billing"])


class ChargeCreate(BaseModel):
    name: str
    value: float
    due_month: int = Field(ge=1, le=12)
    due_year: int
    member_ids: list[int]
    installment_count: Optional[int] = None


class ChargeUpdate(BaseModel):
    name: Optional[str] = None
    value: Optional[float] = None
    due_month: Optional[int] = Field(default=None, ge=1, le=12)
    due_year: Optional[int] = None
    installment_count: Optional[int] = None
    member_ids: Optional[list[int]] = None


class InstallmentItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    number: int
    due_month: int
    due_year: int
    value: float


class InstallmentsUpdate(BaseModel):
    installments: list[InstallmentItem]


class PaymentRequest(BaseModel):
    payment_date: Optional[date] = None  # defaults to today
    payment_method_id: Optional[int] = None


class ReminderRequest(BaseModel):
    message: str


def _charge_dict(charge, today: date) -> dict:
    return {
        "id": charge.id,
        "name": charge.name,
        "value": charge.value,
        "due_month": charge.due_month,
        "due_year": charge.due_year,
        "is_installment": charge.is_installment,
        "installment_count": charge.installment_count,
        "installments": [InstallmentItem.model_validate(i).model_dump() for i in charge.installments],
        "assignments": [
            {
                "id": a.id,
                "member_id": a.member_id,
                "member_name": member_display_name(a.member),
                "status": a.status,
                "payment_date": a.payment_date,
                "payment_method_id": a.payment_method_id,
                "overdue": billing.is_overdue(a.status, charge.due_month, charge.due_year, today),
            }
            for a in sorted(charge.assignments, key=lambda a: a.id)
        ],
    }


@router.get("")
async def list_charges(
    status: Optional[str] = None,
    member_id: Optional[int] = None,
    name: Optional[str] = None,
    admin: User = Depends(require_admin_user),
):
    """Flat list of member charges. status: pago, pendente or atrasado."""
    async with async_session_factory() as session:
        entries = await billing.list_entries(session, date.today(), status=status, member_id=member_id, name=name)
        return [asdict(e) for e in entries]


@router.get("/grouped")
async def list_grouped(name: Optional[str] = None, admin: User = Depends(require_admin_user)):
    """Member charges grouped by charge name with the aggregate status."""
    today = date.today()
    async with async_session_factory() as session:
        entries = await billing.list_entries(session, today, name=name)
        return [asdict(g) for g in billing.group_by_name(entries, today)]


@router.get("/summary")
async def charges_summary(admin: User = Depends(require_admin_user)):
    """Totals for the billing dashboard."""
    today = date.today()
    async with async_session_factory() as session:
        return billing.summarize(await billing.list_entries(session, today), today)


@router.get("/me")
async def my_charges(member: Profile = Depends(require_member)):
    today = date.today()
    async with async_session_factory() as session:
        entries = await billing.list_entries(session, today, member_id=member.id)
        return {
            "charges": [asdict(e) for e in entries],
            "summary": billing.summarize(entries, today),
        }


@router.post("")
async def create_charge(body: ChargeCreate, admin: User = Depends(require_admin_user)):
    """One charge shared by the selected members, each with a pending assignment."""
    async with async_session_factory() as session:
        charge = await billing.create_charge(
            session,
            body.name,
            body.value,
            body.due_month,
            body.due_year,
            body.member_ids,
            installment_count=body.installment_count,
        )
        return _charge_dict(charge, date.today())


@router.post("/assignments/{assignment_id}/pay")
async def register_payment(assignment_id: int, body: PaymentRequest, admin: User = Depends(require_admin_user)):
    """Mark as paid. Paying twice is rejected with 409."""
    async with async_session_factory() as session:
        entry = await billing.register_payment(
            session,
            assignment_id,
            date.today(),
            payment_date=body.payment_date,
            payment_method_id=body.payment_method_id,
        )
        return asdict(entry)


@router.delete("/assignments/{assignment_id}")
async def delete_assignment(assignment_id: int, admin: User = Depends(require_admin_user)):
    """Remove one member's charge. The charge goes too when no member is left."""
    async with async_session_factory() as session:
        charge_deleted = await billing.delete_charge_assignment(session, assignment_id)
        return {"ok": True, "charge_deleted": charge_deleted}


@router.post("/assignments/{assignment_id}/remind")
async def send_reminder(
    assignment_id: int,
    body: ReminderRequest,
    admin: User = Depends(require_admin_user),
    whatsapp: WhatsAppService = Depends(get_whatsapp_service),
):
    """Send a reminder to the member's WhatsApp number."""
    async with async_session_factory() as session:
        result = await billing.send_reminder(session, assignment_id, body.message, whatsapp)
        return {"ok": True, "result": result}


@router.get("/{charge_id}")
async def get_charge(charge_id: int, admin: User = Depends(require_admin_user)):
    async with async_session_factory() as session:
        return _charge_dict(await billing.get_charge(session, charge_id), date.today())


@router.patch("/{charge_id}")
async def update_charge(charge_id: int, body: ChargeUpdate, admin: User = Depends(require_admin_user)):
    """Edit charge data. member_ids replaces the member set; kept members keep their payment."""
    fields = body.model_dump(exclude_unset=True)
    member_ids = fields.pop("member_ids", None)
    async with async_session_factory() as session:
        charge = await billing.update_charge(session, charge_id, fields, member_ids=member_ids)
        return _charge_dict(charge, date.today())


@router.put("/{charge_id}/installments")
async def update_installments(charge_id: int, body: InstallmentsUpdate, admin: User = Depends(require_admin_user)):
    """Save an edited schedule. Values must add up to the charge value (0.01 tolerance)."""
    async with async_session_factory() as session:
        charge = await billing.update_installments(
            session, charge_id, [i.model_dump() for i in body.installments]
        )
        return _charge_dict(charge, date.today())


@router.delete("/{charge_id}")
async def delete_charge(charge_id: int, admin: User = Depends(require_admin_user)):
    """Delete a charge with all its member assignments and installments."""
    async with async_session_factory() as session:
        name = await billing.delete_charge(session, charge_id)
        return {"ok": True, "deleted": name}
