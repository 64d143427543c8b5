"""Billing: charges assigned to members, grouping by name, overdue status, installments and payments."""
from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Iterable, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from gamerun.models import Charge, ChargeAssignment, Installment, PaymentMethod, Profile
from gamerun.services.errors import Conflict, NotFound, WorkflowError

logger = logging.getLogger("gamerun.billing")

PAID = "Pago"
PENDING = "Pendente"
OVERDUE = "Atrasado"

GROUP_OVERDUE = "Em Atraso"
GROUP_PENDING = "Pendente"
GROUP_PAID = "Pago"

INSTALLMENT_TOLERANCE = 0.01
STATUS_FILTERS = ("pago", "pendente", "atrasado")


@dataclass
class ChargeEntry:
    """One member's charge, flattened for listing and grouping."""

    assignment_id: int
    charge_id: int
    member_id: int
    member_name: str
    name: str
    value: float
    due_month: int
    due_year: int
    status: str
    payment_date: Optional[date] = None
    payment_method_id: Optional[int] = None
    overdue: bool = False


@dataclass
class ChargeGroup:
    name: str
    status: str
    total: float = 0.0
    paid: int = 0
    entries: list[ChargeEntry] = field(default_factory=list)


def is_overdue(status: str, due_month: int, due_year: int, today: date) -> bool:
    """Unpaid and the due month is already behind us. No grace period."""
    if status == PAID:
        return False
    if status == OVERDUE:
        return True
    return due_year < today.year or (due_year == today.year and due_month < today.month)


def group_status(entries: Iterable[ChargeEntry], today: date) -> str:
    """Overdue beats pending, pending beats paid."""
    result = GROUP_PAID
    for e in entries:
        if is_overdue(e.status, e.due_month, e.due_year, today):
            return GROUP_OVERDUE
        if e.status != PAID:
            result = GROUP_PENDING
    return result


def group_by_name(entries: Iterable[ChargeEntry], today: date) -> list[ChargeGroup]:
    """Partition member charges by name, keeping first-seen order."""
    buckets: "OrderedDict[str, list[ChargeEntry]]" = OrderedDict()
    for e in entries:
        buckets.setdefault(e.name, []).append(e)
    groups = []
    for name, items in buckets.items():
        groups.append(
            ChargeGroup(
                name=name,
                status=group_status(items, today),
                total=round(sum(e.value for e in items), 2),
                paid=sum(1 for e in items if e.status == PAID),
                entries=items,
            )
        )
    return groups


def summarize(entries: Iterable[ChargeEntry], today: date) -> dict[str, float]:
    total = received = receivable = overdue = 0.0
    for e in entries:
        total += e.value
        if e.status == PAID:
            received += e.value
            continue
        receivable += e.value
        if is_overdue(e.status, e.due_month, e.due_year, today):
            overdue += e.value
    return {
        "total": round(total, 2),
        "received": round(received, 2),
        "receivable": round(receivable, 2),
        "overdue": round(overdue, 2),
    }


def shift_month(month: int, year: int, delta: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + delta
    return index % 12 + 1, index // 12


def build_installments(value: float, count: int, due_month: int, due_year: int) -> list[dict[str, Any]]:
    """Monthly schedule ending on the charge due month; the last installment takes the rounding."""
    if count < 2:
        raise WorkflowError("An installment plan needs at least 2 installments")
    part = round(value / count, 2)
    schedule = []
    for number in range(1, count + 1):
        month, year = shift_month(due_month, due_year, number - count)
        amount = part if number < count else round(value - part * (count - 1), 2)
        schedule.append({"number": number, "due_month": month, "due_year": year, "value": amount})
    return schedule


def installments_match_total(values: Sequence[float], total: float) -> bool:
    return abs(sum(values) - total) <= INSTALLMENT_TOLERANCE


def validate_installments(total: float, due_month: int, due_year: int, items: Sequence[dict[str, Any]]) -> None:
    """Raise WorkflowError unless the schedule sums to the charge value and ends by its due date."""
    if not items:
        raise WorkflowError("At least one installment is required")
    for item in items:
        _validate_due(item["due_month"], item["due_year"])
        if item["value"] <= 0:
            raise WorkflowError(f"Installment {item['number']} must have a positive value")
    numbers = [item["number"] for item in items]
    if len(set(numbers)) != len(numbers):
        raise WorkflowError("Installment numbers must be unique")
    values = [item["value"] for item in items]
    if not installments_match_total(values, total):
        raise WorkflowError(
            f"Installments add up to {sum(values):.2f} but the charge value is {total:.2f}"
        )
    last = max(items, key=lambda i: i["number"])
    if (last["due_year"], last["due_month"]) > (due_year, due_month):
        raise WorkflowError("The last installment cannot be due after the charge due date")


def _validate_due(month: Optional[int], year: Optional[int]) -> None:
    if month is None or year is None:
        raise WorkflowError("Due month and year are required")
    if not 1 <= month <= 12:
        raise WorkflowError("Due month must be between 1 and 12")
    if year < 2000:
        raise WorkflowError("Due year is invalid")


def _validate_charge_fields(name: str, value: float, due_month: int, due_year: int) -> str:
    name = (name or "").strip()
    if not name:
        raise WorkflowError("Charge name is required")
    if value is None or value <= 0:
        raise WorkflowError("Charge value must be greater than zero")
    _validate_due(due_month, due_year)
    return name


def _entry(a: ChargeAssignment, today: date) -> ChargeEntry:
    c = a.charge
    return ChargeEntry(
        assignment_id=a.id,
        charge_id=c.id,
        member_id=a.member_id,
        member_name=a.member.name if a.member else "",
        name=c.name,
        value=c.value,
        due_month=c.due_month,
        due_year=c.due_year,
        status=a.status,
        payment_date=a.payment_date,
        payment_method_id=a.payment_method_id,
        overdue=is_overdue(a.status, c.due_month, c.due_year, today),
    )


async def _check_members(session: AsyncSession, member_ids: Sequence[int]) -> list[int]:
    unique_ids = list(dict.fromkeys(member_ids))
    if not unique_ids:
        raise WorkflowError("Select at least one member")
    result = await session.execute(select(Profile.id).where(Profile.id.in_(unique_ids)))
    found = {row[0] for row in result.fetchall()}
    missing = [m for m in unique_ids if m not in found]
    if missing:
        raise NotFound(f"Member(s) not found: {', '.join(str(m) for m in missing)}")
    return unique_ids


async def get_charge(session: AsyncSession, charge_id: int) -> Charge:
    result = await session.execute(
        select(Charge)
        .where(Charge.id == charge_id)
        .options(
            selectinload(Charge.assignments).selectinload(ChargeAssignment.member),
            selectinload(Charge.installments),
        )
        .execution_options(populate_existing=True)
    )
    charge = result.scalar_one_or_none()
    if not charge:
        raise NotFound("Charge not found")
    return charge


async def list_entries(
    session: AsyncSession,
    today: date,
    status: Optional[str] = None,
    member_id: Optional[int] = None,
    name: Optional[str] = None,
) -> list[ChargeEntry]:
    """Flat member charges, newest due date first, with optional filters."""
    if status and status not in STATUS_FILTERS:
        raise WorkflowError(f"Invalid status filter: {status}")
    query = (
        select(ChargeAssignment)
        .join(Charge, Charge.id == ChargeAssignment.charge_id)
        .options(selectinload(ChargeAssignment.charge), selectinload(ChargeAssignment.member))
        .order_by(Charge.due_year.desc(), Charge.due_month.desc(), Charge.name, ChargeAssignment.id)
    )
    if member_id is not None:
        query = query.where(ChargeAssignment.member_id == member_id)
    if name:
        query = query.where(func.lower(Charge.name).contains(name.strip().lower()))
    result = await session.execute(query)
    entries = [_entry(a, today) for a in result.scalars().all()]
    if status == "pago":
        entries = [e for e in entries if e.status == PAID]
    elif status == "atrasado":
        entries = [e for e in entries if e.overdue]
    elif status == "pendente":
        entries = [e for e in entries if e.status == PENDING]
    return entries


async def create_charge(
    session: AsyncSession,
    name: str,
    value: float,
    due_month: int,
    due_year: int,
    member_ids: Sequence[int],
    installment_count: Optional[int] = None,
) -> Charge:
    """One shared charge, a pending assignment per member and the installment plan, in one commit."""
    name = _validate_charge_fields(name, value, due_month, due_year)
    member_ids = await _check_members(session, member_ids)
    charge = Charge(
        name=name,
        value=value,
        due_month=due_month,
        due_year=due_year,
        is_installment=bool(installment_count),
        installment_count=installment_count or None,
    )
    if installment_count:
        charge.installments = [Installment(**item) for item in build_installments(value, installment_count, due_month, due_year)]
    charge.assignments = [ChargeAssignment(member_id=m, status=PENDING) for m in member_ids]
    session.add(charge)
    await session.commit()
    logger.info("Charge %s (%s) created for %d member(s)", charge.id, name, len(member_ids))
    return await get_charge(session, charge.id)


async def update_charge(
    session: AsyncSession,
    charge_id: int,
    fields: dict[str, Any],
    member_ids: Optional[Sequence[int]] = None,
) -> Charge:
    """Edit charge data; when member_ids is given the member set is replaced, keeping existing rows."""
    charge = await get_charge(session, charge_id)
    name = _validate_charge_fields(
        fields.get("name", charge.name),
        fields.get("value", charge.value),
        fields.get("due_month", charge.due_month),
        fields.get("due_year", charge.due_year),
    )
    plan_changed = any(
        k in fields and fields[k] != getattr(charge, k)
        for k in ("value", "due_month", "due_year", "installment_count")
    )
    charge.name = name
    for key in ("value", "due_month", "due_year"):
        if key in fields:
            setattr(charge, key, fields[key])
    if "installment_count" in fields:
        charge.installment_count = fields["installment_count"] or None
        charge.is_installment = bool(fields["installment_count"])
    if plan_changed:
        charge.installments.clear()
        await session.flush()
        if charge.is_installment:
            charge.installments.extend(
                Installment(**item)
                for item in build_installments(charge.value, charge.installment_count, charge.due_month, charge.due_year)
            )

    if member_ids is not None:
        wanted = await _check_members(session, member_ids)
        current = {a.member_id: a for a in charge.assignments}
        for member_id, assignment in current.items():
            if member_id not in wanted:
                charge.assignments.remove(assignment)
        for member_id in wanted:
            if member_id not in current:
                charge.assignments.append(ChargeAssignment(member_id=member_id, status=PENDING))
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        raise Conflict("Member is already assigned to this charge")
    logger.info("Charge %s updated", charge_id)
    return await get_charge(session, charge_id)


async def update_installments(session: AsyncSession, charge_id: int, items: Sequence[dict[str, Any]]) -> Charge:
    """Validate and save an edited schedule. Rows are matched by installment number."""
    charge = await get_charge(session, charge_id)
    validate_installments(charge.value, charge.due_month, charge.due_year, items)
    by_number = {i.number: i for i in charge.installments}
    wanted = {item["number"] for item in items}
    for number, row in by_number.items():
        if number not in wanted:
            charge.installments.remove(row)
    for item in items:
        row = by_number.get(item["number"])
        if row is None:
            charge.installments.append(Installment(**item))
            continue
        row.due_month = item["due_month"]
        row.due_year = item["due_year"]
        row.value = item["value"]
    charge.is_installment = True
    charge.installment_count = len(items)
    await session.commit()
    logger.info("Installments of charge %s saved (%d)", charge_id, len(items))
    return await get_charge(session, charge_id)


async def get_assignment(session: AsyncSession, assignment_id: int) -> ChargeAssignment:
    result = await session.execute(
        select(ChargeAssignment)
        .where(ChargeAssignment.id == assignment_id)
        .options(selectinload(ChargeAssignment.charge), selectinload(ChargeAssignment.member))
    )
    assignment = result.scalar_one_or_none()
    if not assignment:
        raise NotFound("Charge assignment not found")
    return assignment


async def register_payment(
    session: AsyncSession,
    assignment_id: int,
    today: date,
    payment_date: Optional[date] = None,
    payment_method_id: Optional[int] = None,
) -> ChargeEntry:
    """Mark an assignment as paid. A second payment is rejected."""
    assignment = await get_assignment(session, assignment_id)
    if assignment.status == PAID:
        raise Conflict("This charge is already paid")
    if payment_method_id is not None:
        method = await session.get(PaymentMethod, payment_method_id)
        if not method or not method.active:
            raise WorkflowError("Payment method not found or inactive")
    assignment.status = PAID
    assignment.payment_date = payment_date or today
    assignment.payment_method_id = payment_method_id
    await session.commit()
    logger.info("Charge assignment %s paid on %s", assignment_id, assignment.payment_date)
    return _entry(assignment, today)


async def delete_charge_assignment(session: AsyncSession, assignment_id: int) -> bool:
    """Delete one member's charge; the charge and its installments go too when nothing else references it.

    Returns True when the charge itself was deleted.
    """
    assignment = await session.get(ChargeAssignment, assignment_id)
    if not assignment:
        raise NotFound("Charge assignment not found")
    charge_id = assignment.charge_id
    await session.delete(assignment)
    await session.flush()
    remaining = (
        await session.execute(
            select(func.count()).select_from(ChargeAssignment).where(ChargeAssignment.charge_id == charge_id)
        )
    ).scalar_one()
    charge_deleted = False
    if remaining == 0:
        charge = await session.get(Charge, charge_id)
        if charge:
            await session.delete(charge)
            charge_deleted = True
    await session.commit()
    logger.info(
        "Charge assignment %s deleted%s", assignment_id,
        f"; charge {charge_id} had no other members and was deleted" if charge_deleted else "",
    )
    return charge_deleted


async def delete_charge(session: AsyncSession, charge_id: int) -> str:
    charge = await session.get(Charge, charge_id)
    if not charge:
        raise NotFound("Charge not found")
    name = charge.name
    await session.delete(charge)
    await session.commit()
    logger.info("Charge %s (%s) deleted", charge_id, name)
    return name


async def send_reminder(session: AsyncSession, assignment_id: int, message: str, messenger) -> dict[str, Any]:
    """Send a caller-written reminder to the member's WhatsApp number."""
    assignment = await get_assignment(session, assignment_id)
    number = assignment.member.whatsapp_number if assignment.member else None
    if not number:
        raise WorkflowError("Member has no WhatsApp number")
    result = await messenger.send_message(number, message)
    logger.info("Reminder for charge assignment %s sent to member %s", assignment_id, assignment.member_id)
    return result
