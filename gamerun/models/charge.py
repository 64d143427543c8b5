"""Billing models: charges, per-member assignments and installments."""
from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from sqlalchemy import Boolean, Date, DateTime, Float, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gamerun.models.base import Base, utcnow


class Charge(Base):
    """A charge (cobranca) shared by every member it is assigned to."""

    __tablename__ = "cobrancas"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    value: Mapped[float] = mapped_column(Float, nullable=False)
    due_month: Mapped[int] = mapped_column(Integer, nullable=False)  # 1-12
    due_year: Mapped[int] = mapped_column(Integer, nullable=False)
    is_installment: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    installment_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True, onupdate=utcnow)

    assignments = relationship(
        "ChargeAssignment", back_populates="charge", cascade="all, delete-orphan"
    )
    installments = relationship(
        "Installment",
        back_populates="charge",
        cascade="all, delete-orphan",
        order_by="Installment.number",
    )


class ChargeAssignment(Base):
    """Charge owed by one member (cobranca_integrantes)."""

    __tablename__ = "cobranca_integrantes"
    __table_args__ = (UniqueConstraint("charge_id", "member_id", name="uq_cobranca_integrantes_charge_member"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    charge_id: Mapped[int] = mapped_column(ForeignKey("cobrancas.id"), nullable=False, index=True)
    member_id: Mapped[int] = mapped_column(ForeignKey("profiles.id"), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(16), default="Pendente")  # Pendente, Pago, Atrasado
    payment_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    payment_method_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("config_payment_methods.id"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True, onupdate=utcnow)

    charge: Mapped["Charge"] = relationship("Charge", back_populates="assignments")
    member: Mapped["Profile"] = relationship("Profile", back_populates="charge_assignments")
    payment_method: Mapped[Optional["PaymentMethod"]] = relationship("PaymentMethod")


class Installment(Base):
    """One installment of a charge (cobranca_parcelas)."""

    __tablename__ = "cobranca_parcelas"
    __table_args__ = (UniqueConstraint("charge_id", "number", name="uq_cobranca_parcelas_charge_number"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    charge_id: Mapped[int] = mapped_column(ForeignKey("cobrancas.id"), nullable=False, index=True)
    number: Mapped[int] = mapped_column(Integer, nullable=False)
    due_month: Mapped[int] = mapped_column(Integer, nullable=False)
    due_year: Mapped[int] = mapped_column(Integer, nullable=False)
    value: Mapped[float] = mapped_column(Float, nullable=False)

    charge: Mapped["Charge"] = relationship("Charge", back_populates="installments")
