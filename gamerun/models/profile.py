"""Member profile model."""
from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gamerun.models.base import Base, utcnow


class Profile(Base):
    """Member of the organization. Created with the login user; approved and edited by an admin."""

    __tablename__ = "profiles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("web_users.id"), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    avatar_url: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)

    # Admin-assigned
    status: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)  # free text from config_status
    role: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)  # free text from config_roles
    is_admin: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_approved: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_leader: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Personal data
    nickname: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    shirt_size: Mapped[Optional[str]] = mapped_column(String(8), nullable=True)
    birth_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    cpf: Mapped[Optional[str]] = mapped_column(String(14), nullable=True)
    rg: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    gender: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    whatsapp_number: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    profession: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    naturalidade: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    nome_mae: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    nome_pai: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    blood_type: Mapped[Optional[str]] = mapped_column(String(4), nullable=True)
    is_blood_donor: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    last_blood_donation: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    # Address
    address_street: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    address_number: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    address_district: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    address_city: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    address_state: Mapped[Optional[str]] = mapped_column(String(2), nullable=True)
    address_zip: Mapped[Optional[str]] = mapped_column(String(9), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True, onupdate=utcnow)

    user: Mapped["User"] = relationship("User", back_populates="profile")
    memberships = relationship(
        "Membership", back_populates="member", cascade="all, delete-orphan"
    )
    charge_assignments = relationship(
        "ChargeAssignment", back_populates="member", cascade="all, delete-orphan"
    )
