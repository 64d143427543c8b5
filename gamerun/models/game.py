"""Game model."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gamerun.models.base import Base, utcnow

GAME_STATUSES = ("pendente", "ativo", "inativo", "encerrado")


class Game(Base):
    """A GameRun event. Status changes only through explicit admin actions."""

    __tablename__ = "games"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(128), nullable=False)
    short_description: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    team_size: Mapped[int] = mapped_column(Integer, nullable=False)  # max members per team
    start_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    image_url: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    status: Mapped[str] = mapped_column(String(16), default="pendente")  # pendente, ativo, inativo, encerrado
    type: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True, onupdate=utcnow)

    quests = relationship(
        "Quest", back_populates="game", cascade="all, delete-orphan"
    )
    teams = relationship(
        "Team", back_populates="game", cascade="all, delete-orphan"
    )
