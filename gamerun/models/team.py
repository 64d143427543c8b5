"""Team and team membership models."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gamerun.models.base import Base, utcnow

TEAM_STATUSES = ("pendente", "ativa", "rejeitada")
MEMBERSHIP_STATUSES = ("pendente", "ativo", "removido")


class Team(Base):
    """Team registered for a game (game_equipes). Created by a member, who becomes its leader."""

    __tablename__ = "game_equipes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    game_id: Mapped[int] = mapped_column(ForeignKey("games.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(String(16), default="pendente")  # pendente, ativa, rejeitada
    leader_id: Mapped[int] = mapped_column(ForeignKey("profiles.id"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True, onupdate=utcnow)

    game: Mapped["Game"] = relationship("Game", back_populates="teams")
    leader: Mapped["Profile"] = relationship("Profile")
    members = relationship(
        "Membership", back_populates="team", cascade="all, delete-orphan"
    )
    quest_assignments = relationship(
        "QuestAssignment", back_populates="team", cascade="all, delete-orphan"
    )


class Membership(Base):
    """Member inside a team (equipe_integrantes). One row per member per game."""

    __tablename__ = "equipe_integrantes"
    __table_args__ = (UniqueConstraint("game_id", "member_id", name="uq_equipe_integrantes_game_member"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    team_id: Mapped[int] = mapped_column(ForeignKey("game_equipes.id"), nullable=False, index=True)
    game_id: Mapped[int] = mapped_column(ForeignKey("games.id"), nullable=False)
    member_id: Mapped[int] = mapped_column(ForeignKey("profiles.id"), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(16), default="pendente")  # pendente, ativo, removido
    is_owner: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True, onupdate=utcnow)

    team: Mapped["Team"] = relationship("Team", back_populates="members")
    member: Mapped["Profile"] = relationship("Profile", back_populates="memberships")
