"""Quest and per-team quest assignment models."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gamerun.models.base import Base, utcnow

QUEST_STATUSES = ("pendente", "ativo", "inativo", "finalizada")


class Quest(Base):
    """Mission inside a game."""

    __tablename__ = "quests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    game_id: Mapped[int] = mapped_column(ForeignKey("games.id"), nullable=False, index=True)
    number: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)  # display order
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(16), default="pendente")
    visible: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    start_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    end_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    pdf_url: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True, onupdate=utcnow)

    game: Mapped["Game"] = relationship("Game", back_populates="quests")
    assignments = relationship(
        "QuestAssignment", back_populates="quest", cascade="all, delete-orphan"
    )


class QuestAssignment(Base):
    """A team's copy of a quest (equipe_quests): answer, evaluation and points."""

    __tablename__ = "equipe_quests"
    __table_args__ = (UniqueConstraint("team_id", "quest_id", name="uq_equipe_quests_team_quest"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    team_id: Mapped[int] = mapped_column(ForeignKey("game_equipes.id"), nullable=False, index=True)
    quest_id: Mapped[int] = mapped_column(ForeignKey("quests.id"), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(16), default="pendente")  # pendente -> respondido -> concluida
    answer: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    answered_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    evaluation: Mapped[Optional[str]] = mapped_column(String(8), nullable=True)  # certo, errado
    points_awarded: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    quest: Mapped["Quest"] = relationship("Quest", back_populates="assignments")
    team: Mapped["Team"] = relationship("Team", back_populates="quest_assignments")
