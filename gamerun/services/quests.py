"""Quest lifecycle: admin CRUD, fan-out to teams, answers, evaluation and ranking."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from gamerun.models import Game, Quest, QuestAssignment, Team
from gamerun.models.base import utcnow
from gamerun.models.quest import QUEST_STATUSES
from gamerun.services import storage
from gamerun.services.errors import Conflict, Forbidden, NotFound, WorkflowError
from gamerun.services.teams import find_member_team

logger = logging.getLogger("gamerun.quests")

QUEST_FIELDS = ("number", "title", "description", "points", "status", "visible", "start_date", "end_date")


@dataclass
class TeamRanking:
    team_id: int
    team_name: str
    total_points: int = 0
    completed_quests: int = 0


def validate_quest_fields(fields: dict[str, Any], creating: bool = False) -> dict[str, Any]:
    """Keep known quest fields; title must be non-empty, status one of QUEST_STATUSES."""
    clean = {k: v for k, v in fields.items() if k in QUEST_FIELDS}
    if creating or "title" in clean:
        title = (clean.get("title") or "").strip()
        if not title:
            raise WorkflowError("Quest title is required")
        clean["title"] = title
    if "status" in clean and clean["status"] not in QUEST_STATUSES:
        raise WorkflowError(f"Invalid quest status: {clean['status']}")
    if clean.get("points") is not None and clean["points"] < 0:
        raise WorkflowError("Quest points cannot be negative")
    start, end = clean.get("start_date"), clean.get("end_date")
    if start and end and end < start:
        raise WorkflowError("Quest end date must be after its start date")
    return clean


def compute_ranking(teams: Iterable[Team], assignments: Iterable[QuestAssignment]) -> list[TeamRanking]:
    """Points and completed quests per team, counting only answers evaluated as correct.

    Sorted by points, then completed quests (both descending), then team name.
    """
    ranking = {t.id: TeamRanking(team_id=t.id, team_name=t.name) for t in teams}
    for a in assignments:
        row = ranking.get(a.team_id)
        if row is None or a.evaluation != "certo":
            continue
        row.total_points += a.points_awarded or 0
        if a.status == "concluida":
            row.completed_quests += 1
    return sorted(
        ranking.values(),
        key=lambda r: (-r.total_points, -r.completed_quests, r.team_name.lower()),
    )


async def _get_quest(session: AsyncSession, quest_id: int) -> Quest:
    quest = await session.get(Quest, quest_id)
    if not quest:
        raise NotFound("Quest not found")
    return quest


async def get_quest(session: AsyncSession, quest_id: int, include_hidden: bool = True) -> Quest:
    """Hidden quests look missing to members."""
    quest = await _get_quest(session, quest_id)
    if not quest.visible and not include_hidden:
        raise NotFound("Quest not found")
    return quest


async def list_quests(session: AsyncSession, game_id: int, include_hidden: bool = False) -> list[Quest]:
    query = select(Quest).where(Quest.game_id == game_id)
    if not include_hidden:
        query = query.where(Quest.visible == True)  # noqa: E712
    result = await session.execute(query.order_by(Quest.number.is_(None), Quest.number, Quest.id))
    return list(result.scalars().all())


async def create_quest(session: AsyncSession, game_id: int, fields: dict[str, Any]) -> tuple[Quest, int]:
    """Insert the quest and one pending assignment per team of the game, in one commit.

    Returns (quest, number of assignments created).
    """
    clean = validate_quest_fields(fields, creating=True)
    game = await session.get(Game, game_id)
    if not game:
        raise NotFound("Game not found")
    quest = Quest(game_id=game_id, **clean)
    session.add(quest)
    await session.flush()

    result = await session.execute(select(Team.id).where(Team.game_id == game_id))
    team_ids = [row[0] for row in result.fetchall()]
    for team_id in team_ids:
        session.add(QuestAssignment(team_id=team_id, quest_id=quest.id, status="pendente"))
    await session.commit()
    await session.refresh(quest)
    logger.info("Quest %s created in game %s with %d team assignment(s)", quest.id, game_id, len(team_ids))
    return quest, len(team_ids)


async def update_quest(session: AsyncSession, quest_id: int, fields: dict[str, Any]) -> Quest:
    quest = await _get_quest(session, quest_id)
    clean = validate_quest_fields(fields)
    merged_start = clean.get("start_date", quest.start_date)
    merged_end = clean.get("end_date", quest.end_date)
    if merged_start and merged_end and merged_end < merged_start:
        raise WorkflowError("Quest end date must be after its start date")
    for key, value in clean.items():
        setattr(quest, key, value)
    await session.commit()
    logger.info("Quest %s updated: %s", quest_id, ", ".join(sorted(clean)))
    return quest


async def delete_quest(session: AsyncSession, quest_id: int) -> str:
    quest = await _get_quest(session, quest_id)
    title, pdf_url = quest.title, quest.pdf_url
    await session.delete(quest)
    await session.commit()
    if pdf_url:
        storage.delete_by_url(pdf_url)
    logger.info("Quest %s (%s) deleted", quest_id, title)
    return title


async def toggle_visibility(session: AsyncSession, quest_id: int) -> Quest:
    quest = await _get_quest(session, quest_id)
    quest.visible = not quest.visible
    await session.commit()
    logger.info("Quest %s is now %s", quest_id, "visible" if quest.visible else "hidden")
    return quest


async def change_status(session: AsyncSession, quest_id: int, status: str) -> Quest:
    """Any status may move to any other status."""
    if status not in QUEST_STATUSES:
        raise WorkflowError(f"Invalid quest status: {status}")
    quest = await _get_quest(session, quest_id)
    quest.status = status
    await session.commit()
    logger.info("Quest %s status set to %s", quest_id, status)
    return quest


async def attach_pdf(
    session: AsyncSession, quest_id: int, filename: str, content_type: Optional[str], data: bytes
) -> Quest:
    """Store the PDF, then write its URL on the quest. The stored file is removed if the update fails."""
    quest = await _get_quest(session, quest_id)
    stored = storage.save_pdf(filename, content_type, data)
    previous = quest.pdf_url
    try:
        quest.pdf_url = stored.url
        await session.commit()
    except Exception:
        await session.rollback()
        storage.delete(stored.path)
        logger.exception("PDF stored for quest %s but the quest update failed", quest_id)
        raise
    if previous and previous != stored.url:
        storage.delete_by_url(previous)
    logger.info("PDF %s attached to quest %s", stored.path, quest_id)
    return quest


async def submit_answer(session: AsyncSession, quest_id: int, member_id: int, answer: str) -> QuestAssignment:
    """Record the answer of the member's team. Teams created after the quest get their row here."""
    answer = (answer or "").strip()
    if not answer:
        raise WorkflowError("Answer cannot be empty")
    quest = await _get_quest(session, quest_id)
    if not quest.visible or quest.status != "ativo":
        raise WorkflowError("This quest is not open for answers")
    team = await find_member_team(session, quest.game_id, member_id)
    if not team:
        raise Forbidden("You are not an active member of a team in this game")
    if team.status != "ativa":
        raise WorkflowError("Your team has not been approved yet")

    result = await session.execute(
        select(QuestAssignment).where(
            QuestAssignment.quest_id == quest_id, QuestAssignment.team_id == team.id
        )
    )
    assignment = result.scalar_one_or_none()
    if assignment is None:
        assignment = QuestAssignment(team_id=team.id, quest_id=quest_id, status="pendente")
        session.add(assignment)
    elif assignment.status == "concluida":
        raise Conflict("This quest was already evaluated for your team")
    assignment.status = "respondido"
    assignment.answer = answer
    assignment.answered_at = utcnow()
    await session.commit()
    await session.refresh(assignment)
    logger.info("Team %s answered quest %s", team.id, quest_id)
    return assignment


async def list_responses(session: AsyncSession, quest_id: int) -> list[QuestAssignment]:
    await _get_quest(session, quest_id)
    result = await session.execute(
        select(QuestAssignment)
        .where(QuestAssignment.quest_id == quest_id)
        .options(selectinload(QuestAssignment.team))
        .order_by(QuestAssignment.id)
    )
    return list(result.scalars().all())


async def evaluate(
    session: AsyncSession, quest_id: int, assignment_ids: list[int], correct: bool
) -> tuple[list[int], list[int]]:
    """Mark answered assignments as concluded. Returns (evaluated ids, skipped ids)."""
    quest = await _get_quest(session, quest_id)
    if not assignment_ids:
        raise WorkflowError("Select at least one answer to evaluate")
    result = await session.execute(
        select(QuestAssignment).where(
            QuestAssignment.quest_id == quest_id, QuestAssignment.id.in_(assignment_ids)
        )
    )
    by_id = {a.id: a for a in result.scalars().all()}
    evaluated, skipped = [], []
    for assignment_id in assignment_ids:
        a = by_id.get(assignment_id)
        if a is None or a.status != "respondido":
            skipped.append(assignment_id)
            continue
        a.status = "concluida"
        a.evaluation = "certo" if correct else "errado"
        a.points_awarded = quest.points if correct else 0
        evaluated.append(assignment_id)
    await session.commit()
    logger.info(
        "Quest %s: %d answer(s) evaluated as %s, %d skipped",
        quest_id, len(evaluated), "certo" if correct else "errado", len(skipped),
    )
    return evaluated, skipped


async def game_ranking(session: AsyncSession, game_id: int) -> list[TeamRanking]:
    game = await session.get(Game, game_id)
    if not game:
        raise NotFound("Game not found")
    teams = (await session.execute(select(Team).where(Team.game_id == game_id))).scalars().all()
    assignments = (
        await session.execute(
            select(QuestAssignment)
            .join(Quest, Quest.id == QuestAssignment.quest_id)
            .where(Quest.game_id == game_id)
        )
    ).scalars().all()
    return compute_ranking(teams, assignments)
