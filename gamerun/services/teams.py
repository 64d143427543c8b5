"""Team formation and membership workflow."""
from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from gamerun.models import Game, Membership, Profile, Team
from gamerun.models.team import MEMBERSHIP_STATUSES, TEAM_STATUSES
from gamerun.services.errors import Conflict, Forbidden, NotFound, WorkflowError

logger = logging.getLogger("gamerun.teams")

TEAM_NAME_MIN = 3
TEAM_NAME_MAX = 50
# Statuses that hold a slot in the team and block joining another team of the same game
OCCUPYING_STATUSES = ("pendente", "ativo")


def validate_team_name(name: str) -> str:
    """Return the stripped name or raise WorkflowError when outside 3-50 characters."""
    name = (name or "").strip()
    if len(name) < TEAM_NAME_MIN:
        raise WorkflowError(f"Team name must have at least {TEAM_NAME_MIN} characters")
    if len(name) > TEAM_NAME_MAX:
        raise WorkflowError(f"Team name must have at most {TEAM_NAME_MAX} characters")
    return name


def has_free_slot(occupied: int, team_size: int) -> bool:
    return occupied < team_size


async def count_occupied_slots(session: AsyncSession, team_id: int) -> int:
    result = await session.execute(
        select(func.count())
        .select_from(Membership)
        .where(Membership.team_id == team_id, Membership.status.in_(OCCUPYING_STATUSES))
    )
    return result.scalar_one()


async def _clear_game_membership(session: AsyncSession, game_id: int, member_id: int) -> None:
    """Raise Conflict if the member already holds a place in this game; drop stale removed rows."""
    result = await session.execute(
        select(Membership).where(Membership.game_id == game_id, Membership.member_id == member_id)
    )
    existing = result.scalar_one_or_none()
    if not existing:
        return
    if existing.status in OCCUPYING_STATUSES:
        raise Conflict("Member is already registered in a team for this game")
    await session.delete(existing)
    await session.flush()


async def _get_team(session: AsyncSession, team_id: int) -> Team:
    team = await session.get(Team, team_id)
    if not team:
        raise NotFound("Team not found")
    return team


def _ensure_can_manage(team: Team, acting: Profile) -> None:
    if acting.is_admin or team.leader_id == acting.id:
        return
    raise Forbidden("Only the team leader or an admin can manage team members")


async def list_teams(session: AsyncSession, game_id: int) -> list[Team]:
    result = await session.execute(
        select(Team)
        .where(Team.game_id == game_id)
        .order_by(Team.id)
        .options(selectinload(Team.members).selectinload(Membership.member))
    )
    return list(result.scalars().all())


async def get_team_detail(session: AsyncSession, team_id: int) -> Team:
    result = await session.execute(
        select(Team)
        .where(Team.id == team_id)
        .options(
            selectinload(Team.members).selectinload(Membership.member),
            selectinload(Team.game),
        )
        .execution_options(populate_existing=True)
    )
    team = result.scalar_one_or_none()
    if not team:
        raise NotFound("Team not found")
    return team


async def create_team(session: AsyncSession, game_id: int, name: str, creator_id: int) -> Team:
    """Create a pending team led by the creator, who joins as active owner in the same commit."""
    name = validate_team_name(name)
    game = await session.get(Game, game_id)
    if not game:
        raise NotFound("Game not found")
    await _clear_game_membership(session, game_id, creator_id)

    team = Team(game_id=game_id, name=name, status="pendente", leader_id=creator_id)
    session.add(team)
    await session.flush()
    session.add(
        Membership(
            team_id=team.id,
            game_id=game_id,
            member_id=creator_id,
            status="ativo",
            is_owner=True,
        )
    )
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        raise Conflict("Member is already registered in a team for this game")
    logger.info("Team %s (%s) created in game %s by member %s", team.id, team.name, game_id, creator_id)
    return team


async def request_join(session: AsyncSession, team_id: int, member_id: int) -> Membership:
    """Insert a pending membership if the member is free in this game and the team has room."""
    team = await _get_team(session, team_id)
    if team.status == "rejeitada":
        raise WorkflowError("This team was rejected and does not accept members")
    game = await session.get(Game, team.game_id)
    # Captured here; the rollback below expires `game`
    cap = game.team_size
    await _clear_game_membership(session, team.game_id, member_id)

    if not has_free_slot(await count_occupied_slots(session, team_id), cap):
        logger.info("Join rejected: team %s is full (cap %s)", team_id, cap)
        raise Conflict(f"Team is full ({cap} members)")

    membership = Membership(
        team_id=team_id,
        game_id=team.game_id,
        member_id=member_id,
        status="pendente",
        is_owner=False,
    )
    session.add(membership)
    try:
        await session.flush()
        # Re-count inside the transaction so a concurrent join that already landed is seen
        if await count_occupied_slots(session, team_id) > cap:
            await session.rollback()
            logger.warning("Join rolled back: team %s exceeded cap %s", team_id, cap)
            raise Conflict(f"Team is full ({cap} members)")
        await session.commit()
    except IntegrityError:
        await session.rollback()
        raise Conflict("Member is already registered in a team for this game")
    await session.refresh(membership)
    logger.info("Member %s requested to join team %s", member_id, team_id)
    return membership


async def set_membership_status(
    session: AsyncSession, team_id: int, membership_id: int, status: str, acting: Profile
) -> Membership:
    """Approve (ativo) or reject (removido) a join request."""
    if status not in MEMBERSHIP_STATUSES:
        raise WorkflowError(f"Invalid membership status: {status}")
    team = await _get_team(session, team_id)
    _ensure_can_manage(team, acting)
    membership = await session.get(Membership, membership_id)
    if not membership or membership.team_id != team_id:
        raise NotFound("Membership not found")
    if membership.is_owner and status != "ativo":
        raise Conflict("The team leader cannot be removed from the team")
    membership.status = status
    await session.commit()
    logger.info("Membership %s of team %s set to %s by member %s", membership_id, team_id, status, acting.id)
    return membership


async def leave_team(session: AsyncSession, team_id: int, member_id: int) -> None:
    """Delete the member's own membership. The leader cannot leave (no leadership transfer exists)."""
    result = await session.execute(
        select(Membership).where(Membership.team_id == team_id, Membership.member_id == member_id)
    )
    membership = result.scalar_one_or_none()
    if not membership:
        raise NotFound("You are not a member of this team")
    if membership.is_owner:
        raise Conflict("The team leader cannot leave the team; an admin must delete the team instead")
    await session.delete(membership)
    await session.commit()
    logger.info("Member %s left team %s", member_id, team_id)


async def remove_member(
    session: AsyncSession, team_id: int, membership_id: int, acting: Profile
) -> None:
    team = await _get_team(session, team_id)
    _ensure_can_manage(team, acting)
    membership = await session.get(Membership, membership_id)
    if not membership or membership.team_id != team_id:
        raise NotFound("Membership not found")
    if membership.is_owner:
        raise Conflict("The team leader cannot be removed from the team")
    await session.delete(membership)
    await session.commit()
    logger.info("Membership %s removed from team %s by member %s", membership_id, team_id, acting.id)


async def set_team_status(session: AsyncSession, team_id: int, status: str) -> Team:
    """Admin approval. Member count is not checked."""
    if status not in TEAM_STATUSES:
        raise WorkflowError(f"Invalid team status: {status}")
    team = await _get_team(session, team_id)
    team.status = status
    await session.commit()
    logger.info("Team %s set to %s", team_id, status)
    return team


async def delete_team(session: AsyncSession, team_id: int) -> str:
    team = await _get_team(session, team_id)
    name = team.name
    await session.delete(team)
    await session.commit()
    logger.info("Team %s (%s) deleted", team_id, name)
    return name


async def find_member_team(session: AsyncSession, game_id: int, member_id: int) -> Optional[Team]:
    """Team where the member holds an active place in this game, if any."""
    result = await session.execute(
        select(Team)
        .join(Membership, Membership.team_id == Team.id)
        .where(
            Membership.game_id == game_id,
            Membership.member_id == member_id,
            Membership.status == "ativo",
        )
    )
    return result.scalar_one_or_none()
