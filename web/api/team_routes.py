"""API routes for team formation, join requests and admin approval."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict

from gamerun.models import Profile, User
from gamerun.models.base import async_session_factory
from gamerun.services import teams as team_service
from web.api.utils import member_display_name
from web.auth import require_admin_user, require_member, require_user

router = APIRouter(prefix="/api", tags=["teams"])


class TeamCreate(BaseModel):
    name: str


class MembershipStatusUpdate(BaseModel):
    status: str  # ativo to approve, removido to reject


class TeamStatusUpdate(BaseModel):
    status: str  # ativa, rejeitada, pendente


class MembershipResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    team_id: int
    game_id: int
    member_id: int
    status: str
    is_owner: bool
    created_at: Optional[datetime] = None


def _team_dict(team) -> dict:
    members = [
        {
            "id": m.id,
            "member_id": m.member_id,
            "name": member_display_name(m.member),
            "status": m.status,
            "is_owner": m.is_owner,
        }
        for m in sorted(team.members, key=lambda m: (not m.is_owner, m.id))
        if m.status != "removido"
    ]
    return {
        "id": team.id,
        "game_id": team.game_id,
        "name": team.name,
        "status": team.status,
        "leader_id": team.leader_id,
        "members": members,
        "member_count": len(members),
    }


@router.get("/games/{game_id}/teams")
async def list_teams(game_id: int, user: User = Depends(require_user)):
    """Teams of a game with their pending and active members."""
    async with async_session_factory() as session:
        teams = await team_service.list_teams(session, game_id)
        return [_team_dict(t) for t in teams]


@router.get("/games/{game_id}/teams/mine")
async def my_team(game_id: int, member: Profile = Depends(require_member)):
    """The team where the member is active in this game, or null."""
    async with async_session_factory() as session:
        team = await team_service.find_member_team(session, game_id, member.id)
        if not team:
            return None
        return _team_dict(await team_service.get_team_detail(session, team.id))


@router.post("/games/{game_id}/teams")
async def create_team(game_id: int, body: TeamCreate, member: Profile = Depends(require_member)):
    """Create a pending team led by the caller."""
    async with async_session_factory() as session:
        team = await team_service.create_team(session, game_id, body.name, member.id)
        return _team_dict(await team_service.get_team_detail(session, team.id))


@router.get("/teams/{team_id}")
async def get_team(team_id: int, user: User = Depends(require_user)):
    async with async_session_factory() as session:
        return _team_dict(await team_service.get_team_detail(session, team_id))


@router.post("/teams/{team_id}/join", response_model=MembershipResponse)
async def request_join(team_id: int, member: Profile = Depends(require_member)):
    """Ask to join; the leader or an admin approves."""
    async with async_session_factory() as session:
        return await team_service.request_join(session, team_id, member.id)


@router.post("/teams/{team_id}/leave")
async def leave_team(team_id: int, member: Profile = Depends(require_member)):
    async with async_session_factory() as session:
        await team_service.leave_team(session, team_id, member.id)
        return {"ok": True}


@router.patch("/teams/{team_id}/members/{membership_id}", response_model=MembershipResponse)
async def set_membership_status(
    team_id: int, membership_id: int, body: MembershipStatusUpdate, member: Profile = Depends(require_member)
):
    """Approve (ativo) or reject (removido) a join request. Leader or admin."""
    async with async_session_factory() as session:
        return await team_service.set_membership_status(session, team_id, membership_id, body.status, member)


@router.delete("/teams/{team_id}/members/{membership_id}")
async def remove_member(team_id: int, membership_id: int, member: Profile = Depends(require_member)):
    async with async_session_factory() as session:
        await team_service.remove_member(session, team_id, membership_id, member)
        return {"ok": True}


@router.patch("/teams/{team_id}/status")
async def set_team_status(team_id: int, body: TeamStatusUpdate, admin: User = Depends(require_admin_user)):
    """Admin approval. Member count is not checked."""
    async with async_session_factory() as session:
        team = await team_service.set_team_status(session, team_id, body.status)
        return {"id": team.id, "name": team.name, "status": team.status}


@router.delete("/teams/{team_id}")
async def delete_team(team_id: int, admin: User = Depends(require_admin_user)):
    async with async_session_factory() as session:
        name = await team_service.delete_team(session, team_id)
        return {"ok": True, "deleted": name}
