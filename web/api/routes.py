"""API routes for games, quests, quest answers and rankings."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, File, UploadFile
from pydantic import BaseModel, ConfigDict

from gamerun.models import Profile, User
from gamerun.models.base import async_session_factory
from gamerun.services import games as game_service
from gamerun.services import quests as quest_service
from web.auth import is_admin, require_admin_user, require_member, require_user

router = APIRouter(prefix="/api", tags=["games"])


# --- Pydantic schemas ---


class GameCreate(BaseModel):
    title: str
    short_description: str = ""
    description: str = ""
    team_size: int
    start_date: Optional[datetime] = None
    image_url: Optional[str] = None
    type: Optional[str] = None


class GameUpdate(BaseModel):
    title: Optional[str] = None
    short_description: Optional[str] = None
    description: Optional[str] = None
    team_size: Optional[int] = None
    start_date: Optional[datetime] = None
    image_url: Optional[str] = None
    type: Optional[str] = None


class StatusChange(BaseModel):
    status: str


class GameResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    short_description: str
    description: str
    team_size: int
    start_date: Optional[datetime]
    image_url: Optional[str]
    status: str
    type: Optional[str]
    created_at: Optional[datetime] = None


class QuestCreate(BaseModel):
    number: Optional[int] = None
    title: str
    description: str = ""
    points: int = 0
    status: str = "pendente"
    visible: bool = False
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class QuestUpdate(BaseModel):
    number: Optional[int] = None
    title: Optional[str] = None
    description: Optional[str] = None
    points: Optional[int] = None
    status: Optional[str] = None
    visible: Optional[bool] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class QuestResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    game_id: int
    number: Optional[int]
    title: str
    description: str
    points: int
    status: str
    visible: bool
    start_date: Optional[datetime]
    end_date: Optional[datetime]
    pdf_url: Optional[str]


class AnswerSubmit(BaseModel):
    answer: str


class AssignmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    team_id: int
    quest_id: int
    status: str
    answer: Optional[str]
    answered_at: Optional[datetime]
    evaluation: Optional[str]
    points_awarded: Optional[int]


class EvaluateRequest(BaseModel):
    assignment_ids: list[int]
    correct: bool


# --- Games ---


@router.get("/games", response_model=list[GameResponse])
async def list_games(status: Optional[str] = None, user: User = Depends(require_user)):
    """List games, optionally filtered by status."""
    async with async_session_factory() as session:
        return await game_service.list_games(session, status)


@router.get("/games/{game_id}", response_model=GameResponse)
async def get_game(game_id: int, user: User = Depends(require_user)):
    async with async_session_factory() as session:
        return await game_service.get_game(session, game_id)


@router.post("/games", response_model=GameResponse)
async def create_game(body: GameCreate, admin: User = Depends(require_admin_user)):
    """Create a game. Status always starts as pendente."""
    async with async_session_factory() as session:
        return await game_service.create_game(session, body.model_dump())


@router.patch("/games/{game_id}", response_model=GameResponse)
async def update_game(game_id: int, body: GameUpdate, admin: User = Depends(require_admin_user)):
    async with async_session_factory() as session:
        return await game_service.update_game(session, game_id, body.model_dump(exclude_unset=True))


@router.patch("/games/{game_id}/status", response_model=GameResponse)
async def set_game_status(game_id: int, body: StatusChange, admin: User = Depends(require_admin_user)):
    """Manual status change (activate = ativo). Nothing changes status automatically."""
    async with async_session_factory() as session:
        return await game_service.set_game_status(session, game_id, body.status)


@router.delete("/games/{game_id}")
async def delete_game(game_id: int, admin: User = Depends(require_admin_user)):
    """Delete a game with its quests and teams."""
    async with async_session_factory() as session:
        title = await game_service.delete_game(session, game_id)
        return {"ok": True, "deleted": title}


@router.get("/games/{game_id}/ranking")
async def game_ranking(game_id: int, user: User = Depends(require_user)):
    """Teams ordered by points from correct answers."""
    async with async_session_factory() as session:
        ranking = await quest_service.game_ranking(session, game_id)
        return [
            {
                "position": i,
                "team_id": r.team_id,
                "team_name": r.team_name,
                "total_points": r.total_points,
                "completed_quests": r.completed_quests,
            }
            for i, r in enumerate(ranking, start=1)
        ]


# --- Quests ---


@router.get("/games/{game_id}/quests", response_model=list[QuestResponse])
async def list_quests(game_id: int, user: User = Depends(require_user)):
    """Admins see every quest; members only visible ones."""
    async with async_session_factory() as session:
        await game_service.get_game(session, game_id)
        return await quest_service.list_quests(session, game_id, include_hidden=is_admin(user))


@router.post("/games/{game_id}/quests")
async def create_quest(game_id: int, body: QuestCreate, admin: User = Depends(require_admin_user)):
    """Create a quest and a pending assignment for every team already in the game."""
    async with async_session_factory() as session:
        quest, assigned = await quest_service.create_quest(session, game_id, body.model_dump())
        return {"quest": QuestResponse.model_validate(quest), "assignments_created": assigned}


@router.get("/quests/{quest_id}", response_model=QuestResponse)
async def get_quest(quest_id: int, user: User = Depends(require_user)):
    async with async_session_factory() as session:
        return await quest_service.get_quest(session, quest_id, include_hidden=is_admin(user))


@router.patch("/quests/{quest_id}", response_model=QuestResponse)
async def update_quest(quest_id: int, body: QuestUpdate, admin: User = Depends(require_admin_user)):
    async with async_session_factory() as session:
        return await quest_service.update_quest(session, quest_id, body.model_dump(exclude_unset=True))


@router.delete("/quests/{quest_id}")
async def delete_quest(quest_id: int, admin: User = Depends(require_admin_user)):
    async with async_session_factory() as session:
        title = await quest_service.delete_quest(session, quest_id)
        return {"ok": True, "deleted": title}


@router.post("/quests/{quest_id}/visibility", response_model=QuestResponse)
async def toggle_quest_visibility(quest_id: int, admin: User = Depends(require_admin_user)):
    async with async_session_factory() as session:
        return await quest_service.toggle_visibility(session, quest_id)


@router.patch("/quests/{quest_id}/status", response_model=QuestResponse)
async def change_quest_status(quest_id: int, body: StatusChange, admin: User = Depends(require_admin_user)):
    async with async_session_factory() as session:
        return await quest_service.change_status(session, quest_id, body.status)


@router.post("/quests/{quest_id}/pdf", response_model=QuestResponse)
async def upload_quest_pdf(
    quest_id: int, file: UploadFile = File(...), admin: User = Depends(require_admin_user)
):
    """Attach a PDF to the quest (application/pdf only)."""
    data = await file.read()
    async with async_session_factory() as session:
        return await quest_service.attach_pdf(session, quest_id, file.filename or "", file.content_type, data)


@router.post("/quests/{quest_id}/answer", response_model=AssignmentResponse)
async def submit_answer(quest_id: int, body: AnswerSubmit, member: Profile = Depends(require_member)):
    """Answer a visible, active quest on behalf of the member's team."""
    async with async_session_factory() as session:
        return await quest_service.submit_answer(session, quest_id, member.id, body.answer)


@router.get("/quests/{quest_id}/responses")
async def list_responses(quest_id: int, admin: User = Depends(require_admin_user)):
    """All team answers for a quest; correct_order ranks correct answers by answer time."""
    async with async_session_factory() as session:
        assignments = await quest_service.list_responses(session, quest_id)
        responses = [
            {**AssignmentResponse.model_validate(a).model_dump(), "team_name": a.team.name if a.team else None}
            for a in assignments
        ]
        correct = sorted(
            (a for a in assignments if a.evaluation == "certo" and a.answered_at),
            key=lambda a: a.answered_at,
        )
        return {
            "responses": responses,
            "correct_order": [{"assignment_id": a.id, "team_id": a.team_id} for a in correct],
        }


@router.post("/quests/{quest_id}/evaluate")
async def evaluate_answers(quest_id: int, body: EvaluateRequest, admin: User = Depends(require_admin_user)):
    """Bulk evaluation. Only answered (respondido) assignments change; others are reported as skipped."""
    async with async_session_factory() as session:
        evaluated, skipped = await quest_service.evaluate(session, quest_id, body.assignment_ids, body.correct)
        return {"ok": True, "evaluated": evaluated, "skipped": skipped}
