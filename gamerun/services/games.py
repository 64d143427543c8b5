"""Game administration."""
from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gamerun.models import Game, GameType
from gamerun.models.game import GAME_STATUSES
from gamerun.services.errors import NotFound, WorkflowError

logger = logging.getLogger("gamerun.games")

GAME_FIELDS = ("title", "short_description", "description", "team_size", "start_date", "image_url", "type")


async def _check_type(session: AsyncSession, game_type: Optional[str]) -> None:
    """When game types are configured, the type must be one of the active ones."""
    if not game_type:
        return
    types = (await session.execute(select(GameType))).scalars().all()
    if types and game_type not in {t.name for t in types if t.active}:
        raise WorkflowError(f"Unknown or inactive game type: {game_type}")


def _validate(fields: dict[str, Any], creating: bool) -> dict[str, Any]:
    clean = {k: v for k, v in fields.items() if k in GAME_FIELDS}
    if creating or "title" in clean:
        title = (clean.get("title") or "").strip()
        if not title:
            raise WorkflowError("Game title is required")
        clean["title"] = title
    if creating and clean.get("team_size") is None:
        raise WorkflowError("Team size is required")
    if "team_size" in clean and (clean["team_size"] is None or clean["team_size"] < 1):
        raise WorkflowError("Team size must be at least 1")
    for key in ("short_description", "description"):
        if key in clean and clean[key] is None:
            clean[key] = ""
    return clean


async def get_game(session: AsyncSession, game_id: int) -> Game:
    game = await session.get(Game, game_id)
    if not game:
        raise NotFound("Game not found")
    return game


async def list_games(session: AsyncSession, status: Optional[str] = None) -> list[Game]:
    query = select(Game).order_by(Game.start_date.is_(None), Game.start_date.desc(), Game.id.desc())
    if status:
        if status not in GAME_STATUSES:
            raise WorkflowError(f"Invalid game status: {status}")
        query = query.where(Game.status == status)
    return list((await session.execute(query)).scalars().all())


async def create_game(session: AsyncSession, fields: dict[str, Any]) -> Game:
    """New games always start as pendente."""
    clean = _validate(fields, creating=True)
    await _check_type(session, clean.get("type"))
    game = Game(status="pendente", **clean)
    session.add(game)
    await session.commit()
    await session.refresh(game)
    logger.info("Game %s (%s) created", game.id, game.title)
    return game


async def update_game(session: AsyncSession, game_id: int, fields: dict[str, Any]) -> Game:
    game = await get_game(session, game_id)
    clean = _validate(fields, creating=False)
    if "type" in clean:
        await _check_type(session, clean["type"])
    for key, value in clean.items():
        setattr(game, key, value)
    await session.commit()
    logger.info("Game %s updated: %s", game_id, ", ".join(sorted(clean)))
    return game


async def set_game_status(session: AsyncSession, game_id: int, status: str) -> Game:
    if status not in GAME_STATUSES:
        raise WorkflowError(f"Invalid game status: {status}")
    game = await get_game(session, game_id)
    game.status = status
    await session.commit()
    logger.info("Game %s status set to %s", game_id, status)
    return game


async def delete_game(session: AsyncSession, game_id: int) -> str:
    game = await get_game(session, game_id)
    title = game.title
    await session.delete(game)
    await session.commit()
    logger.info("Game %s (%s) deleted", game_id, title)
    return title
