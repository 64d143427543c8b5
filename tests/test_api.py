"""Tests for basic API functionality: auth, games, quests, uploads."""
from pathlib import Path

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

import config
from gamerun.models import QuestAssignment
from gamerun.models.base import async_session_factory
from gamerun.services import quests as quest_service
from gamerun.services import storage


@pytest.mark.asyncio
async def test_health(client):
    """Health endpoint returns ok."""
    r = await client.get("/api/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_login_bootstraps_admin_profile(client):
    r = await client.post("/api/auth/login", json={"username": "admin", "password": "testpass123"})
    assert r.status_code == 200
    data = r.json()
    assert data["is_admin"] is True
    assert data["is_approved"] is True
    assert data["profile_id"] is not None


@pytest.mark.asyncio
async def test_login_wrong_password(client, auth_headers):
    r = await client.post("/api/auth/login", json={"username": "admin", "password": "nope"})
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_games_require_login(client):
    r = await client.get("/api/games")
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_member_cannot_create_game(client, make_member):
    headers, _ = await make_member("ana")
    r = await client.post("/api/games", json={"title": "X", "team_size": 3}, headers=headers)
    assert r.status_code == 403


@pytest.mark.asyncio
async def test_create_game_starts_pending(client, auth_headers, game):
    assert game["status"] == "pendente"
    assert game["team_size"] == 4
    r = await client.get("/api/games", headers=auth_headers)
    assert r.status_code == 200
    assert [g["title"] for g in r.json()] == ["GameRun 2024"]


@pytest.mark.asyncio
async def test_create_game_requires_title(client, auth_headers):
    r = await client.post("/api/games", json={"title": "  ", "team_size": 4}, headers=auth_headers)
    assert r.status_code == 400
    assert "title" in r.json()["detail"]


@pytest.mark.asyncio
async def test_game_status_transitions(client, auth_headers, game):
    gid = game["id"]
    r = await client.patch(f"/api/games/{gid}/status", json={"status": "ativo"}, headers=auth_headers)
    assert r.status_code == 200
    assert r.json()["status"] == "ativo"
    r = await client.get("/api/games?status=ativo", headers=auth_headers)
    assert len(r.json()) == 1
    r = await client.patch(f"/api/games/{gid}/status", json={"status": "finished"}, headers=auth_headers)
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_game_type_must_be_active_option(client, auth_headers):
    r = await client.post("/api/settings/game-types", json={"name": "Corrida"}, headers=auth_headers)
    assert r.status_code == 200
    r = await client.post(
        "/api/games", json={"title": "A", "team_size": 2, "type": "Caça"}, headers=auth_headers
    )
    assert r.status_code == 400
    r = await client.post(
        "/api/games", json={"title": "A", "team_size": 2, "type": "Corrida"}, headers=auth_headers
    )
    assert r.status_code == 200
    assert r.json()["type"] == "Corrida"


@pytest.mark.asyncio
async def test_update_and_delete_game(client, auth_headers, game):
    gid = game["id"]
    r = await client.patch(f"/api/games/{gid}", json={"title": "GameRun 2025"}, headers=auth_headers)
    assert r.status_code == 200
    assert r.json()["title"] == "GameRun 2025"
    r = await client.delete(f"/api/games/{gid}", headers=auth_headers)
    assert r.json() == {"ok": True, "deleted": "GameRun 2025"}
    r = await client.get(f"/api/games/{gid}", headers=auth_headers)
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_create_quest_fans_out_to_existing_teams(client, auth_headers, make_member, game):
    gid = game["id"]
    ana, _ = await make_member("ana")
    bia, _ = await make_member("bia")
    t1 = (await client.post(f"/api/games/{gid}/teams", json={"name": "Lobos"}, headers=ana)).json()
    t2 = (await client.post(f"/api/games/{gid}/teams", json={"name": "Corujas"}, headers=bia)).json()

    r = await client.post(
        f"/api/games/{gid}/quests", json={"title": "Quest 1", "points": 10}, headers=auth_headers
    )
    assert r.status_code == 200, r.text
    data = r.json()
    assert data["assignments_created"] == 2
    quest_id = data["quest"]["id"]

    r = await client.get(f"/api/quests/{quest_id}/responses", headers=auth_headers)
    responses = r.json()["responses"]
    assert len(responses) == 2
    assert {a["team_id"] for a in responses} == {t1["id"], t2["id"]}
    assert all(a["status"] == "pendente" and a["quest_id"] == quest_id for a in responses)


@pytest.mark.asyncio
async def test_quest_without_teams_and_empty_title(client, auth_headers, game):
    gid = game["id"]
    r = await client.post(f"/api/games/{gid}/quests", json={"title": ""}, headers=auth_headers)
    assert r.status_code == 400
    r = await client.post(f"/api/games/{gid}/quests", json={"title": "Solo"}, headers=auth_headers)
    assert r.json()["assignments_created"] == 0


@pytest.mark.asyncio
async def test_hidden_quests_not_listed_for_members(client, auth_headers, make_member, game):
    gid = game["id"]
    headers, _ = await make_member("ana")
    await client.post(f"/api/games/{gid}/quests", json={"title": "Hidden", "number": 2}, headers=auth_headers)
    r = await client.post(
        f"/api/games/{gid}/quests", json={"title": "Shown", "number": 1, "visible": True}, headers=auth_headers
    )
    shown_id = r.json()["quest"]["id"]

    r = await client.get(f"/api/games/{gid}/quests", headers=headers)
    assert [q["title"] for q in r.json()] == ["Shown"]
    r = await client.get(f"/api/games/{gid}/quests", headers=auth_headers)
    assert [q["title"] for q in r.json()] == ["Shown", "Hidden"]

    r = await client.post(f"/api/quests/{shown_id}/visibility", headers=auth_headers)
    assert r.json()["visible"] is False
    r = await client.get(f"/api/quests/{shown_id}", headers=headers)
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_quest_status_any_transition(client, auth_headers, game):
    r = await client.post(f"/api/games/{game['id']}/quests", json={"title": "Q"}, headers=auth_headers)
    qid = r.json()["quest"]["id"]
    for status in ("finalizada", "pendente", "ativo", "inativo"):
        r = await client.patch(f"/api/quests/{qid}/status", json={"status": status}, headers=auth_headers)
        assert r.status_code == 200
        assert r.json()["status"] == status


@pytest.mark.asyncio
async def test_answer_evaluate_and_rank(client, auth_headers, make_member, game):
    gid = game["id"]
    ana, _ = await make_member("ana")
    bia, _ = await make_member("bia")
    t1 = (await client.post(f"/api/games/{gid}/teams", json={"name": "Lobos"}, headers=ana)).json()
    t2 = (await client.post(f"/api/games/{gid}/teams", json={"name": "Corujas"}, headers=bia)).json()
    r = await client.post(
        f"/api/games/{gid}/quests",
        json={"title": "Enigma", "points": 15, "status": "ativo", "visible": True},
        headers=auth_headers,
    )
    qid = r.json()["quest"]["id"]

    # Team not approved yet
    r = await client.post(f"/api/quests/{qid}/answer", json={"answer": "42"}, headers=ana)
    assert r.status_code == 400
    for team in (t1, t2):
        await client.patch(f"/api/teams/{team['id']}/status", json={"status": "ativa"}, headers=auth_headers)

    r = await client.post(f"/api/quests/{qid}/answer", json={"answer": "42"}, headers=ana)
    assert r.status_code == 200
    a1 = r.json()
    assert a1["status"] == "respondido"
    r = await client.post(f"/api/quests/{qid}/answer", json={"answer": "41"}, headers=bia)
    a2 = r.json()

    r = await client.post(
        f"/api/quests/{qid}/evaluate", json={"assignment_ids": [a1["id"]], "correct": True}, headers=auth_headers
    )
    assert r.json()["evaluated"] == [a1["id"]]
    r = await client.post(
        f"/api/quests/{qid}/evaluate",
        json={"assignment_ids": [a1["id"], a2["id"]], "correct": False},
        headers=auth_headers,
    )
    assert r.json()["evaluated"] == [a2["id"]]
    assert r.json()["skipped"] == [a1["id"]]

    # Evaluated answers cannot be re-submitted
    r = await client.post(f"/api/quests/{qid}/answer", json={"answer": "43"}, headers=ana)
    assert r.status_code == 409

    r = await client.get(f"/api/games/{gid}/ranking", headers=ana)
    ranking = r.json()
    assert [row["team_name"] for row in ranking] == ["Lobos", "Corujas"]
    assert ranking[0]["total_points"] == 15
    assert ranking[0]["completed_quests"] == 1
    assert ranking[1]["total_points"] == 0

    r = await client.get(f"/api/quests/{qid}/responses", headers=auth_headers)
    assert r.json()["correct_order"] == [{"assignment_id": a1["id"], "team_id": t1["id"]}]


@pytest.mark.asyncio
async def test_upload_image_and_reject_other_types(client, auth_headers):
    r = await client.post(
        "/api/upload",
        files={"file": ("logo.png", b"\x89PNG\r\n\x1a\nfake", "image/png")},
        headers=auth_headers,
    )
    assert r.status_code == 200, r.text
    data = r.json()
    assert data["path"].startswith("gamerun/") and data["path"].endswith(".png")
    r = await client.get(data["url"])
    assert r.status_code == 200

    r = await client.post(
        "/api/upload", files={"file": ("notes.txt", b"hello", "text/plain")}, headers=auth_headers
    )
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_upload_image_size_limit(client, auth_headers):
    big = b"0" * (2 * 1024 * 1024 + 1)
    r = await client.post(
        "/api/upload", files={"file": ("big.jpg", big, "image/jpeg")}, headers=auth_headers
    )
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_quest_pdf_attachment(client, auth_headers, game):
    r = await client.post(f"/api/games/{game['id']}/quests", json={"title": "Q"}, headers=auth_headers)
    qid = r.json()["quest"]["id"]
    r = await client.post(
        f"/api/quests/{qid}/pdf", files={"file": ("q.png", b"x", "image/png")}, headers=auth_headers
    )
    assert r.status_code == 400
    r = await client.post(
        f"/api/quests/{qid}/pdf", files={"file": ("q.pdf", b"%PDF-1.4", "application/pdf")}, headers=auth_headers
    )
    assert r.status_code == 200, r.text
    assert "/quest-pdfs/" in r.json()["pdf_url"]


async def _count_assignments(quest_id):
    async with async_session_factory() as session:
        result = await session.execute(
            select(func.count()).select_from(QuestAssignment).where(QuestAssignment.quest_id == quest_id)
        )
        return result.scalar_one()


def _stored_pdfs():
    folder = Path(config.UPLOAD_DIR) / storage.PDF_FOLDER
    return set(folder.iterdir()) if folder.exists() else set()


@pytest.mark.asyncio
async def test_edit_quest(client, auth_headers, game):
    r = await client.post(f"/api/games/{game['id']}/quests", json={"title": "Q", "points": 5}, headers=auth_headers)
    qid = r.json()["quest"]["id"]
    r = await client.patch(
        f"/api/quests/{qid}", json={"title": "  Trilha  ", "points": 20, "number": 2}, headers=auth_headers
    )
    assert r.status_code == 200, r.text
    data = r.json()
    assert (data["title"], data["points"], data["number"]) == ("Trilha", 20, 2)

    r = await client.patch(f"/api/quests/{qid}", json={"title": " "}, headers=auth_headers)
    assert r.status_code == 400
    r = await client.patch(
        f"/api/quests/{qid}",
        json={"start_date": "2024-05-10T10:00:00", "end_date": "2024-05-09T10:00:00"},
        headers=auth_headers,
    )
    assert r.status_code == 400
    r = await client.get(f"/api/quests/{qid}", headers=auth_headers)
    assert r.json()["title"] == "Trilha"


@pytest.mark.asyncio
async def test_delete_quest_removes_assignments_and_pdf(client, auth_headers, make_member, game):
    ana, _ = await make_member("ana")
    await client.post(f"/api/games/{game['id']}/teams", json={"name": "Lobos"}, headers=ana)
    r = await client.post(f"/api/games/{game['id']}/quests", json={"title": "Q"}, headers=auth_headers)
    qid = r.json()["quest"]["id"]
    assert await _count_assignments(qid) == 1
    r = await client.post(
        f"/api/quests/{qid}/pdf", files={"file": ("q.pdf", b"%PDF-1.4", "application/pdf")}, headers=auth_headers
    )
    pdf_url = r.json()["pdf_url"]
    assert (await client.get(pdf_url)).status_code == 200

    r = await client.delete(f"/api/quests/{qid}", headers=auth_headers)
    assert r.json() == {"ok": True, "deleted": "Q"}
    r = await client.get(f"/api/quests/{qid}", headers=auth_headers)
    assert r.status_code == 404
    assert await _count_assignments(qid) == 0
    assert (await client.get(pdf_url)).status_code == 404


@pytest.mark.asyncio
async def test_stored_pdf_removed_when_quest_update_fails(client, auth_headers, game):
    r = await client.post(f"/api/games/{game['id']}/quests", json={"title": "Q"}, headers=auth_headers)
    qid = r.json()["quest"]["id"]
    before = _stored_pdfs()

    async def failing_commit():
        raise SQLAlchemyError("database is locked")

    async with async_session_factory() as session:
        session.commit = failing_commit
        with pytest.raises(SQLAlchemyError):
            await quest_service.attach_pdf(session, qid, "q.pdf", "application/pdf", b"%PDF-1.4")

    assert _stored_pdfs() == before
    r = await client.get(f"/api/quests/{qid}", headers=auth_headers)
    assert r.json()["pdf_url"] is None


@pytest.mark.asyncio
async def test_cannot_delete_team_leader_user(client, auth_headers, make_member, game):
    ana, _ = await make_member("ana")
    bia, _ = await make_member("bia")
    team = (await client.post(f"/api/games/{game['id']}/teams", json={"name": "Lobos"}, headers=ana)).json()
    await client.post(f"/api/teams/{team['id']}/join", headers=bia)

    r = await client.delete("/api/auth/users/ana", headers=auth_headers)
    assert r.status_code == 409
    assert "Lobos" in r.json()["detail"]
    r = await client.delete("/api/auth/users/bia", headers=auth_headers)
    assert r.status_code == 200
    r = await client.get(f"/api/teams/{team['id']}", headers=auth_headers)
    assert r.json()["member_count"] == 1

    await client.delete(f"/api/teams/{team['id']}", headers=auth_headers)
    r = await client.delete("/api/auth/users/ana", headers=auth_headers)
    assert r.status_code == 200
