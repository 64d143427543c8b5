"""Profile completeness, blood donor availability and leadership statistics."""
from datetime import date
from types import SimpleNamespace

import pytest

from gamerun.services.profiles import (
    REQUIRED_FIELDS,
    can_donate_blood,
    compute_incomplete_fields,
    leadership_stats,
    months_before,
)

COMPLETE = {name: "x" for name, _ in REQUIRED_FIELDS}


def _profile(**overrides):
    data = dict(COMPLETE, is_blood_donor=False, last_blood_donation=None)
    data.update(overrides)
    return SimpleNamespace(**data)


def test_last_donation_not_required_for_non_donors():
    assert compute_incomplete_fields(_profile()) == []


def test_last_donation_required_for_donors():
    assert compute_incomplete_fields(_profile(is_blood_donor=True)) == ["Última Doação"]
    assert compute_incomplete_fields(_profile(is_blood_donor=True, last_blood_donation=date(2024, 1, 1))) == []


def test_blank_strings_count_as_missing():
    missing = compute_incomplete_fields(_profile(cpf="  ", nickname=None, address_zip=""))
    assert missing == ["Apelido", "CPF", "CEP"]


@pytest.mark.parametrize(
    "last,expected",
    [
        (None, True),
        (date(2024, 2, 10), True),
        (date(2024, 2, 11), False),
        (date(2024, 5, 1), False),
    ],
)
def test_can_donate_blood(last, expected):
    assert can_donate_blood(last, date(2024, 5, 10)) is expected


def test_months_before_clamps_day():
    assert months_before(date(2024, 5, 31), 3) == date(2024, 2, 29)
    assert months_before(date(2024, 2, 15), 3) == date(2023, 11, 15)


def test_leadership_stats():
    today = date(2024, 5, 10)
    profiles = [
        SimpleNamespace(role="Corredor", status="Ativo", is_blood_donor=False, last_blood_donation=None),
        SimpleNamespace(role="Corredor", status="Afastado", is_blood_donor=True, last_blood_donation=None),
        SimpleNamespace(role="Capitão", status="Ativo", is_blood_donor=True, last_blood_donation=date(2024, 4, 1)),
        SimpleNamespace(role=None, status=None, is_blood_donor=True, last_blood_donation=date(2023, 1, 1)),
    ]
    stats = leadership_stats(profiles, today)
    assert stats["total"] == 4
    assert stats["by_role"] == {"Corredor": 2, "Capitão": 1}
    assert stats["by_status"] == {"Ativo": 2, "Afastado": 1}
    assert stats["donors"] == {"non_donors": 1, "donors": 3, "can_donate": 2}


@pytest.mark.asyncio
async def test_my_profile_and_incomplete_fields(client, make_member):
    headers, profile_id = await make_member("ana")
    r = await client.get("/api/profiles/me", headers=headers)
    assert r.json()["id"] == profile_id
    r = await client.get("/api/profiles/me/incomplete", headers=headers)
    data = r.json()
    assert data["complete"] is False
    assert "CPF" in data["missing"]
    assert "Última Doação" not in data["missing"]

    r = await client.patch("/api/profiles/me", json={"is_blood_donor": True, "cpf": "123.456.789-00"}, headers=headers)
    assert r.status_code == 200
    r = await client.get("/api/profiles/me/incomplete", headers=headers)
    assert "Última Doação" in r.json()["missing"]
    assert "CPF" not in r.json()["missing"]


@pytest.mark.asyncio
async def test_member_cannot_promote_self(client, make_member):
    headers, _ = await make_member("ana")
    r = await client.patch("/api/profiles/me", json={"is_admin": True, "role": "Capitão"}, headers=headers)
    assert r.status_code == 200
    assert r.json()["is_admin"] is False
    assert r.json()["role"] is None


@pytest.mark.asyncio
async def test_future_donation_rejected(client, make_member):
    headers, _ = await make_member("ana")
    r = await client.patch("/api/profiles/me", json={"last_blood_donation": "2999-01-01"}, headers=headers)
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_admin_assigns_role_and_filters(client, auth_headers, make_member):
    _, ana = await make_member("ana")
    _, bia = await make_member("bia")
    r = await client.patch(
        f"/api/profiles/{ana}", json={"role": "Capitão", "status": "Ativo", "is_leader": True}, headers=auth_headers
    )
    assert r.json()["role"] == "Capitão"
    await client.patch(f"/api/profiles/{bia}", json={"is_blood_donor": True}, headers=auth_headers)

    r = await client.get("/api/profiles?role=Capitão", headers=auth_headers)
    assert [p["id"] for p in r.json()] == [ana]
    r = await client.get("/api/profiles?blood_donors_only=true", headers=auth_headers)
    assert [p["id"] for p in r.json()] == [bia]
    r = await client.get("/api/profiles?search=AN", headers=auth_headers)
    assert ana in [p["id"] for p in r.json()]


@pytest.mark.asyncio
async def test_stats_for_leaders_only(client, auth_headers, make_member):
    leader_headers, leader = await make_member("ana")
    member_headers, _ = await make_member("bia")
    await client.patch(f"/api/profiles/{leader}", json={"is_leader": True}, headers=auth_headers)

    r = await client.get("/api/profiles/stats", headers=member_headers)
    assert r.status_code == 403
    r = await client.get("/api/profiles/stats", headers=leader_headers)
    assert r.status_code == 200
    assert r.json()["total"] == 3  # admin, ana, bia


@pytest.mark.asyncio
async def test_approve_profile(client, auth_headers, make_member):
    headers, profile_id = await make_member("ana")
    await client.patch(f"/api/profiles/{profile_id}", json={"is_approved": False}, headers=auth_headers)
    r = await client.post(f"/api/profiles/{profile_id}/approve", headers=auth_headers)
    assert r.json()["is_approved"] is True
