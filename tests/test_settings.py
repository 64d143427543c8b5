"""Admin option lists and the WhatsApp collaborator."""
import json

import httpx
import pytest

from gamerun.services.errors import MessagingError, WorkflowError
from gamerun.services.whatsapp import WhatsAppService, normalize_number
from web.api.main import app
from web.api.utils import get_whatsapp_service


@pytest.mark.asyncio
@pytest.mark.parametrize("kind", ["statuses", "roles", "payment-methods", "game-types"])
async def test_option_crud(client, auth_headers, kind):
    r = await client.post(f"/api/settings/{kind}", json={"name": "Primeiro"}, headers=auth_headers)
    assert r.status_code == 200, r.text
    option_id = r.json()["id"]
    r = await client.post(f"/api/settings/{kind}", json={"name": "Primeiro"}, headers=auth_headers)
    assert r.status_code == 409

    r = await client.patch(f"/api/settings/{kind}/{option_id}", json={"name": "Renomeado"}, headers=auth_headers)
    assert r.json()["name"] == "Renomeado"
    r = await client.get(f"/api/settings/{kind}", headers=auth_headers)
    assert [o["name"] for o in r.json()] == ["Renomeado"]

    r = await client.delete(f"/api/settings/{kind}/{option_id}", headers=auth_headers)
    assert r.json() == {"ok": True, "deleted": "Renomeado"}


@pytest.mark.asyncio
async def test_options_read_for_members_write_for_admins(client, make_member):
    headers, _ = await make_member("ana")
    r = await client.get("/api/settings/roles", headers=headers)
    assert r.status_code == 200
    r = await client.post("/api/settings/roles", json={"name": "Capitão"}, headers=headers)
    assert r.status_code == 403
    r = await client.get("/api/settings/roles")
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_unknown_option_list(client, auth_headers):
    r = await client.get("/api/settings/colors", headers=auth_headers)
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_active_only_filter(client, auth_headers):
    await client.post("/api/settings/payment-methods", json={"name": "PIX"}, headers=auth_headers)
    await client.post("/api/settings/payment-methods", json={"name": "Cheque", "active": False}, headers=auth_headers)
    r = await client.get("/api/settings/payment-methods?active_only=true", headers=auth_headers)
    assert [o["name"] for o in r.json()] == ["PIX"]


def test_normalize_number():
    assert normalize_number("(11) 98765-4321") == "5511987654321"
    assert normalize_number("+55 11 98765-4321") == "5511987654321"
    assert normalize_number("") == ""


def _service(status_code, body=None, seen=None):
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return httpx.Response(status_code, json=body or {})

    return WhatsAppService(base_url="http://wa.test", token="secret", transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_send_message_posts_number_and_text():
    seen = []
    result = await _service(200, {"success": True}, seen).send_message("11987654321", " Oi ")
    assert result == {"success": True}
    assert seen[0].headers["Authorization"] == "Bearer secret"
    assert json.loads(seen[0].content) == {"number": "5511987654321", "message": "Oi"}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status_code,fragment",
    [(503, "not connected"), (400, "Invalid data"), (401, "Invalid token"), (403, "Invalid token"), (500, "Failed")],
)
async def test_send_message_error_mapping(status_code, fragment):
    with pytest.raises(MessagingError) as exc:
        await _service(status_code).send_message("11987654321", "Oi")
    assert fragment in str(exc.value)


@pytest.mark.asyncio
async def test_send_message_requires_text():
    with pytest.raises(WorkflowError):
        await _service(200).send_message("11987654321", "  ")


@pytest.mark.asyncio
async def test_not_configured():
    with pytest.raises(MessagingError):
        await WhatsAppService(base_url="").get_status()


@pytest.mark.asyncio
async def test_whatsapp_status_endpoint(client, auth_headers):
    service = _service(200, {"status": "ok", "whatsapp": "connected", "timestamp": "2024-05-10T12:00:00Z"})
    app.dependency_overrides[get_whatsapp_service] = lambda: service
    r = await client.get("/api/settings/whatsapp/status", headers=auth_headers)
    assert r.status_code == 200
    assert r.json() == {"status": "connected", "last_update": "2024-05-10T12:00:00Z"}


@pytest.mark.asyncio
async def test_whatsapp_status_unreachable_is_503(client, auth_headers):
    app.dependency_overrides[get_whatsapp_service] = lambda: WhatsAppService(base_url="")
    r = await client.get("/api/settings/whatsapp/status", headers=auth_headers)
    assert r.status_code == 503


@pytest.mark.asyncio
async def test_payment_method_in_use_cannot_be_deleted(client, auth_headers, make_member):
    _, member_id = await make_member("ana")
    pix = (await client.post("/api/settings/payment-methods", json={"name": "PIX"}, headers=auth_headers)).json()
    r = await client.post(
        "/api/charges",
        json={"name": "Mensalidade", "value": 50.0, "due_month": 6, "due_year": 2099, "member_ids": [member_id]},
        headers=auth_headers,
    )
    assignment_id = r.json()["assignments"][0]["id"]
    await client.post(
        f"/api/charges/assignments/{assignment_id}/pay", json={"payment_method_id": pix["id"]}, headers=auth_headers
    )

    r = await client.delete(f"/api/settings/payment-methods/{pix['id']}", headers=auth_headers)
    assert r.status_code == 409
    r = await client.patch(f"/api/settings/payment-methods/{pix['id']}", json={"active": False}, headers=auth_headers)
    assert r.json()["active"] is False
    r = await client.get(f"/api/charges?member_id={member_id}", headers=auth_headers)
    assert r.json()[0]["payment_method_id"] == pix["id"]
