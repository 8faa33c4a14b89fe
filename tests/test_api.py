from __future__ import annotations

from datetime import timedelta

from conftest import FIRE_AT, user_headers
from fundee_backend.app.services import notifications_service

API = "/api"


async def _register(client, name="player"):
    resp = await client.post(f"{API}/users", json={"display_name": name})
    assert resp.status_code == 201, resp.text
    return resp.json()


async def test_register_and_profile(client):
    created = await _register(client, "alice")
    assert created["wallet_balance"] == "0.00"
    assert len(created["referral_code"]) == 8

    me = await client.get(f"{API}/users/me", headers=user_headers(created["id"]))
    assert me.status_code == 200
    assert me.json()["display_name"] == "alice"

    anonymous = await client.get(f"{API}/users/me")
    assert anonymous.status_code == 401


async def test_active_draw_countdown_and_purchase(client):
    user = await _register(client)
    headers = user_headers(user["id"])

    active = (await client.get(f"{API}/draws/active", headers=headers)).json()
    assert active["seconds_until_draw"] == 10 * 3600
    assert active["status"] == "pending"
    assert active["my_tickets"] == 0

    bought = await client.post(f"{API}/draws/active/tickets", headers=headers)
    assert bought.status_code == 201
    ticket = bought.json()
    assert ticket["source"] == "purchase"
    assert 100_000_000 <= ticket["ticket_number"] <= 999_999_999

    active = (await client.get(f"{API}/draws/active", headers=headers)).json()
    assert active["total_tickets"] == 1 and active["my_tickets"] == 1


async def test_purchase_after_fire_is_conflict(client, clock):
    user = await _register(client)
    await client.get(f"{API}/draws/active")
    clock.now = FIRE_AT + timedelta(seconds=1)

    resp = await client.post(f"{API}/draws/active/tickets", headers=user_headers(user["id"]))
    assert resp.status_code == 409
    assert resp.json()["error"] == "ineligible_draw"


async def test_ad_watch_cooldown_over_http(client, clock):
    user = await _register(client)
    headers = user_headers(user["id"])

    for _ in range(5):
        resp = await client.post(f"{API}/ads/watch", headers=headers)
        assert resp.status_code == 201
    assert resp.json()["cooldown"]["is_active"] is False

    blocked = await client.post(f"{API}/ads/watch", headers=headers)
    assert blocked.status_code == 429
    assert blocked.headers["Retry-After"] == "600"
    assert blocked.json()["error"] == "rate_limited"

    clock.advance(seconds=600)
    state = (await client.get(f"{API}/ads/state", headers=headers)).json()
    assert state == {"is_active": True, "count": 0, "cooldown_until": None, "seconds_remaining": 0}


async def test_ticket_pages_follow_cursor(client):
    user = await _register(client)
    headers = user_headers(user["id"])
    for _ in range(3):
        await client.post(f"{API}/draws/active/tickets", headers=headers)
    draw_id = (await client.get(f"{API}/draws/active")).json()["draw_id"]

    first = (await client.get(f"{API}/draws/{draw_id}/tickets", params={"limit": 2}, headers=headers)).json()
    assert len(first["items"]) == 2 and first["next_cursor"]
    second = (
        await client.get(
            f"{API}/draws/{draw_id}/tickets",
            params={"limit": 2, "cursor": first["next_cursor"]},
            headers=headers,
        )
    ).json()
    assert len(second["items"]) == 1 and second["next_cursor"] is None

    broken = await client.get(f"{API}/draws/{draw_id}/tickets", params={"cursor": "%%%"}, headers=headers)
    assert broken.status_code == 400


async def test_admin_execution_and_outcome(client, clock, make_draw, monkeypatch):
    sent = []

    async def _fake_notify(user_id, draw_id, amount, **kwargs):
        sent.append(user_id)
        return True

    monkeypatch.setattr(notifications_service, "notify_outcome", _fake_notify)

    draw = await make_draw(minimum_tickets=1)
    user = await _register(client)
    headers = user_headers(user["id"])
    await client.post(f"{API}/draws/active/tickets", headers=headers)

    forbidden = await client.post(f"{API}/draws/{draw.id}/execute", headers=headers)
    assert forbidden.status_code == 403

    admin = user_headers(0, admin=True)
    early = await client.post(f"{API}/draws/{draw.id}/execute", headers=admin)
    assert early.status_code == 409 and early.json()["error"] == "draw_not_due"

    clock.now = FIRE_AT + timedelta(minutes=1)
    done = (await client.post(f"{API}/draws/execute-due", headers=admin)).json()
    (outcome,) = done["executed"]
    assert outcome["status"] == "completed"
    assert outcome["tier_counts"] == {"tier1": 1}
    assert outcome["prize_pool"] == "100.00"

    again = (await client.post(f"{API}/draws/{draw.id}/execute", headers=admin)).json()
    assert again["already_resolved"] is True

    first = (await client.get(f"{API}/draws/{draw.id}/outcome", headers=headers)).json()
    second = (await client.get(f"{API}/draws/{draw.id}/outcome", headers=headers)).json()
    assert first["won"] and first["first_view"] and first["total_amount"] == "100.00"
    assert second["won"] and not second["first_view"]
    assert sent == [user["id"]]

    me = (await client.get(f"{API}/users/me", headers=headers)).json()
    assert me["wallet_balance"] == "100.00"

    recent = (await client.get(f"{API}/winners/recent", params={"limit": 5})).json()
    assert [w["user_id"] for w in recent["items"]] == [user["id"]]
    assert recent["items"][0]["amount"] == "100.00"


async def test_withdrawal_requires_key_and_replays(client, clock, make_draw):
    draw = await make_draw(minimum_tickets=1)
    user = await _register(client)
    headers = user_headers(user["id"])
    await client.post(f"{API}/draws/active/tickets", headers=headers)
    clock.now = FIRE_AT + timedelta(minutes=1)
    await client.post(f"{API}/draws/{draw.id}/execute", headers=user_headers(0, admin=True))

    body = {"amount": "40.00", "details": {"method": "paypal", "email": "winner@example.com"}}
    missing = await client.post(f"{API}/withdrawals", json=body, headers=headers)
    assert missing.status_code == 400

    keyed = user_headers(user["id"], idempotency_key="wd-1")
    created = await client.post(f"{API}/withdrawals", json=body, headers=keyed)
    replay = await client.post(f"{API}/withdrawals", json=body, headers=keyed)
    assert created.status_code == 201 and replay.status_code == 200
    assert created.json()["id"] == replay.json()["id"]
    assert created.json()["amount"] == "40.00" and created.json()["status"] == "pending"

    too_small = await client.post(
        f"{API}/withdrawals",
        json={**body, "amount": "5.00"},
        headers=user_headers(user["id"], idempotency_key="wd-2"),
    )
    assert too_small.status_code == 400
    assert too_small.json()["details"]["reason"] == "below_minimum"

    me = (await client.get(f"{API}/users/me", headers=headers)).json()
    assert me["wallet_balance"] == "60.00"


async def test_crypto_withdrawal_gets_network_from_method(client, clock, make_draw):
    draw = await make_draw(minimum_tickets=1)
    user = await _register(client)
    await client.post(f"{API}/draws/active/tickets", headers=user_headers(user["id"]))
    clock.now = FIRE_AT + timedelta(minutes=1)
    await client.post(f"{API}/draws/{draw.id}/execute", headers=user_headers(0, admin=True))

    body = {
        "amount": "25.00",
        "details": {"method": "crypto_usdt", "wallet_address": "TQ1aaaaaaaaaaaaaaaaaaaaaaaaaaaaaa"},
    }
    resp = await client.post(
        f"{API}/withdrawals", json=body, headers=user_headers(user["id"], idempotency_key="usdt-1")
    )
    assert resp.status_code == 201, resp.text
    assert resp.json()["method"] == "crypto_usdt"
    assert resp.json()["details"]["network"] == "TRC-20"

    chosen = {**body, "details": {**body["details"], "network": "ERC-20"}}
    rejected = await client.post(
        f"{API}/withdrawals", json=chosen, headers=user_headers(user["id"], idempotency_key="usdt-2")
    )
    assert rejected.status_code == 422


async def test_referral_over_http(client):
    referrer = await _register(client, "host")
    guest = await _register(client, "guest")

    resp = await client.post(
        f"{API}/referrals/apply",
        json={"code": referrer["referral_code"]},
        headers=user_headers(guest["id"]),
    )
    assert resp.status_code == 201
    assert resp.json()["referrer_ticket"]["source"] == "referral"

    again = await client.post(
        f"{API}/referrals/apply",
        json={"code": referrer["referral_code"]},
        headers=user_headers(guest["id"]),
    )
    assert again.status_code == 400 and again.json()["error"] == "referral_error"


async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["db"] is True
    assert "draws_routes" in body["routes"]
    assert body["core"]["snapshot"]["DRAW_TIMEZONE"] == "America/New_York"


async def test_openapi_documents_error_envelope(client):
    spec = (await client.get("/openapi.json")).json()
    assert set(spec["components"]["schemas"]["ErrorResponse"]["required"]) == {"error", "message"}
    buy = spec["paths"][f"{API}/draws/active/tickets"]["post"]["responses"]
    assert buy["429"]["content"]["application/json"]["schema"]["$ref"].endswith("/ErrorResponse")
