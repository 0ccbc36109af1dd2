"""
Интеграционные тесты эндпоинтов /api/v1/progress/*.

Покрываемые сценарии:
- Аутентификация: без токена → 401/403, неверный токен → 401, настоящий JWT → 200
- GET /progress/current: снимок сессии с метриками и сводками
- GET /progress/current: ошибка бэкенда попадает в поле error, а не в 500
- WS /progress/live: первый снимок, обновление по команде, отписка при отключении
- WS /progress/live: кадр не-JSON пропускается, соединение живо
- WS /progress/live: неверный токен — соединение закрывается до accept
"""

import pytest
from fastapi import WebSocketDisconnect
from fastapi.testclient import TestClient

from coachapp.gateway import GatewayError
from coachapp.services.session_resolver import SESSIONS_TABLE
from coachapp.services.set_log_stream import SET_LOGS_TABLE
from coachapp.services.summaries import SESSION_SUMMARY_VIEW, USER_WEEKLY_VIEW

from conftest import USER_ID, build_app, make_auth_headers, make_token

pytestmark = pytest.mark.integration


def seed_workout(gateway) -> None:
    gateway.seed(
        SESSIONS_TABLE,
        {"id": "s1", "user_id": USER_ID, "client_day_id": "d1", "started_at": "2026-10-19T06:00:00+00:00",
         "ended_at": None},
    )
    gateway.seed(
        SET_LOGS_TABLE,
        {"id": "a", "session_id": "s1", "client_item_id": "i1", "set_number": 1, "reps_done": 10,
         "weight_kg_done": 40, "marked_done_at": "2026-10-19T06:05:00+00:00"},
    )
    gateway.seed(SESSION_SUMMARY_VIEW, {"user_id": USER_ID, "session_id": "s1", "total_sets_completed": 1})
    gateway.seed(USER_WEEKLY_VIEW, {"user_id": USER_ID, "iso_week": "2026-W43", "sessions_count": 1})


# ---------------------------------------------------------------------------
# Аутентификация
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_current_without_token_is_rejected(client):
    """Запрос без Bearer-токена отклоняется схемой HTTPBearer."""
    response = await client.get("/api/v1/progress/current")
    assert response.status_code in (401, 403)


@pytest.mark.asyncio
async def test_current_with_bad_token_returns_401(client):
    response = await client.get("/api/v1/progress/current", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_current_with_wrong_audience_returns_401(client):
    token = make_token(aud="anon")
    response = await client.get("/api/v1/progress/current", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_current_with_real_token(client, gateway):
    seed_workout(gateway)
    response = await client.get(
        "/api/v1/progress/current", params={"program_day_id": "d1"}, headers=make_auth_headers()
    )
    assert response.status_code == 200
    assert response.json()["user_id"] == USER_ID


# ---------------------------------------------------------------------------
# GET /progress/current
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_current_snapshot(user_client, gateway):
    """Снимок содержит сессию, подходы, живые метрики и серверные сводки."""
    seed_workout(gateway)

    response = await user_client.get("/api/v1/progress/current", params={"program_day_id": "d1"})

    assert response.status_code == 200
    data = response.json()
    assert data["loading"] is False
    assert data["session"]["id"] == "s1"
    assert data["sets_done"] == 1
    assert data["total_volume_kg"] == 400
    assert data["summary"]["total_sets_completed"] == 1
    assert data["weekly"]["iso_week"] == "2026-W43"
    assert data["streaks"]["current_streak"] == 0


@pytest.mark.asyncio
async def test_current_without_session(user_client):
    response = await user_client.get("/api/v1/progress/current")
    assert response.status_code == 200
    assert response.json()["session"] is None


@pytest.mark.asyncio
async def test_current_backend_error_in_error_field(user_client, gateway):
    gateway.errors[SESSIONS_TABLE] = GatewayError("JWT expired", code="PGRST301")

    response = await user_client.get("/api/v1/progress/current")

    assert response.status_code == 200
    assert "JWT expired" in response.json()["error"]


# ---------------------------------------------------------------------------
# WS /progress/live
# ---------------------------------------------------------------------------

def test_live_progress_streams_snapshots(gateway, feed, monday_clock):
    seed_workout(gateway)
    app = build_app(gateway, feed, monday_clock)
    test_client = TestClient(app)

    url = f"/api/v1/progress/live?token={make_token()}&program_day_id=d1"
    with test_client.websocket_connect(url) as websocket:
        first = websocket.receive_json()
        assert first["session"]["id"] == "s1"
        assert first["sets_done"] == 1
        assert feed.subscriber_count(SET_LOGS_TABLE, "session_id=eq.s1") == 1

        websocket.send_json({"action": "refresh_weekly"})
        second = websocket.receive_json()
        assert second["weekly"]["iso_week"] == "2026-W43"

    # отключение клиента снимает realtime-подписку
    assert feed.subscriber_count(SET_LOGS_TABLE, "session_id=eq.s1") == 0


def test_live_progress_skips_non_json_frame(gateway, feed, monday_clock):
    seed_workout(gateway)
    test_client = TestClient(build_app(gateway, feed, monday_clock))

    url = f"/api/v1/progress/live?token={make_token()}&program_day_id=d1"
    with test_client.websocket_connect(url) as websocket:
        websocket.receive_json()

        websocket.send_text("not json")
        websocket.send_json({"action": "refresh_weekly"})
        snapshot = websocket.receive_json()

        assert snapshot["session"]["id"] == "s1"
        assert snapshot["weekly"]["iso_week"] == "2026-W43"
        assert feed.subscriber_count(SET_LOGS_TABLE, "session_id=eq.s1") == 1


def test_live_progress_rejects_bad_token(gateway, feed, monday_clock):
    app = build_app(gateway, feed, monday_clock)
    test_client = TestClient(app)

    with pytest.raises(WebSocketDisconnect):
        with test_client.websocket_connect("/api/v1/progress/live?token=garbage") as websocket:
            websocket.receive_json()
