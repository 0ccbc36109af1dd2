"""
Модульные тесты ProgressTracker.

Покрываемые сценарии:
- Нет пользователя — пустое состояние без ошибки
- Полная загрузка: сессия, подходы, метрики, сводка, неделя, стрики
- Ошибка поиска сессии → error, loading=false
- Ошибка недельной сводки не ломает снимок (weekly=None, стрики нулевые)
- Живой подход пересчитывает метрики и перечитывает сводку сессии
- Смена дня программы снимает старую подписку
- changes(): первый снимок сразу, следующий после изменения, конец после close()
- refresh_session: переход на последнюю открытую сессию
"""

import asyncio
import pytest

from coachapp.gateway import ChangeEvent, GatewayError
from coachapp.gateway.realtime import INSERT
from coachapp.services.progress_tracker import ProgressTracker
from coachapp.services.session_resolver import SESSIONS_TABLE, SessionResolver
from coachapp.services.set_log_stream import SET_LOGS_TABLE, SetLogStream
from coachapp.services.summaries import SESSION_SUMMARY_VIEW, USER_WEEKLY_VIEW, SummaryAggregator

from conftest import USER_ID

pytestmark = pytest.mark.unit


def seed_workout(gateway) -> None:
    gateway.seed(
        SESSIONS_TABLE,
        {"id": "s1", "user_id": USER_ID, "client_day_id": "d1", "started_at": "2026-10-19T06:00:00+00:00",
         "ended_at": None},
    )
    gateway.seed(
        SET_LOGS_TABLE,
        {"id": "a", "session_id": "s1", "client_item_id": "i1", "set_number": 1, "reps_done": 10,
         "weight_kg_done": 50, "marked_done_at": "2026-10-19T06:05:00+00:00"},
        {"id": "b", "session_id": "s1", "client_item_id": "i1", "set_number": 2, "reps_done": 5,
         "weight_kg_done": 100, "marked_done_at": "2026-10-19T06:08:00+00:00"},
    )
    gateway.seed(SESSION_SUMMARY_VIEW, {"user_id": USER_ID, "session_id": "s1", "total_sets_completed": 2})
    gateway.seed(USER_WEEKLY_VIEW, {"user_id": USER_ID, "iso_week": "2026-W43", "sessions_count": 2})


def summary_reads(gateway) -> int:
    return sum(1 for table, *_ in gateway.selects if table == SESSION_SUMMARY_VIEW)


@pytest.fixture
def tracker(gateway, feed, monday_clock) -> ProgressTracker:
    return ProgressTracker(
        SessionResolver(gateway, monday_clock),
        SetLogStream(gateway, feed),
        SummaryAggregator(gateway),
    )


async def settle() -> None:
    for _ in range(10):
        await asyncio.sleep(0)


# ---------------------------------------------------------------------------
# Загрузка
# ---------------------------------------------------------------------------

async def test_no_user_gives_empty_state(gateway, tracker):
    await tracker.start(None)
    snapshot = tracker.snapshot()

    assert not snapshot.loading
    assert snapshot.error is None
    assert snapshot.session is None
    assert snapshot.set_logs == []
    assert gateway.selects == []


async def test_full_load(gateway, tracker):
    seed_workout(gateway)

    await tracker.start(USER_ID, "d1")
    snapshot = tracker.snapshot()

    assert not snapshot.loading
    assert snapshot.session.id == "s1"
    assert snapshot.sets_done == 2
    assert snapshot.total_reps == 15
    assert snapshot.total_volume_kg == pytest.approx(1000)
    assert snapshot.summary.total_sets_completed == 2
    assert snapshot.weekly.iso_week == "2026-W43"
    assert snapshot.streaks.current_streak == 0


async def test_no_session_today_is_not_an_error(gateway, tracker):
    await tracker.start(USER_ID)
    snapshot = tracker.snapshot()

    assert snapshot.session is None
    assert snapshot.error is None
    assert snapshot.summary is None
    assert not snapshot.loading


async def test_resolve_error_sets_error(gateway, tracker):
    gateway.errors[SESSIONS_TABLE] = GatewayError("JWT expired", code="PGRST301")

    await tracker.start(USER_ID)
    snapshot = tracker.snapshot()

    assert not snapshot.loading
    assert "JWT expired" in snapshot.error


async def test_weekly_error_falls_back(gateway, tracker):
    seed_workout(gateway)
    gateway.errors[USER_WEEKLY_VIEW] = GatewayError("timeout")

    await tracker.start(USER_ID, "d1")
    snapshot = tracker.snapshot()

    assert snapshot.error is None
    assert snapshot.weekly is None
    assert snapshot.streaks.current_streak == 0
    assert snapshot.sets_done == 2


# ---------------------------------------------------------------------------
# Живые изменения
# ---------------------------------------------------------------------------

async def test_live_set_updates_metrics_and_refreshes_summary(gateway, feed, tracker):
    seed_workout(gateway)
    await tracker.start(USER_ID, "d1")
    reads_before = summary_reads(gateway)

    event = ChangeEvent(event_type=INSERT, table=SET_LOGS_TABLE, new={
        "id": "c", "session_id": "s1", "client_item_id": "i2", "set_number": 1, "reps_done": 8,
        "weight_kg_done": 10, "marked_done_at": "2026-10-19T06:12:00+00:00",
    })
    await feed.publish(SET_LOGS_TABLE, "session_id=eq.s1", event)
    await settle()

    snapshot = tracker.snapshot()
    assert snapshot.sets_done == 3
    assert snapshot.total_volume_kg == pytest.approx(1080)
    assert summary_reads(gateway) == reads_before + 1


async def test_switching_day_drops_old_subscription(gateway, feed, tracker):
    seed_workout(gateway)
    gateway.seed(
        SESSIONS_TABLE,
        {"id": "s2", "user_id": USER_ID, "client_day_id": "d2", "started_at": "2026-10-19T05:00:00+00:00",
         "ended_at": None},
    )
    await tracker.start(USER_ID, "d1")

    await tracker.start(USER_ID, "d2")

    assert tracker.snapshot().session.id == "s2"
    assert feed.subscriber_count(SET_LOGS_TABLE, "session_id=eq.s1") == 0
    assert feed.subscriber_count(SET_LOGS_TABLE, "session_id=eq.s2") == 1


async def test_changes_stream_until_close(gateway, feed, tracker):
    seed_workout(gateway)
    await tracker.start(USER_ID, "d1")
    snapshots = []

    async def consume():
        async for snapshot in tracker.changes():
            snapshots.append(snapshot)

    consumer = asyncio.create_task(consume())
    await settle()
    assert len(snapshots) == 1

    await tracker.refresh_weekly()
    await settle()
    assert len(snapshots) >= 2

    await tracker.close()
    await asyncio.wait_for(consumer, timeout=1)
    assert feed.subscriber_count(SET_LOGS_TABLE, "session_id=eq.s1") == 0


async def test_close_is_idempotent(tracker):
    await tracker.close()
    await tracker.close()
    assert tracker.closed


async def test_refresh_session_picks_latest_open(gateway, tracker):
    seed_workout(gateway)
    await tracker.start(USER_ID)
    gateway.seed(
        SESSIONS_TABLE,
        {"id": "s3", "user_id": USER_ID, "started_at": "2026-10-19T07:00:00+00:00", "ended_at": None},
    )

    await tracker.refresh_session()

    assert tracker.snapshot().session.id == "s3"
    assert tracker.snapshot().set_logs == []
