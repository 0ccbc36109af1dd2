"""
Трекер прогресса тренировки: текущая сессия + живые подходы +
производные метрики + серверные сводки.

Один экземпляр живёт столько же, сколько его потребитель (WebSocket-соединение
или один HTTP-запрос). Асинхронные шаги помечены поколением (generation):
результат, пришедший после смены пользователя/дня или после close(), отбрасывается.
"""
import asyncio
import logging
from typing import AsyncIterator, Optional, Set

from pydantic import ValidationError

from coachapp.gateway import GatewayError
from coachapp.schemas.progress import (
    ProgressSnapshot,
    SessionSummary,
    StreakInfo,
    WeeklySummary,
    WorkoutSession,
)
from coachapp.services.metrics import MetricsMemo
from coachapp.services.session_resolver import SessionResolver
from coachapp.services.set_log_stream import SetLogStream
from coachapp.services.summaries import SummaryAggregator

logger = logging.getLogger(__name__)


class ProgressTracker:
    def __init__(self, resolver: SessionResolver, stream: SetLogStream, aggregator: SummaryAggregator):
        self.resolver = resolver
        self.stream = stream
        self.aggregator = aggregator

        self.user_id: Optional[str] = None
        self.program_day_id: Optional[str] = None
        self.session: Optional[WorkoutSession] = None
        self.summary: Optional[SessionSummary] = None
        self.weekly: Optional[WeeklySummary] = None
        self.streaks: Optional[StreakInfo] = None
        self.loading = True
        self.error: Optional[str] = None
        self.closed = False

        self._generation = 0
        self._memo = MetricsMemo()
        self._last_len = 0
        self._tasks: Set[asyncio.Task] = set()
        self._changed = asyncio.Event()

        stream.add_listener(self._on_stream_change)

    # ------------------------------------------------------------------
    # Жизненный цикл
    # ------------------------------------------------------------------

    async def start(self, user_id: Optional[str], program_day_id: Optional[str] = None) -> None:
        self._generation += 1
        gen = self._generation
        self.user_id = user_id
        self.program_day_id = program_day_id
        self.loading = True
        self.error = None

        if not user_id:
            # без пользователя пустое состояние, это не ошибка
            self.session = None
            self.summary = None
            self.weekly = None
            self.streaks = None
            await self.stream.switch(None)
            self.loading = False
            self._notify()
            return

        try:
            session = await self.resolver.resolve(user_id, program_day_id)
        except (GatewayError, ValidationError) as e:
            logger.error(f"Failed to resolve workout session for user {user_id}: {e}")
            if gen == self._generation:
                self.error = str(e) or "Failed to load session"
                self.loading = False
                self._notify()
            return

        if gen != self._generation:
            return
        self.session = session
        self._last_len = 0

        await asyncio.gather(
            self.stream.switch(session.id if session else None),
            self._load_summary(gen),
            self._load_weekly(gen),
        )
        if gen == self._generation:
            self._last_len = len(self.stream.items)
            self.loading = False
            self._notify()

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._generation += 1
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()
        await self.stream.close()
        self._changed.set()

    # ------------------------------------------------------------------
    # Загрузка сводок
    # ------------------------------------------------------------------

    async def _load_summary(self, gen: int) -> None:
        session_id = self.session.id if self.session else None
        summary = await self.aggregator.session_summary(self.user_id, session_id)
        if gen == self._generation:
            self.summary = summary
            self._notify()

    async def _load_weekly(self, gen: int) -> None:
        try:
            weekly = await self.aggregator.weekly_summary(self.user_id)
            streaks = await self.aggregator.streaks(self.user_id)
        except (GatewayError, ValidationError) as e:
            logger.warning(f"Weekly/streaks error for user {self.user_id}: {e}")
            weekly = None
            streaks = StreakInfo()
        if gen == self._generation:
            self.weekly = weekly
            self.streaks = streaks
            self._notify()

    def _on_stream_change(self, stream: SetLogStream) -> None:
        count = len(stream.items)
        if count != self._last_len and not self.loading and self.session is not None:
            # сервер пересчитывает сводку с задержкой, перечитываем после изменения списка
            self._spawn(self._load_summary(self._generation))
        self._last_len = count
        self._notify()

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # ------------------------------------------------------------------
    # Ручное обновление
    # ------------------------------------------------------------------

    async def refresh_session(self) -> None:
        """Переключиться на последнюю незакрытую сессию пользователя."""
        if not self.user_id:
            return
        gen = self._generation
        try:
            session = await self.resolver.latest_open(self.user_id)
        except (GatewayError, ValidationError) as e:
            logger.warning(f"refresh_session failed for user {self.user_id}: {e}")
            return
        if gen != self._generation:
            return
        self.session = session
        await asyncio.gather(
            self.stream.switch(session.id if session else None),
            self._load_summary(gen),
        )

    async def refresh_weekly(self) -> None:
        if not self.user_id:
            return
        await self._load_weekly(self._generation)

    async def refresh_summary(self) -> None:
        await self._load_summary(self._generation)

    # ------------------------------------------------------------------
    # Состояние
    # ------------------------------------------------------------------

    def _notify(self) -> None:
        self._changed.set()

    def snapshot(self) -> ProgressSnapshot:
        metrics = self._memo.get(self.stream.items, self.stream.version)
        stream_loading = self.stream.loading if self.session else False
        return ProgressSnapshot(
            loading=self.loading or stream_loading,
            error=self.error or self.stream.error,
            user_id=self.user_id,
            session=self.session,
            set_logs=list(self.stream.items),
            sets_done=metrics.sets_done,
            total_reps=metrics.total_reps,
            total_volume_kg=metrics.total_volume_kg,
            summary=self.summary,
            weekly=self.weekly,
            streaks=self.streaks,
        )

    async def changes(self) -> AsyncIterator[ProgressSnapshot]:
        """Снимок сразу, затем новый снимок после каждого изменения; до close()."""
        self._changed.clear()
        yield self.snapshot()
        while not self.closed:
            await self._changed.wait()
            self._changed.clear()
            if self.closed:
                break
            yield self.snapshot()
