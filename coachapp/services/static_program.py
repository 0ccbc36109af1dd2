"""
Статическая программа с повторяющимся циклом и стартом только по понедельникам.

Состояния: NOT_STARTED → (start, только в понедельник) → ACTIVE
           ACTIVE → (restart, только в понедельник) → ACTIVE со сброшенным счётчиком дней.
"Понедельник" и "сегодня" считаются по часам программы (одна таймзона на всех).
Попытка старта не в понедельник получает отказ с сообщением, RPC старта не вызывается;
ошибка чтения состояния не превращает отказ в ошибку.
"""
import logging
from datetime import date, datetime, timedelta
from typing import Any, List, Optional

from coachapp.core.clock import Clock
from coachapp.gateway import DataGateway, Filter, GatewayError, Order, eq
from coachapp.schemas.program import (
    ProgramActionResult,
    ProgramDayView,
    ProgramState,
    StaticProgramProgress,
)
from coachapp.services.program_days import (
    DEFAULT_CYCLE_DAYS,
    cycle_number,
    day_in_cycle,
    program_day_from_row,
    week_and_day,
)

logger = logging.getLogger(__name__)

STATIC_STARTS_TABLE = "static_starts"
PROGRAM_DAY_TABLE = "programday"
USER_PROGRESS_TABLE = "userprogress"

STREAK_WINDOW_DAYS = 30

NOT_MONDAY_MESSAGE = "The program can only be started on a Monday. Come back next Monday!"
ALREADY_STARTED_MESSAGE = "The program is already running. Use restart to begin a new cycle."


def parse_date(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


class StaticProgramService:
    def __init__(
        self,
        gateway: DataGateway,
        clock: Clock,
        cycle_length: int = DEFAULT_CYCLE_DAYS,
        days_per_week: int = 5,
        program_id: Optional[str] = None,
    ):
        self.gateway = gateway
        self.clock = clock
        self.cycle_length = cycle_length
        self.days_per_week = days_per_week
        self.program_id = program_id

    # ------------------------------------------------------------------
    # Состояние
    # ------------------------------------------------------------------

    async def start_date(self, user_id: str) -> Optional[date]:
        row = await self.gateway.maybe_single(
            STATIC_STARTS_TABLE, [eq("user_id", user_id)], columns="start_monday"
        )
        return parse_date(row.get("start_monday")) if row else None

    async def state(self, user_id: str) -> ProgramState:
        start = await self.start_date(user_id)
        return ProgramState.active if start else ProgramState.not_started

    async def _refusal_state(self, user_id: str) -> ProgramState:
        # отказ по дню недели не зависит от бэкенда, состояние в ответе справочное
        try:
            return await self.state(user_id)
        except GatewayError as e:
            logger.warning(f"Program state read failed for user {user_id} during refusal: {e}")
            return ProgramState.not_started

    # ------------------------------------------------------------------
    # Старт / рестарт (только по понедельникам)
    # ------------------------------------------------------------------

    async def start(self, user_id: str) -> ProgramActionResult:
        if not self.clock.is_monday():
            logger.info(f"Start refused for user {user_id}: not Monday in {self.clock.tz_name}")
            return ProgramActionResult(
                accepted=False, state=await self._refusal_state(user_id), message=NOT_MONDAY_MESSAGE
            )

        current = await self.start_date(user_id)
        if current is not None:
            return ProgramActionResult(
                accepted=False,
                state=ProgramState.active,
                message=ALREADY_STARTED_MESSAGE,
                start_date=current,
            )

        start = await self._call_start(force=False)
        return ProgramActionResult(
            accepted=True,
            state=ProgramState.active,
            message="Program started! Day 1 is waiting for you.",
            start_date=start,
        )

    async def restart(self, user_id: str) -> ProgramActionResult:
        if not self.clock.is_monday():
            logger.info(f"Restart refused for user {user_id}: not Monday in {self.clock.tz_name}")
            return ProgramActionResult(
                accepted=False, state=await self._refusal_state(user_id), message=NOT_MONDAY_MESSAGE
            )

        start = await self._call_start(force=True)
        return ProgramActionResult(
            accepted=True,
            state=ProgramState.active,
            message="Program restarted from day 1.",
            start_date=start,
        )

    async def _call_start(self, force: bool) -> date:
        data = await self.gateway.rpc("start_static_program", {"p_force": force})
        # RPC возвращает дату старта (понедельник), иначе берём сегодня
        if isinstance(data, list):
            data = data[0] if data else None
        if isinstance(data, dict):
            data = data.get("start_monday")
        return parse_date(data) or self.clock.today()

    # ------------------------------------------------------------------
    # День программы на сегодня
    # ------------------------------------------------------------------

    async def today(self, user_id: str) -> ProgramDayView:
        start = await self.start_date(user_id)
        if start is None:
            return ProgramDayView(state=ProgramState.not_started)

        today = self.clock.today()
        number = day_in_cycle(start, today, self.cycle_length)
        week, day = week_and_day(number, self.days_per_week)

        filters: List[Filter] = [eq("week", week), eq("day", day)]
        if self.program_id:
            filters.append(eq("program_id", self.program_id))
        row = await self.gateway.maybe_single(PROGRAM_DAY_TABLE, filters)
        if row is None:
            logger.warning(f"No programday row for week={week} day={day}")

        return ProgramDayView(
            state=ProgramState.active,
            start_date=start,
            day_number=number,
            cycle_number=cycle_number(start, today, self.cycle_length),
            week=week,
            day=day,
            program_day=program_day_from_row(row) if row else None,
        )

    # ------------------------------------------------------------------
    # Карточка прогресса
    # ------------------------------------------------------------------

    async def progress(self, user_id: str) -> StaticProgramProgress:
        view = await self.today(user_id)
        rows = await self.gateway.select(
            USER_PROGRESS_TABLE,
            [eq("user_id", user_id)],
            columns="programday_id, completed_at",
            order=Order(column="completed_at", ascending=False),
        )

        today = self.clock.today()
        current_day_id = view.program_day.id if view.program_day else None
        completed_dates = set()
        completed_today = False
        for row in rows:
            completed_at = parse_datetime(row.get("completed_at"))
            if completed_at is None:
                continue
            local_day = self.clock.local_date(completed_at)
            completed_dates.add(local_day)
            if current_day_id and str(row.get("programday_id")) == current_day_id and local_day == today:
                completed_today = True

        completed_count = len(rows)
        has_started = view.state == ProgramState.active
        return StaticProgramProgress(
            total_days=self.cycle_length,
            completed_days=completed_count,
            current_week=view.week or 1,
            current_day=view.day or 1,
            current_cycle=view.cycle_number or 0,
            day_in_cycle=view.day_number or 1,
            progress_percentage=min(round(completed_count / self.cycle_length * 100), 100),
            streak_days=self._streak(completed_dates, today),
            has_started=has_started,
            can_complete_today=has_started and current_day_id is not None and not completed_today,
            completed_today=completed_today,
        )

    @staticmethod
    def _streak(completed_dates: set, today: date) -> int:
        """Подряд идущие дни с тренировкой, заканчивая сегодняшним (окно 30 дней)."""
        streak = 0
        check = today
        while check in completed_dates and streak < STREAK_WINDOW_DAYS:
            streak += 1
            check = check - timedelta(days=1)
        return streak
