from typing import Optional

from coachapp.core.clock import Clock
from coachapp.gateway import DataGateway, Order, eq, gte, is_null
from coachapp.schemas.progress import WorkoutSession

SESSIONS_TABLE = "workout_sessions"


class SessionResolver:
    """Выбор одной "текущей" тренировочной сессии пользователя."""

    def __init__(self, gateway: DataGateway, clock: Clock):
        self.gateway = gateway
        self.clock = clock

    async def resolve(self, user_id: Optional[str], program_day_id: Optional[str] = None) -> Optional[WorkoutSession]:
        """
        Открытая сессия для заданного дня программы, иначе самая свежая
        сессия (открытая или закрытая), начатая сегодня. Ошибки шлюза не глушим.
        """
        if not user_id:
            return None

        if program_day_id:
            rows = await self.gateway.select(
                SESSIONS_TABLE,
                [eq("user_id", user_id), eq("client_day_id", program_day_id), is_null("ended_at")],
                order=Order(column="started_at", ascending=False),
                limit=1,
            )
            if rows:
                return WorkoutSession(**rows[0])

        day_start = self.clock.start_of_day()
        rows = await self.gateway.select(
            SESSIONS_TABLE,
            [eq("user_id", user_id), gte("started_at", day_start)],
            order=Order(column="started_at", ascending=False),
            limit=1,
        )
        return WorkoutSession(**rows[0]) if rows else None

    async def latest_open(self, user_id: Optional[str]) -> Optional[WorkoutSession]:
        """Последняя незакрытая сессия, без привязки ко дню."""
        if not user_id:
            return None
        rows = await self.gateway.select(
            SESSIONS_TABLE,
            [eq("user_id", user_id), is_null("ended_at")],
            order=Order(column="started_at", ascending=False),
            limit=1,
        )
        return WorkoutSession(**rows[0]) if rows else None
