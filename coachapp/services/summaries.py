"""
Серверные агрегаты: сводка по сессии, недельная сводка, стрики.

Сами ничего не агрегируем, только читаем представления, которые
пересчитывает бэкенд. Отсутствие строки означает "сводки ещё нет", это не ошибка.
"""
import logging
from typing import Optional

from pydantic import ValidationError

from coachapp.gateway import DataGateway, GatewayError, Order, eq
from coachapp.schemas.progress import SessionSummary, StreakInfo, WeeklySummary

logger = logging.getLogger(__name__)

SESSION_SUMMARY_VIEW = "v_session_summary"
USER_WEEKLY_VIEW = "v_user_weekly"


class SummaryAggregator:
    def __init__(self, gateway: DataGateway):
        self.gateway = gateway

    async def session_summary(self, user_id: Optional[str], session_id: Optional[str]) -> Optional[SessionSummary]:
        if not user_id or not session_id:
            return None
        try:
            row = await self.gateway.maybe_single(
                SESSION_SUMMARY_VIEW,
                [eq("user_id", user_id), eq("session_id", session_id)],
            )
        except (GatewayError, ValidationError) as e:
            logger.warning(f"Session summary error (session {session_id}): {e}")
            return None
        return SessionSummary(**row) if row else None

    async def weekly_summary(self, user_id: Optional[str]) -> Optional[WeeklySummary]:
        """Самая свежая ISO-неделя пользователя. Ошибки шлюза пробрасываются."""
        if not user_id:
            return None
        rows = await self.gateway.select(
            USER_WEEKLY_VIEW,
            [eq("user_id", user_id)],
            order=Order(column="iso_week", ascending=False),
            limit=1,
        )
        return WeeklySummary(**rows[0]) if rows else None

    async def streaks(self, user_id: Optional[str]) -> Optional[StreakInfo]:
        # TODO: читать из user_streaks, когда таблицу вернут в схему бэкенда
        if not user_id:
            return None
        return StreakInfo()
