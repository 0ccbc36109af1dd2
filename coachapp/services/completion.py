"""
Отметка дня программы выполненным.

Повторная отметка не считается ошибкой. Бэкенд либо отвечает success=false
("уже выполнено"), либо падает на уникальном индексе (23505).
Оба случая сводятся к ALREADY_DONE. Флаг in-flight снимается всегда.
"""
import logging
from typing import Optional, Set, Tuple

from coachapp.gateway import DataGateway, GatewayError
from coachapp.schemas.program import CompletionOutcome, CompletionResult, StaticProgramProgress
from coachapp.services.static_program import StaticProgramService
from coachapp.services.ux_metrics import NullUXMetricsTracker, UXMetricsTracker

logger = logging.getLogger(__name__)

COMPLETED_MESSAGE = "Great job! Today's workout is marked as done."
ALREADY_DONE_MESSAGE = "Today's workout is already done."
FAILED_MESSAGE = "Could not mark the day as done. Please try again."
IN_PROGRESS_MESSAGE = "Completion is already in progress."


class CompletionWorkflow:
    def __init__(
        self,
        gateway: DataGateway,
        program: StaticProgramService,
        ux: Optional[UXMetricsTracker] = None,
        in_flight: Optional[Set[Tuple[str, str]]] = None,
    ):
        self.gateway = gateway
        self.program = program
        self.ux = ux or NullUXMetricsTracker()
        # общий на всё приложение, чтобы второй запрос видел первый
        self._in_flight = in_flight if in_flight is not None else set()

    def is_completing(self, user_id: str, programday_id: str) -> bool:
        return (user_id, programday_id) in self._in_flight

    async def complete(self, user_id: Optional[str], programday_id: Optional[str]) -> CompletionResult:
        if not user_id or not programday_id:
            return CompletionResult(
                outcome=CompletionOutcome.rejected,
                message="No program day to complete.",
            )

        key = (user_id, programday_id)
        if key in self._in_flight:
            return CompletionResult(outcome=CompletionOutcome.in_progress, message=IN_PROGRESS_MESSAGE)

        self._in_flight.add(key)
        try:
            try:
                data = await self.gateway.rpc(
                    "complete_static_program_day",
                    {"p_user_id": user_id, "p_programday_id": programday_id},
                )
            except GatewayError as e:
                if e.is_unique_violation:
                    logger.info(f"Duplicate completion for {user_id}/{programday_id} treated as already done")
                    return await self._finish(user_id, CompletionOutcome.already_done, ALREADY_DONE_MESSAGE)
                logger.error(f"Error completing program day {programday_id} for {user_id}: {e}")
                await self.ux.track_task_completion("complete_program_day", False, user_id=user_id)
                return CompletionResult(outcome=CompletionOutcome.failed, message=FAILED_MESSAGE)

            if isinstance(data, dict) and data.get("success") is False:
                return await self._finish(user_id, CompletionOutcome.already_done, ALREADY_DONE_MESSAGE)

            await self.ux.track_task_completion("complete_program_day", True, user_id=user_id)
            return await self._finish(user_id, CompletionOutcome.completed, COMPLETED_MESSAGE)
        finally:
            self._in_flight.discard(key)

    async def _finish(self, user_id: str, outcome: CompletionOutcome, message: str) -> CompletionResult:
        return CompletionResult(outcome=outcome, message=message, progress=await self._refresh(user_id))

    async def _refresh(self, user_id: str) -> Optional[StaticProgramProgress]:
        try:
            return await self.program.progress(user_id)
        except GatewayError as e:
            # день уже отмечен, не удалось только перечитать прогресс
            logger.warning(f"Progress refresh after completion failed for {user_id}: {e}")
            return None
