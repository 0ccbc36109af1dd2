"""
Умная прогрессия программы (панель тренера).

Анализ и автопрогрессия выполняются серверными функциями. Алгоритмов три
поколения: optimized → enhanced → исходный; при сбое пробуем следующий.
Провал всех попыток записывается в user_analytics_events.
"""
import logging
from typing import Any, Dict, Optional

from pydantic import ValidationError

from coachapp.gateway import DataGateway, GatewayError, eq
from coachapp.schemas.smart_progression import (
    AutoProgressionOutcome,
    AutoProgressionResult,
    CompleteDueResult,
    ExerciseProgression,
    ProgramProgress,
    ProgramSettingsUpdate,
)
from coachapp.services.ux_metrics import NullUXMetricsTracker, UXMetricsTracker

logger = logging.getLogger(__name__)

PROGRAM_PROGRESS_VIEW = "v_program_progress"
CLIENT_PROGRAMS_TABLE = "client_programs"
ANALYTICS_EVENTS_TABLE = "user_analytics_events"

ANALYZE_FUNCTIONS = (
    "analyze_exercise_progression_optimized",
    "analyze_exercise_progression_enhanced",
    "analyze_exercise_progression",
)
AUTO_PROGRESS_FUNCTIONS = (
    "auto_progress_program_optimized",
    "auto_progress_program_enhanced",
    "auto_progress_program",
)


class SmartProgressionService:
    def __init__(self, gateway: DataGateway, ux: Optional[UXMetricsTracker] = None):
        self.gateway = gateway
        self.ux = ux or NullUXMetricsTracker()

    async def program_progress(self, program_id: Optional[str]) -> Optional[ProgramProgress]:
        if not program_id:
            return None
        row = await self.gateway.maybe_single(PROGRAM_PROGRESS_VIEW, [eq("program_id", program_id)])
        if not row:
            logger.warning(f"No program progress found for ID: {program_id}")
            return None
        return ProgramProgress(**row)

    async def analyze_exercise(
        self,
        client_item_id: str,
        weeks_back: int = 3,
        user_id: Optional[str] = None,
    ) -> Optional[ExerciseProgression]:
        params = {"p_client_item_id": client_item_id, "p_weeks_back": weeks_back}
        for function in ANALYZE_FUNCTIONS:
            try:
                data = await self.gateway.rpc(function, params)
                if data:
                    return ExerciseProgression(**data)
            except (GatewayError, ValidationError, TypeError) as e:
                logger.warning(f"{function} failed for item {client_item_id}: {e}")
            await self.ux.track_error(f"analysis:{function}", user_id=user_id)
        logger.error(f"All progression analysis methods failed for item {client_item_id}")
        return None

    async def auto_progress(self, program_id: Optional[str], user_id: Optional[str] = None) -> AutoProgressionOutcome:
        if not program_id:
            return AutoProgressionOutcome(
                title="No Program Selected",
                message="Please select a program to enable auto-progression.",
            )

        last_error: Optional[Exception] = None
        for function in AUTO_PROGRESS_FUNCTIONS:
            try:
                data = await self.gateway.rpc(function, {"p_program_id": program_id})
                if not data:
                    continue
                result = AutoProgressionResult(**data)
            except (GatewayError, ValidationError, TypeError) as e:
                logger.warning(f"{function} failed for program {program_id}: {e}")
                last_error = e
                continue
            if result.success:
                await self.ux.track_feature_usage("auto_progression", user_id=user_id)
                return self._describe(result)

        message = str(last_error) if last_error else "Auto-progression returned no result"
        await self._track_failure(user_id, "progression_analysis_failed", program_id, message)
        return AutoProgressionOutcome(
            title="Progression Analysis Failed",
            message="Unable to analyze your workout data. Your program will continue with current settings.",
        )

    @staticmethod
    def _describe(result: AutoProgressionResult) -> AutoProgressionOutcome:
        if result.updates_made <= 0:
            return AutoProgressionOutcome(
                title="No Updates Needed",
                message=result.professional_summary
                or "Your program is already optimally configured based on your recent performance.",
                result=result,
            )
        deloaded = result.deload_applied or (result.deload_exercises or 0) > 0
        message = result.professional_summary or f"{result.updates_made} exercises adjusted based on your performance."
        if deloaded and result.deload_exercises:
            message = f"{message} ({result.deload_exercises} exercises deloaded)"
        return AutoProgressionOutcome(
            title="Deload Applied!" if deloaded else "Program Updated!",
            message=message,
            result=result,
        )

    async def complete_due_programs(self, user_id: Optional[str] = None) -> Optional[CompleteDueResult]:
        try:
            data = await self.gateway.rpc("complete_due_programs")
            return CompleteDueResult(**(data or {}))
        except (GatewayError, ValidationError) as e:
            logger.error(f"Error completing due programs: {e}")
            await self._track_failure(user_id, "program_completion_failed", None, str(e))
            return None

    async def update_settings(
        self,
        program_id: str,
        updates: ProgramSettingsUpdate,
        user_id: Optional[str] = None,
    ) -> Optional[ProgramProgress]:
        values = updates.model_dump(exclude_none=True)
        if not values:
            return await self.program_progress(program_id)
        try:
            await self.gateway.update(CLIENT_PROGRAMS_TABLE, values, [eq("id", program_id)])
        except GatewayError as e:
            logger.error(f"Program settings update error for {program_id}: {e}")
            await self._track_failure(user_id, "program_settings_update_failed", program_id, str(e), updates=values)
            raise
        return await self.program_progress(program_id)

    async def _track_failure(
        self,
        user_id: Optional[str],
        event_type: str,
        program_id: Optional[str],
        error_message: str,
        **extra: Any,
    ) -> None:
        event_data: Dict[str, Any] = {"program_id": program_id, "error_message": error_message, **extra}
        try:
            await self.gateway.insert(
                ANALYTICS_EVENTS_TABLE,
                {"user_id": user_id, "event_type": event_type, "event_data": event_data},
            )
        except GatewayError as e:
            logger.error(f"Failed to track {event_type}: {e}")
