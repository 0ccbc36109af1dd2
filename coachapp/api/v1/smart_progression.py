import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status

from coachapp.api.v1.program import backend_unavailable
from coachapp.core.dependencies import get_current_user, get_smart_progression
from coachapp.gateway import GatewayError
from coachapp.schemas.smart_progression import (
    AutoProgressionOutcome,
    CompleteDueResult,
    ExerciseProgression,
    ProgramProgress,
    ProgramSettingsUpdate,
)
from coachapp.schemas.user import CurrentUser
from coachapp.services.smart_progression import SmartProgressionService

router = APIRouter(prefix="/smart-progression", tags=["smart-progression"])
logger = logging.getLogger(__name__)


@router.get("/exercises/{client_item_id}/analysis", response_model=ExerciseProgression)
async def analyze_exercise(
        client_item_id: str,
        weeks_back: int = Query(default=3, ge=1, le=12),
        current_user: CurrentUser = Depends(get_current_user),
        service: SmartProgressionService = Depends(get_smart_progression),
):
    analysis = await service.analyze_exercise(client_item_id, weeks_back, user_id=current_user.id)
    if analysis is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Not enough workout data to analyze this exercise",
        )
    return analysis


@router.post("/complete-due", response_model=CompleteDueResult)
async def complete_due_programs(
        current_user: CurrentUser = Depends(get_current_user),
        service: SmartProgressionService = Depends(get_smart_progression),
):
    result = await service.complete_due_programs(user_id=current_user.id)
    if result is None:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to complete due programs",
        )
    return result


@router.get("/{program_id}", response_model=ProgramProgress)
async def get_program_progress(
        program_id: str,
        current_user: CurrentUser = Depends(get_current_user),
        service: SmartProgressionService = Depends(get_smart_progression),
):
    try:
        progress = await service.program_progress(program_id)
    except GatewayError as e:
        logger.error(f"Program progress error for {program_id}: {e}")
        raise backend_unavailable(e)
    if progress is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Program not found")
    return progress


@router.post("/{program_id}/auto-progress", response_model=AutoProgressionOutcome)
async def auto_progress(
        program_id: str,
        current_user: CurrentUser = Depends(get_current_user),
        service: SmartProgressionService = Depends(get_smart_progression),
):
    """Автопрогрессия программы; если все алгоритмы упали, возвращается сообщение, а не ошибка"""
    return await service.auto_progress(program_id, user_id=current_user.id)


@router.patch("/{program_id}/settings", response_model=ProgramProgress)
async def update_program_settings(
        program_id: str,
        updates: ProgramSettingsUpdate,
        current_user: CurrentUser = Depends(get_current_user),
        service: SmartProgressionService = Depends(get_smart_progression),
):
    try:
        progress = await service.update_settings(program_id, updates, user_id=current_user.id)
    except GatewayError as e:
        raise backend_unavailable(e)
    if progress is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Program not found")
    return progress
