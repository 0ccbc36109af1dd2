import logging

from fastapi import APIRouter, Depends, HTTPException, status

from coachapp.core.dependencies import get_completion_workflow, get_current_user, get_static_program
from coachapp.gateway import GatewayError
from coachapp.schemas.program import (
    CompletionRequest,
    CompletionResult,
    ProgramActionResult,
    ProgramDayView,
    ProgramState,
    ProgramStatus,
    StaticProgramProgress,
)
from coachapp.schemas.user import CurrentUser
from coachapp.services.completion import CompletionWorkflow
from coachapp.services.static_program import StaticProgramService

router = APIRouter(prefix="/program", tags=["program"])
logger = logging.getLogger(__name__)


def backend_unavailable(e: GatewayError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail=f"Backend request failed: {e.message}",
    )


@router.get("/status", response_model=ProgramStatus)
async def get_program_status(
        current_user: CurrentUser = Depends(get_current_user),
        program: StaticProgramService = Depends(get_static_program),
):
    try:
        start = await program.start_date(current_user.id)
    except GatewayError as e:
        logger.error(f"Program status error for {current_user.id}: {e}")
        raise backend_unavailable(e)
    return ProgramStatus(state=ProgramState.active if start else ProgramState.not_started, start_date=start)


@router.get("/today", response_model=ProgramDayView)
async def get_today(
        current_user: CurrentUser = Depends(get_current_user),
        program: StaticProgramService = Depends(get_static_program),
):
    """День программы на сегодня (неделя/день цикла и упражнения)"""
    try:
        return await program.today(current_user.id)
    except GatewayError as e:
        logger.error(f"Program day error for {current_user.id}: {e}")
        raise backend_unavailable(e)


@router.get("/progress", response_model=StaticProgramProgress)
async def get_program_progress(
        current_user: CurrentUser = Depends(get_current_user),
        program: StaticProgramService = Depends(get_static_program),
):
    try:
        return await program.progress(current_user.id)
    except GatewayError as e:
        logger.error(f"Program progress error for {current_user.id}: {e}")
        raise backend_unavailable(e)


@router.post("/start", response_model=ProgramActionResult)
async def start_program(
        current_user: CurrentUser = Depends(get_current_user),
        program: StaticProgramService = Depends(get_static_program),
):
    """Старт программы; вне понедельника отказ (accepted=false) без RPC старта, даже если бэкенд недоступен"""
    try:
        return await program.start(current_user.id)
    except GatewayError as e:
        logger.error(f"Program start error for {current_user.id}: {e}")
        raise backend_unavailable(e)


@router.post("/restart", response_model=ProgramActionResult)
async def restart_program(
        current_user: CurrentUser = Depends(get_current_user),
        program: StaticProgramService = Depends(get_static_program),
):
    try:
        return await program.restart(current_user.id)
    except GatewayError as e:
        logger.error(f"Program restart error for {current_user.id}: {e}")
        raise backend_unavailable(e)


@router.post("/complete", response_model=CompletionResult)
async def complete_day(
        request: CompletionRequest,
        current_user: CurrentUser = Depends(get_current_user),
        workflow: CompletionWorkflow = Depends(get_completion_workflow),
):
    """
    Отметить день выполненным.
    Повтор и дубликат на бэкенде: outcome=already_done, не ошибка.
    """
    return await workflow.complete(current_user.id, request.programday_id)
