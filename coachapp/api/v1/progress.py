import asyncio
import logging
from typing import Callable, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect, status

from coachapp.core.clock import Clock
from coachapp.core.dependencies import (
    decode_access_token,
    get_change_feed,
    get_current_user,
    get_gateway,
    get_gateway_factory,
    get_program_clock,
    get_request_clock,
)
from coachapp.gateway import ChangeFeed, DataGateway, LocalChangeFeed
from coachapp.schemas.progress import ProgressSnapshot
from coachapp.schemas.user import CurrentUser
from coachapp.services.progress_tracker import ProgressTracker
from coachapp.services.session_resolver import SessionResolver
from coachapp.services.set_log_stream import SetLogStream
from coachapp.services.summaries import SummaryAggregator

router = APIRouter(prefix="/progress", tags=["progress"])
logger = logging.getLogger(__name__)


def build_tracker(gateway: DataGateway, feed: ChangeFeed, clock: Clock) -> ProgressTracker:
    return ProgressTracker(
        SessionResolver(gateway, clock),
        SetLogStream(gateway, feed),
        SummaryAggregator(gateway),
    )


@router.get("/current", response_model=ProgressSnapshot)
async def get_current_progress(
        program_day_id: Optional[str] = Query(default=None),
        current_user: CurrentUser = Depends(get_current_user),
        gateway: DataGateway = Depends(get_gateway),
        clock: Clock = Depends(get_request_clock),
):
    """Разовый снимок прогресса без живых обновлений"""
    tracker = build_tracker(gateway, LocalChangeFeed(), clock)
    try:
        await tracker.start(current_user.id, program_day_id)
        return tracker.snapshot()
    finally:
        await tracker.close()


async def _read_commands(websocket: WebSocket, tracker: ProgressTracker) -> None:
    """Команды клиента: ручные обновления и смена дня программы"""
    try:
        while True:
            try:
                message = await websocket.receive_json()
            except ValueError as e:
                logger.warning(f"Skipping non-JSON live progress frame: {e}")
                continue
            action = message.get("action") if isinstance(message, dict) else None
            if action == "refresh_session":
                await tracker.refresh_session()
            elif action == "refresh_weekly":
                await tracker.refresh_weekly()
            elif action == "refresh_summary":
                await tracker.refresh_summary()
            elif action == "switch_day":
                await tracker.start(tracker.user_id, message.get("program_day_id"))
            else:
                logger.warning(f"Unknown live progress action: {action!r}")
    except WebSocketDisconnect:
        pass
    finally:
        await tracker.close()


@router.websocket("/live")
async def live_progress(
        websocket: WebSocket,
        token: Optional[str] = Query(default=None),
        program_day_id: Optional[str] = Query(default=None),
        tz: Optional[str] = Query(default=None),
        gateway_factory: Callable[[CurrentUser], DataGateway] = Depends(get_gateway_factory),
        feed: ChangeFeed = Depends(get_change_feed),
        clock: Clock = Depends(get_program_clock),
):
    """Живой прогресс: снимок после каждого изменения, пока клиент подключён"""
    try:
        user = decode_access_token(token or "")
    except HTTPException:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    tracker = build_tracker(gateway_factory(user), feed, clock.with_timezone(tz))
    commands = asyncio.create_task(_read_commands(websocket, tracker))
    try:
        await tracker.start(user.id, program_day_id)
        async for snapshot in tracker.changes():
            await websocket.send_json(snapshot.model_dump(mode="json"))
    except WebSocketDisconnect:
        logger.info(f"Live progress client disconnected: {user.id}")
    finally:
        commands.cancel()
        await tracker.close()
