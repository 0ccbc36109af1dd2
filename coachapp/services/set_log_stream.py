"""
Живой список подходов (set_logs) текущей сессии.

При смене сессии:
- старая подписка снимается, её scope инвалидируется;
- начальная выборка и realtime-подписка запускаются одновременно;
- события, пришедшие до окончания выборки, буферизуются и накатываются поверх неё;
- INSERT с уже известным id заменяет строку, а не дублирует её.

Каждый колбэк и результат выборки проверяют, что их scope всё ещё текущий,
поэтому запоздавшее событие старой сессии не попадёт в список новой.
"""
import asyncio
import logging
from functools import partial
from typing import Callable, List, Optional

from pydantic import ValidationError

from coachapp.gateway import ChangeEvent, ChangeFeed, DataGateway, GatewayError, Order, Subscription, eq
from coachapp.gateway.realtime import DELETE, INSERT, UPDATE
from coachapp.schemas.progress import SET_LOG_COLUMNS, SetLog

logger = logging.getLogger(__name__)

SET_LOGS_TABLE = "set_logs"

Listener = Callable[["SetLogStream"], None]


class StreamScope:
    """Токен отмены: живёт ровно столько, сколько подписка на одну сессию."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        self.active = True
        self.fetched = False
        self.pending: List[ChangeEvent] = []

    def cancel(self) -> None:
        self.active = False
        self.pending.clear()


def _index_of(items: List[SetLog], row_id) -> int:
    for i, item in enumerate(items):
        if item.id == row_id:
            return i
    return -1


def apply_change(items: List[SetLog], event: ChangeEvent) -> None:
    """Применить одно событие к списку на месте."""
    if event.event_type == INSERT:
        row = SetLog(**event.new)
        ix = _index_of(items, row.id)
        if ix >= 0:
            items[ix] = row
        else:
            items.append(row)
    elif event.event_type == UPDATE:
        ix = _index_of(items, event.new.get("id"))
        if ix >= 0:
            items[ix] = SetLog(**event.new)
    elif event.event_type == DELETE:
        ix = _index_of(items, event.old.get("id"))
        if ix >= 0:
            items.pop(ix)


class SetLogStream:
    def __init__(self, gateway: DataGateway, feed: ChangeFeed):
        self.gateway = gateway
        self.feed = feed
        self.items: List[SetLog] = []
        self.version = 0
        self.loading = False
        self.error: Optional[str] = None
        self._scope: Optional[StreamScope] = None
        self._subscription: Optional[Subscription] = None
        self._listeners: List[Listener] = []

    @property
    def session_id(self) -> Optional[str]:
        return self._scope.session_id if self._scope else None

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def _set_items(self, items: List[SetLog]) -> None:
        self.items = items
        self.version += 1
        for listener in list(self._listeners):
            listener(self)

    async def switch(self, session_id: Optional[str]) -> None:
        if self._scope is not None and self._scope.session_id == session_id:
            return
        await self._release()
        self.error = None

        if not session_id:
            self.loading = False
            self._set_items([])
            return

        scope = StreamScope(session_id)
        self._scope = scope
        self.loading = True
        self._set_items([])
        await asyncio.gather(self._fetch(scope), self._subscribe(scope))

    async def _fetch(self, scope: StreamScope) -> None:
        items: List[SetLog] = []
        try:
            rows = await self.gateway.select(
                SET_LOGS_TABLE,
                [eq("session_id", scope.session_id)],
                columns=SET_LOG_COLUMNS,
                order=Order(column="marked_done_at", ascending=True),
            )
            items = [SetLog(**row) for row in rows]
        except (GatewayError, ValidationError) as e:
            logger.error(f"Failed to load set logs for session {scope.session_id}: {e}")
            if scope.active:
                self.error = str(e) or "Failed to load set logs"

        if not scope.active:
            return
        for event in scope.pending:
            self._apply_safely(items, event)
        scope.pending.clear()
        scope.fetched = True
        self.loading = False
        self._set_items(items)

    async def _subscribe(self, scope: StreamScope) -> None:
        try:
            subscription = await self.feed.subscribe(
                SET_LOGS_TABLE,
                f"session_id=eq.{scope.session_id}",
                partial(self._on_event, scope),
            )
        except Exception as e:
            logger.error(f"Realtime subscribe failed for session {scope.session_id}: {e}")
            return

        if not scope.active or scope is not self._scope:
            # пока подписывались, сессию уже сменили
            await subscription.unsubscribe()
            return
        self._subscription = subscription

    def _on_event(self, scope: StreamScope, event: ChangeEvent) -> None:
        if not scope.active or scope is not self._scope:
            return
        row = event.new if event.event_type != DELETE else event.old
        row_session = row.get("session_id")
        if row_session is not None and row_session != scope.session_id:
            return
        if not scope.fetched:
            scope.pending.append(event)
            return
        items = list(self.items)
        if self._apply_safely(items, event):
            self._set_items(items)

    @staticmethod
    def _apply_safely(items: List[SetLog], event: ChangeEvent) -> bool:
        try:
            apply_change(items, event)
        except ValidationError as e:
            logger.warning(f"Skipping malformed set_logs {event.event_type} event: {e}")
            return False
        return True

    async def _release(self) -> None:
        if self._scope is not None:
            self._scope.cancel()
            self._scope = None
        if self._subscription is not None:
            subscription, self._subscription = self._subscription, None
            await subscription.unsubscribe()

    async def close(self) -> None:
        await self._release()
        self.loading = False
