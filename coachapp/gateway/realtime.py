"""
Realtime-лента изменений строк (insert/update/delete).

Полезная нагрузка совпадает по форме с postgres_changes у Supabase:
{"eventType": "INSERT" | "UPDATE" | "DELETE", "new": {...}, "old": {...}}

Продакшн-реализация на Redis pub/sub: мост из БД публикует изменения
в канал realtime:public:<table>:<filter>, подписчик читает канал в фоновой задаче.
"""
import asyncio
import inspect
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

import redis.asyncio as aioredis
from pydantic import BaseModel

logger = logging.getLogger(__name__)

INSERT = "INSERT"
UPDATE = "UPDATE"
DELETE = "DELETE"
EVENT_TYPES = {INSERT, UPDATE, DELETE}


class ChangeEvent(BaseModel):
    event_type: str
    table: str
    new: Dict[str, Any] = {}
    old: Dict[str, Any] = {}

    @classmethod
    def from_payload(cls, table: str, payload: Dict[str, Any]) -> "ChangeEvent":
        event_type = payload.get("eventType")
        if event_type not in EVENT_TYPES:
            raise ValueError(f"Unknown change event type: {event_type!r}")
        return cls(
            event_type=event_type,
            table=payload.get("table") or table,
            new=payload.get("new") or {},
            old=payload.get("old") or {},
        )

    def to_payload(self) -> Dict[str, Any]:
        return {"eventType": self.event_type, "table": self.table, "new": self.new, "old": self.old}


ChangeCallback = Callable[[ChangeEvent], Union[None, Awaitable[None]]]


def channel_name(table: str, row_filter: str, schema: str = "public") -> str:
    return f"realtime:{schema}:{table}:{row_filter}"


async def dispatch(callback: ChangeCallback, event: ChangeEvent) -> None:
    """Вызвать колбэк (sync или async); исключение колбэка не роняет подписку."""
    try:
        result = callback(event)
        if inspect.isawaitable(result):
            await result
    except Exception as e:
        logger.error(f"Realtime callback failed for {event.table}/{event.event_type}: {e}")


class Subscription(ABC):
    @abstractmethod
    async def unsubscribe(self) -> None:
        ...


class ChangeFeed(ABC):
    @abstractmethod
    async def subscribe(self, table: str, row_filter: str, callback: ChangeCallback) -> Subscription:
        ...

    @abstractmethod
    async def publish(self, table: str, row_filter: str, event: ChangeEvent) -> None:
        ...

    async def close(self) -> None:
        return None


class RedisSubscription(Subscription):
    def __init__(self, pubsub, task: asyncio.Task, channel: str):
        self._pubsub = pubsub
        self._task = task
        self.channel = channel
        self.closed = False

    async def unsubscribe(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        except Exception as e:
            # читатель уже упал (обрыв соединения), pubsub всё равно нужно закрыть
            logger.warning(f"Realtime reader for {self.channel} had failed: {e}")
        try:
            await self._pubsub.unsubscribe(self.channel)
            await self._pubsub.aclose()
        except Exception as e:
            # соединение могло уже умереть, серверная подписка исчезнет вместе с ним
            logger.warning(f"Realtime unsubscribe from {self.channel} failed: {e}")
        logger.debug(f"Realtime unsubscribed: {self.channel}")


class RedisChangeFeed(ChangeFeed):
    def __init__(self, redis_url: str):
        self._redis_url = redis_url
        self._redis: Optional[aioredis.Redis] = None

    async def _get_redis(self) -> aioredis.Redis:
        if self._redis is None:
            self._redis = aioredis.from_url(self._redis_url, decode_responses=True)
        return self._redis

    async def subscribe(self, table: str, row_filter: str, callback: ChangeCallback) -> Subscription:
        channel = channel_name(table, row_filter)
        redis = await self._get_redis()
        pubsub = redis.pubsub()
        await pubsub.subscribe(channel)
        task = asyncio.create_task(self._reader(pubsub, table, callback))
        logger.debug(f"Realtime subscribed: {channel}")
        return RedisSubscription(pubsub, task, channel)

    async def _reader(self, pubsub, table: str, callback: ChangeCallback) -> None:
        # переподключением занимается redis-клиент, здесь только чтение
        async for message in pubsub.listen():
            if message.get("type") != "message":
                continue
            try:
                event = ChangeEvent.from_payload(table, json.loads(message["data"]))
            except ValueError as e:
                logger.warning(f"Realtime: skipping malformed message on {message.get('channel')}: {e}")
                continue
            await dispatch(callback, event)

    async def publish(self, table: str, row_filter: str, event: ChangeEvent) -> None:
        redis = await self._get_redis()
        await redis.publish(channel_name(table, row_filter), json.dumps(event.to_payload(), default=str))

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None


class LocalSubscription(Subscription):
    def __init__(self, feed: "LocalChangeFeed", channel: str, callback: ChangeCallback):
        self._feed = feed
        self.channel = channel
        self.callback = callback
        self.closed = False

    async def unsubscribe(self) -> None:
        if self.closed:
            return
        self.closed = True
        listeners = self._feed.listeners.get(self.channel, [])
        if self in listeners:
            listeners.remove(self)


class LocalChangeFeed(ChangeFeed):
    """Лента внутри процесса: для разовых снимков без живых обновлений и для тестов."""

    def __init__(self):
        self.listeners: Dict[str, List[LocalSubscription]] = {}

    async def subscribe(self, table: str, row_filter: str, callback: ChangeCallback) -> Subscription:
        channel = channel_name(table, row_filter)
        subscription = LocalSubscription(self, channel, callback)
        self.listeners.setdefault(channel, []).append(subscription)
        return subscription

    async def publish(self, table: str, row_filter: str, event: ChangeEvent) -> None:
        for subscription in list(self.listeners.get(channel_name(table, row_filter), [])):
            await dispatch(subscription.callback, event)

    def subscriber_count(self, table: str, row_filter: str) -> int:
        return len(self.listeners.get(channel_name(table, row_filter), []))
