"""
Общие фикстуры для тестов coachapp.

Стратегия:
- Хостинг-бэкенд заменяется на InMemoryGateway: таблицы — списки словарей,
  фильтры/сортировка/лимит вычисляются локально, RPC отвечают заранее заданными значениями.
- Realtime-лента — LocalChangeFeed (внутри процесса, без Redis).
- Время — FixedClock с замороженным моментом.
- Тестовое FastAPI-приложение создаётся без startup-событий; зависимости
  get_current_user / get_gateway_factory / часы подменяются через dependency_overrides.
"""

import pytest
from datetime import date, datetime
from typing import Any, AsyncGenerator, Dict, List, Optional, Sequence
from httpx import AsyncClient, ASGITransport
from fastapi import FastAPI
from jose import jwt

from coachapp.api.router import api_router
from coachapp.core.clock import FixedClock
from coachapp.core.config import settings
from coachapp.core.dependencies import (
    backend,
    get_change_feed,
    get_current_user,
    get_gateway_factory,
    get_program_clock,
)
from coachapp.gateway import DataGateway, Filter, GatewayError, LocalChangeFeed, Row
from coachapp.schemas.user import CurrentUser


USER_ID = "11111111-1111-1111-1111-111111111111"


# ---------------------------------------------------------------------------
# In-memory шлюз
# ---------------------------------------------------------------------------

def _coerce(row_value: Any, filter_value: Any) -> Any:
    if isinstance(row_value, str):
        if isinstance(filter_value, datetime):
            return datetime.fromisoformat(row_value.replace("Z", "+00:00"))
        if isinstance(filter_value, date):
            return date.fromisoformat(row_value[:10])
    return row_value


def _matches(row: Row, flt: Filter) -> bool:
    value = row.get(flt.column)
    if flt.op == "is":
        return value is flt.value
    if value is None:
        return False
    value = _coerce(value, flt.value)
    if flt.op == "eq":
        return value == flt.value
    if flt.op == "neq":
        return value != flt.value
    if flt.op == "gt":
        return value > flt.value
    if flt.op == "gte":
        return value >= flt.value
    if flt.op == "lt":
        return value < flt.value
    return value <= flt.value


class InMemoryGateway(DataGateway):
    """Таблицы и RPC в памяти; ошибки задаются через errors[имя таблицы или функции]."""

    def __init__(self):
        self.tables: Dict[str, List[Row]] = {}
        self.rpc_responses: Dict[str, Any] = {}
        self.rpc_calls: List[tuple] = []
        self.errors: Dict[str, Exception] = {}
        self.selects: List[tuple] = []
        self.inserts: List[tuple] = []
        self.updates: List[tuple] = []

    def seed(self, table: str, *rows: Row) -> None:
        self.tables.setdefault(table, []).extend(dict(row) for row in rows)

    def _raise_for(self, name: str) -> None:
        error = self.errors.get(name)
        if error is not None:
            raise error

    def _filtered(self, table: str, filters: Sequence[Filter]) -> List[Row]:
        return [row for row in self.tables.get(table, []) if all(_matches(row, f) for f in filters)]

    async def select(self, table, filters=(), columns="*", order=None, limit=None):
        self.selects.append((table, list(filters), order, limit))
        self._raise_for(table)
        rows = [dict(row) for row in self._filtered(table, filters)]
        if order is not None:
            present = [row for row in rows if row.get(order.column) is not None]
            missing = [row for row in rows if row.get(order.column) is None]
            present.sort(key=lambda row: row[order.column], reverse=not order.ascending)
            rows = present + missing
        if limit is not None:
            rows = rows[:limit]
        return rows

    async def insert(self, table, rows):
        self._raise_for(table)
        rows = rows if isinstance(rows, list) else [rows]
        self.inserts.append((table, rows))
        self.seed(table, *rows)
        return [dict(row) for row in rows]

    async def update(self, table, values, filters):
        self._raise_for(table)
        self.updates.append((table, values, list(filters)))
        matched = self._filtered(table, filters)
        for row in matched:
            row.update(values)
        return [dict(row) for row in matched]

    async def upsert(self, table, rows, on_conflict=None):
        self._raise_for(table)
        rows = rows if isinstance(rows, list) else [rows]
        key = on_conflict or "id"
        stored = self.tables.setdefault(table, [])
        for row in rows:
            existing = next((r for r in stored if r.get(key) == row.get(key)), None)
            if existing is not None:
                existing.update(row)
            else:
                stored.append(dict(row))
        return [dict(row) for row in rows]

    async def delete(self, table, filters):
        self._raise_for(table)
        matched = self._filtered(table, filters)
        self.tables[table] = [row for row in self.tables.get(table, []) if row not in matched]
        return matched

    async def rpc(self, function, params=None):
        self.rpc_calls.append((function, params))
        self._raise_for(function)
        response = self.rpc_responses.get(function)
        if callable(response):
            return response(params)
        return response

    def calls_to(self, function: str) -> List[Optional[Row]]:
        return [params for name, params in self.rpc_calls if name == function]


# ---------------------------------------------------------------------------
# Вспомогательные функции
# ---------------------------------------------------------------------------

def create_test_app() -> FastAPI:
    """Тестовое FastAPI-приложение без startup-событий."""
    test_app = FastAPI(title="Coach Test App")
    test_app.include_router(api_router, prefix="/api/v1")
    return test_app


def make_token(user_id: str = USER_ID, **claims: Any) -> str:
    """Access-токен в формате хостинг-бэкенда, подписанный тестовым секретом."""
    payload = {"sub": user_id, "aud": settings.JWT_AUDIENCE, "role": "authenticated", **claims}
    return jwt.encode(payload, settings.SUPABASE_JWT_SECRET, algorithm=settings.ALGORITHM)


def make_auth_headers(user_id: str = USER_ID) -> dict:
    return {"Authorization": f"Bearer {make_token(user_id)}"}


def gateway_error(message: str = "boom", code: Optional[str] = None) -> GatewayError:
    return GatewayError(message, code=code)


# ---------------------------------------------------------------------------
# Фикстуры
# ---------------------------------------------------------------------------

@pytest.fixture
def gateway() -> InMemoryGateway:
    return InMemoryGateway()


@pytest.fixture
def feed() -> LocalChangeFeed:
    return LocalChangeFeed()


@pytest.fixture
def monday_clock() -> FixedClock:
    """Понедельник 2026-10-19, 10:00 по Таллину."""
    return FixedClock(datetime(2026, 10, 19, 10, 0), "Europe/Tallinn")


@pytest.fixture
def tuesday_clock() -> FixedClock:
    """Вторник 2026-10-20, 10:00 по Таллину."""
    return FixedClock(datetime(2026, 10, 20, 10, 0), "Europe/Tallinn")


@pytest.fixture
def current_user() -> CurrentUser:
    return CurrentUser(id=USER_ID, email="athlete@example.com", access_token=make_token())


@pytest.fixture(autouse=True)
def reset_completion_guard():
    """Guard in-flight общий на всё приложение — очищаем между тестами."""
    backend.completion_guard.clear()
    yield
    backend.completion_guard.clear()


# ---------------------------------------------------------------------------
# HTTP-клиенты
# ---------------------------------------------------------------------------

def build_app(gateway: InMemoryGateway, feed: LocalChangeFeed, clock: FixedClock) -> FastAPI:
    app = create_test_app()
    app.dependency_overrides[get_gateway_factory] = lambda: (lambda user: gateway)
    app.dependency_overrides[get_change_feed] = lambda: feed
    app.dependency_overrides[get_program_clock] = lambda: clock
    return app


@pytest.fixture
async def client(gateway, feed, monday_clock) -> AsyncGenerator[AsyncClient, None]:
    """
    Клиент без подмены пользователя: авторизация идёт через настоящую
    проверку JWT (make_auth_headers).
    """
    app = build_app(gateway, feed, monday_clock)
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
async def user_client(gateway, feed, monday_clock, current_user) -> AsyncGenerator[AsyncClient, None]:
    """Клиент, аутентифицированный как current_user, часы — понедельник."""
    app = build_app(gateway, feed, monday_clock)
    app.dependency_overrides[get_current_user] = lambda: current_user
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
async def tuesday_client(gateway, feed, tuesday_clock, current_user) -> AsyncGenerator[AsyncClient, None]:
    """Клиент, аутентифицированный как current_user, часы — вторник."""
    app = build_app(gateway, feed, tuesday_clock)
    app.dependency_overrides[get_current_user] = lambda: current_user
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
