"""
Абстракция удалённого шлюза данных (таблицы + RPC хостинг-бэкенда).

Сервисы не знают, как именно шлюз ходит в бэкенд: они описывают запрос
фильтрами/сортировкой/лимитом, а реализация переводит это в свой протокол
(PostgREST для Supabase, in-memory в тестах).
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel, field_validator

Row = Dict[str, Any]

FILTER_OPS = {"eq", "neq", "gt", "gte", "lt", "lte", "is"}


class GatewayError(Exception):
    """Ошибка удалённого вызова: HTTP-ошибка бэкенда или сбой транспорта."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[str] = None,
        hint: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details
        self.hint = hint
        self.status_code = status_code

    @property
    def is_unique_violation(self) -> bool:
        # 23505: unique_violation в Postgres
        if self.code == "23505":
            return True
        return "duplicate key" in (self.message or "").lower()

    def __str__(self) -> str:
        if self.code:
            return f"[{self.code}] {self.message}"
        return self.message


class Filter(BaseModel):
    column: str
    op: str
    value: Any = None

    @field_validator("op")
    @classmethod
    def known_op(cls, v: str) -> str:
        if v not in FILTER_OPS:
            raise ValueError(f"Unsupported filter op: {v}")
        return v

    class Config:
        frozen = True


class Order(BaseModel):
    column: str
    ascending: bool = True

    class Config:
        frozen = True


def eq(column: str, value: Any) -> Filter:
    return Filter(column=column, op="eq", value=value)


def gte(column: str, value: Any) -> Filter:
    return Filter(column=column, op="gte", value=value)


def is_null(column: str) -> Filter:
    return Filter(column=column, op="is", value=None)


class DataGateway(ABC):
    """Табличные чтения/записи и вызовы серверных функций."""

    @abstractmethod
    async def select(
        self,
        table: str,
        filters: Sequence[Filter] = (),
        columns: str = "*",
        order: Optional[Order] = None,
        limit: Optional[int] = None,
    ) -> List[Row]:
        ...

    @abstractmethod
    async def insert(self, table: str, rows: Any) -> List[Row]:
        ...

    @abstractmethod
    async def update(self, table: str, values: Row, filters: Sequence[Filter]) -> List[Row]:
        ...

    @abstractmethod
    async def upsert(self, table: str, rows: Any, on_conflict: Optional[str] = None) -> List[Row]:
        ...

    @abstractmethod
    async def delete(self, table: str, filters: Sequence[Filter]) -> List[Row]:
        ...

    @abstractmethod
    async def rpc(self, function: str, params: Optional[Row] = None) -> Any:
        ...

    async def maybe_single(
        self,
        table: str,
        filters: Sequence[Filter] = (),
        columns: str = "*",
    ) -> Optional[Row]:
        """Одна строка или None; больше одной строки считается ошибкой."""
        rows = await self.select(table, filters, columns=columns, limit=2)
        if len(rows) > 1:
            raise GatewayError(
                "JSON object requested, multiple (or no) rows returned",
                code="PGRST116",
            )
        return rows[0] if rows else None
