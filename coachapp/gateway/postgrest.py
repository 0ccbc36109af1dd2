"""
Шлюз к Supabase через PostgREST поверх httpx.

- GET/POST/PATCH/DELETE {SUPABASE_URL}/rest/v1/{table}
- POST {SUPABASE_URL}/rest/v1/rpc/{function}
- Заголовки: apikey + Authorization с токеном пользователя (работают RLS-политики)
"""
import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence

import httpx

from coachapp.gateway.base import DataGateway, Filter, GatewayError, Order, Row

logger = logging.getLogger(__name__)


def encode_value(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def build_params(
    filters: Sequence[Filter] = (),
    columns: Optional[str] = None,
    order: Optional[Order] = None,
    limit: Optional[int] = None,
) -> List[tuple]:
    params: List[tuple] = []
    if columns:
        params.append(("select", columns))
    for f in filters:
        params.append((f.column, f"{f.op}.{encode_value(f.value)}"))
    if order is not None:
        direction = "asc" if order.ascending else "desc"
        params.append(("order", f"{order.column}.{direction}"))
    if limit is not None:
        params.append(("limit", str(limit)))
    return params


class SupabaseGateway(DataGateway):
    def __init__(
        self,
        http: httpx.AsyncClient,
        base_url: str,
        api_key: str,
        access_token: Optional[str] = None,
    ):
        self._http = http
        self._rest_url = f"{base_url.rstrip('/')}/rest/v1"
        self._api_key = api_key
        self._access_token = access_token

    def _headers(self, prefer: Optional[str] = None) -> Dict[str, str]:
        headers = {
            "apikey": self._api_key,
            "Authorization": f"Bearer {self._access_token or self._api_key}",
            "Accept": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[List[tuple]] = None,
        json: Any = None,
        prefer: Optional[str] = None,
    ) -> Any:
        url = f"{self._rest_url}/{path}"
        try:
            response = await self._http.request(
                method, url, params=params, json=json, headers=self._headers(prefer)
            )
        except httpx.HTTPError as e:
            logger.error(f"Gateway transport error {method} {path}: {e}")
            raise GatewayError(f"Network error: {e}") from e

        if response.status_code >= 400:
            raise self._error_from_response(response)

        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    @staticmethod
    def _error_from_response(response: httpx.Response) -> GatewayError:
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        message = body.get("message") or f"HTTP {response.status_code}"
        return GatewayError(
            message,
            code=body.get("code"),
            details=body.get("details"),
            hint=body.get("hint"),
            status_code=response.status_code,
        )

    async def select(
        self,
        table: str,
        filters: Sequence[Filter] = (),
        columns: str = "*",
        order: Optional[Order] = None,
        limit: Optional[int] = None,
    ) -> List[Row]:
        data = await self._request(
            "GET", table, params=build_params(filters, columns, order, limit)
        )
        return data or []

    async def insert(self, table: str, rows: Any) -> List[Row]:
        data = await self._request(
            "POST", table, json=rows, prefer="return=representation"
        )
        return data or []

    async def update(self, table: str, values: Row, filters: Sequence[Filter]) -> List[Row]:
        if not filters:
            # PostgREST всё равно отклонит UPDATE без фильтра, не отправляем его
            raise GatewayError("Refusing to update without filters")
        data = await self._request(
            "PATCH",
            table,
            params=build_params(filters),
            json=values,
            prefer="return=representation",
        )
        return data or []

    async def upsert(self, table: str, rows: Any, on_conflict: Optional[str] = None) -> List[Row]:
        params = [("on_conflict", on_conflict)] if on_conflict else None
        data = await self._request(
            "POST",
            table,
            params=params,
            json=rows,
            prefer="resolution=merge-duplicates,return=representation",
        )
        return data or []

    async def delete(self, table: str, filters: Sequence[Filter]) -> List[Row]:
        if not filters:
            raise GatewayError("Refusing to delete without filters")
        data = await self._request(
            "DELETE", table, params=build_params(filters), prefer="return=representation"
        )
        return data or []

    async def rpc(self, function: str, params: Optional[Row] = None) -> Any:
        return await self._request("POST", f"rpc/{function}", json=params or {})
