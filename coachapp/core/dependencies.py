from typing import Callable, Optional, Set, Tuple

import httpx
from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt

from coachapp.core.clock import Clock
from coachapp.core.config import settings
from coachapp.gateway import ChangeFeed, DataGateway, RedisChangeFeed, SupabaseGateway
from coachapp.schemas.user import CurrentUser
from coachapp.services.completion import CompletionWorkflow
from coachapp.services.smart_progression import SmartProgressionService
from coachapp.services.static_program import StaticProgramService
from coachapp.services.ux_metrics import UXMetricsTracker, build_ux_tracker


security = HTTPBearer()


class BackendClients:
    """Общие на всё приложение клиенты (ленивая инициализация)."""

    def __init__(self):
        self._http: Optional[httpx.AsyncClient] = None
        self._feed: Optional[ChangeFeed] = None
        self.completion_guard: Set[Tuple[str, str]] = set()

    def get_http(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=httpx.Timeout(settings.GATEWAY_TIMEOUT))
        return self._http

    def get_feed(self) -> ChangeFeed:
        if self._feed is None:
            self._feed = RedisChangeFeed(settings.REDIS_URL)
        return self._feed

    async def close(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None
        if self._feed is not None:
            await self._feed.close()
            self._feed = None


backend = BackendClients()


def decode_access_token(token: str) -> CurrentUser:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid access token",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = jwt.decode(
            token,
            settings.SUPABASE_JWT_SECRET,
            algorithms=[settings.ALGORITHM],
            audience=settings.JWT_AUDIENCE,
        )
    except JWTError:
        raise credentials_exception

    user_id: Optional[str] = payload.get("sub")
    if not user_id:
        raise credentials_exception

    return CurrentUser(
        id=user_id,
        email=payload.get("email"),
        role=payload.get("role") or "authenticated",
        access_token=token,
    )


async def get_current_user(
        credentials: HTTPAuthorizationCredentials = Depends(security),
) -> CurrentUser:
    return decode_access_token(credentials.credentials)


def gateway_for_user(user: CurrentUser) -> DataGateway:
    """Шлюз от имени пользователя: запросы проходят через RLS бэкенда."""
    return SupabaseGateway(
        backend.get_http(),
        settings.SUPABASE_URL,
        settings.SUPABASE_ANON_KEY,
        access_token=user.access_token,
    )


def get_gateway_factory() -> Callable[[CurrentUser], DataGateway]:
    return gateway_for_user


def get_gateway(
        current_user: CurrentUser = Depends(get_current_user),
        factory: Callable[[CurrentUser], DataGateway] = Depends(get_gateway_factory),
) -> DataGateway:
    return factory(current_user)


def get_change_feed() -> ChangeFeed:
    return backend.get_feed()


def get_program_clock() -> Clock:
    return Clock(settings.PROGRAM_TIMEZONE)


def get_request_clock(
        x_timezone: Optional[str] = Header(default=None),
        clock: Clock = Depends(get_program_clock),
) -> Clock:
    """Часы в таймзоне клиента (заголовок X-Timezone), иначе в таймзоне программы."""
    return clock.with_timezone(x_timezone)


def get_ux_tracker(gateway: DataGateway = Depends(get_gateway)) -> UXMetricsTracker:
    return build_ux_tracker(settings.UX_METRICS_ENABLED, gateway)


def get_static_program(
        gateway: DataGateway = Depends(get_gateway),
        clock: Clock = Depends(get_program_clock),
) -> StaticProgramService:
    return StaticProgramService(
        gateway,
        clock,
        cycle_length=settings.STATIC_PROGRAM_CYCLE_DAYS,
        days_per_week=settings.DAYS_PER_WEEK,
        program_id=settings.STATIC_PROGRAM_ID,
    )


def get_completion_workflow(
        gateway: DataGateway = Depends(get_gateway),
        program: StaticProgramService = Depends(get_static_program),
        ux: UXMetricsTracker = Depends(get_ux_tracker),
) -> CompletionWorkflow:
    return CompletionWorkflow(gateway, program, ux, in_flight=backend.completion_guard)


def get_smart_progression(
        gateway: DataGateway = Depends(get_gateway),
        ux: UXMetricsTracker = Depends(get_ux_tracker),
) -> SmartProgressionService:
    return SmartProgressionService(gateway, ux)
