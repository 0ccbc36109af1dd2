from typing import List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Хостинг-бэкенд (Supabase): таблицы, RPC, проверка JWT
    SUPABASE_URL: str = "http://localhost:54321"
    SUPABASE_ANON_KEY: str = "SUPABASE_ANON_KEY"
    SUPABASE_JWT_SECRET: str = "SUPABASE_JWT_SECRET"
    ALGORITHM: str = "HS256"
    JWT_AUDIENCE: str = "authenticated"
    # None означает без таймаута, запрос ждёт ответа сколько угодно
    GATEWAY_TIMEOUT: Optional[float] = None

    # Realtime-лента изменений поверх Redis pub/sub
    REDIS_URL: str = "redis://redis:6379/0"

    # Статическая программа: единая таймзона для всех пользователей
    PROGRAM_TIMEZONE: str = "Europe/Tallinn"
    STATIC_PROGRAM_ID: Optional[str] = None
    STATIC_PROGRAM_CYCLE_DAYS: int = 20
    DAYS_PER_WEEK: int = 5

    UX_METRICS_ENABLED: bool = False
    LOG_LEVEL: str = "INFO"
    ALLOW_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:8080",
    ]

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "allow"


settings = Settings()
