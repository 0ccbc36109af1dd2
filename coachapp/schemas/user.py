from pydantic import BaseModel
from typing import Optional


class CurrentUser(BaseModel):
    """Пользователь из access-токена хостинг-бэкенда."""
    id: str
    email: Optional[str] = None
    role: str = "authenticated"
    access_token: str
