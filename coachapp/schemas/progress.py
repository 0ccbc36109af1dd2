from pydantic import BaseModel
from typing import Optional, List
from datetime import date, datetime


class WorkoutSession(BaseModel):
    id: str
    user_id: str
    client_day_id: Optional[str] = None
    client_program_id: Optional[str] = None
    started_at: datetime
    ended_at: Optional[datetime] = None
    duration_minutes: Optional[int] = None

    class Config:
        extra = "ignore"

    @property
    def is_open(self) -> bool:
        return self.ended_at is None


class SetLog(BaseModel):
    id: str
    session_id: Optional[str] = None
    client_item_id: str
    set_number: int
    reps_done: Optional[int] = None
    seconds_done: Optional[int] = None
    weight_kg_done: Optional[float] = None
    marked_done_at: datetime

    class Config:
        extra = "ignore"


SET_LOG_COLUMNS = (
    "id, session_id, client_item_id, set_number, reps_done, "
    "seconds_done, weight_kg_done, marked_done_at"
)


class SessionSummary(BaseModel):
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    client_program_id: Optional[str] = None
    client_day_id: Optional[str] = None
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    duration_minutes: Optional[int] = None
    total_sets_completed: Optional[int] = None
    avg_rpe: Optional[float] = None  # 1-10
    day_title: Optional[str] = None
    program_title: Optional[str] = None


class WeeklySummary(BaseModel):
    user_id: Optional[str] = None
    iso_week: Optional[str] = None  # "2026-W42"
    sessions_count: Optional[int] = None
    completed_sessions: Optional[int] = None
    total_minutes: Optional[int] = None
    avg_minutes_per_session: Optional[float] = None


class StreakInfo(BaseModel):
    current_streak: int = 0
    best_streak: int = 0
    last_workout_date: Optional[date] = None


class DerivedMetrics(BaseModel):
    sets_done: int = 0
    total_reps: int = 0
    total_volume_kg: float = 0


class ProgressSnapshot(BaseModel):
    loading: bool
    error: Optional[str] = None
    user_id: Optional[str] = None
    session: Optional[WorkoutSession] = None
    set_logs: List[SetLog] = []
    sets_done: int = 0
    total_reps: int = 0
    total_volume_kg: float = 0
    summary: Optional[SessionSummary] = None
    weekly: Optional[WeeklySummary] = None
    streaks: Optional[StreakInfo] = None
