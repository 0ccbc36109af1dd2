from pydantic import BaseModel
from typing import Optional, List
from datetime import date
from enum import Enum


class ProgramState(str, Enum):
    not_started = "not_started"
    active = "active"


class CompletionOutcome(str, Enum):
    completed = "completed"
    already_done = "already_done"
    failed = "failed"
    in_progress = "in_progress"
    rejected = "rejected"


class ExerciseSlot(BaseModel):
    name: str
    sets: int = 1
    reps: int = 0
    seconds: int = 0
    cues: Optional[str] = None
    video_url: str = ""
    order: int
    prescription: str = ""


class ProgramDay(BaseModel):
    id: str
    program_id: Optional[str] = None
    week: int
    day: int
    title: Optional[str] = None
    exercises: List[ExerciseSlot] = []


class ProgramDayView(BaseModel):
    state: ProgramState
    start_date: Optional[date] = None
    day_number: Optional[int] = None  # 1..cycle_length
    cycle_number: Optional[int] = None  # 0: первый проход цикла
    week: Optional[int] = None
    day: Optional[int] = None
    program_day: Optional[ProgramDay] = None


class ProgramActionResult(BaseModel):
    accepted: bool
    state: ProgramState
    message: str
    start_date: Optional[date] = None


class StaticProgramProgress(BaseModel):
    total_days: int
    completed_days: int
    current_week: int
    current_day: int
    current_cycle: int
    day_in_cycle: int
    progress_percentage: int
    streak_days: int
    has_started: bool
    can_complete_today: bool
    completed_today: bool


class CompletionRequest(BaseModel):
    programday_id: str


class CompletionResult(BaseModel):
    outcome: CompletionOutcome
    message: str
    progress: Optional[StaticProgramProgress] = None


class ProgramStatus(BaseModel):
    state: ProgramState
    start_date: Optional[date] = None
