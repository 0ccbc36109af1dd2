from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from enum import Enum


class ProgressionAction(str, Enum):
    maintain = "maintain"
    increase_weight = "increase_weight"
    decrease_weight = "decrease_weight"
    deload = "deload"
    micro_increase = "micro_increase"


class ProgramProgress(BaseModel):
    program_id: Optional[str] = None
    user_id: Optional[str] = None
    start_date: Optional[str] = None
    duration_weeks: Optional[int] = None
    status: Optional[str] = None
    completed_at: Optional[datetime] = None
    auto_progression_enabled: Optional[bool] = None
    weeks_elapsed: Optional[int] = None
    progress_percentage: Optional[float] = None
    is_due_for_completion: Optional[bool] = None


class ExerciseProgression(BaseModel):
    action: ProgressionAction
    reason: str
    current_weight: Optional[float] = None
    suggested_weight: Optional[float] = None
    current_reps: str
    suggested_reps: Optional[str] = None
    avg_rpe: Optional[float] = None
    avg_rir: Optional[float] = None
    rpe_trend: Optional[float] = None
    volume_trend: Optional[float] = None
    consistency_score: Optional[float] = None
    confidence_score: Optional[float] = None
    session_count: int = 0
    exercise_type: Optional[str] = None
    deload_needed: Optional[bool] = None
    weeks_analyzed: Optional[int] = None
    reasoning: Optional[str] = None
    professional_notes: Optional[str] = None


class ExerciseProgressionItem(BaseModel):
    exercise_name: str
    item_id: str
    progression: ExerciseProgression


class AutoProgressionResult(BaseModel):
    success: bool
    program_id: str
    updates_made: int = 0
    deload_exercises: Optional[int] = None
    algorithm_version: Optional[str] = None
    deload_applied: Optional[bool] = None
    program_avg_rpe: Optional[float] = None
    total_sessions_analyzed: Optional[int] = None
    professional_summary: Optional[str] = None
    progressions: List[ExerciseProgressionItem] = []


class AutoProgressionOutcome(BaseModel):
    title: str
    message: str
    result: Optional[AutoProgressionResult] = None


class CompleteDueResult(BaseModel):
    completed_programs: int = 0
    timestamp: Optional[datetime] = None


class ProgramSettingsUpdate(BaseModel):
    duration_weeks: Optional[int] = Field(default=None, ge=1, le=52)
    auto_progression_enabled: Optional[bool] = None
    status: Optional[str] = None
