"""
Чистые функции статической программы: день цикла, адрес строки programday,
разбор упражнений из колонок exercise1..5 и нормализация видео-ссылок.
"""
import math
import re
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from coachapp.schemas.program import ExerciseSlot, ProgramDay

MAX_SLOTS = 5
DEFAULT_CYCLE_DAYS = 20

YOUTUBE_EMBED = "https://www.youtube.com/embed/{video_id}"
_EMBED_RE = re.compile(r"/embed/", re.IGNORECASE)
_SHORT_RE = re.compile(r"youtu\.be/([A-Za-z0-9_-]+)", re.IGNORECASE)
_WATCH_RE = re.compile(r"youtube\.com/watch\?(?:.*&)?v=([A-Za-z0-9_-]+)", re.IGNORECASE)


def days_since_start(start: date, today: date) -> int:
    return max((today - start).days, 0)


def day_in_cycle(start: date, today: date, cycle_length: int = DEFAULT_CYCLE_DAYS) -> int:
    """
    Номер дня в цикле, с единицы. Цикл повторяется бесконечно:
    старт D, D+20 снова день 1, D+25 даёт день 6.
    """
    if cycle_length < 1:
        raise ValueError("cycle_length must be positive")
    return days_since_start(start, today) % cycle_length + 1


def cycle_number(start: date, today: date, cycle_length: int = DEFAULT_CYCLE_DAYS) -> int:
    return days_since_start(start, today) // cycle_length


def week_and_day(day_number: int, days_per_week: int = 5) -> Tuple[int, int]:
    """Номер дня цикла → (неделя, день недели) для строки programday."""
    if day_number < 1:
        raise ValueError("day_number starts at 1")
    week = math.ceil(day_number / days_per_week)
    day = (day_number - 1) % days_per_week + 1
    return week, day


def to_embed_url(url: Optional[str]) -> str:
    if not url:
        return ""
    url = url.strip()
    if _EMBED_RE.search(url):
        return url
    match = _WATCH_RE.search(url) or _SHORT_RE.search(url)
    if match:
        return YOUTUBE_EMBED.format(video_id=match.group(1))
    return url


def format_prescription(sets: Optional[int], reps: Optional[int], seconds: Optional[int]) -> str:
    """"3×10" для повторов, "2×30s" для упражнений на время."""
    sets = sets or 1
    if seconds and seconds > 0:
        return f"{sets}×{seconds}s"
    if reps and reps > 0:
        return f"{sets}×{reps}"
    return ""


def _as_str(row: Dict[str, Any], key: str) -> str:
    value = row.get(key)
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return ""


def _as_int(row: Dict[str, Any], key: str, fallback: int = 0) -> int:
    value = row.get(key)
    if isinstance(value, bool):
        return fallback
    if isinstance(value, int):
        return value
    if isinstance(value, float) and math.isfinite(value):
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return fallback
    return fallback


def exercises_from_slots(row: Dict[str, Any]) -> List[ExerciseSlot]:
    """Колонки exercise1..5 → упорядоченный список упражнений, пустые слоты пропускаем."""
    exercises = []
    for i in range(1, MAX_SLOTS + 1):
        name = _as_str(row, f"exercise{i}")
        if not name:
            continue
        sets = _as_int(row, f"sets{i}", 1)
        reps = _as_int(row, f"reps{i}", 0)
        seconds = _as_int(row, f"seconds{i}", 0)
        exercises.append(ExerciseSlot(
            name=name,
            sets=sets,
            reps=reps,
            seconds=seconds,
            cues=_as_str(row, f"hint{i}") or None,
            video_url=to_embed_url(_as_str(row, f"videolink{i}")),
            order=i,
            prescription=format_prescription(sets, reps, seconds),
        ))
    return exercises


def program_day_from_row(row: Dict[str, Any]) -> ProgramDay:
    return ProgramDay(
        id=str(row["id"]),
        program_id=row.get("program_id"),
        week=_as_int(row, "week", 1),
        day=_as_int(row, "day", 1),
        title=row.get("title"),
        exercises=exercises_from_slots(row),
    )
