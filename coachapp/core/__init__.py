from coachapp.core.config import settings
from coachapp.core.clock import Clock, FixedClock

__all__ = ["settings", "Clock", "FixedClock"]
