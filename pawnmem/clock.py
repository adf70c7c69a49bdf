"""
Simulation clock — the only notion of "now" the memory system uses.

Memories are stamped with simulation ticks rather than wall-clock time so that
ageing follows the game speed (and stops while the game is paused).
"""

from __future__ import annotations

TICKS_PER_HOUR = 2500
HOURS_PER_DAY = 24
TICKS_PER_DAY = TICKS_PER_HOUR * HOURS_PER_DAY  # 60000


class SimulationClock:
    """Monotonic tick counter advanced by the host loop."""

    def __init__(self, start_tick: int = 0):
        self._tick = max(0, int(start_tick))

    @property
    def now(self) -> int:
        return self._tick

    def advance(self, ticks: int = 1) -> int:
        self._tick += max(0, int(ticks))
        return self._tick

    def set(self, tick: int) -> None:
        """Jump to an absolute tick. Going backwards is ignored."""
        self._tick = max(self._tick, int(tick))

    @property
    def day(self) -> int:
        return self._tick // TICKS_PER_DAY

    @property
    def hour_of_day(self) -> int:
        return (self._tick % TICKS_PER_DAY) // TICKS_PER_HOUR

    def __call__(self) -> int:
        return self._tick


def humanize_age(age_ticks: int) -> str:
    """Render an age in ticks as a short relative phrase."""
    age_ticks = max(0, int(age_ticks))
    if age_ticks < TICKS_PER_HOUR:
        return "just now"
    if age_ticks < TICKS_PER_DAY:
        hours = age_ticks // TICKS_PER_HOUR
        return "1 hour ago" if hours == 1 else f"{hours} hours ago"
    days = age_ticks // TICKS_PER_DAY
    return "yesterday" if days == 1 else f"{days} days ago"
