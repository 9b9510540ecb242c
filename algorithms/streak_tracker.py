import datetime
from typing import Iterable, Optional

from session_models import StreakInfo


class StreakTracker:
    """Derive consecutive-day activity streaks from calendar dates."""

    @staticmethod
    def compute(
        dates: Iterable[datetime.date], today: Optional[datetime.date] = None
    ) -> StreakInfo:
        """Return current and best streak lengths.

        The current streak starts today, or yesterday when today has no
        activity yet, and walks backward until the first missing day.
        """
        days = set(dates)
        if not days:
            return StreakInfo(0, 0)
        today = today or datetime.date.today()
        one_day = datetime.timedelta(days=1)

        current = 0
        if today in days:
            cursor = today
        elif today - one_day in days:
            cursor = today - one_day
        else:
            cursor = None
        while cursor is not None and cursor in days:
            current += 1
            cursor -= one_day

        ordered = sorted(days)
        best = 1
        run = 1
        for prev, curr in zip(ordered, ordered[1:]):
            if (curr - prev).days == 1:
                run += 1
                best = max(best, run)
            else:
                run = 1
        return StreakInfo(current_streak=current, best_streak=best)
