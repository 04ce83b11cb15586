"""Injectable "today" source for overdue computation.

Services take an explicit ``clock`` argument; when none is given they use
whatever the app config carries under ``CLOCK`` (tests install a
``FixedClock`` there), falling back to the system clock.
"""

from __future__ import annotations

from datetime import date, datetime, timezone

from flask import current_app, has_app_context


class SystemClock:
    """Wall-clock dates in UTC."""

    def today(self) -> date:
        return datetime.now(timezone.utc).date()


class FixedClock:
    """Clock pinned to a given date."""

    def __init__(self, fixed: date):
        self.fixed = fixed

    def today(self) -> date:
        return self.fixed


def get_clock(clock=None):
    if clock is not None:
        return clock
    if has_app_context():
        configured = current_app.config.get("CLOCK")
        if configured is not None:
            return configured
    return SystemClock()
