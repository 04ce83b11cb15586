"""
Recurrence Expander: future walk instances from a weekly/monthly rule.

Pure computation: nothing here touches the database. ``walk_service``
persists what ``expand()`` returns, one committed unit per instance.

Algorithm:
    cursor = seed.date
    repeat:
        cursor = cursor + one unit      (7 days | one calendar month)
        stop if max_instances reached
        stop if end_date given and cursor > end_date
        emit instance(cursor)

Monthly steps use ``relativedelta(months=1)`` on the running cursor, so a
seed on the 31st is clamped to the last day of shorter months and keeps the
clamped day from then on (Jan 31 -> Feb 29 -> Mar 29 in 2024).

Usage:
    from gemba.services.recurrence import expand

    instances = expand(seed, "weekly", end_date=date(2024, 6, 30))
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta

from dateutil.relativedelta import relativedelta

from gemba.core.exceptions import ValidationError
from gemba.models.walk import RECURRENCE_PATTERNS

DEFAULT_MAX_INSTANCES = 12

_STEPS = {
    "weekly": timedelta(weeks=1),
    "monthly": relativedelta(months=1),
}


@dataclass(frozen=True)
class WalkInstance:
    """A future walk derived from a recurring seed (not yet persisted)."""

    date: date
    areas: tuple[str, ...]
    leader_id: str | None
    created_by: str
    parent_walk_id: int | None
    participant_ids: tuple[str, ...] = field(default_factory=tuple)
    is_recurring: bool = False


def next_occurrence(cursor: date, pattern: str) -> date:
    """Advance ``cursor`` by one recurrence unit."""
    step = _STEPS.get(pattern)
    if step is None:
        raise ValidationError(
            f"Invalid recurrence pattern '{pattern}'. Must be one of: {sorted(RECURRENCE_PATTERNS)}",
            details={"recurrence_pattern": pattern},
        )
    return cursor + step


def expand_dates(start: date, pattern: str, end_date: date | None = None,
                 max_instances: int = DEFAULT_MAX_INSTANCES) -> list[date]:
    """Dates strictly after ``start``, bounded by ``max_instances`` and ``end_date``."""
    if max_instances < 0:
        raise ValidationError("max_instances must be >= 0", details={"max_instances": max_instances})

    dates: list[date] = []
    cursor = start
    while len(dates) < max_instances:
        cursor = next_occurrence(cursor, pattern)
        if end_date is not None and cursor > end_date:
            break
        dates.append(cursor)
    return dates


def expand(seed, pattern: str, end_date: date | None = None,
           max_instances: int = DEFAULT_MAX_INSTANCES) -> list[WalkInstance]:
    """Materialize the ordered instances that follow ``seed``.

    The seed itself is never included. Each instance copies the seed's areas,
    leader and participants and points back at it through parent_walk_id.
    """
    areas = tuple(seed.area_names)
    participants = tuple(seed.participant_ids)
    return [
        WalkInstance(
            date=d,
            areas=areas,
            leader_id=seed.leader_id,
            created_by=seed.created_by,
            parent_walk_id=seed.id,
            participant_ids=participants,
        )
        for d in expand_dates(seed.date, pattern, end_date, max_instances)
    ]
