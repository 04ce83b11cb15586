"""
Tests for the recurrence expander (gemba.services.recurrence).

Pure date arithmetic: no database rows are created here.
"""

from datetime import date, timedelta
from types import SimpleNamespace

import pytest

from gemba.core.exceptions import ValidationError
from gemba.services.recurrence import (
    DEFAULT_MAX_INSTANCES,
    WalkInstance,
    expand,
    expand_dates,
    next_occurrence,
)


def _seed(d, **kw):
    defaults = dict(
        id=7,
        date=d,
        area_names=["Ensamble", "Pintura"],
        participant_ids=["p-1", "p-2"],
        leader_id="lead-1",
        created_by="admin-1",
    )
    defaults.update(kw)
    return SimpleNamespace(**defaults)


class TestNextOccurrence:
    def test_weekly_adds_seven_days(self):
        assert next_occurrence(date(2024, 3, 1), "weekly") == date(2024, 3, 8)

    def test_monthly_same_day_next_month(self):
        assert next_occurrence(date(2024, 3, 15), "monthly") == date(2024, 4, 15)

    def test_monthly_clamps_to_month_end(self):
        assert next_occurrence(date(2024, 1, 31), "monthly") == date(2024, 2, 29)
        assert next_occurrence(date(2023, 1, 31), "monthly") == date(2023, 2, 28)

    def test_unknown_pattern_rejected(self):
        with pytest.raises(ValidationError):
            next_occurrence(date(2024, 3, 1), "daily")


class TestExpandDates:
    def test_weekly_without_end_produces_default_cap(self):
        start = date(2024, 3, 1)
        dates = expand_dates(start, "weekly")
        assert len(dates) == DEFAULT_MAX_INSTANCES == 12
        assert dates == [start + timedelta(days=7 * (i + 1)) for i in range(12)]

    def test_monthly_stops_at_end_date(self):
        assert expand_dates(date(2024, 1, 15), "monthly", date(2024, 2, 20)) == [date(2024, 2, 15)]

    def test_end_date_is_inclusive(self):
        assert expand_dates(date(2024, 3, 1), "weekly", date(2024, 3, 15)) == [
            date(2024, 3, 8), date(2024, 3, 15),
        ]

    def test_end_before_first_step_yields_nothing(self):
        assert expand_dates(date(2024, 3, 1), "weekly", date(2024, 3, 5)) == []

    def test_month_end_seed_keeps_clamped_day(self):
        assert expand_dates(date(2024, 1, 31), "monthly", max_instances=3) == [
            date(2024, 2, 29), date(2024, 3, 29), date(2024, 4, 29),
        ]

    def test_zero_cap(self):
        assert expand_dates(date(2024, 3, 1), "weekly", max_instances=0) == []

    def test_negative_cap_rejected(self):
        with pytest.raises(ValidationError):
            expand_dates(date(2024, 3, 1), "weekly", max_instances=-1)

    def test_dates_strictly_increase(self):
        dates = expand_dates(date(2024, 1, 31), "monthly")
        assert all(a < b for a, b in zip(dates, dates[1:]))


class TestExpand:
    def test_instances_copy_seed_and_point_back(self):
        seed = _seed(date(2024, 3, 1))
        instances = expand(seed, "weekly", max_instances=2)

        assert instances == [
            WalkInstance(
                date=date(2024, 3, 8), areas=("Ensamble", "Pintura"), leader_id="lead-1",
                created_by="admin-1", parent_walk_id=7, participant_ids=("p-1", "p-2"),
            ),
            WalkInstance(
                date=date(2024, 3, 15), areas=("Ensamble", "Pintura"), leader_id="lead-1",
                created_by="admin-1", parent_walk_id=7, participant_ids=("p-1", "p-2"),
            ),
        ]
        assert all(i.is_recurring is False for i in instances)

    def test_seed_date_never_emitted(self):
        seed = _seed(date(2024, 3, 1))
        assert seed.date not in [i.date for i in expand(seed, "monthly")]

    def test_leaderless_seed(self):
        seed = _seed(date(2024, 3, 1), leader_id=None, participant_ids=[])
        inst = expand(seed, "weekly", max_instances=1)[0]
        assert inst.leader_id is None
        assert inst.participant_ids == ()
