"""
Per-user finding analytics.

Aggregates the findings a user can reason about (findings on walks they
scheduled plus findings assigned to them) into the dashboard payload:

    findings_by_month     last six calendar months, oldest first, {open, closed}
    findings_by_category  every category, most findings first
    findings_by_area      top 10 areas
    top_responsibles      top 10 responsible users by display name
    metrics               totals, overdue count and rates rounded to 0.1

A finding counts toward its own area when one was recorded, otherwise toward
every area of its walk. "Today" comes from the injected clock.
"""

from __future__ import annotations

import logging
import math
from collections import Counter
from datetime import timezone

from dateutil.relativedelta import relativedelta

from gemba.core.clock import get_clock
from gemba.services.repositories import FindingRepository

logger = logging.getLogger(__name__)

MONTH_WINDOW = 6
TOP_N = 10


def _as_utc(dt):
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _ranked(counter: Counter, key: str, limit=None) -> list[dict]:
    rows = sorted(counter.items(), key=lambda kv: (-kv[1], kv[0]))
    if limit is not None:
        rows = rows[:limit]
    return [{key: name, "count": count} for name, count in rows]


def _safe_pct(numerator: int, denominator: int) -> float:
    """Zero-safe percentage."""
    return round((numerator / denominator) * 100, 1) if denominator else 0.0


def findings_by_month(findings, today) -> list[dict]:
    first_month = today.replace(day=1) - relativedelta(months=MONTH_WINDOW - 1)
    buckets = {}
    for i in range(MONTH_WINDOW):
        month = first_month + relativedelta(months=i)
        buckets[month.strftime("%Y-%m")] = {"open": 0, "closed": 0}

    for f in findings:
        created = _as_utc(f.created_at)
        if created is None:
            continue
        bucket = buckets.get(created.strftime("%Y-%m"))
        if bucket is not None:
            bucket["closed" if f.status == "closed" else "open"] += 1

    return [{"month": month, **counts} for month, counts in buckets.items()]


def _finding_areas(finding) -> list[str]:
    if finding.area:
        return [finding.area]
    return finding.walk.area_names if finding.walk else []


def _resolution_days(finding):
    created, closed = _as_utc(finding.created_at), _as_utc(finding.closed_at)
    if created is None or closed is None:
        return None
    return math.ceil((closed - created).total_seconds() / 86400)


def _closed_on_time(finding) -> bool:
    closed = _as_utc(finding.closed_at)
    return finding.due_date is not None and closed is not None and closed.date() <= finding.due_date


def compute_metrics(findings, today) -> dict:
    total = len(findings)
    closed = [f for f in findings if f.status == "closed"]
    durations = [d for d in (_resolution_days(f) for f in closed) if d is not None]
    on_time = sum(1 for f in closed if _closed_on_time(f))

    return {
        "total_findings": total,
        "open_findings": total - len(closed),
        "closed_findings": len(closed),
        "overdue_count": sum(1 for f in findings if f.is_overdue(today)),
        "closure_rate": _safe_pct(len(closed), total),
        "avg_resolution_days": round(sum(durations) / len(durations), 1) if durations else 0.0,
        "compliance_rate": _safe_pct(on_time, len(closed)),
    }


def user_analytics(user_id, *, clock=None) -> dict:
    """Dashboard aggregates over the findings visible to ``user_id``."""
    today = get_clock(clock).today()
    findings = FindingRepository.list_created_or_assigned(user_id)

    by_category = Counter(f.category for f in findings)
    by_area = Counter(area for f in findings for area in _finding_areas(f))
    by_responsible = Counter(
        f.responsible.display_name if f.responsible else f.responsible_id for f in findings
    )

    logger.info(
        "Analytics computed over %d finding(s)", len(findings),
        extra={"user_id": user_id, "event_type": "analytics_computed"},
    )
    return {
        "findings_by_month": findings_by_month(findings, today),
        "findings_by_category": _ranked(by_category, "category"),
        "findings_by_area": _ranked(by_area, "area", TOP_N),
        "top_responsibles": _ranked(by_responsible, "name", TOP_N),
        "metrics": compute_metrics(findings, today),
    }
