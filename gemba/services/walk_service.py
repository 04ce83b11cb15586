"""
Walk scheduling service.

Creates seed walks, materializes recurring instances, and serves the walk
listing/detail/delete operations.

Unit-of-work rules:
    - The seed walk and its leader/participant notifications are one commit.
    - Each recurring instance and its notifications are one further commit.
      A failure on instance k rolls back instance k only; instances 1..k-1
      stay persisted and the error propagates to the caller.

Usage:
    from gemba.services import walk_service

    result = walk_service.create_walk(actor_id=admin.id, data={
        "date": "2024-03-01",
        "areas": ["Ensamble"],
        "leader_id": leader.id,
        "participant_ids": [p.id],
        "is_recurring": True,
        "recurrence_pattern": "weekly",
    })
"""

from __future__ import annotations

import logging

from flask import current_app, has_app_context

from gemba.core.clock import get_clock
from gemba.core.exceptions import ForbiddenError, NotFoundError, ValidationError
from gemba.models import db
from gemba.models.auth import User
from gemba.models.walk import RECURRENCE_PATTERNS
from gemba.services import recurrence
from gemba.services.access import WALK_ACCESS_ROLES, require_role, resolve_roles
from gemba.services.notification import NotificationService
from gemba.services.repositories import FindingRepository, WalkRepository
from gemba.utils.helpers import clean_str, parse_date_input, parse_id_list

logger = logging.getLogger(__name__)


# ── Private helpers ────────────────────────────────────────────────────────────


def _get_user(user_id) -> User:
    user = db.session.get(User, user_id) if user_id else None
    if not user:
        raise NotFoundError(resource="User", resource_id=user_id)
    return user


def _require_scheduler(actor_id, action: str) -> User:
    """Only admins schedule or delete walks."""
    actor = _get_user(actor_id)
    if not actor.is_admin:
        raise ForbiddenError(action, message="Only administrators can schedule Gemba Walks")
    return actor


def _get_walk(walk_id):
    walk = WalkRepository.get_by_id(walk_id)
    if not walk:
        raise NotFoundError(resource="GembaWalk", resource_id=walk_id)
    return walk


def _max_instances() -> int:
    if has_app_context():
        return int(current_app.config.get("RECURRENCE_MAX_INSTANCES", recurrence.DEFAULT_MAX_INSTANCES))
    return recurrence.DEFAULT_MAX_INSTANCES


def _validate_walk_input(data: dict) -> dict:
    walk_date = parse_date_input(data.get("date"), "date")
    raw_areas = data.get("areas")
    if raw_areas is not None and not isinstance(raw_areas, (list, tuple)):
        raise ValidationError("areas must be a list", details={"areas": raw_areas})
    areas = [a for a in (clean_str(x) for x in (raw_areas or [])) if a]
    if not walk_date or not areas:
        raise ValidationError(
            "date and at least one area are required",
            details={"date": data.get("date"), "areas": data.get("areas")},
        )

    leader_id = clean_str(data.get("leader_id"))
    participant_ids = parse_id_list(data.get("participant_ids"))

    is_recurring = bool(data.get("is_recurring"))
    pattern = clean_str(data.get("recurrence_pattern"))
    end_date = parse_date_input(data.get("recurrence_end_date"), "recurrence_end_date")
    if is_recurring:
        if not pattern:
            raise ValidationError(
                "recurrence_pattern is required for recurring walks",
                details={"recurrence_pattern": None},
            )
        if pattern not in RECURRENCE_PATTERNS:
            raise ValidationError(
                f"Invalid recurrence_pattern. Must be one of: {sorted(RECURRENCE_PATTERNS)}",
                details={"recurrence_pattern": pattern},
            )
        if end_date and end_date < walk_date:
            raise ValidationError(
                "recurrence_end_date must not precede the walk date",
                details={"recurrence_end_date": end_date.isoformat()},
            )
    else:
        pattern, end_date = None, None

    for uid in ([leader_id] if leader_id else []) + participant_ids:
        if not db.session.get(User, uid):
            raise ValidationError(f"User {uid} does not exist", details={"user_id": uid})

    return {
        "date": walk_date,
        "areas": areas,
        "leader_id": leader_id,
        "participant_ids": participant_ids,
        "is_recurring": is_recurring,
        "recurrence_pattern": pattern,
        "recurrence_end_date": end_date,
    }


# ── Public API ─────────────────────────────────────────────────────────────────


def create_walk(actor_id, data: dict, *, notifier=NotificationService) -> dict:
    """Schedule a walk and, when recurring, its future instances.

    Returns:
        {"walk": <seed dict>, "created_recurring_count": int,
         "recurring_walk_ids": [...]}

    Raises:
        ForbiddenError (non-admin), ValidationError, NotFoundError (actor).
    """
    _require_scheduler(actor_id, "create_walk")
    fields = _validate_walk_input(data)

    try:
        seed = WalkRepository.create(created_by=actor_id, parent_walk_id=None, **fields)
        notifier.notify_walk_assigned(seed)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        "Gemba Walk scheduled",
        extra={"walk_id": seed.id, "user_id": actor_id, "event_type": "walk_created"},
    )

    children = []
    if seed.is_recurring:
        children = materialize_recurrence(
            seed, seed.recurrence_pattern, seed.recurrence_end_date,
            max_instances=_max_instances(), notifier=notifier,
        )

    return {
        "walk": seed.to_dict(),
        "created_recurring_count": len(children),
        "recurring_walk_ids": [c.id for c in children],
    }


def materialize_recurrence(seed, pattern, end_date=None, *, max_instances=None,
                           notifier=NotificationService) -> list:
    """Persist every instance produced by ``recurrence.expand`` for ``seed``.

    Each instance (walk + notifications) is committed on its own.
    """
    if max_instances is None:
        max_instances = _max_instances()
    instances = recurrence.expand(seed, pattern, end_date, max_instances=max_instances)

    created = []
    for index, inst in enumerate(instances, start=1):
        try:
            child = WalkRepository.create(
                date=inst.date,
                areas=list(inst.areas),
                created_by=inst.created_by,
                leader_id=inst.leader_id,
                participant_ids=list(inst.participant_ids),
                is_recurring=False,
                parent_walk_id=inst.parent_walk_id,
            )
            notifier.notify_walk_assigned(child, recurring=True)
            db.session.commit()
        except Exception:
            db.session.rollback()
            logger.exception(
                "Recurring walk %d/%d failed; %d instance(s) kept",
                index, len(instances), len(created),
                extra={"walk_id": seed.id, "event_type": "recurrence_partial"},
            )
            raise
        created.append(child)

    if created:
        logger.info(
            "Materialized %d recurring walk(s) for seed %s", len(created), seed.id,
            extra={"walk_id": seed.id, "event_type": "recurrence_expanded"},
        )
    return created


def list_walks_for_user(user_id) -> list[dict]:
    """Walks where the user is creator, leader or participant."""
    return [w.to_dict(include_people=True) for w in WalkRepository.list_accessible_to(user_id)]


def walk_stats(findings, today) -> dict:
    return {
        "total": len(findings),
        "open": sum(1 for f in findings if f.status == "open"),
        "closed": sum(1 for f in findings if f.status == "closed"),
        "overdue": sum(1 for f in findings if f.is_overdue(today)),
    }


def get_walk_detail(actor_id, walk_id, *, clock=None) -> dict:
    """Walk with people, findings and {total, open, closed, overdue} stats.

    Raises:
        NotFoundError, ForbiddenError (actor is not creator/leader/participant).
    """
    walk = _get_walk(walk_id)
    roles = resolve_roles(actor_id, walk)
    require_role(roles, *WALK_ACCESS_ROLES, action="view_walk",
                 message="You do not have access to this Gemba Walk")

    today = get_clock(clock).today()
    findings = FindingRepository.list_by_walk(walk.id)
    d = walk.to_dict(include_people=True)
    d["findings"] = [
        {**f.to_dict(today=today),
         "responsible_user": f.responsible.to_summary() if f.responsible else None}
        for f in findings
    ]
    d["stats"] = walk_stats(findings, today)
    d["roles"] = sorted(roles)
    return d


def delete_walk(actor_id, walk_id) -> None:
    """Delete a walk with its areas, participants and findings.

    Notifications referencing the walk or its findings are kept.
    """
    _require_scheduler(actor_id, "delete_walk")
    _get_walk(walk_id)
    try:
        WalkRepository.delete(walk_id)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    logger.info(
        "Gemba Walk deleted",
        extra={"walk_id": walk_id, "user_id": actor_id, "event_type": "walk_deleted"},
    )
