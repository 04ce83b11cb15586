"""
Finding Lifecycle Service

Manages finding creation and status transitions with:
  - Role guards resolved per walk/finding (see access.py)
  - Atomic conditional updates for guarded state changes
  - Notification side effects in the same commit as the transition

States: open (initial) -> closed (terminal). No reopen path.

Who may do what:
    create_finding   leader of the walk
    set_due_date     responsible user, once, while open
    close_finding    responsible user; closing a closed finding is a no-op
    update_status    walk creator or responsible user; only the responsible
                     user may move a finding into "closed"

Usage:
    from gemba.services import finding_lifecycle

    result = finding_lifecycle.close_finding(
        actor_id=user.id,
        finding_id=42,
        comment="Guard re-installed",
    )
"""

from __future__ import annotations

import logging

from sqlalchemy import or_

from gemba.core.clock import get_clock
from gemba.core.exceptions import InvalidStateError, NotFoundError, ValidationError
from gemba.models import db
from gemba.models.auth import User
from gemba.models.finding import FINDING_STATUSES, Finding
from gemba.models.walk import GembaWalk, GembaWalkArea
from gemba.services.access import CREATOR, LEADER, RESPONSIBLE, require_role, resolve_roles
from gemba.services.notification import NotificationService
from gemba.services.repositories import FindingRepository, WalkRepository
from gemba.utils.helpers import clean_str, parse_date_input

logger = logging.getLogger(__name__)

SORTABLE_FIELDS = {"created_at", "description", "category", "status", "due_date"}


def _get_finding(finding_id) -> Finding:
    finding = FindingRepository.get_by_id(finding_id)
    if not finding:
        raise NotFoundError(resource="Finding", resource_id=finding_id)
    return finding


def _result(finding, action, previous_status, *, changed=True, clock=None) -> dict:
    return {
        "finding_id": finding.id,
        "action": action,
        "previous_status": previous_status,
        "new_status": finding.status,
        "changed": changed,
        "finding": finding.to_dict(today=get_clock(clock).today()),
    }


# ── Create ─────────────────────────────────────────────────────────────────────


def create_finding(
    actor_id: str,
    walk_id: int,
    *,
    category: str | None,
    description: str | None,
    responsible_id: str | None,
    area: str | None = None,
    attachments: list[str] | None = None,
    notifier=NotificationService,
    clock=None,
) -> dict:
    """
    Record a finding on a walk and assign it to a responsible user.

    Raises:
        NotFoundError (walk), ForbiddenError (actor is not the walk leader),
        ValidationError (missing fields, unknown responsible, foreign area).
    """
    if walk_id in (None, ""):
        raise ValidationError("gemba_walk_id is required", details={"gemba_walk_id": None})
    walk = WalkRepository.get_by_id(walk_id)
    if not walk:
        raise NotFoundError(resource="GembaWalk", resource_id=walk_id)

    roles = resolve_roles(actor_id, walk)
    require_role(roles, LEADER, action="create_finding",
                 message="Only the walk leader can create findings")

    category = clean_str(category)
    description = clean_str(description)
    responsible_id = clean_str(responsible_id)
    missing = [name for name, value in (
        ("category", category), ("description", description), ("responsible_id", responsible_id),
    ) if not value]
    if missing:
        raise ValidationError(
            f"{', '.join(missing)} required",
            details={name: "required" for name in missing},
        )
    if not db.session.get(User, responsible_id):
        raise ValidationError("Responsible user not found", details={"responsible_id": responsible_id})

    area = clean_str(area)
    if area and area not in walk.area_names:
        raise ValidationError(
            f"Area '{area}' is not one of the walk's areas",
            details={"area": area, "walk_areas": walk.area_names},
        )

    try:
        finding = FindingRepository.create(
            walk_id=walk.id,
            category=category,
            description=description,
            responsible_id=responsible_id,
            area=area,
            attachment_urls=[u for u in (attachments or []) if u],
        )
        notifier.notify_finding_assigned(finding, walk)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        "Finding created",
        extra={"finding_id": finding.id, "walk_id": walk.id, "user_id": actor_id,
               "event_type": "finding_created"},
    )
    return _result(finding, "create", None, clock=clock)


# ── Transitions ────────────────────────────────────────────────────────────────


def set_due_date(actor_id: str, finding_id: int, due_date, *,
                 notifier=NotificationService, clock=None) -> dict:
    """
    Commit to a due date. Responsible user only, first time only.

    The originating finding_assigned notification is resolved in the same
    commit.

    Raises:
        NotFoundError, ForbiddenError, ValidationError (missing/bad date),
        InvalidStateError (already set, or finding closed).
    """
    finding = _get_finding(finding_id)
    roles = resolve_roles(actor_id, finding.walk, finding)
    require_role(roles, RESPONSIBLE, action="set_due_date",
                 message="Only the responsible user can set the due date")

    parsed = parse_date_input(due_date, "due_date")
    if not parsed:
        raise ValidationError("due_date is required", details={"due_date": None})
    if finding.status == "closed":
        raise InvalidStateError("set_due_date", finding.status, "finding is closed")
    if finding.due_date is not None:
        raise InvalidStateError("set_due_date", finding.status, "due date already set")

    if not FindingRepository.set_due_date_if_unset(finding.id, parsed):
        # Lost a race against another request; nothing was written.
        db.session.rollback()
        FindingRepository.refresh(finding)
        raise InvalidStateError("set_due_date", finding.status, "due date already set")

    try:
        notifier.mark_action_completed(finding_id=finding.id, type="finding_assigned")
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    FindingRepository.refresh(finding)

    logger.info(
        "Finding due date set to %s", parsed.isoformat(),
        extra={"finding_id": finding.id, "user_id": actor_id, "event_type": "finding_due_date"},
    )
    return _result(finding, "set_due_date", finding.status, clock=clock)


def close_finding(actor_id: str, finding_id: int, comment: str | None = None,
                  evidence_url: str | None = None, *, notifier=NotificationService,
                  clock=None) -> dict:
    """
    Close a finding. Responsible user only.

    Closing an already-closed finding succeeds without touching anything.
    A first close resolves every pending notification linked to the finding.
    """
    finding = _get_finding(finding_id)
    roles = resolve_roles(actor_id, finding.walk, finding)
    require_role(roles, RESPONSIBLE, action="close",
                 message="Only the responsible user can close the finding")

    previous_status = finding.status
    if previous_status == "closed":
        return _result(finding, "close", previous_status, changed=False, clock=clock)

    won = FindingRepository.close_if_open(
        finding.id, comment=clean_str(comment), evidence_url=clean_str(evidence_url),
    )
    if not won:
        db.session.rollback()
        FindingRepository.refresh(finding)
        if finding.status == "closed":
            return _result(finding, "close", "closed", changed=False, clock=clock)
        raise InvalidStateError("close", finding.status)

    try:
        resolved = notifier.mark_action_completed(finding_id=finding.id)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    FindingRepository.refresh(finding)

    logger.info(
        "Finding closed (%d notification(s) resolved)", resolved,
        extra={"finding_id": finding.id, "user_id": actor_id, "event_type": "finding_closed"},
    )
    return _result(finding, "close", previous_status, clock=clock)


def update_status(actor_id: str, finding_id: int, new_status: str, *,
                  comment: str | None = None, evidence_url: str | None = None,
                  notifier=NotificationService, clock=None) -> dict:
    """
    Administrative status change by the walk creator or the responsible user.

    Only the responsible user may move a finding into "closed"; that path
    delegates to close_finding. Moving a closed finding back to "open" is
    rejected.
    """
    finding = _get_finding(finding_id)
    roles = resolve_roles(actor_id, finding.walk, finding)
    require_role(roles, CREATOR, RESPONSIBLE, action="update_status",
                 message="You do not have permission to update this finding")

    new_status = clean_str(new_status)
    if new_status not in FINDING_STATUSES:
        raise ValidationError(
            f"Invalid status. Must be one of: {sorted(FINDING_STATUSES)}",
            details={"status": new_status},
        )

    if new_status == "closed":
        require_role(roles, RESPONSIBLE, action="close",
                     message="Only the responsible user can close the finding")
        return close_finding(actor_id, finding.id, comment, evidence_url,
                             notifier=notifier, clock=clock)

    if finding.status == "closed":
        raise InvalidStateError("update_status", finding.status, "closed findings cannot be reopened")
    return _result(finding, "update_status", finding.status, changed=False, clock=clock)


# ── Queries ────────────────────────────────────────────────────────────────────


def get_finding(finding_id, *, clock=None) -> dict:
    """Finding detail. Readable by every authenticated user."""
    finding = _get_finding(finding_id)
    d = finding.to_dict(today=get_clock(clock).today())
    d["areas"] = finding.walk.area_names if finding.walk else []
    d["responsible_user"] = finding.responsible.to_summary() if finding.responsible else None
    return d


def list_findings(
    *,
    search: str | None = None,
    status: str | None = None,
    category: str | None = None,
    responsible_id: str | None = None,
    area: str | None = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    page: int = 1,
    limit: int = 20,
    clock=None,
) -> dict:
    """
    Filtered, searched, sorted and paginated finding listing.

    Visibility is not role-gated: every authenticated user sees all findings.
    """
    q = Finding.query
    if status:
        q = q.filter(Finding.status == status)
    if category:
        q = q.filter(Finding.category == category)
    if responsible_id:
        q = q.filter(Finding.responsible_id == responsible_id)
    if area:
        walk_ids_with_area = db.session.query(GembaWalkArea.gemba_walk_id).filter(
            GembaWalkArea.area_name == area,
        )
        q = q.filter(or_(Finding.area == area, Finding.gemba_walk_id.in_(walk_ids_with_area)))
    if search:
        like = f"%{search.strip().lower()}%"
        area_match = db.session.query(GembaWalkArea.gemba_walk_id).filter(
            db.func.lower(GembaWalkArea.area_name).like(like),
        )
        people = db.session.query(User.id).filter(or_(
            db.func.lower(User.username).like(like),
            db.func.lower(db.func.coalesce(User.first_name, "") + " "
                          + db.func.coalesce(User.last_name, "")).like(like),
        ))
        q = q.filter(or_(
            db.func.lower(Finding.description).like(like),
            db.func.lower(Finding.category).like(like),
            Finding.gemba_walk_id.in_(area_match),
            Finding.responsible_id.in_(people),
        ))

    column = getattr(Finding, sort_by if sort_by in SORTABLE_FIELDS else "created_at")
    if sort_by in ("description", "category"):
        column = db.func.lower(column)
    order = column.asc() if sort_order == "asc" else column.desc()
    tiebreak = Finding.id.asc() if sort_order == "asc" else Finding.id.desc()

    total = q.count()
    total_pages = (total + limit - 1) // limit if limit else 0
    rows = q.order_by(order, tiebreak).offset((page - 1) * limit).limit(limit).all()

    today = get_clock(clock).today()
    walks = {}
    items = []
    for f in rows:
        walk = walks.get(f.gemba_walk_id)
        if walk is None:
            walk = walks[f.gemba_walk_id] = db.session.get(GembaWalk, f.gemba_walk_id)
        d = f.to_dict(today=today)
        d["areas"] = walk.area_names if walk else []
        d["responsible_user"] = f.responsible.to_summary() if f.responsible else None
        items.append(d)

    return {
        "findings": items,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": total_pages,
            "has_more": page < total_pages,
        },
    }
