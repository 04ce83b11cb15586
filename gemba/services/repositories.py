"""
Walk and Finding repositories.

Thin persistence seams consumed by the lifecycle controller and the walk
service. Repositories add and flush but never commit: the calling service
owns the unit of work, so a state change and its notifications land in the
same commit.

Guarded transitions are single conditional UPDATE statements
(``close_if_open``, ``set_due_date_if_unset``). The returned bool says whether
this caller won; a racing second caller sees ``False`` instead of silently
overwriting.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import or_, select, update

from gemba.models import db
from gemba.models.finding import Finding
from gemba.models.walk import GembaWalk, GembaWalkArea, GembaWalkParticipant

logger = logging.getLogger(__name__)


class WalkRepository:
    """Stateless persistence helpers for GembaWalk aggregates."""

    @staticmethod
    def create(*, date, areas, created_by, leader_id=None, participant_ids=None,
               is_recurring=False, recurrence_pattern=None, recurrence_end_date=None,
               parent_walk_id=None) -> GembaWalk:
        """Add a walk with its areas and participants; flushed, not committed."""
        walk = GembaWalk(
            date=date,
            leader_id=leader_id,
            created_by=created_by,
            is_recurring=is_recurring,
            recurrence_pattern=recurrence_pattern,
            recurrence_end_date=recurrence_end_date,
            parent_walk_id=parent_walk_id,
        )
        walk.areas = [GembaWalkArea(area_name=name, position=i) for i, name in enumerate(areas)]
        walk.participants = [GembaWalkParticipant(user_id=uid) for uid in (participant_ids or [])]
        db.session.add(walk)
        db.session.flush()
        return walk

    @staticmethod
    def get_by_id(walk_id) -> GembaWalk | None:
        return db.session.get(GembaWalk, walk_id)

    @staticmethod
    def delete(walk_id) -> bool:
        walk = db.session.get(GembaWalk, walk_id)
        if not walk:
            return False
        db.session.delete(walk)
        db.session.flush()
        return True

    @staticmethod
    def list_accessible_to(user_id) -> list[GembaWalk]:
        """Walks where the user is creator, leader or participant, newest first."""
        participant_walks = (
            select(GembaWalkParticipant.gemba_walk_id)
            .where(GembaWalkParticipant.user_id == user_id)
        )
        stmt = (
            select(GembaWalk)
            .where(or_(
                GembaWalk.created_by == user_id,
                GembaWalk.leader_id == user_id,
                GembaWalk.id.in_(participant_walks),
            ))
            .order_by(GembaWalk.created_at.desc(), GembaWalk.id.desc())
        )
        return list(db.session.execute(stmt).scalars().unique())

    @staticmethod
    def list_children(parent_walk_id) -> list[GembaWalk]:
        return (
            GembaWalk.query
            .filter_by(parent_walk_id=parent_walk_id)
            .order_by(GembaWalk.date.asc())
            .all()
        )


class FindingRepository:
    """Stateless persistence helpers for Findings."""

    @staticmethod
    def create(*, walk_id, category, description, responsible_id, area=None,
               attachment_urls=None) -> Finding:
        finding = Finding(
            gemba_walk_id=walk_id,
            area=area,
            category=category,
            description=description,
            responsible_id=responsible_id,
            due_date=None,
            status="open",
            attachment_urls=list(attachment_urls or []),
        )
        db.session.add(finding)
        db.session.flush()
        return finding

    @staticmethod
    def get_by_id(finding_id) -> Finding | None:
        return db.session.get(Finding, finding_id)

    @staticmethod
    def update(finding_id, **fields) -> Finding | None:
        finding = db.session.get(Finding, finding_id)
        if not finding:
            return None
        for key, value in fields.items():
            setattr(finding, key, value)
        db.session.flush()
        return finding

    @staticmethod
    def list_by_walk(walk_id) -> list[Finding]:
        return (
            Finding.query
            .filter_by(gemba_walk_id=walk_id)
            .order_by(Finding.created_at.desc(), Finding.id.desc())
            .all()
        )

    @staticmethod
    def list_by_responsible(user_id) -> list[Finding]:
        return (
            Finding.query
            .filter_by(responsible_id=user_id)
            .order_by(Finding.created_at.desc(), Finding.id.desc())
            .all()
        )

    @staticmethod
    def list_created_or_assigned(user_id) -> list[Finding]:
        """Findings on walks the user scheduled plus findings assigned to them."""
        stmt = (
            select(Finding)
            .join(GembaWalk, Finding.gemba_walk_id == GembaWalk.id)
            .where(or_(
                GembaWalk.created_by == user_id,
                Finding.responsible_id == user_id,
            ))
            .order_by(Finding.created_at.desc(), Finding.id.desc())
        )
        return list(db.session.execute(stmt).scalars().unique())

    @staticmethod
    def close_if_open(finding_id, *, comment=None, evidence_url=None) -> bool:
        """Atomically move an open finding to closed. False if it was not open."""
        now = datetime.now(timezone.utc)
        values = {"status": "closed", "closed_at": now, "updated_at": now}
        if comment is not None:
            values["close_comment"] = comment
        if evidence_url is not None:
            values["close_evidence_url"] = evidence_url
        result = db.session.execute(
            update(Finding)
            .where(Finding.id == finding_id, Finding.status == "open")
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @staticmethod
    def set_due_date_if_unset(finding_id, due_date) -> bool:
        """Atomically set due_date on an open finding that has none yet."""
        result = db.session.execute(
            update(Finding)
            .where(
                Finding.id == finding_id,
                Finding.due_date.is_(None),
                Finding.status == "open",
            )
            .values(due_date=due_date, updated_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @staticmethod
    def refresh(finding: Finding) -> Finding:
        db.session.refresh(finding)
        return finding
