"""
Gemba Walk domain model.

Models:
    - GembaWalk: a scheduled shop-floor audit (seed or expanded instance)
    - GembaWalkArea: ordered area names covered by a walk
    - GembaWalkParticipant: users invited to a walk

A recurring seed carries is_recurring / recurrence_pattern /
recurrence_end_date and parent_walk_id=None. Every instance produced by the
recurrence expander carries is_recurring=False and parent_walk_id=<seed id>.
"""

from datetime import datetime, timezone

from gemba.models import db

# ── Constants ────────────────────────────────────────────────────────────────

RECURRENCE_PATTERNS = {"weekly", "monthly"}


class GembaWalk(db.Model):
    __tablename__ = "gemba_walks"

    id = db.Column(db.Integer, primary_key=True)
    date = db.Column(db.Date, nullable=False, index=True)
    leader_id = db.Column(
        db.String(36), db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    created_by = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=False, index=True,
    )

    # Recurrence descriptor (seed only)
    is_recurring = db.Column(db.Boolean, nullable=False, default=False)
    recurrence_pattern = db.Column(db.String(20), nullable=True, comment="weekly | monthly")
    recurrence_end_date = db.Column(db.Date, nullable=True)
    parent_walk_id = db.Column(
        db.Integer, db.ForeignKey("gemba_walks.id", ondelete="SET NULL"), nullable=True, index=True,
    )

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    areas = db.relationship(
        "GembaWalkArea", order_by="GembaWalkArea.position",
        cascade="all, delete-orphan", lazy="selectin",
    )
    participants = db.relationship(
        "GembaWalkParticipant", cascade="all, delete-orphan", lazy="selectin",
    )
    findings = db.relationship(
        "Finding", back_populates="walk", cascade="all, delete-orphan", order_by="Finding.id",
    )
    leader = db.relationship("User", foreign_keys=[leader_id])

    @property
    def area_names(self) -> list[str]:
        return [a.area_name for a in self.areas]

    @property
    def participant_ids(self) -> list[str]:
        return [p.user_id for p in self.participants]

    def to_dict(self, include_people=False):
        d = {
            "id": self.id,
            "date": self.date.isoformat() if self.date else None,
            "areas": self.area_names,
            "leader_id": self.leader_id,
            "created_by": self.created_by,
            "participant_ids": self.participant_ids,
            "is_recurring": self.is_recurring,
            "recurrence_pattern": self.recurrence_pattern,
            "recurrence_end_date": (
                self.recurrence_end_date.isoformat() if self.recurrence_end_date else None
            ),
            "parent_walk_id": self.parent_walk_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_people:
            from gemba.models.auth import User

            d["leader"] = self.leader.to_summary() if self.leader else None
            ids = self.participant_ids
            users = User.query.filter(User.id.in_(ids)).all() if ids else []
            d["participants"] = [u.to_summary() for u in users]
        return d

    def __repr__(self):
        return f"<GembaWalk {self.id} {self.date}>"


class GembaWalkArea(db.Model):
    __tablename__ = "gemba_walk_areas"

    id = db.Column(db.Integer, primary_key=True)
    gemba_walk_id = db.Column(
        db.Integer, db.ForeignKey("gemba_walks.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    area_name = db.Column(db.String(200), nullable=False)
    position = db.Column(db.Integer, nullable=False, default=0)


class GembaWalkParticipant(db.Model):
    __tablename__ = "gemba_walk_participants"

    id = db.Column(db.Integer, primary_key=True)
    gemba_walk_id = db.Column(
        db.Integer, db.ForeignKey("gemba_walks.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True,
    )

    __table_args__ = (
        db.UniqueConstraint("gemba_walk_id", "user_id", name="uq_walk_participant"),
    )
