"""
Gemba Walk Tracker
Notification domain model.

Models:
    - Notification: in-app notification record with read and action tracking

related_finding_id / related_walk_id are weak references: they carry no
foreign key, so deleting a walk or finding leaves its notifications in place.
"""

from datetime import datetime, timezone

from gemba.models import db


# ── Constants ────────────────────────────────────────────────────────────────

NOTIFICATION_TYPES = {"finding_assigned", "gemba_walk_assigned"}


class Notification(db.Model):
    """
    In-app notification entity.

    One record per recipient per event.
    """

    __tablename__ = "notifications"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(36), nullable=False, index=True, comment="Recipient user id")
    type = db.Column(db.String(40), nullable=False)
    title = db.Column(db.String(300), nullable=False)
    message = db.Column(db.Text, default="")

    related_finding_id = db.Column(db.Integer, nullable=True, index=True)
    related_walk_id = db.Column(db.Integer, nullable=True, index=True)

    # Read tracking
    is_read = db.Column(db.Boolean, nullable=False, default=False)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Task tracking: pending = required and not completed
    is_action_required = db.Column(db.Boolean, nullable=False, default=False)
    is_action_completed = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    @property
    def is_pending(self) -> bool:
        return bool(self.is_action_required and not self.is_action_completed)

    def mark_read(self):
        self.is_read = True
        self.read_at = datetime.now(timezone.utc)

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "related_finding_id": self.related_finding_id,
            "related_walk_id": self.related_walk_id,
            "is_read": self.is_read,
            "read_at": self.read_at.isoformat() if self.read_at else None,
            "is_action_required": self.is_action_required,
            "is_action_completed": self.is_action_completed,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Notification {self.id}: {self.title[:40]}>"
