"""
Finding domain model.

A Finding is an issue recorded during a Gemba Walk and assigned to a
responsible user. Status moves open -> closed only; closed is terminal.
due_date stays NULL until the responsible user commits to one.
"""

from datetime import datetime, timezone

from gemba.models import db

# ── Constants ────────────────────────────────────────────────────────────────

FINDING_STATUSES = {"open", "closed"}


class Finding(db.Model):
    __tablename__ = "findings"

    id = db.Column(db.Integer, primary_key=True)
    gemba_walk_id = db.Column(
        db.Integer, db.ForeignKey("gemba_walks.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    area = db.Column(db.String(200), nullable=True, comment="One of the owning walk's areas")
    category = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text, nullable=False)
    responsible_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=False, index=True,
    )
    due_date = db.Column(db.Date, nullable=True)
    status = db.Column(db.String(20), nullable=False, default="open", index=True)

    attachment_urls = db.Column(db.JSON, default=list)
    close_comment = db.Column(db.Text, nullable=True)
    close_evidence_url = db.Column(db.String(500), nullable=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    walk = db.relationship("GembaWalk", back_populates="findings")
    responsible = db.relationship("User", foreign_keys=[responsible_id])

    def is_overdue(self, today) -> bool:
        """due_date in the past and not yet closed."""
        return self.status != "closed" and self.due_date is not None and self.due_date < today

    def to_dict(self, today=None):
        d = {
            "id": self.id,
            "gemba_walk_id": self.gemba_walk_id,
            "area": self.area,
            "category": self.category,
            "description": self.description,
            "responsible_id": self.responsible_id,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "status": self.status,
            "attachment_urls": list(self.attachment_urls or []),
            "close_comment": self.close_comment,
            "close_evidence_url": self.close_evidence_url,
            "closed_at": self.closed_at.isoformat() if self.closed_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if today is not None:
            d["is_overdue"] = self.is_overdue(today)
        return d

    def __repr__(self):
        return f"<Finding {self.id} [{self.status}] {self.category}>"
