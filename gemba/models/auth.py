"""
Auth Models: users.

Password hashing and session handling live outside this package; the tracker
only needs identity, display name and the global role that gates walk
scheduling.
"""

import uuid
from datetime import datetime, timezone

from gemba.models import db

USER_ROLES = {"admin", "user"}


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    username = db.Column(db.String(150), unique=True, nullable=False)
    email = db.Column(db.String(200), unique=True, nullable=True)
    first_name = db.Column(db.String(100))
    last_name = db.Column(db.String(100))
    role = db.Column(db.String(20), nullable=False, default="user")  # admin | user
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @property
    def display_name(self) -> str:
        """'First Last' when available, username otherwise."""
        full = " ".join(p for p in (self.first_name, self.last_name) if p)
        return full or self.username

    def to_summary(self):
        return {
            "id": self.id,
            "username": self.username,
            "first_name": self.first_name,
            "last_name": self.last_name,
        }

    def to_dict(self):
        d = self.to_summary()
        d.update({
            "email": self.email,
            "role": self.role,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        })
        return d

    def __repr__(self):
        return f"<User {self.username} ({self.role})>"
