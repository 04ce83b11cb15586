"""
Gemba Walk Tracker
Notification Service: the notification sink.

Creation helpers (``emit``, ``notify_*``, ``mark_action_completed``) add and
flush inside the caller's unit of work and never commit, so a transition and
the notifications it spawns are persisted together. The read-side actions
invoked directly from the API (mark read, complete action) own their commit.

Walk-assignment notifications are informational (is_action_required=False).
Finding-assignment notifications are tasks that stay pending until the
finding gets a due date or is closed.
"""

from datetime import datetime, timezone

from sqlalchemy import update

from gemba.core.exceptions import NotFoundError
from gemba.models import db
from gemba.models.notification import Notification


class NotificationService:
    """Stateless service class for notification operations."""

    # ── Create ────────────────────────────────────────────────────────────

    @staticmethod
    def emit(*, user_id, type, title, message="", related_finding_id=None,
             related_walk_id=None, is_action_required=False):
        """
        Add a single notification record to the current session.

        Returns:
            The Notification instance (flushed, not committed).
        """
        notif = Notification(
            user_id=user_id,
            type=type,
            title=title,
            message=message,
            related_finding_id=related_finding_id,
            related_walk_id=related_walk_id,
            is_action_required=is_action_required,
            is_action_completed=False,
        )
        db.session.add(notif)
        db.session.flush()
        return notif

    @staticmethod
    def notify_walk_assigned(walk, *, recurring=False):
        """Notify the walk's leader (if any) and each participant."""
        date_text = walk.date.isoformat()
        areas_text = ", ".join(walk.area_names)
        kind = "Gemba Walk recurrente" if recurring else "Gemba Walk"
        sent = []

        if walk.leader_id:
            sent.append(NotificationService.emit(
                user_id=walk.leader_id,
                type="gemba_walk_assigned",
                title=f"{kind} asignado como líder",
                message=(f"Has sido asignado como líder de un {kind} programado "
                         f"para el {date_text}. Áreas: {areas_text}"),
                related_walk_id=walk.id,
            ))

        for participant_id in walk.participant_ids:
            sent.append(NotificationService.emit(
                user_id=participant_id,
                type="gemba_walk_assigned",
                title=f"{kind} asignado",
                message=(f"Has sido asignado como participante de un {kind} programado "
                         f"para el {date_text}. Áreas: {areas_text}"),
                related_walk_id=walk.id,
            ))
        return sent

    @staticmethod
    def notify_finding_assigned(finding, walk):
        """Create the action-required task for the finding's responsible user."""
        area = finding.area or (walk.area_names[0] if walk.area_names else "desconocida")
        return NotificationService.emit(
            user_id=finding.responsible_id,
            type="finding_assigned",
            title="Nuevo hallazgo asignado",
            message=(f"Se te ha asignado un nuevo hallazgo en el área {area}. "
                     f"Categoría: {finding.category}. Por favor establece la fecha de compromiso."),
            related_finding_id=finding.id,
            related_walk_id=walk.id,
            is_action_required=True,
        )

    # ── Resolve ───────────────────────────────────────────────────────────

    @staticmethod
    def mark_action_completed(*, finding_id, type=None):
        """
        Flip is_action_completed on every still-open notification for a finding.

        Args:
            type: restrict to one notification type (e.g. "finding_assigned").

        Returns:
            Number of notifications that changed.
        """
        stmt = (
            update(Notification)
            .where(
                Notification.related_finding_id == finding_id,
                Notification.is_action_completed.is_(False),
            )
            .values(is_action_completed=True)
            .execution_options(synchronize_session="fetch")
        )
        if type:
            stmt = stmt.where(Notification.type == type)
        return db.session.execute(stmt).rowcount

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def list_for_user(user_id, unread_only=False, limit=50, offset=0):
        """
        Retrieve notifications for a user, newest first.
        """
        q = Notification.query.filter_by(user_id=user_id)
        if unread_only:
            q = q.filter_by(is_read=False)
        total = q.count()
        items = (
            q.order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(offset).limit(limit).all()
        )
        return items, total

    @staticmethod
    def unread_count(user_id):
        """Return count of unread notifications."""
        return Notification.query.filter_by(user_id=user_id, is_read=False).count()

    @staticmethod
    def pending_action_count(user_id):
        """Outstanding tasks: action required and not yet completed."""
        return Notification.query.filter_by(
            user_id=user_id, is_action_required=True, is_action_completed=False,
        ).count()

    # ── Actions ───────────────────────────────────────────────────────────

    @staticmethod
    def _get_own(notification_id, user_id):
        notif = Notification.query.filter_by(id=notification_id, user_id=user_id).first()
        if not notif:
            raise NotFoundError(resource="Notification", resource_id=notification_id)
        return notif

    @staticmethod
    def mark_read(notification_id, user_id):
        """Mark one of the user's notifications as read."""
        notif = NotificationService._get_own(notification_id, user_id)
        notif.mark_read()
        db.session.commit()
        return notif

    @staticmethod
    def complete_action(notification_id, user_id):
        """Mark one of the user's notifications as action-completed."""
        notif = NotificationService._get_own(notification_id, user_id)
        notif.is_action_completed = True
        db.session.commit()
        return notif

    @staticmethod
    def mark_all_read(user_id):
        """Mark all notifications for a user as read."""
        q = Notification.query.filter_by(user_id=user_id, is_read=False)
        now = datetime.now(timezone.utc)
        count = q.update({"is_read": True, "read_at": now}, synchronize_session="fetch")
        db.session.commit()
        return count
