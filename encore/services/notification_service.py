"""
Notification dispatcher and per-user inbox.

Workflows never write notifications themselves. They enqueue a
NotificationRequest and return; delivery happens later (a FastAPI background
task after the response) in a separate session per notification, so a failed
delivery can only be logged, never surface in the workflow that caused it.
"""

import logging
import queue
from dataclasses import dataclass
from typing import Callable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from encore.database import SessionLocal
from encore.errors import NotFoundError
from encore.models import Notification, NotificationType, User, UserRole

logger = logging.getLogger(__name__)

FINANCE_ROLES = (UserRole.FINANCE_MANAGER.value,)
INBOX_LIMIT = 50


@dataclass(frozen=True)
class NotificationRequest:
    """A notification waiting to be delivered.

    Exactly one of ``user_id`` (a single recipient) or ``role`` (every user
    holding that role, resolved at delivery time) is set.
    """

    message: str
    type: NotificationType = NotificationType.INFO
    user_id: int | None = None
    role: str | None = None
    invoice_id: int | None = None
    payment_id: int | None = None
    refund_id: int | None = None


class NotificationDispatcher:
    """Queue boundary between workflows and the notification store."""

    def __init__(self, session_factory: Callable[[], Session] | None = None):
        self.session_factory = session_factory or SessionLocal
        self._queue: "queue.SimpleQueue[NotificationRequest]" = queue.SimpleQueue()

    def enqueue(self, request: NotificationRequest) -> None:
        self._queue.put(request)

    def notify(
        self,
        user_id: int,
        message: str,
        type: NotificationType = NotificationType.INFO,
        invoice_id: int | None = None,
        payment_id: int | None = None,
        refund_id: int | None = None,
    ) -> None:
        """Queue a notification for one user (fire-and-forget)."""
        self.enqueue(
            NotificationRequest(
                message=message,
                type=type,
                user_id=user_id,
                invoice_id=invoice_id,
                payment_id=payment_id,
                refund_id=refund_id,
            )
        )

    def notify_finance_team(
        self,
        message: str,
        type: NotificationType = NotificationType.INFO,
        invoice_id: int | None = None,
        payment_id: int | None = None,
        refund_id: int | None = None,
    ) -> None:
        """Queue a notification for every finance manager."""
        for role in FINANCE_ROLES:
            self.enqueue(
                NotificationRequest(
                    message=message,
                    type=type,
                    role=role,
                    invoice_id=invoice_id,
                    payment_id=payment_id,
                    refund_id=refund_id,
                )
            )

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def deliver_pending(self) -> int:
        """Drain the queue and write notifications.

        Returns:
            Number of notification rows written
        """
        delivered = 0
        while True:
            try:
                request = self._queue.get_nowait()
            except queue.Empty:
                break
            delivered += self._deliver(request)
        return delivered

    def _deliver(self, request: NotificationRequest) -> int:
        try:
            db = self.session_factory()
        except Exception as e:
            logger.error("No session to deliver notification %r: %s", request.message, e)
            return 0
        try:
            if request.user_id is not None:
                recipients = [request.user_id]
            else:
                recipients = list(
                    db.execute(select(User.id).where(User.role == request.role)).scalars()
                )
                if not recipients:
                    logger.warning("No users with role %s to notify", request.role)

            for user_id in recipients:
                db.add(
                    Notification(
                        user_id=user_id,
                        message=request.message,
                        type=NotificationType(request.type).value,
                        invoice_id=request.invoice_id,
                        payment_id=request.payment_id,
                        refund_id=request.refund_id,
                    )
                )
            db.commit()
            logger.debug("Delivered notification to %d user(s)", len(recipients))
            return len(recipients)
        except Exception as e:
            db.rollback()
            logger.error("Failed to deliver notification %r: %s", request.message, e, exc_info=True)
            return 0
        finally:
            db.close()


def list_notifications(db: Session, user_id: int, limit: int = INBOX_LIMIT) -> list[Notification]:
    """Newest notifications for a user."""
    return list(
        db.execute(
            select(Notification)
            .where(Notification.user_id == user_id)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .limit(limit)
        ).scalars()
    )


def mark_as_read(db: Session, user_id: int, notification_id: int) -> Notification:
    """Mark one of the user's notifications as read.

    Raises:
        NotFoundError: If the notification does not exist or belongs to someone else
    """
    notification = db.execute(
        select(Notification).where(
            Notification.id == notification_id, Notification.user_id == user_id
        )
    ).scalar_one_or_none()
    if notification is None:
        raise NotFoundError("Notification not found")

    notification.is_read = True
    db.commit()
    db.refresh(notification)
    return notification


# Global dispatcher instance
_dispatcher_instance: Optional[NotificationDispatcher] = None


def init_notification_dispatcher(dispatcher: NotificationDispatcher) -> None:
    """Replace the global dispatcher (used by tests)."""
    global _dispatcher_instance
    _dispatcher_instance = dispatcher


def get_notification_dispatcher() -> NotificationDispatcher:
    """Get the global notification dispatcher."""
    global _dispatcher_instance
    if _dispatcher_instance is None:
        _dispatcher_instance = NotificationDispatcher()
    return _dispatcher_instance


__all__ = [
    "NotificationRequest",
    "NotificationDispatcher",
    "list_notifications",
    "mark_as_read",
    "init_notification_dispatcher",
    "get_notification_dispatcher",
]
