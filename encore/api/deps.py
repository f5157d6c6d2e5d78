"""FastAPI dependencies: acting user, attachments and notification delivery."""

import logging

from fastapi import BackgroundTasks, Depends, Header, UploadFile
from sqlalchemy.orm import Session

from encore.config import settings
from encore.database import get_db
from encore.errors import ForbiddenError, UnauthorizedError
from encore.models import User
from encore.services.notification_service import (
    NotificationDispatcher,
    get_notification_dispatcher,
)
from encore.services.storage import (
    AttachmentFile,
    AttachmentStorage,
    get_attachment_storage,
    validate_upload,
)

logger = logging.getLogger(__name__)


def get_current_user(
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
    db: Session = Depends(get_db),  # noqa: B008
) -> User:
    """Resolve the acting user from the X-User-Id header set by the auth gateway.

    Raises:
        UnauthorizedError: Header missing, malformed or unknown user
    """
    if not x_user_id:
        raise UnauthorizedError("Missing X-User-Id header")
    try:
        user_id = int(x_user_id)
    except ValueError as e:
        raise UnauthorizedError("Invalid X-User-Id header") from e

    user = db.get(User, user_id)
    if user is None:
        logger.warning("Request with unknown user id %s", user_id)
        raise UnauthorizedError("Unknown user")
    return user


def require_finance_staff(user: User = Depends(get_current_user)) -> User:  # noqa: B008
    """Acting user, who must be a finance manager or admin."""
    if not user.is_finance_staff:
        logger.warning("User %s (%s) denied finance-staff operation", user.id, user.role)
        raise ForbiddenError("Finance staff role required")
    return user


def get_storage() -> AttachmentStorage:
    return get_attachment_storage()


def notification_delivery(background_tasks: BackgroundTasks) -> NotificationDispatcher:
    """Dispatcher whose queue is drained after the response is sent."""
    dispatcher = get_notification_dispatcher()
    background_tasks.add_task(dispatcher.deliver_pending)
    return dispatcher


def read_attachment(upload: UploadFile | None) -> AttachmentFile | None:
    """Read and validate an optional multipart file field."""
    if upload is None or not upload.filename:
        return None
    # Never buffer more than one byte past the cap
    limit = settings.max_upload_bytes
    data = upload.file.read(limit + 1)
    return validate_upload(upload.filename, upload.content_type, data, max_bytes=limit)


__all__ = [
    "get_current_user",
    "require_finance_staff",
    "get_storage",
    "notification_delivery",
    "read_attachment",
]
