"""
Notification Service
In-app notifications with best-effort email fan-out
"""
import logging
from typing import Callable, Optional

from eclinic.extensions import db
from eclinic.errors import NotFoundError
from eclinic.models import Notification

logger = logging.getLogger(__name__)


def notify(
    user_id: int,
    title: str,
    message: str,
    type: str,
    related_id: Optional[int] = None,
    related_type: Optional[str] = None,
    email: Optional[Callable[[], bool]] = None,
) -> Notification:
    """
    Persist a notification for user_id, then attempt the email callable.

    The notification row is committed before any email is attempted; an email
    failure (False or an exception) is logged and does not touch the row.
    """
    notification = Notification(
        user_id=user_id,
        title=title,
        message=message,
        type=type,
        related_id=related_id,
        related_type=related_type,
    )
    db.session.add(notification)
    db.session.commit()

    if email is not None:
        try:
            sent = email()
            if not sent:
                logger.warning("Email for notification %s was not delivered", notification.id)
        except Exception as e:
            logger.error("Email for notification %s failed: %s", notification.id, e)

    return notification


def list_for_user(user_id: int, unread_only: bool = False, limit: int = 50):
    query = Notification.query.filter(Notification.user_id == user_id)
    if unread_only:
        query = query.filter(Notification.is_read.is_(False))
    return query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()


def mark_read(notification_id: int, user_id: int) -> Notification:
    notification = Notification.query.filter_by(id=notification_id, user_id=user_id).first()
    if notification is None:
        raise NotFoundError('Notification not found')
    notification.is_read = True
    db.session.commit()
    return notification


def mark_all_read(user_id: int) -> int:
    count = Notification.query.filter(
        Notification.user_id == user_id,
        Notification.is_read.is_(False),
    ).update({Notification.is_read: True}, synchronize_session=False)
    db.session.commit()
    return count
