import logging
from datetime import datetime, timezone

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from ridehail.domains.notifications.models import Notification
from ridehail.realtime.feed import INSERT, UPDATE, feed

logger = logging.getLogger(__name__)


def create_notification(
    db: Session,
    *,
    user_id: str,
    type: str,
    title: str,
    message: str,
    ride_id: str | None = None,
    data: dict | None = None,
) -> Notification:
    n = Notification(user_id=user_id, type=type, title=title, message=message, ride_id=ride_id, data=data)
    db.add(n)
    db.commit()
    db.refresh(n)
    feed.publish("notifications", INSERT, n.to_public_dict())
    return n


def notify_best_effort(db: Session, **kwargs) -> Notification | None:
    """Notifications ride along with ride transitions and must never fail them."""
    try:
        return create_notification(db, **kwargs)
    except Exception as e:
        db.rollback()
        logger.warning("notification not created: user=%s type=%s err=%s", kwargs.get("user_id"), kwargs.get("type"), e)
        return None


def list_unread(db: Session, *, user_id: str) -> list[Notification]:
    return (
        db.query(Notification)
        .filter(Notification.user_id == user_id, Notification.is_read.is_(False))
        .order_by(Notification.created_at.desc())
        .all()
    )


def mark_read(db: Session, *, notification_id: str, user_id: str) -> Notification:
    n = db.get(Notification, notification_id)
    if n is None or n.user_id != user_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    if not n.is_read:
        n.is_read = True
        n.read_at = datetime.now(timezone.utc)
        db.commit()
        db.refresh(n)
        feed.publish("notifications", UPDATE, n.to_public_dict())
    return n
