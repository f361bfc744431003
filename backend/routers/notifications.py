from fastapi import APIRouter, Depends, HTTPException, Query
from sqlmodel import Session, select

from database import get_session
from models import Notification, User
from responses import ok
from services.auth import get_current_user

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("")
def list_notifications(
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    query = select(Notification).where(Notification.recipient_id == current_user.id)
    if unread_only:
        query = query.where(Notification.is_read == False)  # noqa: E712
    notifications = session.exec(
        query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit)  # type: ignore[union-attr]
    ).all()
    unread = session.exec(
        select(Notification.id).where(
            Notification.recipient_id == current_user.id,
            Notification.is_read == False,  # noqa: E712
        )
    ).all()
    return ok({"notifications": notifications, "unread_count": len(unread)})


@router.patch("/{notification_id}/read")
def mark_read(
    notification_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    notification = session.get(Notification, notification_id)
    if not notification or notification.recipient_id != current_user.id:
        raise HTTPException(404, "Notification not found")

    notification.is_read = True
    session.add(notification)
    try:
        session.commit()
        session.refresh(notification)
    except Exception:
        session.rollback()
        raise HTTPException(500, "Failed to update notification")
    return ok(notification.model_dump(mode="json"))
