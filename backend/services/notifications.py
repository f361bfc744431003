from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlmodel import Session

from models import Notification
from ws import manager

logger = logging.getLogger("wardbridge")


class SideEffect:
    def __init__(self, label: str):
        self.label = label
        self.succeeded = False


@contextmanager
def non_critical(session: Session, label: str) -> Iterator[SideEffect]:
    """Run a side effect whose failure must never reach the caller.

    Enter only after the primary write has been committed: whatever the block
    writes is committed on its own, and on error the session is rolled back
    and the failure is logged. Pending primary changes are refused up front
    so they can never be committed or discarded as part of the side effect.
    """
    if session.new or session.dirty or session.deleted:
        raise RuntimeError(f"Side effect '{label}' entered with uncommitted changes on the session")

    effect = SideEffect(label)
    try:
        yield effect
        session.commit()
        effect.succeeded = True
    except Exception:
        session.rollback()
        logger.exception("Side effect '%s' failed; primary operation unaffected", label)


async def notify(
    session: Session,
    *,
    recipient_id: int | None,
    title: str,
    message: str,
    notification_type: str,
    sender_id: int | None = None,
    priority: str = "normal",
    patient_id: int | None = None,
    related_entity_type: str | None = None,
    related_entity_id: int | None = None,
) -> Notification | None:
    if recipient_id is None:
        return None

    notification = Notification(
        recipient_id=recipient_id,
        sender_id=sender_id,
        title=title,
        message=message,
        notification_type=notification_type,
        priority=priority,
        patient_id=patient_id,
        related_entity_type=related_entity_type,
        related_entity_id=related_entity_id,
    )
    with non_critical(session, f"notification:{notification_type}") as effect:
        session.add(notification)
    if not effect.succeeded:
        return None

    try:
        session.refresh(notification)
        await manager.send_user(recipient_id, {"event": "notification", **notification.model_dump(mode="json")})
    except Exception:
        logger.exception("Failed to push %s notification to user #%s", notification_type, recipient_id)

    return notification


async def broadcast_ward_event(ward_id: int | None, payload: dict):
    if ward_id is None:
        return
    try:
        await manager.broadcast_ward(ward_id, payload)
    except Exception:
        logger.exception("Failed to broadcast %s to ward #%s", payload.get("event"), ward_id)
