from typing import List
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundError
from app.core.models import Notification

from .schemas import NotificationResponse


async def list_my_notifications(db: AsyncSession, user_id: UUID, unread_only: bool = False) -> List[NotificationResponse]:
    q = select(Notification).where(Notification.user_id == user_id)
    if unread_only:
        q = q.where(Notification.is_read.is_(False))
    result = await db.execute(q.order_by(Notification.created_at.desc()))
    return [NotificationResponse.model_validate(n) for n in result.scalars().all()]


async def mark_read(db: AsyncSession, notification_id: UUID, user_id: UUID) -> NotificationResponse:
    n = await db.get(Notification, notification_id)
    # Other users' notifications are reported as missing.
    if not n or n.user_id != user_id:
        raise NotFoundError("Notification not found")
    n.is_read = True
    await db.commit()
    await db.refresh(n)
    return NotificationResponse.model_validate(n)
