"""Best-effort notification dispatch.

Services hand events to a dispatcher after their transaction has committed. A failing dispatcher is
logged and ignored: a decision that has been persisted is never rolled back because a notification
could not be delivered.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Protocol
from uuid import UUID

from fastapi import Request
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.core.models import Notification

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotificationEvent:
    user_id: UUID
    title: str
    message: str
    category: str
    reference_id: Optional[UUID] = None


class NotificationDispatcher(Protocol):
    async def dispatch(self, event: NotificationEvent) -> None:
        ...


class DatabaseNotifier:
    """Stores in-app notifications using its own session, independent of the caller's transaction."""

    def __init__(self, sessionmaker: async_sessionmaker) -> None:
        self._sessionmaker = sessionmaker

    async def dispatch(self, event: NotificationEvent) -> None:
        async with self._sessionmaker() as session:
            session.add(
                Notification(
                    user_id=event.user_id,
                    title=event.title,
                    message=event.message,
                    category=event.category,
                    reference_id=event.reference_id,
                )
            )
            await session.commit()
        logger.debug("Notification stored for user %s: %s", event.user_id, event.title)


async def notify_safely(notifier: Optional[NotificationDispatcher], event: NotificationEvent) -> bool:
    """Dispatch and report success. Never raises."""
    if notifier is None:
        return False
    try:
        await notifier.dispatch(event)
    except Exception:
        logger.exception("Notification dispatch failed for user %s (ref %s)", event.user_id, event.reference_id)
        return False
    return True


def get_notifier(request: Request) -> NotificationDispatcher:
    return request.app.state.notifier
