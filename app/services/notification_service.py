"""
Notification Service - in-app notifications.
"""

import uuid
import logging
from typing import Optional, List, Tuple

from sqlalchemy import select, update, func, desc
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import NotFoundError
from app.fsm.states import NotificationType
from app.models.notification import Notification

logger = logging.getLogger(__name__)


class NotificationService:
    """Create and read user notifications."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_notification(
        self,
        user_id: uuid.UUID,
        type: NotificationType,
        title: str,
        message: str,
        link: Optional[str] = None,
    ) -> Notification:
        notification = Notification(
            user_id=user_id,
            type=type.value,
            title=title,
            message=message,
            link=link,
        )
        self.db.add(notification)
        await self.db.flush()
        logger.debug(f"Notification {type.value} created for user {user_id}")
        return notification

    async def list_for_user(
        self,
        user_id: uuid.UUID,
        page: int = 1,
        limit: int = 20,
        unread_only: bool = False,
    ) -> Tuple[List[Notification], int, int]:
        """Returns (notifications, total matching, unread count)."""
        page = max(page, 1)
        limit = max(limit, 1)

        conditions = [Notification.user_id == user_id]
        if unread_only:
            conditions.append(Notification.is_read.is_(False))

        total = (
            await self.db.execute(select(func.count()).select_from(Notification).where(*conditions))
        ).scalar_one()

        unread_count = await self.unread_count(user_id)

        result = await self.db.execute(
            select(Notification)
            .where(*conditions)
            .order_by(desc(Notification.created_at))
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), total, unread_count

    async def unread_count(self, user_id: uuid.UUID) -> int:
        result = await self.db.execute(
            select(func.count())
            .select_from(Notification)
            .where(Notification.user_id == user_id, Notification.is_read.is_(False))
        )
        return result.scalar_one()

    async def mark_as_read(self, notification_id: uuid.UUID, user_id: uuid.UUID) -> Notification:
        notification = await self.db.get(Notification, notification_id)
        if not notification or notification.user_id != user_id:
            raise NotFoundError("Notification not found")
        notification.is_read = True
        await self.db.flush()
        return notification

    async def delete_notification(self, notification_id: uuid.UUID, user_id: uuid.UUID) -> None:
        """Delete one of the user's notifications; someone else's counts as missing."""
        notification = await self.db.get(Notification, notification_id)
        if not notification or notification.user_id != user_id:
            raise NotFoundError("Notification not found")
        await self.db.delete(notification)
        await self.db.flush()

    async def mark_all_as_read(self, user_id: uuid.UUID) -> int:
        result = await self.db.execute(
            update(Notification)
            .where(Notification.user_id == user_id, Notification.is_read.is_(False))
            .values(is_read=True)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def count_for_user(self, user_id: uuid.UUID, type: Optional[NotificationType] = None) -> int:
        conditions = [Notification.user_id == user_id]
        if type:
            conditions.append(Notification.type == type.value)
        result = await self.db.execute(
            select(func.count()).select_from(Notification).where(*conditions)
        )
        return result.scalar_one()
