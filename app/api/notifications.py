"""
Notification Endpoints.
"""

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import CurrentUser, get_current_user
from app.api.serializers import pagination, serialize_notification
from app.database import get_db
from app.services.notification_service import NotificationService

router = APIRouter()


@router.get("")
async def get_notifications(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    unread_only: bool = Query(False, alias="unreadOnly"),
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    notifications, total, unread_count = await NotificationService(db).list_for_user(
        user.id,
        page=page,
        limit=limit,
        unread_only=unread_only,
    )
    return {
        "status": "success",
        "message": "Notifications fetched successfully",
        "data": {
            "notifications": [serialize_notification(n) for n in notifications],
            "unreadCount": unread_count,
            "pagination": pagination(total, page, limit),
        },
    }


@router.get("/unread-count")
async def get_unread_count(
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    count = await NotificationService(db).unread_count(user.id)
    return {"status": "success", "message": "Unread count fetched successfully", "data": {"count": count}}


@router.patch("/read-all")
async def mark_all_as_read(
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    updated = await NotificationService(db).mark_all_as_read(user.id)
    return {"status": "success", "message": "All notifications marked as read", "data": {"updated": updated}}


@router.patch("/{notification_id}/read")
async def mark_as_read(
    notification_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    notification = await NotificationService(db).mark_as_read(notification_id, user.id)
    return {
        "status": "success",
        "message": "Notification marked as read",
        "data": serialize_notification(notification),
    }


@router.delete("/{notification_id}")
async def delete_notification(
    notification_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    await NotificationService(db).delete_notification(notification_id, user.id)
    return {"status": "success", "message": "Notification deleted successfully", "data": None}
