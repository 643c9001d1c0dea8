# app/api/endpoints/notifications.py
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, Request, status

from app.api import deps
from app.crud import crud_notification
from app.crud.crud_notification import DatabaseInteractionError, NotificationNotFoundError
from app.db.gateway import NotificationGateway
from app.schemas import notification as notification_schemas

from app.core.rate_limit import limiter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notifications")

notification_tags = ["Notifications"]


def _server_error(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)


# === Reads ===

@router.get("", response_model=notification_schemas.NotificationPage, tags=notification_tags)
@limiter.limit("60/minute")
async def get_notifications(
    request: Request,  # For limiter state
    page: int = Query(1, description="Page number; values below 1 are treated as 1"),
    limit: Optional[int] = Query(None, description="Page size; clamped to the configured bounds"),
    is_read: Optional[bool] = Query(None, alias="isRead"),
    channel: Optional[str] = Query(None, description="Unknown channels match nothing"),
    notification_type: Optional[str] = Query(None, alias="type", description="Unknown types match nothing"),
    current_user_id: str = Depends(deps.get_current_user_id),
    gateway: NotificationGateway = Depends(deps.get_notification_gateway),
):
    """
    Page through the current user's notifications, newest first.

    `unreadCount` is the user's overall unread count, not the filtered one.
    """
    try:
        return await crud_notification.list_notifications(
            gateway,
            current_user_id,
            is_read=is_read,
            channel=channel,
            type=notification_type,
            page=page,
            limit=limit,
        )
    except DatabaseInteractionError as e:
        logger.error(f"DB error fetching notifications for user {current_user_id}: {e}", exc_info=True)
        raise _server_error("Failed to get notifications")


@router.get("/stats", response_model=notification_schemas.NotificationStats, tags=notification_tags)
@limiter.limit("30/minute")
async def get_notification_stats(
    request: Request,  # For limiter state
    current_user_id: str = Depends(deps.get_current_user_id),
    gateway: NotificationGateway = Depends(deps.get_notification_gateway),
):
    """Totals plus per-channel and per-type counts for the current user."""
    try:
        return await crud_notification.get_notification_stats(gateway, current_user_id)
    except DatabaseInteractionError as e:
        logger.error(f"DB error computing notification stats for user {current_user_id}: {e}", exc_info=True)
        raise _server_error("Failed to get notification statistics")


@router.get("/unread-count", response_model=notification_schemas.UnreadCountResponse, tags=notification_tags)
@limiter.limit("120/minute")
async def get_unread_count(
    request: Request,  # For limiter state
    current_user_id: str = Depends(deps.get_current_user_id),
    gateway: NotificationGateway = Depends(deps.get_notification_gateway),
):
    try:
        unread = await crud_notification.get_unread_count(gateway, current_user_id)
        return notification_schemas.UnreadCountResponse(unread_count=unread)
    except DatabaseInteractionError as e:
        logger.error(f"DB error counting unread notifications for user {current_user_id}: {e}", exc_info=True)
        raise _server_error("Failed to get unread count")


# === Read state ===

@router.post("/mark-all-read", response_model=notification_schemas.MessageResponse, tags=notification_tags)
async def mark_all_notifications_read(
    current_user_id: str = Depends(deps.get_current_user_id),
    gateway: NotificationGateway = Depends(deps.get_notification_gateway),
):
    try:
        await crud_notification.mark_all_read(gateway, current_user_id)
    except DatabaseInteractionError as e:
        logger.error(f"DB error marking all notifications read for user {current_user_id}: {e}", exc_info=True)
        raise _server_error("Failed to mark all notifications as read")
    return notification_schemas.MessageResponse(message="All notifications marked as read")


@router.post("/{notification_id}/read", response_model=notification_schemas.MessageResponse, tags=notification_tags)
async def mark_notification_read(
    notification_id: str = Path(..., description="The notification to mark as read"),
    current_user_id: str = Depends(deps.get_current_user_id),
    gateway: NotificationGateway = Depends(deps.get_notification_gateway),
):
    """
    Mark one notification as read. Ids the user does not hold are ignored.
    """
    try:
        await crud_notification.mark_notification_read(gateway, current_user_id, notification_id)
    except DatabaseInteractionError as e:
        logger.error(f"DB error marking notification {notification_id} read for user {current_user_id}: {e}", exc_info=True)
        raise _server_error("Failed to mark notification as read")
    return notification_schemas.MessageResponse(message="Notification marked as read")


# === Deletion ===

@router.delete("/all", response_model=notification_schemas.DeleteManyResponse, tags=notification_tags)
async def delete_all_notifications(
    is_read: Optional[bool] = Query(None, alias="isRead"),
    current_user_id: str = Depends(deps.get_current_user_id),
    gateway: NotificationGateway = Depends(deps.get_notification_gateway),
):
    try:
        count = await crud_notification.delete_notifications(gateway, current_user_id, is_read=is_read)
    except DatabaseInteractionError as e:
        logger.error(f"DB error deleting notifications for user {current_user_id}: {e}", exc_info=True)
        raise _server_error("Failed to delete notifications")
    return notification_schemas.DeleteManyResponse(message="Notifications deleted successfully", count=count)


@router.delete("/{notification_id}", response_model=notification_schemas.MessageResponse, tags=notification_tags)
async def delete_notification(
    notification_id: str = Path(..., description="The notification to delete"),
    current_user_id: str = Depends(deps.get_current_user_id),
    gateway: NotificationGateway = Depends(deps.get_notification_gateway),
):
    try:
        await crud_notification.delete_notification(gateway, current_user_id, notification_id)
    except NotificationNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    except DatabaseInteractionError as e:
        logger.error(f"DB error deleting notification {notification_id} for user {current_user_id}: {e}", exc_info=True)
        raise _server_error("Failed to delete notification")
    return notification_schemas.MessageResponse(message="Notification deleted successfully")
