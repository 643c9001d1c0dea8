# tests/utils.py

import datetime
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

from app.db.gateway import NotificationGateway
from app.schemas.notification import (
    NotificationChannel,
    NotificationCreate,
    NotificationType,
)

BASE_TIME = datetime.datetime(2025, 8, 24, 12, 0, tzinfo=datetime.timezone.utc)


# --- Direct store helpers (bypass the API) ---

async def create_notification_direct(
    gateway: NotificationGateway,
    user_id: str,
    *,
    channel: NotificationChannel = NotificationChannel.IN_APP,
    type: NotificationType = NotificationType.SYSTEM_MESSAGE,
    is_read: bool = False,
    title: str = "Test notification",
    message: str = "Something happened",
    alert_id: Optional[str] = None,
    minutes: int = 0,
) -> Dict[str, Any]:
    """Store one notification; `minutes` offsets its creation time from BASE_TIME."""
    return await gateway.create(
        NotificationCreate(
            user_id=user_id,
            channel=channel,
            type=type,
            is_read=is_read,
            title=title,
            message=message,
            alert_id=alert_id,
            created_at=BASE_TIME + datetime.timedelta(minutes=minutes),
        )
    )


async def seed_inbox(gateway: NotificationGateway, user_id: str) -> List[Dict[str, Any]]:
    """
    The three-notification inbox used throughout the suite, oldest first:

    0. unread, EMAIL, ALERT_TRIGGERED
    1. read,   PUSH,  SYSTEM_MESSAGE
    2. unread, EMAIL, ORDER_UPDATE
    """
    return [
        await create_notification_direct(
            gateway, user_id, channel=NotificationChannel.EMAIL,
            type=NotificationType.ALERT_TRIGGERED, title="oldest", minutes=0,
        ),
        await create_notification_direct(
            gateway, user_id, channel=NotificationChannel.PUSH,
            type=NotificationType.SYSTEM_MESSAGE, is_read=True, title="middle", minutes=1,
        ),
        await create_notification_direct(
            gateway, user_id, channel=NotificationChannel.EMAIL,
            type=NotificationType.ORDER_UPDATE, title="newest", minutes=2,
        ),
    ]


# --- Mocking Helpers ---

def mock_pool(conn: AsyncMock) -> MagicMock:
    """An asyncpg.Pool stand-in whose `acquire()` yields `conn`."""
    pool = MagicMock()
    pool.acquire.return_value.__aenter__.return_value = conn
    pool.acquire.return_value.__aexit__.return_value = False
    return pool
