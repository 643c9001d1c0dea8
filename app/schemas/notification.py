# app/schemas/notification.py
import math
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


# --- Closed enumerations ---
class NotificationChannel(str, Enum):
    EMAIL = "EMAIL"
    WEBHOOK = "WEBHOOK"
    IN_APP = "IN_APP"
    PUSH = "PUSH"
    DISCORD = "DISCORD"
    TELEGRAM = "TELEGRAM"


class NotificationType(str, Enum):
    ALERT_TRIGGERED = "ALERT_TRIGGERED"
    ORDER_UPDATE = "ORDER_UPDATE"
    POSITION_UPDATE = "POSITION_UPDATE"
    SYSTEM_MESSAGE = "SYSTEM_MESSAGE"
    MARKET_UPDATE = "MARKET_UPDATE"


class NotificationStatus(str, Enum):
    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"
    DELIVERED = "DELIVERED"


# --- Query predicate & paging ---
class NotificationFilter(BaseModel):
    """
    Conjunctive predicate applied to every gateway read or bulk write.

    `owner_id` is always present. Optional fields left as None are
    unconstrained. `matches_nothing` is set when a caller asked for a
    channel/type value outside the enums: the predicate is still valid,
    it simply selects no rows.
    """
    owner_id: str
    is_read: Optional[bool] = None
    channel: Optional[NotificationChannel] = None
    type: Optional[NotificationType] = None
    notification_id: Optional[str] = None
    matches_nothing: bool = False

    model_config = {"frozen": True}


class PageDescriptor(BaseModel):
    page: int = Field(..., ge=1)
    limit: int = Field(..., ge=1)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def pages(self, total: int) -> int:
        return math.ceil(total / self.limit)


class PaginationInfo(BaseModel):
    page: int = Field(..., ge=1, description="The current page number")
    limit: int = Field(..., ge=1, description="Number of items per page")
    total: int = Field(..., ge=0, description="Total number of notifications matching the filters")
    pages: int = Field(..., ge=0, description="Total number of pages available")


class SnapshotInfo(BaseModel):
    """
    Marks a response assembled from several independent reads.

    The reads run concurrently and outside a shared transaction, so a write
    landing between them can make the parts disagree slightly (read skew).
    Clients must treat the numbers as a best-effort snapshot taken around
    `taken_at`, not as one atomic view.
    """
    consistency: Literal["best-effort"] = "best-effort"
    taken_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), alias="takenAt")

    model_config = {"populate_by_name": True}


# --- Response items ---
class AlertSummary(BaseModel):
    id: str
    name: str
    type: str
    asset: str

    model_config = {"from_attributes": True}


class NotificationItem(BaseModel):
    id: str = Field(..., description="Unique identifier for the notification")
    user_id: str = Field(..., alias="userId")
    alert_id: Optional[str] = Field(None, alias="alertId")
    type: NotificationType
    channel: NotificationChannel
    status: NotificationStatus = NotificationStatus.PENDING
    title: str
    message: str
    data: Optional[Dict[str, Any]] = None
    is_read: bool = Field(..., alias="isRead", description="Whether the notification has been read")
    read_at: Optional[datetime] = Field(None, alias="readAt")
    error: Optional[str] = None
    created_at: datetime = Field(..., alias="createdAt")
    alert: Optional[AlertSummary] = None

    model_config = {"from_attributes": True, "populate_by_name": True}


class NotificationPage(BaseModel):
    notifications: List[NotificationItem]
    unread_count: int = Field(..., ge=0, alias="unreadCount")
    pagination: PaginationInfo
    snapshot: SnapshotInfo = Field(default_factory=SnapshotInfo)

    model_config = {"populate_by_name": True}


class NotificationStats(BaseModel):
    total: int = Field(..., ge=0)
    unread: int = Field(..., ge=0)
    by_channel: Dict[str, int] = Field(default_factory=dict, alias="byChannel")
    by_type: Dict[str, int] = Field(default_factory=dict, alias="byType")
    snapshot: SnapshotInfo = Field(default_factory=SnapshotInfo)

    model_config = {"populate_by_name": True}


class UnreadCountResponse(BaseModel):
    unread_count: int = Field(..., ge=0, alias="unreadCount")

    model_config = {"populate_by_name": True}


class MessageResponse(BaseModel):
    message: str


class DeleteManyResponse(BaseModel):
    message: str
    count: int = Field(..., ge=0)


# --- Ingestion (used by upstream producers and test fixtures) ---
class NotificationCreate(BaseModel):
    user_id: str = Field(..., alias="userId")
    type: NotificationType
    channel: NotificationChannel
    title: str
    message: str
    alert_id: Optional[str] = Field(None, alias="alertId")
    data: Optional[Dict[str, Any]] = None
    status: NotificationStatus = NotificationStatus.PENDING
    is_read: bool = Field(False, alias="isRead")
    created_at: Optional[datetime] = Field(None, alias="createdAt")

    model_config = {"populate_by_name": True}
