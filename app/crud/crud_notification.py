"""
Inbox operations for a single owner's notifications.

Every public function:
• takes a `NotificationGateway` and an already-authenticated `owner_id`
• scopes every read and write to that owner
• returns plain data / pydantic models or raises a custom error
• never retries: a gateway failure aborts the whole operation

Multi-read results (listing, statistics) are best-effort snapshots: the reads
are gathered concurrently without a shared transaction, see `SnapshotInfo`.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Union

from app.core.config import settings
from app.db.gateway import DatabaseInteractionError, NotificationGateway
from app.schemas.notification import (
    NotificationChannel,
    NotificationFilter,
    NotificationItem,
    NotificationPage,
    NotificationStats,
    NotificationType,
    PageDescriptor,
    PaginationInfo,
)

logger = logging.getLogger(__name__)

__all__ = [
    "DatabaseInteractionError",
    "NotificationNotFoundError",
    "build_notification_filter",
    "resolve_page",
    "list_notifications",
    "get_unread_count",
    "mark_notification_read",
    "mark_all_read",
    "delete_notification",
    "delete_notifications",
    "get_notification_stats",
]


# --------------------------------------------------------------------------- #
#  Custom error types                                                         #
# --------------------------------------------------------------------------- #
class NotificationNotFoundError(Exception):
    """Notification does not exist or belongs to someone else."""


# --------------------------------------------------------------------------- #
#  Query building                                                             #
# --------------------------------------------------------------------------- #
def _coerce(enum_cls, value):
    """Return (member, recognised). None and blank strings mean no filter."""
    if value is None or value == "":
        return None, True
    if isinstance(value, enum_cls):
        return value, True
    try:
        return enum_cls(value), True
    except ValueError:
        return None, False


def build_notification_filter(
    owner_id: str,
    *,
    is_read: Optional[bool] = None,
    channel: Union[NotificationChannel, str, None] = None,
    type: Union[NotificationType, str, None] = None,
    notification_id: Optional[str] = None,
) -> NotificationFilter:
    """
    Canonical predicate for `owner_id` plus whichever filters were supplied.

    Unknown channel/type strings are not an error: they yield a predicate
    that matches nothing.
    """
    channel_value, channel_ok = _coerce(NotificationChannel, channel)
    type_value, type_ok = _coerce(NotificationType, type)
    if not channel_ok:
        logger.debug("Unrecognised channel filter %r for user %s; matching nothing", channel, owner_id)
    if not type_ok:
        logger.debug("Unrecognised type filter %r for user %s; matching nothing", type, owner_id)

    return NotificationFilter(
        owner_id=owner_id,
        is_read=is_read,
        channel=channel_value,
        type=type_value,
        notification_id=notification_id,
        matches_nothing=not (channel_ok and type_ok),
    )


def resolve_page(page: Optional[int] = None, limit: Optional[int] = None) -> PageDescriptor:
    """Clamp raw paging input: page >= 1, 1 <= limit <= max page size."""
    page = 1 if page is None else max(page, 1)
    if limit is None:
        limit = settings.NOTIFICATIONS_DEFAULT_PAGE_SIZE
    limit = min(max(limit, 1), settings.NOTIFICATIONS_MAX_PAGE_SIZE)
    return PageDescriptor(page=page, limit=limit)


# --------------------------------------------------------------------------- #
#  Listing                                                                    #
# --------------------------------------------------------------------------- #
async def _gather_or_cancel(*aws):
    """
    Run the reads concurrently and return their results in order.

    The first failure cancels the reads still in flight, waits for them to
    unwind and is then re-raised, so no query outlives the request.
    """
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    try:
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
    except asyncio.CancelledError:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise

    failed = [t for t in tasks if t in done and not t.cancelled() and t.exception() is not None]
    if failed:
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        # retrieve every exception so none is reported as never retrieved
        for task in failed[1:]:
            task.exception()
        raise failed[0].exception()
    return [t.result() for t in tasks]


async def get_unread_count(gateway: NotificationGateway, owner_id: str) -> int:
    """Owner-wide unread count, independent of any listing filters."""
    return await gateway.count(build_notification_filter(owner_id, is_read=False))


async def list_notifications(
    gateway: NotificationGateway,
    owner_id: str,
    *,
    is_read: Optional[bool] = None,
    channel: Union[NotificationChannel, str, None] = None,
    type: Union[NotificationType, str, None] = None,
    page: Optional[int] = None,
    limit: Optional[int] = None,
) -> NotificationPage:
    """
    One page of the owner's inbox, newest first, with the filtered total and
    the owner's global unread count.

    The page, the total and the unread count come from three concurrent
    reads. A write landing between them may leave them slightly out of step.
    """
    predicate = build_notification_filter(owner_id, is_read=is_read, channel=channel, type=type)
    paging = resolve_page(page, limit)
    logger.debug(
        "Listing notifications for user %s, page %s, limit %s, filter %s",
        owner_id, paging.page, paging.limit, predicate,
    )

    try:
        rows, total, unread = await _gather_or_cancel(
            gateway.find_many(predicate, skip=paging.offset, take=paging.limit),
            gateway.count(predicate),
            get_unread_count(gateway, owner_id),
        )
    except DatabaseInteractionError:
        raise
    except Exception as exc:
        logger.error("Unexpected error listing notifications for user %s: %s", owner_id, exc, exc_info=True)
        raise DatabaseInteractionError("Unexpected error listing notifications.") from exc

    return NotificationPage(
        notifications=[NotificationItem.model_validate(r) for r in rows],
        unread_count=unread,
        pagination=PaginationInfo(
            page=paging.page,
            limit=paging.limit,
            total=total,
            pages=paging.pages(total),
        ),
    )


# --------------------------------------------------------------------------- #
#  Read state                                                                 #
# --------------------------------------------------------------------------- #
async def mark_notification_read(
    gateway: NotificationGateway, owner_id: str, notification_id: str
) -> int:
    """
    Flag one notification as read.

    An id that is unknown, owned by someone else or already read is a silent
    no-op; the return value (rows changed, 0 or 1) is informational only.
    """
    # read is terminal: already-read rows are left alone
    predicate = build_notification_filter(owner_id, notification_id=notification_id, is_read=False)
    updated = await gateway.update_many(predicate, read_at=datetime.now(timezone.utc))
    if updated:
        logger.info("User %s marked notification %s as read", owner_id, notification_id)
    else:
        logger.debug("Mark-read for notification %s by user %s matched nothing", notification_id, owner_id)
    return updated


async def mark_all_read(gateway: NotificationGateway, owner_id: str) -> int:
    """Flag every unread notification of the owner as read."""
    predicate = build_notification_filter(owner_id, is_read=False)
    updated = await gateway.update_many(predicate, read_at=datetime.now(timezone.utc))
    logger.info("User %s marked %s notifications as read", owner_id, updated)
    return updated


# --------------------------------------------------------------------------- #
#  Deletion                                                                   #
# --------------------------------------------------------------------------- #
async def delete_notification(
    gateway: NotificationGateway, owner_id: str, notification_id: str
) -> None:
    """
    Delete one notification after confirming the owner holds it.

    Lookup and delete are separate calls; if a concurrent request removes the
    row in between, the delete affects nothing and this still succeeds.
    """
    existing = await gateway.find_first(
        build_notification_filter(owner_id, notification_id=notification_id)
    )
    if existing is None:
        logger.warning("User %s tried to delete notification %s, which they do not hold", owner_id, notification_id)
        raise NotificationNotFoundError(f"Notification {notification_id} not found")

    deleted = await gateway.delete(notification_id)
    if deleted == 0:
        logger.info("Notification %s was already removed before user %s deleted it", notification_id, owner_id)
    else:
        logger.info("User %s deleted notification %s", owner_id, notification_id)


async def delete_notifications(
    gateway: NotificationGateway, owner_id: str, *, is_read: Optional[bool] = None
) -> int:
    """Bulk delete the owner's notifications, optionally only read / unread ones."""
    predicate = build_notification_filter(owner_id, is_read=is_read)
    count = await gateway.delete_many(predicate)
    logger.info("User %s deleted %s notifications (is_read=%s)", owner_id, count, is_read)
    return count


# --------------------------------------------------------------------------- #
#  Statistics                                                                 #
# --------------------------------------------------------------------------- #
def _to_mapping(groups: List[dict]) -> Dict[str, int]:
    return {g["key"]: g["count"] for g in groups}


async def get_notification_stats(gateway: NotificationGateway, owner_id: str) -> NotificationStats:
    """
    Totals and per-channel / per-type breakdowns for the owner.

    Only observed keys appear in the breakdowns. Each breakdown sums to
    `total` unless a write lands while the four reads are in flight.
    """
    everything = build_notification_filter(owner_id)
    try:
        total, unread, by_channel, by_type = await _gather_or_cancel(
            gateway.count(everything),
            get_unread_count(gateway, owner_id),
            gateway.group_by_count("channel", everything),
            gateway.group_by_count("type", everything),
        )
    except DatabaseInteractionError:
        raise
    except Exception as exc:
        logger.error("Unexpected error computing notification stats for user %s: %s", owner_id, exc, exc_info=True)
        raise DatabaseInteractionError("Unexpected error computing notification statistics.") from exc

    return NotificationStats(
        total=total,
        unread=unread,
        by_channel=_to_mapping(by_channel),
        by_type=_to_mapping(by_type),
    )
