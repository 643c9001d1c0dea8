"""
Dict-backed notification gateway.

Used by the test-suite and by `NOTIFICATION_BACKEND=memory` for local runs.
Every call yields to the event loop once before touching the store, so
concurrently gathered calls interleave the way real I/O would.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from app.db.gateway import NotificationGateway, check_groupable
from app.schemas.notification import NotificationCreate, NotificationFilter

logger = logging.getLogger(__name__)


def _matches(row: Dict[str, Any], predicate: NotificationFilter) -> bool:
    if predicate.matches_nothing:
        return False
    if row["user_id"] != predicate.owner_id:
        return False
    if predicate.notification_id is not None and row["id"] != predicate.notification_id:
        return False
    if predicate.is_read is not None and row["is_read"] != predicate.is_read:
        return False
    if predicate.channel is not None and row["channel"] != predicate.channel.value:
        return False
    if predicate.type is not None and row["type"] != predicate.type.value:
        return False
    return True


class InMemoryNotificationGateway(NotificationGateway):
    def __init__(self) -> None:
        self.notifications: Dict[str, Dict[str, Any]] = {}
        self.alerts: Dict[str, Dict[str, Any]] = {}

    def add_alert(self, *, user_id: str, name: str, type: str, asset: str, alert_id: Optional[str] = None) -> Dict[str, Any]:
        """Register an alert so notifications can join against it."""
        alert = {
            "id": alert_id or uuid.uuid4().hex,
            "user_id": user_id,
            "name": name,
            "type": type,
            "asset": asset,
        }
        self.alerts[alert["id"]] = alert
        return alert

    def _with_alert(self, row: Dict[str, Any]) -> Dict[str, Any]:
        data = dict(row)
        alert = self.alerts.get(row["alert_id"]) if row["alert_id"] else None
        data["alert"] = (
            {k: alert[k] for k in ("id", "name", "type", "asset")} if alert else None
        )
        return data

    def _select(self, predicate: NotificationFilter) -> List[Dict[str, Any]]:
        rows = [r for r in self.notifications.values() if _matches(r, predicate)]
        # created_at DESC, id DESC
        rows.sort(key=lambda r: (r["created_at"], r["id"]), reverse=True)
        return rows

    async def find_many(
        self, predicate: NotificationFilter, *, skip: int, take: int
    ) -> List[Dict[str, Any]]:
        await asyncio.sleep(0)
        rows = self._select(predicate)[skip:skip + take]
        return [self._with_alert(r) for r in rows]

    async def find_first(self, predicate: NotificationFilter) -> Optional[Dict[str, Any]]:
        await asyncio.sleep(0)
        rows = self._select(predicate)
        return self._with_alert(rows[0]) if rows else None

    async def count(self, predicate: NotificationFilter) -> int:
        await asyncio.sleep(0)
        return sum(1 for r in self.notifications.values() if _matches(r, predicate))

    async def update_many(self, predicate: NotificationFilter, *, read_at: datetime) -> int:
        await asyncio.sleep(0)
        updated = 0
        for row in self.notifications.values():
            if _matches(row, predicate):
                row["is_read"] = True
                row["read_at"] = read_at
                row["updated_at"] = read_at
                updated += 1
        return updated

    async def delete(self, notification_id: str) -> int:
        await asyncio.sleep(0)
        return 1 if self.notifications.pop(notification_id, None) is not None else 0

    async def delete_many(self, predicate: NotificationFilter) -> int:
        await asyncio.sleep(0)
        doomed = [r["id"] for r in self.notifications.values() if _matches(r, predicate)]
        for notification_id in doomed:
            del self.notifications[notification_id]
        return len(doomed)

    async def group_by_count(
        self, field: str, predicate: NotificationFilter
    ) -> List[Dict[str, Any]]:
        column = check_groupable(field)
        await asyncio.sleep(0)
        counts = Counter(r[column] for r in self.notifications.values() if _matches(r, predicate))
        return [{"key": key, "count": counts[key]} for key in sorted(counts)]

    async def create(self, notification_in: NotificationCreate) -> Dict[str, Any]:
        await asyncio.sleep(0)
        now = datetime.now(timezone.utc)
        row = {
            "id": uuid.uuid4().hex,
            "user_id": notification_in.user_id,
            "alert_id": notification_in.alert_id,
            "type": notification_in.type.value,
            "channel": notification_in.channel.value,
            "status": notification_in.status.value,
            "title": notification_in.title,
            "message": notification_in.message,
            "data": notification_in.data,
            "is_read": notification_in.is_read,
            "read_at": now if notification_in.is_read else None,
            "error": None,
            "created_at": notification_in.created_at or now,
            "updated_at": now,
        }
        self.notifications[row["id"]] = row
        logger.debug("Stored notification %s for user %s", row["id"], row["user_id"])
        return self._with_alert(row)

    async def close(self) -> None:
        self.notifications.clear()
        self.alerts.clear()
