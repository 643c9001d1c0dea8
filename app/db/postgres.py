"""
asyncpg backing for the notification gateway.

Each call acquires its own pooled connection: an asyncpg connection cannot run
two statements at once, and the inbox services fire several reads
concurrently. Nothing here commits or rolls back explicitly; every statement
runs in its own implicit transaction.
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import asyncpg

from app.db.gateway import DatabaseInteractionError, NotificationGateway, check_groupable
from app.schemas.notification import NotificationCreate, NotificationFilter

logger = logging.getLogger(__name__)

_SELECT_COLUMNS = """
    n.id, n.user_id, n.alert_id, n.type, n.channel, n.status, n.title,
    n.message, n.data, n.is_read, n.read_at, n.error, n.created_at,
    a.id AS alert_ref_id, a.name AS alert_name, a.type AS alert_type,
    a.asset AS alert_asset
"""
_ORDER_BY = "ORDER BY n.created_at DESC, n.id DESC"  # stable secondary key


def build_where(predicate: NotificationFilter) -> Tuple[str, List[Any]]:
    """Render the predicate as a `WHERE` clause plus its positional params."""
    params: List[Any] = [predicate.owner_id]
    where_parts = ["n.user_id = $1"]

    if predicate.matches_nothing:
        where_parts.append("FALSE")
    if predicate.notification_id is not None:
        params.append(predicate.notification_id)
        where_parts.append(f"n.id = ${len(params)}")
    if predicate.is_read is not None:
        params.append(predicate.is_read)
        where_parts.append(f"n.is_read = ${len(params)}")
    if predicate.channel is not None:
        params.append(predicate.channel.value)
        where_parts.append(f"n.channel = ${len(params)}")
    if predicate.type is not None:
        params.append(predicate.type.value)
        where_parts.append(f"n.type = ${len(params)}")

    return "WHERE " + " AND ".join(where_parts), params


def _affected(status: str) -> int:
    # asyncpg returns e.g. 'UPDATE 3' / 'DELETE 1'
    return int(status.split(" ")[-1])


def _row_to_dict(row: asyncpg.Record) -> Dict[str, Any]:
    data = dict(row)
    alert_id = data.pop("alert_ref_id", None)
    alert = {
        "id": alert_id,
        "name": data.pop("alert_name", None),
        "type": data.pop("alert_type", None),
        "asset": data.pop("alert_asset", None),
    }
    data["alert"] = alert if alert_id is not None else None
    return data


class PostgresNotificationGateway(NotificationGateway):
    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool

    async def find_many(
        self, predicate: NotificationFilter, *, skip: int, take: int
    ) -> List[Dict[str, Any]]:
        where_sql, params = build_where(predicate)
        params.extend([take, skip])
        query = f"""
            SELECT {_SELECT_COLUMNS}
            FROM notifications n
            LEFT JOIN alerts a ON a.id = n.alert_id
            {where_sql}
            {_ORDER_BY}
            LIMIT ${len(params) - 1} OFFSET ${len(params)}
        """
        try:
            async with self.pool.acquire() as conn:
                rows = await conn.fetch(query, *params)
            return [_row_to_dict(r) for r in rows]
        except Exception as exc:
            logger.error("Error fetching notifications for %s: %s", predicate.owner_id, exc, exc_info=True)
            raise DatabaseInteractionError("Database error fetching notifications.") from exc

    async def find_first(self, predicate: NotificationFilter) -> Optional[Dict[str, Any]]:
        where_sql, params = build_where(predicate)
        query = f"""
            SELECT {_SELECT_COLUMNS}
            FROM notifications n
            LEFT JOIN alerts a ON a.id = n.alert_id
            {where_sql}
            {_ORDER_BY}
            LIMIT 1
        """
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(query, *params)
            return _row_to_dict(row) if row is not None else None
        except Exception as exc:
            logger.error("Error looking up notification for %s: %s", predicate.owner_id, exc, exc_info=True)
            raise DatabaseInteractionError("Database error looking up notification.") from exc

    async def count(self, predicate: NotificationFilter) -> int:
        where_sql, params = build_where(predicate)
        try:
            async with self.pool.acquire() as conn:
                total = await conn.fetchval(f"SELECT COUNT(*) FROM notifications n {where_sql}", *params)
            return total or 0
        except Exception as exc:
            logger.error("Error counting notifications for %s: %s", predicate.owner_id, exc, exc_info=True)
            raise DatabaseInteractionError("Database error counting notifications.") from exc

    async def update_many(self, predicate: NotificationFilter, *, read_at: datetime) -> int:
        where_sql, params = build_where(predicate)
        params.append(read_at)
        query = f"""
            UPDATE notifications AS n
            SET is_read = TRUE, read_at = ${len(params)}, updated_at = ${len(params)}
            {where_sql}
        """
        try:
            async with self.pool.acquire() as conn:
                status = await conn.execute(query, *params)
            return _affected(status)
        except Exception as exc:
            logger.error("Error marking notifications read for %s: %s", predicate.owner_id, exc, exc_info=True)
            raise DatabaseInteractionError("Database error updating notifications.") from exc

    async def delete(self, notification_id: str) -> int:
        try:
            async with self.pool.acquire() as conn:
                status = await conn.execute("DELETE FROM notifications WHERE id = $1", notification_id)
            return _affected(status)
        except Exception as exc:
            logger.error("Error deleting notification %s: %s", notification_id, exc, exc_info=True)
            raise DatabaseInteractionError("Database error deleting notification.") from exc

    async def delete_many(self, predicate: NotificationFilter) -> int:
        where_sql, params = build_where(predicate)
        try:
            async with self.pool.acquire() as conn:
                status = await conn.execute(f"DELETE FROM notifications AS n {where_sql}", *params)
            return _affected(status)
        except Exception as exc:
            logger.error("Error deleting notifications for %s: %s", predicate.owner_id, exc, exc_info=True)
            raise DatabaseInteractionError("Database error deleting notifications.") from exc

    async def group_by_count(
        self, field: str, predicate: NotificationFilter
    ) -> List[Dict[str, Any]]:
        column = check_groupable(field)
        where_sql, params = build_where(predicate)
        query = f"""
            SELECT n.{column}::text AS key, COUNT(*) AS count
            FROM notifications n
            {where_sql}
            GROUP BY n.{column}
            ORDER BY key
        """
        try:
            async with self.pool.acquire() as conn:
                rows = await conn.fetch(query, *params)
            return [{"key": r["key"], "count": r["count"]} for r in rows]
        except Exception as exc:
            logger.error("Error grouping notifications by %s for %s: %s", field, predicate.owner_id, exc, exc_info=True)
            raise DatabaseInteractionError("Database error aggregating notifications.") from exc

    async def create(self, notification_in: NotificationCreate) -> Dict[str, Any]:
        now = datetime.now(timezone.utc)
        created_at = notification_in.created_at or now
        query = f"""
            WITH n AS (
                INSERT INTO notifications (
                    id, user_id, alert_id, type, channel, status, title, message,
                    data, is_read, read_at, created_at, updated_at
                )
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13)
                RETURNING *
            )
            SELECT {_SELECT_COLUMNS}
            FROM n
            LEFT JOIN alerts a ON a.id = n.alert_id
        """
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    query,
                    uuid.uuid4().hex,
                    notification_in.user_id,
                    notification_in.alert_id,
                    notification_in.type.value,
                    notification_in.channel.value,
                    notification_in.status.value,
                    notification_in.title,
                    notification_in.message,
                    notification_in.data,
                    notification_in.is_read,
                    now if notification_in.is_read else None,
                    created_at,
                    now,
                )
            if row is None:
                raise DatabaseInteractionError("Insert returned no row.")
            logger.info("Created notification %s for user %s", row["id"], notification_in.user_id)
            return _row_to_dict(row)
        except DatabaseInteractionError:
            raise
        except Exception as exc:
            logger.error("Error creating notification for %s: %s", notification_in.user_id, exc, exc_info=True)
            raise DatabaseInteractionError("Database error creating notification.") from exc
