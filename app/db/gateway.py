"""
Persistence gateway for the notification store.

The inbox services never touch a driver directly: they hand a
`NotificationFilter` to a `NotificationGateway` and get plain Python data back
(dicts, ints, lists of dicts). Two backings ship with the app:

• `PostgresNotificationGateway` (app/db/postgres.py) – asyncpg pool
• `InMemoryNotificationGateway` (app/db/memory.py) – tests / local dev

Every backing must:
• honour `NotificationFilter.matches_nothing` (no rows, zero counts, no writes)
• be safe to call concurrently from one request (`asyncio.gather`)
• raise `DatabaseInteractionError` for any storage failure
"""
from __future__ import annotations

import abc
from datetime import datetime
from typing import Any, Dict, List, Optional

from app.schemas.notification import NotificationCreate, NotificationFilter


class DatabaseInteractionError(Exception):
    """Any unexpected failure inside the persistence layer."""


# Fields a caller may group counts by
GROUPABLE_FIELDS = ("channel", "type")


class NotificationGateway(abc.ABC):
    """Capability surface the inbox services consume."""

    @abc.abstractmethod
    async def find_many(
        self, predicate: NotificationFilter, *, skip: int, take: int
    ) -> List[Dict[str, Any]]:
        """
        Matching rows ordered newest first (`created_at DESC, id DESC`),
        each with an `alert` summary dict (or None) joined in.
        """

    @abc.abstractmethod
    async def find_first(self, predicate: NotificationFilter) -> Optional[Dict[str, Any]]:
        """First matching row, or None."""

    @abc.abstractmethod
    async def count(self, predicate: NotificationFilter) -> int:
        ...

    @abc.abstractmethod
    async def update_many(self, predicate: NotificationFilter, *, read_at: datetime) -> int:
        """Flag every matching row as read; return how many rows changed."""

    @abc.abstractmethod
    async def delete(self, notification_id: str) -> int:
        """Delete by primary key; 0 when the row is already gone."""

    @abc.abstractmethod
    async def delete_many(self, predicate: NotificationFilter) -> int:
        ...

    @abc.abstractmethod
    async def group_by_count(
        self, field: str, predicate: NotificationFilter
    ) -> List[Dict[str, Any]]:
        """`[{"key": <value>, "count": <n>}, ...]` ordered by key."""

    @abc.abstractmethod
    async def create(self, notification_in: NotificationCreate) -> Dict[str, Any]:
        ...

    async def close(self) -> None:
        """Release backing resources. No-op by default."""


def check_groupable(field: str) -> str:
    if field not in GROUPABLE_FIELDS:
        raise ValueError(f"Cannot group notifications by '{field}'")
    return field
