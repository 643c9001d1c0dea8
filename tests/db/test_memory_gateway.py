# tests/db/test_memory_gateway.py
import pytest

from app.crud.crud_notification import build_notification_filter
from app.schemas.notification import NotificationChannel

from tests.utils import create_notification_direct, seed_inbox


async def test_create_fills_defaults(gateway):
    row = await create_notification_direct(gateway, "u1", is_read=True)

    assert row["status"] == "PENDING"
    assert row["read_at"] is not None
    assert row["alert"] is None
    assert row["id"] in gateway.notifications


async def test_matches_nothing_reads_and_writes_nothing(gateway):
    await seed_inbox(gateway, "u1")
    predicate = build_notification_filter("u1", type="UNKNOWN")

    assert await gateway.count(predicate) == 0
    assert await gateway.find_many(predicate, skip=0, take=10) == []
    assert await gateway.find_first(predicate) is None
    assert await gateway.group_by_count("channel", predicate) == []
    assert await gateway.delete_many(predicate) == 0
    assert len(gateway.notifications) == 3


async def test_group_by_count_is_sorted_by_key(gateway):
    await create_notification_direct(gateway, "u1", channel=NotificationChannel.WEBHOOK)
    await create_notification_direct(gateway, "u1", channel=NotificationChannel.EMAIL)
    await create_notification_direct(gateway, "u1", channel=NotificationChannel.EMAIL)

    groups = await gateway.group_by_count("channel", build_notification_filter("u1"))

    assert groups == [{"key": "EMAIL", "count": 2}, {"key": "WEBHOOK", "count": 1}]


async def test_group_by_rejects_unknown_field(gateway):
    with pytest.raises(ValueError):
        await gateway.group_by_count("title", build_notification_filter("u1"))


async def test_ties_on_created_at_break_by_id_desc(gateway):
    first = await create_notification_direct(gateway, "u1", minutes=5)
    second = await create_notification_direct(gateway, "u1", minutes=5)

    rows = await gateway.find_many(build_notification_filter("u1"), skip=0, take=10)

    assert [r["id"] for r in rows] == sorted([first["id"], second["id"]], reverse=True)


async def test_close_empties_the_store(gateway):
    await seed_inbox(gateway, "u1")
    gateway.add_alert(user_id="u1", name="a", type="PRICE_BELOW", asset="ETH")

    await gateway.close()

    assert gateway.notifications == {}
    assert gateway.alerts == {}
