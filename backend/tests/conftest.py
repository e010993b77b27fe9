from __future__ import annotations

import asyncio
import json
from typing import Any

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from backend.app.services.adjustments import InMemoryAdjustmentStore
from backend.app.services.models import Reservation, Table
from backend.app.services.tables import FloorPlan, TableResolver


DAY = "2025-11-05"
NEXT_DAY = "2025-11-06"


class FakePubSub:
    def __init__(self, server: "FakeRedis") -> None:
        self.server = server
        self.queue: asyncio.Queue = asyncio.Queue()
        self.channels: set[str] = set()
        self.closed = False

    async def subscribe(self, channel: str) -> None:
        self.channels.add(channel)
        self.server.subscribers.append(self)

    async def unsubscribe(self, channel: str) -> None:
        self.channels.discard(channel)
        if self in self.server.subscribers:
            self.server.subscribers.remove(self)

    async def aclose(self) -> None:
        self.closed = True

    async def listen(self):
        yield {"type": "subscribe", "channel": next(iter(self.channels), None), "data": 1}
        while True:
            yield await self.queue.get()


class FakeRedis:
    """Just enough of redis.asyncio.Redis for the adjustment store."""

    def __init__(self, fail: bool = False) -> None:
        self.hashes: dict[str, dict[str, str]] = {}
        self.published: list[tuple[str, str]] = []
        self.subscribers: list[FakePubSub] = []
        self.fail = fail

    def _check(self) -> None:
        if self.fail:
            raise RedisConnectionError("connection refused")

    async def hgetall(self, key: str) -> dict[str, str]:
        self._check()
        return dict(self.hashes.get(key, {}))

    async def hset(self, key: str, field: str, value: Any) -> int:
        self._check()
        self.hashes.setdefault(key, {})[field] = value
        return 1

    async def publish(self, channel: str, message: str) -> int:
        self._check()
        self.published.append((channel, message))
        for sub in self.subscribers:
            if channel in sub.channels:
                sub.queue.put_nowait({"type": "message", "channel": channel, "data": message})
        return len(self.subscribers)

    async def ping(self) -> bool:
        self._check()
        return True

    def pubsub(self) -> FakePubSub:
        return FakePubSub(self)

    def last_payload(self) -> dict:
        return json.loads(self.published[-1][1])


def make_reservation(
    rid: str,
    time: str,
    guests: int | None = 2,
    tables: tuple[str, ...] = ("t5",),
    *,
    date: str = DAY,
    zone_id: str = "main",
    **extra: Any,
) -> Reservation:
    return Reservation(
        id=rid,
        date=date,
        time=time,
        guest_name=extra.pop("guest_name", f"Guest {rid}"),
        guest_count=guests,
        table_ids=tables,
        zone_id=zone_id,
        **extra,
    )


@pytest.fixture
def tables() -> list[Table]:
    return [
        Table(id="t5", number=5, zone_id="main"),
        Table(id="t6", number=6, zone_id="main"),
        Table(id="t7", number=7, name="Window", zone_id="main"),
        Table(id="p1", number=1, zone_id="patio"),
        Table(id="p2", number=2, name="Corner", zone_id="patio"),
    ]


@pytest.fixture
def floor_plan(tables: list[Table]) -> FloorPlan:
    return FloorPlan.from_tables(tables)


@pytest.fixture
def resolver(floor_plan: FloorPlan) -> TableResolver:
    return TableResolver(floor_plan)


@pytest.fixture
def memory_store() -> InMemoryAdjustmentStore:
    return InMemoryAdjustmentStore()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()
