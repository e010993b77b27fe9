from datetime import datetime

import pytest
from httpx import ASGITransport, AsyncClient

from backend.app.main import app
from backend.app.routers.deps import get_adjustment_store, get_clock, get_reservation_source
from backend.app.services.adjustments import InMemoryAdjustmentStore, RedisAdjustmentStore
from backend.app.services.models import Adjustment, Table, Zone
from backend.app.services.reservations import InMemoryReservationSource

from backend.tests.conftest import DAY, NEXT_DAY, FakeRedis, make_reservation


pytestmark = pytest.mark.asyncio(loop_scope="module")

TABLES = [
    Table(id="t5", number=5, zone_id="main"),
    Table(id="t6", number=6, zone_id="main"),
]


@pytest.fixture
def store():
    return InMemoryAdjustmentStore()


@pytest.fixture
def source():
    return InMemoryReservationSource(
        [
            make_reservation("A", "19:00", 2, ("t5",), guest_name="Ada"),
            make_reservation("S", "18:00", 2, ("t6",), status="arrived"),
            make_reservation("L", "23:00", 5, ("t5",)),
        ],
        TABLES,
        [Zone(id="main", name="Dining room")],
    )


@pytest.fixture
def client(store, source):
    app.dependency_overrides[get_adjustment_store] = lambda: store
    app.dependency_overrides[get_reservation_source] = lambda: source
    app.dependency_overrides[get_clock] = lambda: (lambda: datetime(2025, 11, 5, 18, 40))
    transport = ASGITransport(app=app)
    yield AsyncClient(transport=transport, base_url="http://test")
    app.dependency_overrides.clear()


async def test_health_endpoints(client):
    async with client:
        health = await client.get("/api/v1/healthz")
        readiness = await client.get("/api/v1/readiness")

    assert health.status_code == 200
    assert health.json() == {"ok": True}
    assert readiness.status_code == 200
    assert readiness.json() == {"ready": True}


async def test_readiness_reports_unreachable_store():
    app.dependency_overrides[get_adjustment_store] = lambda: RedisAdjustmentStore(FakeRedis(fail=True))
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.get("/api/v1/readiness")
    finally:
        app.dependency_overrides.clear()
    assert response.status_code == 503


async def test_timeline_lists_rows_and_spillover(client, store):
    await store.upsert_adjustment(DAY, "L", Adjustment(start=1380, end=1470))

    async with client:
        today = await client.get(f"/api/v1/timeline/{DAY}", params={"zone_id": "main"})
        tomorrow = await client.get(f"/api/v1/timeline/{NEXT_DAY}", params={"zone_id": "main"})
        unknown = await client.get(f"/api/v1/timeline/{DAY}", params={"zone_id": "roof"})

    assert today.status_code == 200, today.text
    assert today.json()["zone_name"] == "Dining room"
    rows = today.json()["rows"]
    assert [r["table_id"] for r in rows] == ["t5", "t6"]
    assert [b["reservation_id"] for b in rows[0]["blocks"]] == ["A", "L"]
    assert rows[0]["blocks"][1]["interval"] == {"start": 1380, "end": 1470, "label": "23:00-00:30"}
    assert rows[0]["guests"] == 7

    spill = tomorrow.json()["rows"][0]["blocks"]
    assert spill[0]["spillover"] is True
    assert spill[0]["interval"]["end"] == 30
    assert unknown.status_code == 404


async def test_conflict_check(client):
    async with client:
        clash = await client.post(
            "/api/v1/conflicts/check",
            json={"date": DAY, "zone_id": "main", "time": "19:30", "guest_count": 2, "table_ids": ["5"]},
        )
        free = await client.post(
            "/api/v1/conflicts/check",
            json={"date": DAY, "zone_id": "main", "start": 1200, "end": 1260, "table_ids": ["t5"]},
        )
        edit = await client.post(
            "/api/v1/conflicts/check",
            json={"date": DAY, "zone_id": "main", "time": "19:15", "guest_count": 2, "table_ids": ["t5"], "reservation_id": "A"},
        )
        invalid = await client.post("/api/v1/conflicts/check", json={"date": DAY, "table_ids": ["t5"]})

    assert clash.status_code == 409
    detail = clash.json()["detail"]
    assert detail["reservation_id"] == "A"
    assert detail["time_range"] == "19:00-20:00"
    assert detail["message"] == "Table 5 is occupied from 19:00 to 20:00 - Ada"
    assert free.status_code == 200 and free.json() == {"ok": True}
    assert edit.status_code == 200
    assert invalid.status_code == 422


async def test_put_and_list_adjustments(client, store):
    async with client:
        saved = await client.put(f"/api/v1/adjustments/{DAY}/A", json={"start": 1170, "end": 1230})
        too_short = await client.put(f"/api/v1/adjustments/{DAY}/A", json={"start": 1170, "end": 1175})
        missing = await client.put(f"/api/v1/adjustments/{DAY}/nope", json={"start": 1170, "end": 1230})
        listed = await client.get(f"/api/v1/adjustments/{DAY}")

    assert saved.status_code == 200, saved.text
    assert saved.json() == {"reservation_id": "A", "date": DAY, "start": 1170, "end": 1230}
    assert too_short.status_code == 422
    assert missing.status_code == 404
    assert listed.json() == [{"reservation_id": "A", "date": DAY, "start": 1170, "end": 1230}]
    assert await store.get_adjustment(DAY, "A") == Adjustment(start=1170, end=1230)


async def test_seated_reservation_cannot_end_before_now(client):
    async with client:
        response = await client.put(f"/api/v1/adjustments/{DAY}/S", json={"start": 1080, "end": 1110})
    assert response.status_code == 422


async def test_extend_and_remove_next_day_extension(client, store):
    async with client:
        extended = await client.post(f"/api/v1/adjustments/{DAY}/L/extend", json={"until": "00:30"})
        bad = await client.post(f"/api/v1/adjustments/{DAY}/L/extend", json={"until": "07:00"})
        removed = await client.delete(f"/api/v1/adjustments/{DAY}/L/extend")
        again = await client.delete(f"/api/v1/adjustments/{DAY}/L/extend")

    assert extended.status_code == 200, extended.text
    assert extended.json()["end"] == 1470
    assert bad.status_code == 422
    assert removed.status_code == 200
    assert removed.json()["end"] == 1440
    assert again.status_code == 404
    assert await store.get_adjustment(DAY, "L") == Adjustment(start=1380, end=1440)


async def test_persistence_failure_maps_to_service_unavailable(source):
    app.dependency_overrides[get_adjustment_store] = lambda: RedisAdjustmentStore(FakeRedis(fail=True))
    app.dependency_overrides[get_reservation_source] = lambda: source
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.put(f"/api/v1/adjustments/{DAY}/A", json={"start": 1170, "end": 1230})
    finally:
        app.dependency_overrides.clear()
    assert response.status_code == 503


async def test_adjustment_that_overlaps_a_later_booking_is_rejected(store):
    source = InMemoryReservationSource(
        [
            make_reservation("A", "19:00", 2, ("t5",), guest_name="Ada"),
            make_reservation("L", "21:00", 2, ("t5",), guest_name="Lin"),
        ],
        TABLES,
    )
    app.dependency_overrides[get_adjustment_store] = lambda: store
    app.dependency_overrides[get_reservation_source] = lambda: source
    app.dependency_overrides[get_clock] = lambda: (lambda: datetime(2025, 11, 5, 18, 40))
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            clash = await client.put(f"/api/v1/adjustments/{DAY}/A", json={"start": 1240, "end": 1320})
            fits = await client.put(f"/api/v1/adjustments/{DAY}/A", json={"start": 1200, "end": 1260})
    finally:
        app.dependency_overrides.clear()

    assert clash.status_code == 409
    detail = clash.json()["detail"]
    assert detail["reservation_id"] == "L"
    assert detail["time_range"] == "21:00-22:00"
    assert detail["message"] == "Table 5 is occupied from 21:00 to 22:00 - Lin"
    assert fits.status_code == 200, fits.text
    assert await store.get_adjustment(DAY, "A") == Adjustment(start=1200, end=1260)
