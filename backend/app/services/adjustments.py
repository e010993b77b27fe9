"""Adjustment store: persisted manual start/end overrides keyed by date.

The engine only needs three things from persistence: read all overrides of a
day, upsert one override, and hear about changes made elsewhere. Three
backends share that contract: process memory, a Redis hash per day (with
pub/sub fan-out between processes) and a Postgres table.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, ClassVar, Protocol, runtime_checkable
from uuid import uuid4

import redis.asyncio as redis
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.app.services.errors import AdjustmentPersistenceError, InvalidAdjustmentError
from backend.app.services.intervals import (
    DAY_MINUTES,
    MAX_END_MINUTES,
    MAX_SPILLOVER_MINUTES,
    MIN_BLOCK_MINUTES,
    day_key,
    effective_interval,
    estimate_duration,
)
from backend.app.services.models import Adjustment, Reservation


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AdjustmentsChanged:
    date: str
    source: str | None = None
    reservation_id: str | None = None


Listener = Callable[[AdjustmentsChanged], None]


class AdjustmentBus:
    """In-process publish/subscribe for "adjustments changed for date X"."""

    def __init__(self) -> None:
        self._listeners: list[tuple[str | None, Listener]] = []

    def subscribe(self, listener: Listener, date: str | None = None) -> Callable[[], None]:
        entry = (date, listener)
        self._listeners.append(entry)

        def unsubscribe() -> None:
            if entry in self._listeners:
                self._listeners.remove(entry)

        return unsubscribe

    def publish(self, event: AdjustmentsChanged) -> None:
        for date, listener in list(self._listeners):
            if date is not None and date != event.date:
                continue
            try:
                listener(event)
            except Exception:
                logger.exception("Adjustment listener failed for %s", event.date)


@runtime_checkable
class AdjustmentStore(Protocol):
    changes: AdjustmentBus

    async def get_adjustments_for_date(self, date: str) -> dict[str, Adjustment]: ...

    async def upsert_adjustment(
        self,
        date: str,
        reservation_id: str,
        adjustment: Adjustment,
        *,
        source: str | None = None,
    ) -> Adjustment: ...

    async def ping(self) -> bool: ...


def validate_adjustment(adjustment: Adjustment) -> Adjustment:
    if adjustment.start is None or adjustment.end is None:
        raise InvalidAdjustmentError("Adjustment needs both start and end minutes")
    if not 0 <= adjustment.start <= DAY_MINUTES:
        raise InvalidAdjustmentError(f"start must be within 0..{DAY_MINUTES}, got {adjustment.start}")
    if adjustment.end > MAX_END_MINUTES:
        raise InvalidAdjustmentError(f"end may spill at most until {MAX_END_MINUTES}, got {adjustment.end}")
    if adjustment.end - adjustment.start < MIN_BLOCK_MINUTES:
        raise InvalidAdjustmentError(
            f"Block must last at least {MIN_BLOCK_MINUTES} minutes ({adjustment.start}-{adjustment.end})"
        )
    return adjustment


def _parse_row(reservation_id: str, raw: Any) -> Adjustment | None:
    try:
        payload = json.loads(raw) if isinstance(raw, (str, bytes)) else raw
    except ValueError:
        payload = None
    adjustment = Adjustment.from_mapping(payload)
    if adjustment is None:
        logger.warning("Ignoring unreadable adjustment for reservation %s: %r", reservation_id, raw)
    return adjustment


class BaseAdjustmentStore:
    """Shared read/write policy; backends implement ``_read_date`` and ``_write``."""

    backend_errors: ClassVar[tuple[type[BaseException], ...]] = ()

    def __init__(self) -> None:
        self.changes = AdjustmentBus()

    async def get_adjustments_for_date(self, date: str) -> dict[str, Adjustment]:
        key = day_key(date)
        try:
            return await self._read_date(key)
        except self.backend_errors as exc:
            logger.warning("Reading adjustments for %s failed: %s", key, exc)
            return {}

    async def get_adjustment(self, date: str, reservation_id: str) -> Adjustment | None:
        return (await self.get_adjustments_for_date(date)).get(str(reservation_id))

    async def upsert_adjustment(
        self,
        date: str,
        reservation_id: str,
        adjustment: Adjustment,
        *,
        source: str | None = None,
    ) -> Adjustment:
        validate_adjustment(adjustment)
        key = day_key(date)
        rid = str(reservation_id)
        try:
            await self._write(key, rid, adjustment)
        except self.backend_errors as exc:
            logger.warning("Persisting adjustment %s on %s failed: %s", rid, key, exc)
            raise AdjustmentPersistenceError(key, rid, str(exc)) from exc

        logger.debug("Adjustment %s on %s set to %s-%s", rid, key, adjustment.start, adjustment.end)
        event = AdjustmentsChanged(date=key, source=source, reservation_id=rid)
        self.changes.publish(event)
        await self._announce(event)
        return adjustment

    async def ping(self) -> bool:
        return True

    async def _read_date(self, date: str) -> dict[str, Adjustment]:
        raise NotImplementedError

    async def _write(self, date: str, reservation_id: str, adjustment: Adjustment) -> None:
        raise NotImplementedError

    async def _announce(self, event: AdjustmentsChanged) -> None:
        return None


class InMemoryAdjustmentStore(BaseAdjustmentStore):
    def __init__(self, initial: dict[str, dict[str, Adjustment]] | None = None) -> None:
        super().__init__()
        self._days: dict[str, dict[str, Adjustment]] = {
            day: dict(rows) for day, rows in (initial or {}).items()
        }

    async def _read_date(self, date: str) -> dict[str, Adjustment]:
        return dict(self._days.get(date, {}))

    async def _write(self, date: str, reservation_id: str, adjustment: Adjustment) -> None:
        self._days.setdefault(date, {})[reservation_id] = adjustment


class RedisAdjustmentStore(BaseAdjustmentStore):
    """One hash per day: ``<prefix>:<date>`` -> {reservation_id: '{"start":..,"end":..}'}."""

    backend_errors = (RedisError, OSError)

    def __init__(
        self,
        client: redis.Redis,
        *,
        key_prefix: str = "adjustments",
        channel: str = "adjustments:changed",
    ) -> None:
        super().__init__()
        self.client = client
        self.key_prefix = key_prefix
        self.channel = channel
        self.origin = uuid4().hex

    def _key(self, date: str) -> str:
        return f"{self.key_prefix}:{date}"

    async def _read_date(self, date: str) -> dict[str, Adjustment]:
        rows = await self.client.hgetall(self._key(date))
        out: dict[str, Adjustment] = {}
        for reservation_id, raw in (rows or {}).items():
            adjustment = _parse_row(reservation_id, raw)
            if adjustment is not None:
                out[str(reservation_id)] = adjustment
        return out

    async def _write(self, date: str, reservation_id: str, adjustment: Adjustment) -> None:
        await self.client.hset(self._key(date), reservation_id, json.dumps(adjustment.as_dict()))

    async def _announce(self, event: AdjustmentsChanged) -> None:
        message = json.dumps(
            {
                "date": event.date,
                "source": event.source,
                "reservation_id": event.reservation_id,
                "origin": self.origin,
            }
        )
        try:
            await self.client.publish(self.channel, message)
        except self.backend_errors as exc:
            # The write itself landed; other processes catch up on their next read.
            logger.warning("Publishing adjustment change for %s failed: %s", event.date, exc)

    async def ping(self) -> bool:
        return bool(await self.client.ping())

    async def relay_changes(self) -> None:
        """Forward change messages from other processes into the local bus."""
        pubsub = self.client.pubsub()
        await pubsub.subscribe(self.channel)
        try:
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                event = self._decode_message(message.get("data"))
                if event is not None:
                    self.changes.publish(event)
        finally:
            await pubsub.unsubscribe(self.channel)
            await pubsub.aclose()

    def _decode_message(self, data: Any) -> AdjustmentsChanged | None:
        try:
            payload = json.loads(data)
        except (TypeError, ValueError):
            logger.warning("Dropping malformed adjustment notification: %r", data)
            return None
        if not isinstance(payload, dict) or not payload.get("date"):
            return None
        if payload.get("origin") == self.origin:
            return None
        return AdjustmentsChanged(
            date=str(payload["date"]),
            source=payload.get("source"),
            reservation_id=payload.get("reservation_id"),
        )


class SqlAdjustmentStore(BaseAdjustmentStore):
    backend_errors = (SQLAlchemyError, OSError)

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        super().__init__()
        self._sessions = session_factory

    async def _read_date(self, date: str) -> dict[str, Adjustment]:
        async with self._sessions() as session:
            result = await session.execute(
                text(
                    """
                    SELECT reservation_id, start_min, end_min
                    FROM reservation_adjustment
                    WHERE date = :date
                    """
                ),
                {"date": date},
            )
            out: dict[str, Adjustment] = {}
            for row in result.mappings():
                adjustment = Adjustment.from_mapping({"start": row["start_min"], "end": row["end_min"]})
                if adjustment is not None:
                    out[str(row["reservation_id"])] = adjustment
            return out

    async def _write(self, date: str, reservation_id: str, adjustment: Adjustment) -> None:
        async with self._sessions() as session:
            async with session.begin():
                await session.execute(
                    text(
                        """
                        INSERT INTO reservation_adjustment (reservation_id, date, start_min, end_min, updated_at)
                        VALUES (:reservation_id, :date, :start_min, :end_min, now())
                        ON CONFLICT (reservation_id, date)
                        DO UPDATE SET start_min = EXCLUDED.start_min,
                                      end_min = EXCLUDED.end_min,
                                      updated_at = now()
                        """
                    ),
                    {
                        "reservation_id": reservation_id,
                        "date": date,
                        "start_min": adjustment.start,
                        "end_min": adjustment.end,
                    },
                )

    async def ping(self) -> bool:
        async with self._sessions() as session:
            await session.execute(text("SELECT 1"))
        return True


async def extend_to_next_day(
    store: AdjustmentStore,
    reservation: Reservation,
    spill_minutes: int,
    *,
    source: str | None = None,
) -> Adjustment:
    """Keep the block's start and let it run ``spill_minutes`` past midnight."""
    if not 0 < spill_minutes <= MAX_SPILLOVER_MINUTES:
        raise InvalidAdjustmentError(
            f"Next-day extension must be 1..{MAX_SPILLOVER_MINUTES} minutes, got {spill_minutes}"
        )
    current = (await store.get_adjustments_for_date(reservation.date)).get(reservation.id)
    start = effective_interval(reservation, current).start
    adjustment = Adjustment(start=start, end=DAY_MINUTES + spill_minutes)
    return await store.upsert_adjustment(reservation.date, reservation.id, adjustment, source=source)


async def clear_next_day_extension(
    store: AdjustmentStore,
    reservation: Reservation,
    *,
    source: str | None = None,
) -> Adjustment | None:
    """Pull a spilled block back to its default end; no-op when it does not spill."""
    current = (await store.get_adjustments_for_date(reservation.date)).get(reservation.id)
    if current is None or current.end is None or current.end <= DAY_MINUTES:
        return None
    start = effective_interval(reservation, current).start
    end = max(start + MIN_BLOCK_MINUTES, min(DAY_MINUTES, start + estimate_duration(reservation.guest_count)))
    adjustment = Adjustment(start=start, end=end)
    return await store.upsert_adjustment(reservation.date, reservation.id, adjustment, source=source)
