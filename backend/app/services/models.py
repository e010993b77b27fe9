from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, field_validator


class ReservationStatus(str, Enum):
    PENDING = "waiting"
    BOOKED = "booked"  # event reservations use this instead of "waiting"
    CONFIRMED = "confirmed"
    SEATED = "arrived"
    CANCELLED = "cancelled"
    NO_SHOW = "not_arrived"


ACTIVE_STATUSES = frozenset(
    {
        ReservationStatus.PENDING,
        ReservationStatus.BOOKED,
        ReservationStatus.CONFIRMED,
        ReservationStatus.SEATED,
    }
)


class ReservationKind(str, Enum):
    REGULAR = "regular"
    EVENT = "event"


def _coerce_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value == value else None
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


class Reservation(BaseModel):
    """A booked party as read from the reservation list; never mutated here."""

    model_config = ConfigDict(frozen=True)

    id: str
    date: str
    time: str = "00:00"
    guest_name: str = ""
    guest_count: int | None = None
    status: ReservationStatus = ReservationStatus.PENDING
    table_ids: tuple[str, ...] = ()
    zone_id: str | None = None
    cleared: bool = False
    kind: ReservationKind = ReservationKind.REGULAR

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_str(cls, value: Any) -> str:
        return str(value)

    @field_validator("time", mode="before")
    @classmethod
    def _time_as_str(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("guest_count", mode="before")
    @classmethod
    def _lenient_guest_count(cls, value: Any) -> int | None:
        return _coerce_int(value)

    @field_validator("table_ids", mode="before")
    @classmethod
    def _table_refs_as_str(cls, value: Any) -> tuple[str, ...]:
        if value is None:
            return ()
        if isinstance(value, (str, int)):
            value = [value]
        return tuple(str(v) for v in value if v is not None and str(v).strip() != "")

    @field_validator("status", mode="before")
    @classmethod
    def _status_alias(cls, value: Any) -> Any:
        if value == "pending":
            return ReservationStatus.PENDING
        return value

    @property
    def is_active(self) -> bool:
        return not self.cleared and self.status in ACTIVE_STATUSES

    @property
    def is_seated(self) -> bool:
        return self.status == ReservationStatus.SEATED

    @property
    def is_event(self) -> bool:
        return self.kind == ReservationKind.EVENT


class Table(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    number: int | None = None
    name: str | None = None
    zone_id: str

    @field_validator("id", "zone_id", mode="before")
    @classmethod
    def _as_str(cls, value: Any) -> str:
        return str(value)

    @field_validator("number", mode="before")
    @classmethod
    def _lenient_number(cls, value: Any) -> int | None:
        return _coerce_int(value)

    @property
    def label(self) -> str:
        if self.name and self.name.strip():
            return self.name
        if self.number is not None:
            return str(self.number)
        return self.id


class Zone(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str = ""

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_str(cls, value: Any) -> str:
        return str(value)


@dataclass(frozen=True)
class Adjustment:
    """Manual start/end override, minutes from midnight of the reservation's date.

    ``end`` above 1440 spills into the next calendar day. Rows read back from a
    store may be partial; the interval model fills the gaps with defaults.
    """

    start: int | None = None
    end: int | None = None

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any] | None) -> "Adjustment | None":
        if not isinstance(raw, Mapping):
            return None
        start = _coerce_int(raw.get("start"))
        end = _coerce_int(raw.get("end"))
        if start is None and end is None:
            return None
        return cls(start=start, end=end)

    def as_dict(self) -> dict[str, int | None]:
        return {"start": self.start, "end": self.end}
