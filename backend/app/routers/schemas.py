import re

from pydantic import BaseModel, Field, field_validator, model_validator

from backend.app.services.intervals import DAY_MINUTES, MAX_END_MINUTES, MIN_BLOCK_MINUTES

_HHMM = re.compile(r"^\d{1,2}:\d{2}$")


class AdjustmentIn(BaseModel):
    start: int = Field(ge=0, le=DAY_MINUTES)
    end: int = Field(ge=MIN_BLOCK_MINUTES, le=MAX_END_MINUTES)

    @model_validator(mode="after")
    def _min_length(self) -> "AdjustmentIn":
        if self.end - self.start < MIN_BLOCK_MINUTES:
            raise ValueError(f"end must be at least {MIN_BLOCK_MINUTES} minutes after start")
        return self


class AdjustmentOut(BaseModel):
    reservation_id: str
    date: str
    start: int | None
    end: int | None


class ExtendIn(BaseModel):
    # Next-day end time, e.g. "00:30"
    until: str

    @field_validator("until")
    @classmethod
    def _hhmm(cls, value: str) -> str:
        if not _HHMM.match(value.strip()):
            raise ValueError("until must look like HH:MM")
        return value.strip()


class IntervalOut(BaseModel):
    start: int
    end: int
    label: str


class BlockOut(BaseModel):
    reservation_id: str
    guest_name: str
    guest_count: int
    status: str
    is_event: bool
    spillover: bool
    interval: IntervalOut
    source_date: str | None = None


class TimelineRowOut(BaseModel):
    table_id: str
    table_label: str
    guests: int
    blocks: list[BlockOut]


class TimelineOut(BaseModel):
    date: str
    zone_id: str
    zone_name: str
    rows: list[TimelineRowOut]


class ConflictCheckIn(BaseModel):
    date: str
    zone_id: str | None = None
    time: str | None = None
    guest_count: int | None = Field(default=None, ge=1, le=100)
    # Explicit window in minutes; overrides time/guest_count when both are set.
    start: int | None = Field(default=None, ge=0, le=DAY_MINUTES)
    end: int | None = Field(default=None, ge=1, le=MAX_END_MINUTES)
    table_ids: list[str] = Field(min_length=1)
    reservation_id: str | None = None

    @model_validator(mode="after")
    def _window_or_time(self) -> "ConflictCheckIn":
        if (self.start is None) != (self.end is None):
            raise ValueError("start and end must be given together")
        if self.start is None and not self.time:
            raise ValueError("either time or start/end is required")
        return self


class ConflictOut(BaseModel):
    table_id: str
    table_label: str
    reservation_id: str
    guest_name: str
    kind: str
    time_range: str
    message: str
