class TimelineError(Exception):
    """Base class for recoverable timeline engine failures."""


class InvalidAdjustmentError(TimelineError, ValueError):
    """An adjustment violates ``end > start`` or the minimum block length."""


class AdjustmentPersistenceError(TimelineError):
    """The adjustment store could not write; the in-memory value still stands."""

    def __init__(self, date: str, reservation_id: str, reason: str) -> None:
        super().__init__(f"Could not persist adjustment for {reservation_id} on {date}: {reason}")
        self.date = date
        self.reservation_id = reservation_id
        self.reason = reason
