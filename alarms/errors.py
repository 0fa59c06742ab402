from __future__ import annotations

from typing import Optional


class ClockError(Exception):
    kind = "ClockError"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidField(ClockError):
    kind = "InvalidField"

    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}")
        self.field = field


class NotFound(ClockError):
    kind = "NotFound"

    def __init__(self, alarm_id: Optional[int]):
        super().__init__(f"No alarm with id {alarm_id}")
        self.alarm_id = alarm_id


class StoreUnavailable(ClockError):
    kind = "StoreUnavailable"
