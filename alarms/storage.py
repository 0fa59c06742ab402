from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import FrozenSet, Iterable, List, Optional, Union

from .errors import InvalidField, NotFound, StoreUnavailable
from .locking import ReadWriteLock

logger = logging.getLogger(__name__)

WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")
MAX_ALARM_ID = 2**63 - 1

_TABLE_DDL = """
CREATE TABLE IF NOT EXISTS alarms (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    active_days INTEGER NOT NULL,
    hour INTEGER NOT NULL,
    minute INTEGER NOT NULL,
    second INTEGER NOT NULL
)
"""


def days_to_mask(days: Iterable[str]) -> int:
    mask = 0
    for day in days:
        mask |= 1 << WEEKDAYS.index(day)
    return mask


def mask_to_days(mask: int) -> FrozenSet[str]:
    return frozenset(day for bit, day in enumerate(WEEKDAYS) if mask & (1 << bit))


@dataclass(frozen=True)
class Alarm:
    hour: int
    minute: int
    second: int
    active_days: FrozenSet[str] = field(default_factory=frozenset)
    id: Optional[int] = None

    def rings_on(self, weekday: str) -> bool:
        return weekday in self.active_days

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "hour": self.hour,
            "minute": self.minute,
            "second": self.second,
            "activeDays": [day for day in WEEKDAYS if day in self.active_days],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Alarm":
        """Build an alarm from its wire shape, validating every field."""
        if not isinstance(data, dict):
            raise InvalidField("alarm", "expected an object")
        for name in ("hour", "minute", "second", "activeDays"):
            if name not in data:
                raise InvalidField(name, "missing")
        days = data["activeDays"]
        if isinstance(days, (str, bytes)) or not isinstance(days, (list, tuple, set, frozenset)):
            raise InvalidField("activeDays", "expected a list of weekday names")
        if not all(isinstance(day, str) for day in days):
            raise InvalidField("activeDays", "weekday names must be strings")
        alarm = cls(
            id=data.get("id"),
            hour=data["hour"],
            minute=data["minute"],
            second=data["second"],
            active_days=frozenset(days),
        )
        validate_alarm(alarm)
        return alarm


def _check_int(name: str, value, upper: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidField(name, f"expected an integer, got {value!r}")
    if not 0 <= value <= upper:
        raise InvalidField(name, f"{value} is out of range [0, {upper}]")


def validate_alarm(alarm: Alarm) -> None:
    if alarm.id is not None and (isinstance(alarm.id, bool) or not isinstance(alarm.id, int)):
        raise InvalidField("id", f"expected an integer, got {alarm.id!r}")
    _check_int("hour", alarm.hour, 23)
    _check_int("minute", alarm.minute, 59)
    _check_int("second", alarm.second, 59)
    for day in alarm.active_days:
        if day not in WEEKDAYS:
            raise InvalidField("activeDays", f"unknown weekday {day!r}")


def open_store(path: Union[str, Path]) -> "AlarmStore":
    try:
        conn = sqlite3.connect(str(path), check_same_thread=False)
    except sqlite3.Error as exc:
        raise StoreUnavailable(f"Cannot open alarm database {path}: {exc}") from exc
    return AlarmStore(conn)


class AlarmStore:
    """Alarm records in SQLite, shared between the tick and command threads.

    Reads take the shared side of the lock, writes the exclusive side, and
    each write is a single transaction.
    """

    def __init__(self, conn: sqlite3.Connection):
        self._conn = conn
        self._lock = ReadWriteLock()
        with self._lock.write():
            try:
                with self._conn:
                    self._conn.execute(_TABLE_DDL)
            except sqlite3.Error as exc:
                raise StoreUnavailable(f"Cannot prepare alarms table: {exc}") from exc

    def list(self) -> List[Alarm]:
        with self._lock.read():
            try:
                rows = self._conn.execute(
                    "SELECT id, active_days, hour, minute, second FROM alarms ORDER BY id"
                ).fetchall()
            except sqlite3.Error as exc:
                raise StoreUnavailable(f"Failed to read alarms: {exc}") from exc
        return [_row_to_alarm(row) for row in rows]

    def get(self, alarm_id: int) -> Alarm:
        _require_storable_id(alarm_id)
        with self._lock.read():
            try:
                row = self._conn.execute(
                    "SELECT id, active_days, hour, minute, second FROM alarms WHERE id = ?",
                    (alarm_id,),
                ).fetchone()
            except sqlite3.Error as exc:
                raise StoreUnavailable(f"Failed to read alarm {alarm_id}: {exc}") from exc
        if row is None:
            raise NotFound(alarm_id)
        return _row_to_alarm(row)

    def upsert(self, candidate: Alarm) -> Alarm:
        validate_alarm(candidate)
        if candidate.id is not None:
            _require_storable_id(candidate.id)
        mask = days_to_mask(candidate.active_days)
        with self._lock.write():
            try:
                with self._conn:
                    if candidate.id is None:
                        cursor = self._conn.execute(
                            "INSERT INTO alarms (active_days, hour, minute, second) VALUES (?, ?, ?, ?)",
                            (mask, candidate.hour, candidate.minute, candidate.second),
                        )
                        stored = replace(candidate, id=cursor.lastrowid)
                    else:
                        cursor = self._conn.execute(
                            "UPDATE alarms SET active_days = ?, hour = ?, minute = ?, second = ? WHERE id = ?",
                            (mask, candidate.hour, candidate.minute, candidate.second, candidate.id),
                        )
                        if cursor.rowcount == 0:
                            raise NotFound(candidate.id)
                        stored = candidate
            except sqlite3.Error as exc:
                raise StoreUnavailable(f"Failed to save alarm: {exc}") from exc
        logger.info(
            "Alarm %s saved for %02d:%02d:%02d on %s",
            stored.id,
            stored.hour,
            stored.minute,
            stored.second,
            ", ".join(stored.to_dict()["activeDays"]) or "no days",
        )
        return stored

    def delete(self, alarm_id: int) -> None:
        _require_storable_id(alarm_id)
        with self._lock.write():
            try:
                with self._conn:
                    cursor = self._conn.execute("DELETE FROM alarms WHERE id = ?", (alarm_id,))
            except sqlite3.Error as exc:
                raise StoreUnavailable(f"Failed to delete alarm {alarm_id}: {exc}") from exc
        if cursor.rowcount == 0:
            raise NotFound(alarm_id)
        logger.info("Removed alarm %s", alarm_id)

    def close(self) -> None:
        with self._lock.write():
            self._conn.close()


def _require_storable_id(alarm_id: int) -> None:
    # sqlite3 cannot bind integers past 64 bits, and no such row can exist
    if isinstance(alarm_id, bool) or not isinstance(alarm_id, int) or not 0 < alarm_id <= MAX_ALARM_ID:
        raise NotFound(alarm_id)


def _row_to_alarm(row) -> Alarm:
    alarm_id, mask, hour, minute, second = row
    return Alarm(id=alarm_id, hour=hour, minute=minute, second=second, active_days=mask_to_days(mask))
