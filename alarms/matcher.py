from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, NamedTuple, Optional

from .errors import StoreUnavailable
from .storage import WEEKDAYS, AlarmStore

logger = logging.getLogger(__name__)


class Moment(NamedTuple):
    weekday: str
    hour: int
    minute: int
    second: int

    @classmethod
    def from_datetime(cls, dt: datetime) -> "Moment":
        return cls(WEEKDAYS[dt.weekday()], dt.hour, dt.minute, dt.second)


@dataclass
class DebounceRecord:
    last_fired_at: Optional[Moment] = None


class AlarmMatcher:
    """Decides, once per tick, which stored alarms ring right now.

    Matching is recomputed from the instant alone, never from elapsed
    counters. The debounce record of each alarm keeps the exact tuple it last
    fired for, so a second tick landing in the same second rings nothing.
    Any tick with a different tuple clears the record, so next week's
    occurrence rings again.
    """

    def __init__(self, store: AlarmStore):
        self.store = store
        self._records: Dict[int, DebounceRecord] = {}

    def match(self, moment: Moment) -> List[int]:
        try:
            alarms = self.store.list()
        except StoreUnavailable as exc:
            logger.warning("Skipping alarm matching for %s: %s", moment, exc)
            return []

        live_ids = {alarm.id for alarm in alarms}
        for stale_id in [
            alarm_id
            for alarm_id, record in self._records.items()
            if alarm_id not in live_ids or record.last_fired_at != moment
        ]:
            # a record only outlives ticks that repeat its own occurrence
            del self._records[stale_id]

        fired: List[int] = []
        for alarm in alarms:
            if not alarm.rings_on(moment.weekday):
                continue
            if (alarm.hour, alarm.minute, alarm.second) != (moment.hour, moment.minute, moment.second):
                continue
            record = self._records.setdefault(alarm.id, DebounceRecord())
            if record.last_fired_at == moment:
                logger.debug("Alarm %s already rang for %s", alarm.id, moment)
                continue
            record.last_fired_at = moment
            fired.append(alarm.id)
            logger.info("Alarm %s rings (%s %02d:%02d:%02d)", alarm.id, *moment)
        return fired

    def debounce_record(self, alarm_id: int) -> Optional[DebounceRecord]:
        return self._records.get(alarm_id)
