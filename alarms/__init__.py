"""Alarm subsystem for the clock daemon."""

from .errors import ClockError, InvalidField, NotFound, StoreUnavailable
from .matcher import AlarmMatcher, Moment
from .storage import WEEKDAYS, Alarm, AlarmStore, open_store
