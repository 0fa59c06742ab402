from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime

TAU = 2 * math.pi


@dataclass(frozen=True)
class ClockSample:
    hour: int
    minute: int
    second: int
    hour_angle: float
    minute_angle: float
    second_angle: float


def _normalize(angle: float) -> float:
    angle = angle % TAU
    # float modulo can round up to exactly TAU for values just below it
    return 0.0 if angle >= TAU else angle


def sample_clock(hour: int, minute: int, second: int) -> ClockSample:
    """Hand angles in radians, clockwise from twelve o'clock."""
    return ClockSample(
        hour=hour,
        minute=minute,
        second=second,
        hour_angle=_normalize(((hour % 12) + minute / 60 + second / 3600) / 12 * TAU),
        minute_angle=_normalize((minute + second / 60) / 60 * TAU),
        second_angle=_normalize(second / 60 * TAU),
    )


def sample_instant(moment: datetime) -> ClockSample:
    return sample_clock(moment.hour, moment.minute, moment.second)
