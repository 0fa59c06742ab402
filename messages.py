from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Union

from sampler import ClockSample


@dataclass(frozen=True)
class ClockTick:
    sample: ClockSample

    def to_dict(self) -> dict:
        s = self.sample
        return {
            "kind": "clock",
            "hour": s.hour,
            "minute": s.minute,
            "second": s.second,
            "hourAngle": s.hour_angle,
            "minuteAngle": s.minute_angle,
            "secondAngle": s.second_angle,
        }


@dataclass(frozen=True)
class AlarmRing:
    alarm_id: int

    def to_dict(self) -> dict:
        return {"kind": "alarm", "id": self.alarm_id}


Message = Union[ClockTick, AlarmRing]


def encode_message(message: Message) -> bytes:
    """One JSON document per line, as written on the subscribe channel."""
    return json.dumps(message.to_dict(), separators=(",", ":")).encode("utf-8") + b"\n"


def decode_message(line: Union[bytes, str]) -> Message:
    if isinstance(line, bytes):
        line = line.decode("utf-8")
    data = json.loads(line)
    kind = data.get("kind")
    if kind == "clock":
        return ClockTick(
            ClockSample(
                hour=data["hour"],
                minute=data["minute"],
                second=data["second"],
                hour_angle=data["hourAngle"],
                minute_angle=data["minuteAngle"],
                second_angle=data["secondAngle"],
            )
        )
    if kind == "alarm":
        return AlarmRing(data["id"])
    raise ValueError(f"Unknown message kind: {kind!r}")
