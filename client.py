from __future__ import annotations

import json
import logging
import socket
from threading import Event
from typing import Callable, List, Optional

from alarms.errors import ClockError, InvalidField, NotFound, StoreUnavailable
from alarms.storage import Alarm
from messages import Message, decode_message

logger = logging.getLogger(__name__)


class CommandFailed(ClockError):
    """Reply error whose kind has no dedicated exception (e.g. BadRequest)."""

    def __init__(self, kind: str, message: str):
        super().__init__(message)
        self.kind = kind


def listen(
    stop_event: Event,
    callback: Callable[[Message], None],
    host: str = "127.0.0.1",
    port: int = 5555,
    poll_interval: float = 0.5,
) -> None:
    """Read the subscribe channel until ``stop_event`` is set or the daemon hangs up."""
    with socket.create_connection((host, port)) as sock:
        sock.settimeout(poll_interval)
        buffer = b""
        while not stop_event.is_set():
            try:
                chunk = sock.recv(4096)
            except socket.timeout:
                continue
            if not chunk:
                logger.info("Subscribe channel closed by the daemon")
                return
            buffer += chunk
            while b"\n" in buffer:
                line, buffer = buffer.split(b"\n", 1)
                if line.strip():
                    callback(decode_message(line))


class CommandClient:
    def __init__(self, host: str = "127.0.0.1", port: int = 5556, timeout: Optional[float] = 5.0):
        self._sock = socket.create_connection((host, port), timeout=timeout)
        self._reader = self._sock.makefile("rb")

    def close(self) -> None:
        self._reader.close()
        self._sock.close()

    def __enter__(self) -> "CommandClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def call(self, op: str, **params):
        request = dict(params, op=op)
        self._sock.sendall(json.dumps(request).encode("utf-8") + b"\n")
        line = self._reader.readline()
        if not line:
            raise ConnectionError("Command channel closed before replying")
        reply = json.loads(line)
        if reply.get("ok"):
            return reply.get("result")
        error = reply.get("error") or {}
        kind = error.get("kind", "ClockError")
        message = error.get("message", "")
        if kind == "InvalidField":
            raise InvalidField(error.get("field", "alarm"), message.partition(": ")[2] or message)
        if kind == "NotFound":
            raise NotFound(error.get("id"))
        if kind == "StoreUnavailable":
            raise StoreUnavailable(message)
        raise CommandFailed(kind, message)

    def get_alarms(self) -> List[Alarm]:
        return [Alarm.from_dict(item) for item in self.call("getAlarms")]

    def upsert_alarm(self, alarm: Alarm) -> Alarm:
        return Alarm.from_dict(self.call("upsertAlarm", alarm=alarm.to_dict()))

    def delete_alarm(self, alarm_id: int) -> None:
        self.call("deleteAlarm", id=alarm_id)
