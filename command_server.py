from __future__ import annotations

import json
import logging
import socketserver
from dataclasses import dataclass
from threading import Thread
from typing import Any, Callable, Dict, Optional

from alarms.errors import ClockError, InvalidField, NotFound
from alarms.storage import Alarm, AlarmStore

logger = logging.getLogger(__name__)

Handler = Callable[[dict], Any]


class BadRequest(Exception):
    kind = "BadRequest"


@dataclass
class CommandResult:
    ok: bool
    result: Any = None
    error_kind: Optional[str] = None
    error_message: Optional[str] = None
    error_details: Optional[dict] = None

    def to_dict(self) -> dict:
        if self.ok:
            return {"ok": True, "result": self.result}
        error = {"kind": self.error_kind, "message": self.error_message}
        error.update(self.error_details or {})
        return {"ok": False, "error": error}

    @classmethod
    def failure(cls, exc: Exception) -> "CommandResult":
        details = {}
        if isinstance(exc, InvalidField):
            details["field"] = exc.field
        elif isinstance(exc, NotFound):
            details["id"] = exc.alarm_id
        return cls(ok=False, error_kind=exc.kind, error_message=str(exc), error_details=details)


class CommandDispatcher:
    """Maps command requests onto AlarmStore operations.

    Store errors are reported with their own kind. New operations (for
    instance acknowledging a ring) plug in through ``register``.
    """

    def __init__(self, store: AlarmStore):
        self.store = store
        self._operations: Dict[str, Handler] = {}
        self.register("getAlarms", self._get_alarms)
        self.register("upsertAlarm", self._upsert_alarm)
        self.register("deleteAlarm", self._delete_alarm)

    def register(self, name: str, handler: Handler) -> None:
        self._operations[name] = handler

    @property
    def operations(self) -> list:
        return sorted(self._operations)

    def dispatch(self, request: Any) -> CommandResult:
        try:
            if not isinstance(request, dict):
                raise BadRequest("Request must be a JSON object")
            op = request.get("op")
            handler = self._operations.get(op)
            if handler is None:
                raise BadRequest(f"Unknown operation {op!r}")
            logger.debug("Command %s", op)
            return CommandResult(ok=True, result=handler(request))
        except (ClockError, BadRequest) as exc:
            logger.info("Command %s failed: %s", _op_name(request), exc)
            return CommandResult.failure(exc)

    def dispatch_line(self, line: bytes) -> bytes:
        try:
            request = json.loads(line.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            reply = CommandResult.failure(BadRequest(f"Malformed request: {exc}"))
        else:
            reply = self.dispatch(request)
        return json.dumps(reply.to_dict()).encode("utf-8") + b"\n"

    def _get_alarms(self, request: dict) -> list:
        return [alarm.to_dict() for alarm in self.store.list()]

    def _upsert_alarm(self, request: dict) -> dict:
        if "alarm" not in request:
            raise BadRequest("upsertAlarm needs an 'alarm' object")
        return self.store.upsert(Alarm.from_dict(request["alarm"])).to_dict()

    def _delete_alarm(self, request: dict) -> None:
        alarm_id = request.get("id")
        if alarm_id is None:
            raise BadRequest("deleteAlarm needs an 'id'")
        if isinstance(alarm_id, bool) or not isinstance(alarm_id, int):
            raise InvalidField("id", f"expected an integer, got {alarm_id!r}")
        self.store.delete(alarm_id)
        return None


def _op_name(request: Any) -> str:
    if isinstance(request, dict):
        return str(request.get("op"))
    return "?"


def make_command_handler(dispatcher: CommandDispatcher):
    """Create a request handler class bound to the dispatcher."""

    class CommandHandler(socketserver.StreamRequestHandler):
        def handle(self) -> None:
            peer = "%s:%s" % self.client_address[:2]
            logger.debug("Command client connected from %s", peer)
            for line in self.rfile:
                if not line.strip():
                    continue
                self.wfile.write(dispatcher.dispatch_line(line))
                self.wfile.flush()
            logger.debug("Command client %s disconnected", peer)

    return CommandHandler


class _ThreadingServer(socketserver.ThreadingTCPServer):
    allow_reuse_address = True
    daemon_threads = True


class CommandServer:
    def __init__(self, dispatcher: CommandDispatcher, host: str = "127.0.0.1", port: int = 5556):
        self.dispatcher = dispatcher
        self.host = host
        self.port = port
        self._server: Optional[_ThreadingServer] = None
        self._thread: Optional[Thread] = None

    @property
    def address(self) -> tuple:
        if self._server is None:
            return (self.host, self.port)
        return self._server.server_address[:2]

    def start(self) -> None:
        self._server = _ThreadingServer((self.host, self.port), make_command_handler(self.dispatcher))
        self._thread = Thread(
            target=self._server.serve_forever,
            kwargs={"poll_interval": 0.2},
            name="command-server",
            daemon=True,
        )
        self._thread.start()
        logger.info("Command channel listening on %s:%s", *self.address)

    def shutdown(self) -> None:
        if self._server:
            self._server.shutdown()
            self._server.server_close()
            self._server = None
        if self._thread:
            self._thread.join(timeout=2)
            self._thread = None
