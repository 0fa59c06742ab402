from datetime import datetime
from threading import Event, Thread

from alarms.errors import StoreUnavailable
from alarms.storage import Alarm, open_store
from broadcast import Broadcaster
from client import CommandClient, listen
from clockd import ClockDaemon, DaemonRuntime
from command_server import CommandDispatcher
from config import Config
from messages import AlarmRing, ClockTick

# 2024-01-01 is a Monday
MONDAY_0730 = datetime(2024, 1, 1, 7, 30, 0)


def _daemon():
    store = open_store(":memory:")
    broadcaster = Broadcaster()
    return ClockDaemon(store, broadcaster), store, broadcaster


def _drain(subscription):
    messages = []
    while True:
        message = subscription.get(timeout=0.01)
        if message is None:
            return messages
        messages.append(message)


def test_monday_alarm_rings_once():
    daemon, store, broadcaster = _daemon()
    sub = broadcaster.subscribe()
    created = CommandDispatcher(store).dispatch(
        {"op": "upsertAlarm", "alarm": {"hour": 7, "minute": 30, "second": 0, "activeDays": ["Monday"]}}
    )
    assert created.result["id"] == 1

    daemon.tick(MONDAY_0730)
    daemon.tick(datetime(2024, 1, 1, 7, 30, 1))
    daemon.tick(datetime(2024, 1, 2, 7, 30, 0))

    messages = _drain(sub)
    assert [type(m) for m in messages] == [ClockTick, AlarmRing, ClockTick, ClockTick]
    assert messages[1] == AlarmRing(1)


def test_same_second_twice_rings_once():
    daemon, store, broadcaster = _daemon()
    store.upsert(Alarm(hour=7, minute=30, second=0, active_days=frozenset({"Monday"})))
    assert daemon.tick(MONDAY_0730)[1:] == [AlarmRing(1)]
    assert daemon.tick(MONDAY_0730)[1:] == []


def test_clock_message_precedes_rings_of_the_same_tick():
    daemon, store, broadcaster = _daemon()
    sub = broadcaster.subscribe()
    first = store.upsert(Alarm(hour=7, minute=30, second=0, active_days=frozenset({"Monday"})))
    second = store.upsert(Alarm(hour=7, minute=30, second=0, active_days=frozenset({"Monday", "Friday"})))

    published = daemon.tick(MONDAY_0730)

    assert published[1:] == [AlarmRing(first.id), AlarmRing(second.id)]
    assert _drain(sub) == published
    tick = published[0]
    assert (tick.sample.hour, tick.sample.minute, tick.sample.second) == (7, 30, 0)


def test_invalid_alarm_leaves_store_empty():
    daemon, store, broadcaster = _daemon()
    reply = CommandDispatcher(store).dispatch(
        {"op": "upsertAlarm", "alarm": {"hour": 24, "minute": 0, "second": 0, "activeDays": ["Monday"]}}
    )
    assert reply.error_kind == "InvalidField"
    assert store.list() == []
    assert daemon.tick(MONDAY_0730)[1:] == []


class _UnavailableStore:
    def list(self):
        raise StoreUnavailable("database is locked")


def test_store_failure_still_broadcasts_the_clock():
    broadcaster = Broadcaster()
    sub = broadcaster.subscribe()
    daemon = ClockDaemon(_UnavailableStore(), broadcaster)
    published = daemon.tick(MONDAY_0730)
    assert len(published) == 1
    assert _drain(sub) == published


def test_tick_driver_runs_and_stops():
    daemon, store, broadcaster = _daemon()
    daemon.tick_period = 0.05
    sub = broadcaster.subscribe()
    daemon.start()
    try:
        assert isinstance(sub.get(timeout=2), ClockTick)
        assert daemon.running
    finally:
        daemon.shutdown()
    assert not daemon.running


def test_tick_driver_survives_a_failing_tick():
    daemon, store, broadcaster = _daemon()
    daemon.tick_period = 0.05
    calls = []
    original_tick = daemon.tick

    def flaky_tick(now=None):
        calls.append(now)
        if len(calls) == 1:
            raise RuntimeError("boom")
        return original_tick(now)

    daemon.tick = flaky_tick
    sub = broadcaster.subscribe()
    daemon.start()
    try:
        assert isinstance(sub.get(timeout=2), ClockTick)
    finally:
        daemon.shutdown()
    assert len(calls) >= 2


def test_runtime_serves_both_channels(tmp_path):
    config = Config(
        queue_host="127.0.0.1",
        queue_port=0,
        command_host="127.0.0.1",
        command_port=0,
        tick_duration_ms=50,
        database_path=tmp_path / "dbase.sqlite",
        timezone_name="UTC",
        subscriber_buffer=16,
        debug=False,
        log_level="INFO",
        log_dir=tmp_path / "logs",
    )
    runtime = DaemonRuntime(config, open_store(config.database_path))
    runtime.start()
    received = []
    stop = Event()
    try:
        host, port = runtime.subscriber_server.address
        listener = Thread(target=listen, args=(stop, received.append, host, port), daemon=True)
        listener.start()

        with CommandClient(*runtime.command_server.address) as client:
            created = client.upsert_alarm(Alarm(hour=5, minute=0, second=0, active_days=frozenset({"Sunday"})))
            assert [a.id for a in client.get_alarms()] == [created.id]

        deadline = datetime.now().timestamp() + 2
        while not received and datetime.now().timestamp() < deadline:
            stop.wait(0.05)
        assert received and isinstance(received[0], ClockTick)
    finally:
        stop.set()
        runtime.shutdown()
